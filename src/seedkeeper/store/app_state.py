# Seedkeeper - Auxiliary app state
#
# Address book and node endpoint configuration. Not secret, but they live in
# the same store file so a backup carries them along.

import time
from dataclasses import dataclass
from typing import List

from ..errors import InvalidEndpoint
from .secret_store import SecretStore

DEFAULT_WSS_ENDPOINT = "wss://rpc.hippius.network"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class AddressBookEntry:
    id: int
    name: str
    wallet_address: str
    date_added: int


class AddressBook:
    """Named contact addresses, sorted by name."""

    def __init__(self, store: SecretStore):
        self.store = store

    def add_contact(self, name: str, wallet_address: str) -> int:
        """Insert a contact. Returns its row id."""
        def _insert(conn):
            cur = conn.execute(
                "INSERT INTO address_book (name, wallet_address, date_added) "
                "VALUES (?, ?, ?)",
                (name, wallet_address, _now_ms()),
            )
            return cur.lastrowid

        return self.store.mutate(_insert)

    def get_contacts(self) -> List[AddressBookEntry]:
        with self.store.load() as conn:
            rows = conn.execute(
                "SELECT id, name, wallet_address, date_added FROM address_book "
                "ORDER BY name"
            ).fetchall()
        return [AddressBookEntry(**dict(row)) for row in rows]

    def update_contact(self, contact_id: int, name: str, wallet_address: str) -> bool:
        """Returns True if the contact existed."""
        return self.store.mutate(
            lambda conn: conn.execute(
                "UPDATE address_book SET name = ?, wallet_address = ? WHERE id = ?",
                (name, wallet_address, contact_id),
            ).rowcount > 0
        )

    def delete_contact(self, contact_id: int) -> bool:
        """Returns True if the contact existed."""
        return self.store.mutate(
            lambda conn: conn.execute(
                "DELETE FROM address_book WHERE id = ?", (contact_id,)
            ).rowcount > 0
        )


class NodeConfig:
    """Singleton row holding the chain RPC websocket endpoint."""

    def __init__(self, store: SecretStore, default_endpoint: str = DEFAULT_WSS_ENDPOINT):
        self.store = store
        self.default_endpoint = default_endpoint

    def get_wss_endpoint(self) -> str:
        """Current endpoint; stores and returns the default when unset."""
        def _get_or_init(conn) -> str:
            row = conn.execute(
                "SELECT wss_endpoint FROM node_config WHERE id = 1"
            ).fetchone()
            if row is not None:
                return row["wss_endpoint"]
            self._write(conn, self.default_endpoint)
            return self.default_endpoint

        return self.store.mutate(_get_or_init)

    def update_wss_endpoint(self, endpoint: str) -> None:
        endpoint = (endpoint or "").strip()
        if not endpoint.startswith(("ws://", "wss://")):
            raise InvalidEndpoint()
        self.store.mutate(lambda conn: self._write(conn, endpoint))

    def reset_wss_endpoint(self) -> str:
        self.store.mutate(lambda conn: self._write(conn, self.default_endpoint))
        return self.default_endpoint

    @staticmethod
    def _write(conn, endpoint: str) -> None:
        conn.execute(
            """INSERT INTO node_config (id, wss_endpoint, date_updated)
               VALUES (1, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   wss_endpoint = excluded.wss_endpoint,
                   date_updated = excluded.date_updated""",
            (endpoint, _now_ms()),
        )
