# Seedkeeper - Sub-Account Seed Manager
#
# Delegated sub-account seeds, encrypted under the user's passcode with the
# sub-account-seed purpose key and bound to their address (associated data),
# so a ciphertext copied onto another address row will not decrypt.
#
# Every operation that needs the passcode checks it against the wallet
# verifier first and fails fast without touching the table.

import sqlite3
import time
from typing import List

from ..errors import IncorrectPasscode, SeedNotFound
from ..store.secret_store import SecretStore
from .encryption import DecryptionError, EncryptionService, SecretPurpose
from .wallet_records import WalletRecordManager


def _address_context(address: str) -> bytes:
    return address.encode('utf-8')


class SubAccountSeedManager:
    """Encrypted storage of sub-account seeds keyed by address."""

    def __init__(self, store: SecretStore, wallet_records: WalletRecordManager):
        self.store = store
        self.wallet_records = wallet_records

    def save_seed(self, address: str, seed: str, passcode: str) -> None:
        """
        Encrypt and upsert a seed for an address.

        The passcode check and the write happen in one transaction.

        Raises:
            NoWalletRecord: no wallet exists
            IncorrectPasscode: passcode does not match the wallet
        """
        def _save(conn: sqlite3.Connection) -> None:
            self.wallet_records.verify_passcode(passcode, conn=conn)
            encrypted = EncryptionService.encrypt(
                seed,
                passcode,
                SecretPurpose.SUB_ACCOUNT_SEED,
                associated_data=_address_context(address),
            )
            conn.execute(
                """INSERT INTO sub_account_seeds (address, encrypted_seed, created_at)
                   VALUES (?, ?, ?)
                   ON CONFLICT(address) DO UPDATE SET
                       encrypted_seed = excluded.encrypted_seed,
                       created_at = excluded.created_at""",
                (address, encrypted, int(time.time() * 1000)),
            )

        self.store.mutate(_save)

    def get_seed(self, address: str, passcode: str) -> str:
        """
        Decrypt the seed stored for an address.

        Raises:
            NoWalletRecord / IncorrectPasscode: passcode check failed
            SeedNotFound: no seed stored for this address
        """
        with self.store.load() as conn:
            self.wallet_records.verify_passcode(passcode, conn=conn)
            row = conn.execute(
                "SELECT encrypted_seed FROM sub_account_seeds WHERE address = ?",
                (address,),
            ).fetchone()
        if row is None:
            raise SeedNotFound()
        try:
            return EncryptionService.decrypt(
                row["encrypted_seed"],
                passcode,
                SecretPurpose.SUB_ACCOUNT_SEED,
                associated_data=_address_context(address),
            )
        except DecryptionError:
            raise IncorrectPasscode()

    def has_seed(self, address: str) -> bool:
        with self.store.load() as conn:
            row = conn.execute(
                "SELECT 1 FROM sub_account_seeds WHERE address = ?", (address,)
            ).fetchone()
        return row is not None

    def delete_seed(self, address: str) -> bool:
        """Returns True if a seed was removed."""
        return self.store.mutate(
            lambda conn: conn.execute(
                "DELETE FROM sub_account_seeds WHERE address = ?", (address,)
            ).rowcount > 0
        )

    def list_addresses_with_seeds(self) -> List[str]:
        """Addresses that have a stored seed, newest first."""
        with self.store.load() as conn:
            rows = conn.execute(
                "SELECT address FROM sub_account_seeds ORDER BY created_at DESC, address"
            ).fetchall()
        return [row["address"] for row in rows]

    @staticmethod
    def reencrypt_all(conn: sqlite3.Connection, old_passcode: str, new_passcode: str) -> int:
        """
        Re-encrypt every stored seed under a new passcode.

        Must run inside the caller's mutation so the passcode change is
        all-or-nothing.

        Returns:
            Number of seeds re-encrypted

        Raises:
            IncorrectPasscode: a seed did not decrypt under old_passcode
        """
        rows = conn.execute(
            "SELECT address, encrypted_seed FROM sub_account_seeds"
        ).fetchall()
        for row in rows:
            context = _address_context(row["address"])
            try:
                seed = EncryptionService.decrypt(
                    row["encrypted_seed"], old_passcode,
                    SecretPurpose.SUB_ACCOUNT_SEED, associated_data=context,
                )
            except DecryptionError:
                raise IncorrectPasscode(
                    f"Seed for {row['address']} could not be decrypted"
                )
            conn.execute(
                "UPDATE sub_account_seeds SET encrypted_seed = ? WHERE address = ?",
                (
                    EncryptionService.encrypt(
                        seed, new_passcode,
                        SecretPurpose.SUB_ACCOUNT_SEED, associated_data=context,
                    ),
                    row["address"],
                ),
            )
        return len(rows)
