# Seedkeeper - Backend snapshot client
#
# The local sync daemon owns the sync folder paths and the file-encryption
# keys. At export time we pull a snapshot of that state so it can ride along
# in the backup; after a restore we push it back.
#
# Daemon HTTP API:
#   GET  /export_app_data  → {"public_sync_path", "private_sync_path", "encryption_keys"}
#   POST /import_app_data  ← same shape, returns {"message": "..."}
#
# Design mirrors the feed fetchers: retry with exponential backoff on
# transport errors and 5xx; 4xx fails immediately.

import logging
import time
from typing import Callable, Optional, Protocol

import httpx

from ..errors import SnapshotUnavailable
from ..vault.backend_snapshot import BackendSnapshot

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_BACKOFF_SEC = 0.5
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT_SEC = 10


class SnapshotClient(Protocol):
    """Collaborator that exports and imports backend state."""

    def fetch(self) -> BackendSnapshot:
        ...

    def import_snapshot(self, snapshot: BackendSnapshot) -> str:
        ...


class HttpSnapshotClient:
    """SnapshotClient talking to the sync daemon over HTTP.

    Usage::

        client = HttpSnapshotClient("http://127.0.0.1:7777")
        snapshot = client.fetch()
        client.import_snapshot(snapshot)

    Args:
        base_url: Daemon root URL
        transport: Optional httpx transport (tests pass httpx.MockTransport)
        sleep: Backoff sleep function
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = MAX_RETRIES,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._sleep = sleep
        self.max_retries = max_retries

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            transport=self._transport,
            timeout=REQUEST_TIMEOUT_SEC,
            headers={"Accept": "application/json", "User-Agent": "Seedkeeper/0.1"},
        )

    def _request(self, method: str, path: str, json_body: Optional[dict] = None) -> httpx.Response:
        """Execute a request with retry + exponential backoff."""
        backoff = INITIAL_BACKOFF_SEC
        last_error = "no attempt made"

        with self._client() as client:
            for attempt in range(1, self.max_retries + 1):
                try:
                    resp = client.request(method, path, json=json_body)
                except httpx.TransportError as exc:
                    last_error = str(exc) or type(exc).__name__
                else:
                    if resp.status_code < 400:
                        return resp
                    if resp.status_code < 500:
                        raise SnapshotUnavailable(
                            f"Sync daemon rejected {method} {path}: HTTP {resp.status_code}"
                        )
                    last_error = f"HTTP {resp.status_code}"

                if attempt < self.max_retries:
                    logger.warning(
                        "Sync daemon %s %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                        method, path, last_error, backoff, attempt, self.max_retries,
                    )
                    self._sleep(backoff)
                    backoff *= BACKOFF_MULTIPLIER

        raise SnapshotUnavailable(
            f"Sync daemon {method} {path} failed after {self.max_retries} attempts: {last_error}"
        )

    def fetch(self) -> BackendSnapshot:
        """Pull the current backend snapshot. Raises SnapshotUnavailable."""
        resp = self._request("GET", "/export_app_data")
        try:
            return BackendSnapshot.from_dict(resp.json())
        except ValueError as exc:
            raise SnapshotUnavailable(f"Malformed snapshot from sync daemon: {exc}") from exc

    def import_snapshot(self, snapshot: BackendSnapshot) -> str:
        """Push a snapshot to the daemon. Returns its status message."""
        resp = self._request("POST", "/import_app_data", json_body=snapshot.to_dict())
        try:
            body = resp.json()
        except ValueError:
            return resp.text
        if isinstance(body, dict):
            return str(body.get("message", ""))
        return str(body)
