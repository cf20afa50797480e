"""
Tests for the sync daemon snapshot client.

All HTTP calls go through httpx.MockTransport; no network access required.
Covers: fetch parsing, import, retry on 5xx and transport errors, 4xx fail-fast.
"""

import json

import httpx
import pytest

from seedkeeper.backup.snapshot_client import HttpSnapshotClient
from seedkeeper.errors import SnapshotUnavailable
from seedkeeper.vault.backend_snapshot import BackendSnapshot

SNAPSHOT_JSON = {
    "public_sync_path": "/home/user/Hippius/public",
    "private_sync_path": "/home/user/Hippius/private",
    "encryption_keys": ["a2V5LW9uZQ=="],
}


def _client(handler, sleeps=None):
    return HttpSnapshotClient(
        "http://daemon.test/",
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else lambda _: None),
    )


class TestFetch:

    def test_fetch(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.url.path))
            return httpx.Response(200, json=SNAPSHOT_JSON)

        snapshot = _client(handler).fetch()
        assert snapshot == BackendSnapshot(**SNAPSHOT_JSON)
        assert seen == [("GET", "/export_app_data")]

    def test_malformed_body(self):
        client = _client(lambda request: httpx.Response(200, json={"encryption_keys": 7}))
        with pytest.raises(SnapshotUnavailable):
            client.fetch()

    def test_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(SnapshotUnavailable):
            client.fetch()


class TestImport:

    def test_posts_snapshot(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"message": "Data imported successfully"})

        message = _client(handler).import_snapshot(BackendSnapshot(**SNAPSHOT_JSON))
        assert message == "Data imported successfully"
        assert bodies == [SNAPSHOT_JSON]

    def test_plain_text_reply(self):
        client = _client(lambda request: httpx.Response(200, text="ok"))
        assert client.import_snapshot(BackendSnapshot()) == "ok"


class TestRetry:

    def test_retries_server_errors(self):
        responses = iter([
            httpx.Response(503),
            httpx.Response(502),
            httpx.Response(200, json=SNAPSHOT_JSON),
        ])
        sleeps = []
        snapshot = _client(lambda request: next(responses), sleeps).fetch()
        assert snapshot.encryption_keys == ["a2V5LW9uZQ=="]
        assert sleeps == [0.5, 1.0]

    def test_client_error_fails_fast(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(400)

        with pytest.raises(SnapshotUnavailable, match="HTTP 400"):
            _client(handler).fetch()
        assert len(calls) == 1

    def test_gives_up_after_max_retries(self):
        calls = []
        sleeps = []

        def handler(request):
            calls.append(1)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SnapshotUnavailable, match="after 3 attempts"):
            _client(handler, sleeps).fetch()
        assert len(calls) == 3
        assert sleeps == [0.5, 1.0]
