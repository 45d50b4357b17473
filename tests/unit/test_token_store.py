"""
Unit tests for token records and token stores.
"""
import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from invoicing_api.services.token_store import FileTokenStore, InMemoryTokenStore, TokenRecord

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def make_record(access_token: str = "access", expires_at: datetime = NOW + timedelta(hours=1)) -> TokenRecord:
    return TokenRecord(
        access_token=access_token,
        refresh_token="refresh",
        expires_in=3600,
        token_type="bearer",
        expires_at=expires_at,
    )


class TestTokenRecord:
    """Tests for TokenRecord construction and expiry."""

    def test_from_token_response_computes_expiry(self):
        record = TokenRecord.from_token_response(
            {"access_token": "a", "refresh_token": "r", "expires_in": 3600, "token_type": "bearer"},
            now=NOW,
        )

        assert record.access_token == "a"
        assert record.refresh_token == "r"
        assert record.expires_in == 3600
        assert record.expires_at == NOW + timedelta(seconds=3600)

    def test_round_trip_preserves_fields(self):
        record = make_record()

        assert TokenRecord.from_dict(record.to_dict()) == record

    def test_missing_expiry_loads_as_unknown(self):
        record = TokenRecord.from_dict({"access_token": "a", "refresh_token": "r", "expires_in": 3600})

        assert record.expires_at is None
        assert record.expires_within(timedelta(minutes=5), NOW)

    def test_expires_within_buffer(self):
        buffer = timedelta(minutes=5)

        assert make_record(expires_at=NOW + timedelta(minutes=4)).expires_within(buffer, NOW)
        assert make_record(expires_at=NOW - timedelta(minutes=1)).expires_within(buffer, NOW)
        assert not make_record(expires_at=NOW + timedelta(minutes=6)).expires_within(buffer, NOW)


class TestInMemoryTokenStore:
    """Tests for the lock-guarded in-memory store."""

    def test_get_missing_returns_none(self):
        assert InMemoryTokenStore().get("unknown") is None

    def test_read_your_write(self):
        store = InMemoryTokenStore()
        record = make_record()

        store.put("c1", record)

        assert store.get("c1") is record

    def test_put_replaces_record(self):
        store = InMemoryTokenStore({"c1": make_record("old")})

        store.put("c1", make_record("new"))

        assert store.get("c1").access_token == "new"
        assert len(store) == 1

    def test_snapshot_is_immutable_copy(self):
        store = InMemoryTokenStore({"c1": make_record()})
        snapshot = store.snapshot()

        store.put("c2", make_record())

        assert set(snapshot) == {"c1"}
        with pytest.raises(TypeError):
            snapshot["c3"] = make_record()

    def test_concurrent_puts_keep_every_company(self):
        store = InMemoryTokenStore()

        def writer(index: int) -> None:
            for n in range(50):
                store.put(f"c{index}", make_record(f"token-{n}"))

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 8
        assert all(store.get(f"c{i}").access_token == "token-49" for i in range(8))


class TestFileTokenStore:
    """Tests for the file-backed store."""

    def test_missing_file_starts_empty(self, tmp_path):
        store = FileTokenStore(tmp_path / "tokens.json")
        try:
            assert len(store) == 0
        finally:
            store.close()

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text("{not json", encoding="utf-8")

        store = FileTokenStore(path)
        try:
            assert len(store) == 0
        finally:
            store.close()

    def test_put_is_visible_before_flush(self, tmp_path):
        store = FileTokenStore(tmp_path / "tokens.json")
        record = make_record()
        try:
            store.put("c1", record)
            assert store.get("c1") is record
        finally:
            store.close()

    def test_persisted_layout(self, tmp_path):
        path = tmp_path / "nested" / "tokens.json"
        store = FileTokenStore(path)
        store.put("c1", make_record())
        store.close()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert set(data) == {"c1"}
        assert data["c1"]["access_token"] == "access"
        assert data["c1"]["refresh_token"] == "refresh"
        assert data["c1"]["expires_in"] == 3600
        assert data["c1"]["token_type"] == "bearer"
        assert data["c1"]["expires_at"] == (NOW + timedelta(hours=1)).isoformat()

    def test_reload_yields_same_records(self, tmp_path):
        path = tmp_path / "tokens.json"
        store = FileTokenStore(path)
        store.put("c1", make_record("a1"))
        store.put("c2", make_record("a2"))
        store.close()

        reloaded = FileTokenStore(path)
        try:
            assert reloaded.get("c1") == make_record("a1")
            assert reloaded.get("c2") == make_record("a2")
        finally:
            reloaded.close()

    def test_last_write_wins_on_disk(self, tmp_path):
        path = tmp_path / "tokens.json"
        store = FileTokenStore(path)
        for n in range(20):
            store.put("c1", make_record(f"token-{n}"))
        store.flush()
        store.close()

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["c1"]["access_token"] == "token-19"

    def test_legacy_file_without_expiry(self, tmp_path):
        path = tmp_path / "tokens.json"
        path.write_text(
            json.dumps({"c1": {"access_token": "a", "refresh_token": "r", "expires_in": 3600, "token_type": "bearer"}}),
            encoding="utf-8",
        )

        store = FileTokenStore(path)
        try:
            record = store.get("c1")
            assert record.access_token == "a"
            assert record.expires_at is None
        finally:
            store.close()
