"""
OAuth token storage keyed by QuickBooks company (realm) ID.

The in-memory map is authoritative for the life of the process. The file
backed store additionally writes a point-in-time snapshot of the whole map
after every ``put``. Writes run on a single background thread, never while
the map lock is held. A crash between ``put`` and the background write loses
that update; the tokens can be re-obtained by re-authorizing.
"""
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import structlog

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TokenRecord:
    """OAuth tokens for one company. Replaced wholesale, never mutated."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 0
    token_type: Optional[str] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def from_token_response(cls, payload: Mapping[str, Any], now: Optional[datetime] = None) -> "TokenRecord":
        """Build a record from an OAuth token endpoint response."""
        issued_at = now or utcnow()
        expires_in = int(payload.get("expires_in") or 0)
        return cls(
            access_token=payload.get("access_token") or "",
            refresh_token=payload.get("refresh_token"),
            expires_in=expires_in,
            token_type=payload.get("token_type"),
            expires_at=issued_at + timedelta(seconds=expires_in),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokenRecord":
        """Load a persisted record."""
        expires_at = data.get("expires_at")
        return cls(
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token"),
            expires_in=int(data.get("expires_in") or 0),
            token_type=data.get("token_type"),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Persisted / API representation."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    def expires_within(self, buffer: timedelta, now: Optional[datetime] = None) -> bool:
        """True when the token is expired, expiring inside ``buffer``, or of unknown age."""
        if self.expires_at is None:
            return True
        return self.expires_at <= (now or utcnow()) + buffer


class TokenStore(ABC):
    """Storage interface the OAuth service depends on."""

    @abstractmethod
    def get(self, company_id: str) -> Optional[TokenRecord]:
        """Return the record for a company, or None."""

    @abstractmethod
    def put(self, company_id: str, record: TokenRecord) -> None:
        """Replace the record for a company."""

    @abstractmethod
    def snapshot(self) -> Mapping[str, TokenRecord]:
        """Immutable copy of all records."""

    def close(self) -> None:
        """Release background resources."""


class InMemoryTokenStore(TokenStore):
    """Token map guarded by a single lock."""

    def __init__(self, records: Optional[Mapping[str, TokenRecord]] = None):
        self._lock = threading.Lock()
        self._records: Dict[str, TokenRecord] = dict(records or {})

    def get(self, company_id: str) -> Optional[TokenRecord]:
        with self._lock:
            return self._records.get(company_id)

    def put(self, company_id: str, record: TokenRecord) -> None:
        with self._lock:
            self._records[company_id] = record

    def snapshot(self) -> Mapping[str, TokenRecord]:
        with self._lock:
            return MappingProxyType(dict(self._records))

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class FileTokenStore(InMemoryTokenStore):
    """
    Token store persisted to a JSON file.

    Layout: ``{"<company_id>": {"access_token": ..., "refresh_token": ...,
    "expires_in": ..., "token_type": ..., "expires_at": ...}}``.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="token-store")
        self._pending: set[Future] = set()
        self._pending_lock = threading.Lock()
        self._sequence = 0
        self._load()

    def put(self, company_id: str, record: TokenRecord) -> None:
        # Sequence and snapshot come from one critical section so the highest
        # sequence always carries the newest map.
        with self._lock:
            self._records[company_id] = record
            snapshot = MappingProxyType(dict(self._records))
            self._sequence += 1
            sequence = self._sequence

        future = self._executor.submit(self._write_snapshot, sequence, snapshot)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every scheduled write has finished."""
        with self._pending_lock:
            pending = list(self._pending)
        for future in pending:
            future.result(timeout=timeout)

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _load(self) -> None:
        if not self.path.exists():
            logger.info("token_file_missing", path=str(self.path))
            return

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            records = {company_id: TokenRecord.from_dict(data) for company_id, data in raw.items()}
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning("token_file_unreadable", path=str(self.path), error=str(e))
            return

        with self._lock:
            self._records.update(records)
        logger.info("token_file_loaded", path=str(self.path), companies=len(records))

    def _write_snapshot(self, sequence: int, snapshot: Mapping[str, TokenRecord]) -> None:
        # A newer snapshot is already queued; it supersedes this one.
        with self._lock:
            if sequence < self._sequence:
                return

        payload = {company_id: record.to_dict() for company_id, record in snapshot.items()}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(payload, handle, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            logger.error("token_file_write_failed", path=str(self.path), error=str(e))
            return

        logger.debug("token_file_written", path=str(self.path), companies=len(payload))
