"""
Server-side session storage. A session record maps an opaque session id to at
most one TokenRecord, with a sliding idle lifetime and an absolute lifetime.
Token updates replace the whole record under the store's per-key atomicity;
concurrent refreshes for one session are last-writer-wins.
"""
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from rc_broker.config import BrokerConfig
from rc_broker.token_record import TokenRecord

logger = logging.getLogger(__name__)

MEMORY_STORE_URL = "memory://"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    """Opaque, unguessable session id (256 bits)."""
    return secrets.token_urlsafe(32)


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    created_at: datetime
    last_accessed: datetime
    token: TokenRecord | None = None

    def expired(self, now: datetime, idle_ttl: timedelta, absolute_ttl: timedelta) -> bool:
        return (now - self.last_accessed) > idle_ttl or (now - self.created_at) > absolute_ttl


class SessionStore(ABC):
    """
    Interface for session backends. Implementations raise StoreFailure when the
    backend itself is unavailable.
    """

    def __init__(
        self,
        *,
        idle_ttl_seconds: int,
        absolute_ttl_seconds: int,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.idle_ttl = timedelta(seconds=idle_ttl_seconds)
        self.absolute_ttl = timedelta(seconds=absolute_ttl_seconds)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    @abstractmethod
    def get(self, session_id: str) -> SessionRecord | None:
        """Return the live record and slide its idle expiry; expired records are dropped."""
        raise NotImplementedError

    @abstractmethod
    def create(self, token: TokenRecord | None = None) -> SessionRecord:
        raise NotImplementedError

    @abstractmethod
    def set_token(self, session_id: str, token: TokenRecord | None) -> SessionRecord | None:
        """Atomically replace the session's token. Returns None if the session no longer exists."""
        raise NotImplementedError

    @abstractmethod
    def destroy(self, session_id: str) -> None:
        """Remove the session. Destroying an absent session is not an error."""
        raise NotImplementedError

    @abstractmethod
    def purge_expired(self) -> int:
        """Drop every expired record. Returns the number removed."""
        raise NotImplementedError

    def close(self) -> None:
        pass


class MemorySessionStore(SessionStore):
    """Single-process store; a lock makes each get/set/destroy atomic per call."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> SessionRecord | None:
        now = self.now()
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            if record.expired(now, self.idle_ttl, self.absolute_ttl):
                del self._records[session_id]
                logger.debug("Session expired and dropped")
                return None
            record = replace(record, last_accessed=now)
            self._records[session_id] = record
            return record

    def create(self, token: TokenRecord | None = None) -> SessionRecord:
        now = self.now()
        record = SessionRecord(session_id=new_session_id(), created_at=now, last_accessed=now, token=token)
        with self._lock:
            self._records[record.session_id] = record
        return record

    def set_token(self, session_id: str, token: TokenRecord | None) -> SessionRecord | None:
        now = self.now()
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            record = replace(record, token=token, last_accessed=now)
            self._records[session_id] = record
            return record

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._records.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self.now()
        with self._lock:
            expired = [
                sid for sid, r in self._records.items() if r.expired(now, self.idle_ttl, self.absolute_ttl)
            ]
            for sid in expired:
                del self._records[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def build_store(config: BrokerConfig) -> SessionStore:
    """memory:// gives an in-process store; anything else is an SQLAlchemy URL."""
    kwargs = {
        "idle_ttl_seconds": config.session_max_age,
        "absolute_ttl_seconds": config.session_absolute_lifetime,
    }
    if config.session_store_url == MEMORY_STORE_URL:
        return MemorySessionStore(**kwargs)

    from rc_broker.sql_store import SqlSessionStore

    return SqlSessionStore(config.session_store_url, **kwargs)
