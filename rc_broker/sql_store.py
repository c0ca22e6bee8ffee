"""
SQL session store (SQLite by default). Engine is owned by the store instance;
SQLAlchemy errors surface as StoreFailure.
"""
import json
import logging
from datetime import datetime, timezone

from sqlalchemy import create_engine, delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rc_broker.errors import StoreFailure
from rc_broker.models import Base, BrokerSession
from rc_broker.session_store import SessionRecord, SessionStore, new_session_id
from rc_broker.token_record import TokenRecord

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    # SQLite DateTime columns come back naive
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _naive(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _engine_for(url: str):
    # In-memory SQLite needs StaticPool so all connections share the same DB;
    # SQLite in general needs check_same_thread=False for FastAPI's threadpool
    if url.startswith("sqlite:///:memory:") or url == "sqlite://":
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


class SqlSessionStore(SessionStore):
    def __init__(self, url: str, **kwargs):
        super().__init__(**kwargs)
        self.engine = _engine_for(url)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        Base.metadata.create_all(bind=self.engine)

    def _to_record(self, row: BrokerSession) -> SessionRecord:
        token = TokenRecord.from_dict(json.loads(row.token_json)) if row.token_json else None
        return SessionRecord(
            session_id=row.session_id,
            created_at=_aware(row.created_at),
            last_accessed=_aware(row.last_accessed),
            token=token,
        )

    def get(self, session_id: str) -> SessionRecord | None:
        now = self.now()
        try:
            with self._session_factory() as db:
                row = db.get(BrokerSession, session_id)
                if row is None:
                    return None
                record = self._to_record(row)
                if record.expired(now, self.idle_ttl, self.absolute_ttl):
                    db.delete(row)
                    db.commit()
                    logger.debug("Session expired and dropped")
                    return None
                row.last_accessed = _naive(now)
                db.commit()
                return self._to_record(row)
        except SQLAlchemyError as e:
            logger.error("Session store read failed: %s", e)
            raise StoreFailure("session store read failed") from e

    def create(self, token: TokenRecord | None = None) -> SessionRecord:
        now = _naive(self.now())
        row = BrokerSession(
            session_id=new_session_id(),
            token_json=json.dumps(token.to_dict()) if token else None,
            created_at=now,
            last_accessed=now,
        )
        try:
            with self._session_factory() as db:
                db.add(row)
                db.commit()
                return self._to_record(row)
        except SQLAlchemyError as e:
            logger.error("Session store write failed: %s", e)
            raise StoreFailure("session store write failed") from e

    def set_token(self, session_id: str, token: TokenRecord | None) -> SessionRecord | None:
        stmt = (
            update(BrokerSession)
            .where(BrokerSession.session_id == session_id)
            .values(
                token_json=json.dumps(token.to_dict()) if token else None,
                last_accessed=_naive(self.now()),
            )
        )
        try:
            with self._session_factory() as db:
                result = db.execute(stmt)
                db.commit()
                if result.rowcount == 0:
                    return None
                row = db.scalars(select(BrokerSession).where(BrokerSession.session_id == session_id)).first()
                return self._to_record(row) if row is not None else None
        except SQLAlchemyError as e:
            logger.error("Session store write failed: %s", e)
            raise StoreFailure("session store write failed") from e

    def destroy(self, session_id: str) -> None:
        try:
            with self._session_factory() as db:
                db.execute(delete(BrokerSession).where(BrokerSession.session_id == session_id))
                db.commit()
        except SQLAlchemyError as e:
            logger.error("Session store delete failed: %s", e)
            raise StoreFailure("session store delete failed") from e

    def purge_expired(self) -> int:
        now = self.now()
        idle_cutoff = _naive(now - self.idle_ttl)
        absolute_cutoff = _naive(now - self.absolute_ttl)
        stmt = delete(BrokerSession).where(
            or_(BrokerSession.last_accessed < idle_cutoff, BrokerSession.created_at < absolute_cutoff)
        )
        try:
            with self._session_factory() as db:
                result = db.execute(stmt)
                db.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error("Session store purge failed: %s", e)
            raise StoreFailure("session store purge failed") from e

    def close(self) -> None:
        self.engine.dispose()
