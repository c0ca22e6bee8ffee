"""
SQLAlchemy model for the SQL-backed session store. One row per session; the
token record is stored as a JSON string so a refresh replaces it in one UPDATE.
"""
from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class BrokerSession(Base):
    __tablename__ = "broker_sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # JSON of TokenRecord.to_dict(); NULL = session without a token
    token_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    last_accessed: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
