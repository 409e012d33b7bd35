"""
Relational Database Schema

DESIGN DECISION: Balances and transactions live in a relational database
because the ledger needs what a spreadsheet cannot give it: row locks and
all-or-nothing commits spanning an asset and its transactions.

SQLite is supported for development and tests. Its driver normally defers
BEGIN until the first write, which would let two writers read the same
balance. We take the write lock up front with BEGIN IMMEDIATE instead,
which is what SELECT ... FOR UPDATE gives us on server databases.
"""

import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from kanemane.config import get_settings


MONEY = Numeric(15, 2)


class Base(DeclarativeBase):
    pass


class FamilyRow(Base):
    __tablename__ = "families"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime)


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(32), unique=True, index=True)
    family_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, index=True)
    primary_asset_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)


class AssetRow(Base):
    __tablename__ = "assets"
    __table_args__ = (Index("ix_assets_owner", "owner_kind", "owner_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    owner_kind: Mapped[str] = mapped_column(String(10))
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    country: Mapped[str] = mapped_column(String(2))
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20))
    currency: Mapped[str] = mapped_column(String(3))
    balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"))
    created_at: Mapped[dt.datetime] = mapped_column(DateTime)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime)


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (Index("ix_transactions_owner_date", "owner_kind", "owner_id", "date"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    kind: Mapped[str] = mapped_column(String(10))
    owner_kind: Mapped[str] = mapped_column(String(10))
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid)
    asset_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assets.id", ondelete="CASCADE"), index=True
    )
    category: Mapped[str] = mapped_column(String(100))
    amount: Mapped[Decimal] = mapped_column(MONEY)
    currency: Mapped[str] = mapped_column(String(3))
    date: Mapped[dt.date] = mapped_column(Date)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime)


class ConversationStateRow(Base):
    __tablename__ = "conversation_states"

    actor: Mapped[str] = mapped_column(String(64), primary_key=True)
    step: Mapped[str] = mapped_column(String(40))
    data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    expires_at: Mapped[dt.datetime] = mapped_column(DateTime, index=True)
    version: Mapped[int] = mapped_column(Integer)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, index=True)
    event_type: Mapped[str] = mapped_column(String(50))
    severity: Mapped[str] = mapped_column(String(20))
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    entity_id: Mapped[Optional[str]] = mapped_column(String(64))
    correlation_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, index=True)
    description: Mapped[str] = mapped_column(String(500))
    details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_user_action: Mapped[bool] = mapped_column(Boolean, default=False)


def _use_immediate_transactions(engine: Engine) -> None:
    """Make every SQLite transaction take the write lock when it begins."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """
    Owns the SQLAlchemy engine and session factory.

    Usage:
        db = Database("sqlite://")
        db.init_schema()
        with db.session_factory() as session:
            ...
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        if url is None or echo is None:
            settings = get_settings().database
            url = url or settings.url
            echo = settings.echo if echo is None else echo

        kwargs: dict[str, Any] = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every session sees an empty database
                kwargs["poolclass"] = StaticPool

        self.url = url
        self.engine = create_engine(url, **kwargs)
        if self.is_sqlite:
            _use_immediate_transactions(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @property
    def is_sqlite(self) -> bool:
        return self.engine.dialect.name == "sqlite"

    def init_schema(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
