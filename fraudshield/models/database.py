"""Storage layer: async engine, session factory and ORM models.

``Transaction`` holds every assessed transaction with its score, ``Alert``
the investigations raised for them and ``Account`` the billing location of
each user.  ``get_db`` hands sessions to FastAPI routes; ``create_tables``
and ``drop_tables`` manage the schema.

SQLite runs in WAL mode so API reads proceed while a batch ingestion is
writing, and without a connection pool because aiosqlite connections are
bound to the event loop that opened them.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    event,
    func,
)
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import NullPool

from fraudshield.config import settings

# ---------------------------------------------------------------------------
# Engine and sessions
# ---------------------------------------------------------------------------


def _enable_wal(dbapi_connection: Any, _record: Any) -> None:  # noqa: ANN401
    """``connect`` listener switching each new SQLite connection to WAL."""
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL;")
    finally:
        cursor.close()


_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    **({"poolclass": NullPool} if _is_sqlite else {}),
)

if _is_sqlite:
    event.listen(engine.sync_engine, "connect", _enable_wal)


async_session: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
    autocommit=False,
)


def utcnow() -> datetime:
    """Current UTC time as the naive datetime stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


# ---------------------------------------------------------------------------
# ORM Models
# ---------------------------------------------------------------------------


class Transaction(Base):
    """A transaction accepted by the intake workflow.

    Stored with the risk score and band assigned at intake.  The IP-derived
    location is flattened into ``country``/``city``/``latitude``/``longitude``.

    Indexed columns:
        - ``user_id``   : used by every history lookup.
        - ``timestamp`` : bounds the velocity windows.
    """

    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_user_id", "user_id"),
        Index("ix_transactions_merchant_id", "merchant_id"),
        Index("ix_transactions_timestamp", "timestamp"),
        Index("ix_transactions_risk_score", "risk_score"),
    )

    transaction_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="Identifier sourced from the upstream transaction system.",
    )
    user_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="Identifier of the account holder.",
    )
    merchant_id: Mapped[str] = mapped_column(
        String,
        nullable=False,
        doc="Identifier of the merchant.",
    )
    merchant_category: Mapped[str | None] = mapped_column(
        String,
        nullable=True,
        doc="Merchant category, when supplied.",
    )
    amount: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        doc="Transaction amount in ``currency``.",
    )
    currency: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="USD",
        doc="ISO 4217 currency code.",
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        doc="UTC time of the transaction event.",
    )
    card_type: Mapped[str | None] = mapped_column(
        String,
        nullable=True,
        doc="credit, debit, prepaid or other.",
    )
    card_last4: Mapped[str | None] = mapped_column(String, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String, nullable=True)
    device_id: Mapped[str | None] = mapped_column(String, nullable=True)
    country: Mapped[str | None] = mapped_column(
        String,
        nullable=True,
        doc="Country of the IP-derived location.",
    )
    city: Mapped[str | None] = mapped_column(String, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_type: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="purchase",
        doc="purchase, refund, authorization, capture or void.",
    )
    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="pending",
        doc="pending, completed, failed, refunded or flagged.",
    )
    risk_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        doc="Risk score in [0, 1] assigned at intake.",
    )
    risk_level: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="low",
        doc="low, medium or high.",
    )
    is_fraud: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Set when an analyst confirms fraud.",
    )
    review_status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="not_reviewed",
        doc="not_reviewed, reviewed, confirmed_fraud or false_positive.",
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        doc="Row insertion timestamp.",
    )

    alerts: Mapped[list[Alert]] = relationship(
        "Alert",
        back_populates="transaction",
        lazy="select",
    )


class Alert(Base):
    """An investigation raised for a transaction.

    Created when the risk pipeline asks for an alert.  Analysts move
    ``status`` through the review workflow.

    Valid ``status`` values:
        - ``new``              : newly created, awaiting analyst attention.
        - ``under_review``     : analyst has started reviewing.
        - ``resolved``         : closed without a fraud verdict.
        - ``false_positive``   : analyst confirmed the transaction is legitimate.
        - ``confirmed_fraud``  : analyst confirmed fraudulent activity.
    """

    __tablename__ = "alerts"

    __table_args__ = (
        Index("ix_alerts_created_at", "created_at"),
        Index("ix_alerts_status", "status"),
        Index("ix_alerts_severity", "severity"),
    )

    alert_id: Mapped[str] = mapped_column(
        String,
        primary_key=True,
        doc="Random UUID assigned by the intake workflow.",
    )
    transaction_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("transactions.transaction_id"),
        nullable=False,
        doc="Transaction that raised this alert.",
    )
    alert_type: Mapped[str] = mapped_column(String, nullable=False)
    severity: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(String, nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="new",
        doc="Analyst workflow state; see the class docstring.",
    )
    reasons: Mapped[list[str]] = mapped_column(
        # Stored as JSON text in SQLite and as native JSON in PostgreSQL.
        JSON,
        nullable=False,
        doc="Ordered reasons produced by the insight generator.",
    )
    recommended_action: Mapped[str] = mapped_column(String, nullable=False)
    resolution_notes: Mapped[str | None] = mapped_column(String, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        server_default=func.now(),
        doc="Row insertion timestamp.",
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        onupdate=utcnow,
        nullable=True,
        doc="Timestamp of the most recent status update.",
    )

    transaction: Mapped[Transaction] = relationship(
        "Transaction",
        back_populates="alerts",
        lazy="select",
    )


class Account(Base):
    """Billing location of an account holder.

    Compared against the IP-derived location of new transactions.
    """

    __tablename__ = "accounts"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    billing_country: Mapped[str | None] = mapped_column(String, nullable=True)
    billing_city: Mapped[str | None] = mapped_column(String, nullable=True)
    billing_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    billing_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)


# ---------------------------------------------------------------------------
# Schema management
# ---------------------------------------------------------------------------


async def create_tables() -> None:
    """Issue ``CREATE TABLE IF NOT EXISTS`` for every model.  Idempotent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables() -> None:
    """Drop every model table.  Used to reset test databases."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request.

    Uncommitted work is rolled back when the session closes.
    """
    async with async_session() as session:
        yield session
