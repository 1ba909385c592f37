"""Historical-data access for the risk pipeline.

The feature extractor never queries storage itself.  It reads account
history through the narrow ``HistoryProvider`` interface, whose calls are
synchronous, deterministic and side-effect free.

The database-backed implementation is split in two steps so the scoring
path never suspends:

1. ``load_history_snapshot`` runs the async queries for one transaction.
2. The resulting ``HistorySnapshot`` answers lookups from memory.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fraudshield.models.database import Account, Transaction
from fraudshield.schemas.schemas import Coordinates, Location, TransactionCreate

logger = logging.getLogger(__name__)

DECLINED_STATUS = "failed"


class HistoryUnavailableError(Exception):
    """Raised by a provider that cannot answer a lookup."""


@dataclass(frozen=True, slots=True)
class VelocityStats:
    """Transaction frequency and volume over trailing windows.

    Attributes:
        count_24h: Transactions in the previous 24 hours.
        count_7d: Transactions in the previous 7 days.
        sum_24h: Total amount of the previous 24 hours.
        declined_24h: Declined transactions in the previous 24 hours.
    """

    count_24h: int = 0
    count_7d: int = 0
    sum_24h: float = 0.0
    declined_24h: int = 0


class HistoryProvider(ABC):
    """Read-only view of an account's transaction history."""

    @abstractmethod
    def lookup_velocity(self, user_id: str) -> VelocityStats:
        """Return velocity aggregates for ``user_id``."""

    @abstractmethod
    def lookup_known_device(self, device_id: str) -> bool:
        """Return ``True`` when ``device_id`` has been seen before."""

    @abstractmethod
    def lookup_known_ip(self, ip: str) -> bool:
        """Return ``True`` when ``ip`` has been seen before."""

    @abstractmethod
    def lookup_billing_location(self, user_id: str) -> Location | None:
        """Return the billing location on file, or ``None`` when unknown."""


@dataclass(frozen=True)
class HistorySnapshot(HistoryProvider):
    """Immutable, in-memory history captured at a point in time.

    Users without an entry in ``velocity`` report empty ``VelocityStats``.
    """

    velocity: Mapping[str, VelocityStats] = field(default_factory=dict)
    known_devices: frozenset[str] = frozenset()
    known_ips: frozenset[str] = frozenset()
    billing_locations: Mapping[str, Location] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        *,
        velocity: Mapping[str, VelocityStats] | None = None,
        known_devices: Iterable[str] = (),
        known_ips: Iterable[str] = (),
        billing_locations: Mapping[str, Location] | None = None,
    ) -> HistorySnapshot:
        """Convenience constructor accepting any iterables."""
        return cls(
            velocity=dict(velocity or {}),
            known_devices=frozenset(known_devices),
            known_ips=frozenset(known_ips),
            billing_locations=dict(billing_locations or {}),
        )

    def lookup_velocity(self, user_id: str) -> VelocityStats:
        return self.velocity.get(user_id, VelocityStats())

    def lookup_known_device(self, device_id: str) -> bool:
        return device_id in self.known_devices

    def lookup_known_ip(self, ip: str) -> bool:
        return ip in self.known_ips

    def lookup_billing_location(self, user_id: str) -> Location | None:
        return self.billing_locations.get(user_id)


class UnavailableHistory(HistoryProvider):
    """Provider standing in for a history source that failed to load.

    Every lookup raises ``HistoryUnavailableError`` so that the risk
    pipeline reports the failure through its fail-safe path.
    """

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause

    def _error(self) -> HistoryUnavailableError:
        return HistoryUnavailableError(f"History unavailable: {self.cause}")

    def lookup_velocity(self, user_id: str) -> VelocityStats:
        raise self._error() from self.cause

    def lookup_known_device(self, device_id: str) -> bool:
        raise self._error() from self.cause

    def lookup_known_ip(self, ip: str) -> bool:
        raise self._error() from self.cause

    def lookup_billing_location(self, user_id: str) -> Location | None:
        raise self._error() from self.cause


def to_utc(ts: datetime) -> datetime:
    """Return ``ts`` as an aware UTC datetime.  Naive values are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def to_storage_time(ts: datetime) -> datetime:
    """Return ``ts`` as the naive UTC datetime stored in the database."""
    return to_utc(ts).replace(tzinfo=None)


async def load_history_snapshot(
    session: AsyncSession,
    tx: TransactionCreate,
) -> HistorySnapshot:
    """Query the account history of ``tx.user_id`` into a ``HistorySnapshot``.

    Windows are anchored on the transaction's own timestamp (supports
    historical data replay) and only include earlier transactions.

    Args:
        tx: The transaction about to be assessed.
        session: Active async database session.

    Returns:
        A snapshot answering every ``HistoryProvider`` lookup for ``tx``.
    """
    ref_time = to_storage_time(tx.timestamp)
    cutoff_24h = ref_time - timedelta(hours=24)
    cutoff_7d = ref_time - timedelta(days=7)
    same_user = Transaction.user_id == tx.user_id
    before_ref = Transaction.timestamp < ref_time

    window_24h = (
        select(
            func.count(),
            func.coalesce(func.sum(Transaction.amount), 0.0),
        )
        .select_from(Transaction)
        .where(same_user, before_ref, Transaction.timestamp >= cutoff_24h)
    )
    count_24h, sum_24h = (await session.execute(window_24h)).one()

    count_7d: int = await session.scalar(
        select(func.count())
        .select_from(Transaction)
        .where(same_user, before_ref, Transaction.timestamp >= cutoff_7d)
    ) or 0

    declined_24h: int = await session.scalar(
        select(func.count())
        .select_from(Transaction)
        .where(
            same_user,
            before_ref,
            Transaction.timestamp >= cutoff_24h,
            Transaction.status == DECLINED_STATUS,
        )
    ) or 0

    known_devices: set[str] = set()
    if tx.device_id:
        seen = await session.scalar(
            select(func.count())
            .select_from(Transaction)
            .where(same_user, before_ref, Transaction.device_id == tx.device_id)
        )
        if seen:
            known_devices.add(tx.device_id)

    known_ips: set[str] = set()
    if tx.ip_address:
        seen = await session.scalar(
            select(func.count())
            .select_from(Transaction)
            .where(same_user, before_ref, Transaction.ip_address == tx.ip_address)
        )
        if seen:
            known_ips.add(tx.ip_address)

    billing: dict[str, Location] = {}
    account = await session.get(Account, tx.user_id)
    if account is not None:
        billing[tx.user_id] = account_location(account)

    velocity = VelocityStats(
        count_24h=int(count_24h or 0),
        count_7d=int(count_7d),
        sum_24h=float(sum_24h or 0.0),
        declined_24h=int(declined_24h),
    )
    logger.debug(
        "History for user %s: %s, known_device=%s, known_ip=%s, billing=%s",
        tx.user_id,
        velocity,
        bool(known_devices),
        bool(known_ips),
        tx.user_id in billing,
    )
    return HistorySnapshot.build(
        velocity={tx.user_id: velocity},
        known_devices=known_devices,
        known_ips=known_ips,
        billing_locations=billing,
    )


def account_location(account: Account) -> Location:
    """Convert an ``Account`` row into its billing ``Location``."""
    coordinates = None
    if account.billing_latitude is not None and account.billing_longitude is not None:
        coordinates = Coordinates(
            latitude=account.billing_latitude,
            longitude=account.billing_longitude,
        )
    return Location(
        country=account.billing_country,
        city=account.billing_city,
        coordinates=coordinates,
    )
