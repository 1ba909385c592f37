"""Feature extraction for the risk pipeline.

Turns a ``TransactionCreate`` plus a ``HistoryProvider`` into a fixed-shape
``FeatureVector``.  Extraction is pure for a given history snapshot: time
features come from the transaction's own timestamp, never from the wall
clock, so historical replays produce the same vector.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import Any

from fraudshield.pipeline.history import HistoryProvider, to_utc
from fraudshield.schemas.schemas import CardType, Location, TransactionCreate

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
EARTH_RADIUS_KM = 6371.0088


class FeatureExtractionError(Exception):
    """Raised for a malformed transaction or a failing history provider."""


@dataclass(frozen=True, slots=True)
class FeatureVector:
    """Derived scoring input for a single transaction.

    ``day_of_week`` follows ``datetime.weekday()`` (Monday is 0).
    """

    amount: float
    hour: int
    day_of_week: int
    is_weekend: bool
    is_debit: bool
    is_credit: bool
    is_prepaid: bool
    country: str
    is_high_risk_country: bool
    is_location_mismatch: bool
    is_new_ip: bool
    is_new_device: bool
    num_transactions_24h: int
    num_transactions_7d: int
    amount_sum_24h: float
    num_declined_24h: int
    merchant_category: str

    def as_dict(self) -> dict[str, Any]:
        """Return the features as a plain ``dict`` keyed by feature name."""
        return asdict(self)


def haversine_km(a_lat: float, a_lon: float, b_lat: float, b_lon: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1, phi2 = math.radians(a_lat), math.radians(b_lat)
    d_phi = phi2 - phi1
    d_lambda = math.radians(b_lon - a_lon)
    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


class FeatureExtractor:
    """Derives ``FeatureVector`` instances from transactions.

    Args:
        high_risk_countries: Countries treated as high risk.  Compared
            case-insensitively.
        mismatch_distance_km: Distance beyond which two locations in the same
            country still count as a mismatch.  Only applies when both
            locations carry coordinates.

    Usage::

        extractor = FeatureExtractor(settings.HIGH_RISK_COUNTRIES)
        features = extractor.extract(tx, history)
    """

    def __init__(
        self,
        high_risk_countries: Iterable[str] = (),
        mismatch_distance_km: float = 500.0,
    ) -> None:
        self.high_risk_countries = frozenset(
            c.strip().casefold() for c in high_risk_countries if c and c.strip()
        )
        self.mismatch_distance_km = mismatch_distance_km

    def extract(self, tx: TransactionCreate, history: HistoryProvider) -> FeatureVector:
        """Build the feature vector for ``tx``.

        Args:
            tx: The transaction being assessed.
            history: Source of velocity, device/IP and billing history.

        Returns:
            The derived ``FeatureVector``.

        Raises:
            FeatureExtractionError: If the amount is not a finite number or
                any history lookup fails.
        """
        amount = float(tx.amount) if tx.amount is not None else 0.0
        if not math.isfinite(amount):
            raise FeatureExtractionError(
                f"Transaction {tx.transaction_id} has a non-finite amount: {tx.amount}"
            )

        ts = to_utc(tx.timestamp)
        day_of_week = ts.weekday()
        country = self._country(tx.location)

        try:
            velocity = history.lookup_velocity(tx.user_id)
            is_new_ip = bool(tx.ip_address) and not history.lookup_known_ip(tx.ip_address)
            is_new_device = bool(tx.device_id) and not history.lookup_known_device(tx.device_id)
            billing = history.lookup_billing_location(tx.user_id)
        except Exception as exc:
            raise FeatureExtractionError(
                f"History lookup failed for transaction {tx.transaction_id}: {exc}"
            ) from exc

        features = FeatureVector(
            amount=amount,
            hour=ts.hour,
            day_of_week=day_of_week,
            is_weekend=day_of_week >= 5,
            is_debit=tx.card_type is CardType.DEBIT,
            is_credit=tx.card_type is CardType.CREDIT,
            is_prepaid=tx.card_type is CardType.PREPAID,
            country=country,
            is_high_risk_country=country.casefold() in self.high_risk_countries,
            is_location_mismatch=self.is_location_mismatch(tx.location, billing),
            is_new_ip=is_new_ip,
            is_new_device=is_new_device,
            num_transactions_24h=velocity.count_24h,
            num_transactions_7d=velocity.count_7d,
            amount_sum_24h=velocity.sum_24h,
            num_declined_24h=velocity.declined_24h,
            merchant_category=tx.merchant_category or UNKNOWN,
        )
        logger.debug("Features for %s: %s", tx.transaction_id, features)
        return features

    def is_location_mismatch(
        self,
        ip_location: Location | None,
        billing: Location | None,
    ) -> bool:
        """Compare the IP-derived location with the billing location.

        A pair mismatches when both countries are known and differ, or when
        both carry coordinates further apart than ``mismatch_distance_km``.
        Unknown locations never mismatch.
        """
        if ip_location is None or billing is None:
            return False

        if ip_location.country and billing.country:
            if ip_location.country.strip().casefold() != billing.country.strip().casefold():
                return True

        if ip_location.coordinates is not None and billing.coordinates is not None:
            distance = haversine_km(
                ip_location.coordinates.latitude,
                ip_location.coordinates.longitude,
                billing.coordinates.latitude,
                billing.coordinates.longitude,
            )
            return distance > self.mismatch_distance_km

        return False

    @staticmethod
    def _country(location: Location | None) -> str:
        if location is None or not location.country or not location.country.strip():
            return UNKNOWN
        return location.country.strip()
