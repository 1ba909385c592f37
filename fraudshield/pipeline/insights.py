"""Explanations and alert metadata for an assessed transaction.

Reasons and the alert type come from a fixed, ordered checklist.  Each
matching entry appends its reason; entries that carry an alert type
overwrite the current one, so the last matching entry decides the type.
Reordering ``CHECKLIST`` changes observable alert types.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fraudshield.pipeline.features import FeatureVector
from fraudshield.schemas.schemas import AlertType, RiskLevel, TransactionCreate

DEFAULT_REASON = "Combination of factors resulted in elevated risk score"

RECOMMENDED_ACTIONS: dict[RiskLevel, str] = {
    RiskLevel.HIGH: "Hold transaction for manual review",
    RiskLevel.MEDIUM: "Additional verification recommended",
    RiskLevel.LOW: "Normal processing",
}


@dataclass(frozen=True, slots=True)
class InsightRule:
    """One checklist entry: a predicate, its reason and optional alert type."""

    applies: Callable[[FeatureVector], bool]
    reason: str
    alert_type: AlertType | None = None


CHECKLIST: tuple[InsightRule, ...] = (
    InsightRule(
        lambda f: f.amount > 1000,
        "Unusually high transaction amount",
    ),
    InsightRule(
        lambda f: f.is_new_ip,
        "Transaction from new IP address",
    ),
    InsightRule(
        lambda f: f.is_new_device,
        "Transaction from new device",
    ),
    InsightRule(
        lambda f: f.is_location_mismatch,
        "Location mismatch with billing address",
        AlertType.UNUSUAL_IP_LOCATION,
    ),
    InsightRule(
        lambda f: f.is_high_risk_country,
        "Transaction from high-risk country",
        AlertType.HIGH_RISK_COUNTRY,
    ),
    InsightRule(
        lambda f: f.num_transactions_24h > 5,
        "Unusual number of transactions in last 24 hours",
        AlertType.VELOCITY_CHECK,
    ),
    InsightRule(
        lambda f: f.num_declined_24h > 1,
        "Multiple declined transactions in last 24 hours",
        AlertType.MULTIPLE_TRANSACTIONS,
    ),
)


@dataclass(frozen=True, slots=True)
class Insights:
    """Explanation payload attached to a risk assessment."""

    reasons: tuple[str, ...]
    alert_type: AlertType
    alert_severity: RiskLevel
    description: str
    recommended_action: str


def describe(level: RiskLevel, score: float) -> str:
    """Return e.g. ``"High risk transaction detected (score: 0.95)"``."""
    return f"{level.value.capitalize()} risk transaction detected (score: {score:.2f})"


class InsightGenerator:
    """Builds ``Insights`` by running ``CHECKLIST`` in order."""

    def __init__(self, checklist: tuple[InsightRule, ...] = CHECKLIST) -> None:
        self.checklist = checklist

    def generate(
        self,
        tx: TransactionCreate,
        features: FeatureVector,
        score: float,
        level: RiskLevel,
    ) -> Insights:
        reasons: list[str] = []
        alert_type = AlertType.HIGH_RISK_TRANSACTION

        for rule in self.checklist:
            if rule.applies(features):
                reasons.append(rule.reason)
                if rule.alert_type is not None:
                    alert_type = rule.alert_type

        if not reasons:
            reasons.append(DEFAULT_REASON)

        return Insights(
            reasons=tuple(reasons),
            alert_type=alert_type,
            alert_severity=level,
            description=describe(level, score),
            recommended_action=RECOMMENDED_ACTIONS[level],
        )
