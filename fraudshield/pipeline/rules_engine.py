"""Red-flag rules for alert escalation.

Red flags are independent boolean rules evaluated next to the score.  They
can force an alert for a ``medium`` transaction whose score alone would not
warrant one; they never raise an alert for a ``low`` transaction.

Rules:
    HIGH_RISK_COUNTRY       -- Transaction located in a high-risk country.
    LOCATION_MISMATCH       -- IP location differs from billing, amount > 200.
    NEW_IP_AND_DEVICE       -- Unseen IP and unseen device, amount > 300.
    VELOCITY                -- More than 5 transactions in the last 24 hours.
    MULTIPLE_DECLINES       -- More than 1 declined transaction in 24 hours.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fraudshield.pipeline.features import FeatureVector
from fraudshield.schemas.schemas import RiskLevel, TransactionCreate

logger = logging.getLogger(__name__)

LOCATION_MISMATCH_MIN_AMOUNT = 200.0
NEW_IP_AND_DEVICE_MIN_AMOUNT = 300.0
VELOCITY_MAX_TRANSACTIONS_24H = 5  # >5 triggers rule
MAX_DECLINED_24H = 1  # >1 triggers rule


@dataclass(frozen=True, slots=True)
class RuleResult:
    """Immutable result produced by a single red-flag rule.

    Attributes:
        rule_name: Canonical identifier for the rule (e.g. ``"VELOCITY"``).
        triggered: Whether the rule condition was satisfied.
        reason: Human-readable explanation of why the rule did or did not fire.
    """

    rule_name: str
    triggered: bool
    reason: str


class RedFlagEvaluator:
    """Evaluates every red-flag rule against a transaction's features.

    Usage::

        evaluator = RedFlagEvaluator()
        if evaluator.has_red_flag(tx, features):
            ...
    """

    def evaluate_high_risk_country(self, features: FeatureVector) -> RuleResult:
        triggered = features.is_high_risk_country
        return RuleResult(
            rule_name="HIGH_RISK_COUNTRY",
            triggered=triggered,
            reason=(
                f"Country {features.country} "
                f"{'is' if triggered else 'is not'} on the high-risk list"
            ),
        )

    def evaluate_location_mismatch(self, features: FeatureVector) -> RuleResult:
        triggered = (
            features.is_location_mismatch
            and features.amount > LOCATION_MISMATCH_MIN_AMOUNT
        )
        return RuleResult(
            rule_name="LOCATION_MISMATCH",
            triggered=triggered,
            reason=(
                f"location_mismatch={features.is_location_mismatch}, "
                f"amount {features.amount:.2f} "
                f"(threshold: {LOCATION_MISMATCH_MIN_AMOUNT:.2f})"
            ),
        )

    def evaluate_new_ip_and_device(self, features: FeatureVector) -> RuleResult:
        triggered = (
            features.is_new_ip
            and features.is_new_device
            and features.amount > NEW_IP_AND_DEVICE_MIN_AMOUNT
        )
        return RuleResult(
            rule_name="NEW_IP_AND_DEVICE",
            triggered=triggered,
            reason=(
                f"new_ip={features.is_new_ip}, new_device={features.is_new_device}, "
                f"amount {features.amount:.2f} "
                f"(threshold: {NEW_IP_AND_DEVICE_MIN_AMOUNT:.2f})"
            ),
        )

    def evaluate_velocity(self, features: FeatureVector) -> RuleResult:
        triggered = features.num_transactions_24h > VELOCITY_MAX_TRANSACTIONS_24H
        return RuleResult(
            rule_name="VELOCITY",
            triggered=triggered,
            reason=(
                f"Found {features.num_transactions_24h} transactions in the last "
                f"24 hours (threshold: {VELOCITY_MAX_TRANSACTIONS_24H})"
            ),
        )

    def evaluate_multiple_declines(self, features: FeatureVector) -> RuleResult:
        triggered = features.num_declined_24h > MAX_DECLINED_24H
        return RuleResult(
            rule_name="MULTIPLE_DECLINES",
            triggered=triggered,
            reason=(
                f"Found {features.num_declined_24h} declined transactions in the "
                f"last 24 hours (threshold: {MAX_DECLINED_24H})"
            ),
        )

    def evaluate_all(
        self,
        tx: TransactionCreate,
        features: FeatureVector,
    ) -> list[RuleResult]:
        """Run every red-flag rule and return one result per rule.

        Args:
            tx: The transaction being assessed.
            features: Features derived from ``tx``.

        Returns:
            A list of ``RuleResult`` objects in rule order.
        """
        results = [
            self.evaluate_high_risk_country(features),
            self.evaluate_location_mismatch(features),
            self.evaluate_new_ip_and_device(features),
            self.evaluate_velocity(features),
            self.evaluate_multiple_declines(features),
        ]
        triggered_names = [r.rule_name for r in results if r.triggered]
        logger.debug(
            "Transaction %s triggered %d red flag(s): %s",
            tx.transaction_id,
            len(triggered_names),
            triggered_names,
        )
        return results

    def has_red_flag(self, tx: TransactionCreate, features: FeatureVector) -> bool:
        """Return ``True`` when at least one red-flag rule fires."""
        return any(result.triggered for result in self.evaluate_all(tx, features))


def should_create_alert(level: RiskLevel, red_flag: bool) -> bool:
    """Alert on every ``high`` transaction and on ``medium`` ones with a red flag."""
    return level is RiskLevel.HIGH or (level is RiskLevel.MEDIUM and red_flag)
