"""Risk assessment pipeline.

Orchestrates feature extraction, scoring, classification, red-flag
escalation and insight generation for one transaction, and owns the
fail-safe contract: every failure inside the pipeline is logged and turned
into the fixed precautionary assessment returned by
``fail_safe_assessment``.  Callers always receive a ``RiskAssessment``.
"""

from __future__ import annotations

import logging
import math

from fraudshield.config import Settings
from fraudshield.config import settings as default_settings
from fraudshield.pipeline.classifier import RiskClassifier, Thresholds
from fraudshield.pipeline.features import FeatureExtractor
from fraudshield.pipeline.history import HistoryProvider
from fraudshield.pipeline.insights import InsightGenerator
from fraudshield.pipeline.model import ModelCache, load_scoring_model
from fraudshield.pipeline.rules_engine import RedFlagEvaluator, should_create_alert
from fraudshield.schemas.schemas import (
    AlertType,
    RiskAssessment,
    RiskLevel,
    TransactionCreate,
)

logger = logging.getLogger(__name__)


class ScoringError(Exception):
    """Raised when a model produces a score outside ``[0, 1]``."""


def fail_safe_assessment() -> RiskAssessment:
    """Return the precautionary assessment used whenever assessment fails."""
    return RiskAssessment(
        score=0.5,
        level=RiskLevel.MEDIUM,
        create_alert=True,
        alert_type=AlertType.SYSTEM_ERROR,
        alert_severity=RiskLevel.MEDIUM,
        description="Risk assessment failed, flagged as precaution",
        reasons=["Risk assessment system error"],
        recommended_action="Manual review required due to assessment failure",
    )


class RiskAssessmentPipeline:
    """Assesses transactions against a shared, lazily loaded scoring model.

    Args:
        model_cache: Process-scoped cache supplying the scoring model.
        thresholds: Band cut points.
        extractor: Feature extractor, configured with the high-risk countries.
        red_flags: Red-flag evaluator.
        insights: Insight generator.

    Usage::

        pipeline = build_risk_pipeline()
        assessment = pipeline.assess(tx, history)
        if assessment.create_alert:
            ...
    """

    def __init__(
        self,
        model_cache: ModelCache,
        thresholds: Thresholds,
        extractor: FeatureExtractor,
        red_flags: RedFlagEvaluator | None = None,
        insights: InsightGenerator | None = None,
    ) -> None:
        self.model_cache = model_cache
        self.classifier = RiskClassifier(thresholds)
        self.extractor = extractor
        self.red_flags = red_flags or RedFlagEvaluator()
        self.insights = insights or InsightGenerator()

    def assess(self, tx: TransactionCreate, history: HistoryProvider) -> RiskAssessment:
        """Assess a single transaction.

        Args:
            tx: The transaction to assess.  Never modified.
            history: Snapshot of the account's history.

        Returns:
            The ``RiskAssessment`` for ``tx``, or the fail-safe assessment if
            any stage fails.
        """
        try:
            return self._assess(tx, history)
        except Exception:
            logger.exception(
                "Error in risk assessment for transaction %s", tx.transaction_id,
            )
            return fail_safe_assessment()

    def _assess(self, tx: TransactionCreate, history: HistoryProvider) -> RiskAssessment:
        features = self.extractor.extract(tx, history)
        model = self.model_cache.get()

        score = float(model.predict(features))
        if not math.isfinite(score) or not 0.0 <= score <= 1.0:
            raise ScoringError(
                f"Model {model.name} {model.version} returned invalid score {score!r}"
            )

        level = self.classifier.classify(score)
        red_flag = self.red_flags.has_red_flag(tx, features)
        create_alert = should_create_alert(level, red_flag)
        insights = self.insights.generate(tx, features, score, level)

        logger.info(
            "Risk score for %s: %.4f (level=%s, red_flag=%s, alert=%s, model=%s)",
            tx.transaction_id,
            score,
            level.value,
            red_flag,
            create_alert,
            model.version,
        )

        return RiskAssessment(
            score=score,
            level=level,
            create_alert=create_alert,
            alert_type=insights.alert_type,
            alert_severity=insights.alert_severity,
            description=insights.description,
            reasons=list(insights.reasons),
            recommended_action=insights.recommended_action,
        )


def build_risk_pipeline(settings: Settings = default_settings) -> RiskAssessmentPipeline:
    """Compose a ``RiskAssessmentPipeline`` from application settings.

    The returned pipeline owns a fresh ``ModelCache``; the model is loaded
    on first use.
    """
    cache = ModelCache(
        lambda: load_scoring_model(
            settings.MODEL_PATH,
            default_name=settings.MODEL_NAME,
            default_version=settings.MODEL_VERSION,
        )
    )
    return RiskAssessmentPipeline(
        model_cache=cache,
        thresholds=Thresholds.from_settings(settings),
        extractor=FeatureExtractor(
            settings.HIGH_RISK_COUNTRIES,
            mismatch_distance_km=settings.LOCATION_MISMATCH_DISTANCE_KM,
        ),
    )
