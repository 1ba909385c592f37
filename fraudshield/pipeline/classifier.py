"""Threshold-based classification of risk scores into risk bands."""

from __future__ import annotations

from dataclasses import dataclass

from fraudshield.config import Settings
from fraudshield.schemas.schemas import RiskLevel


@dataclass(frozen=True, slots=True)
class Thresholds:
    """Ordered cut points with ``0 <= low <= medium <= high <= 1``.

    ``low`` is carried as configuration only.  There is no band below
    ``low`` and ``RiskClassifier`` never compares against it.
    """

    low: float = 0.3
    medium: float = 0.7
    high: float = 0.9

    def __post_init__(self) -> None:
        if not (0.0 <= self.low <= self.medium <= self.high <= 1.0):
            raise ValueError(
                "Thresholds must satisfy 0 <= low <= medium <= high <= 1 "
                f"(got low={self.low}, medium={self.medium}, high={self.high})"
            )

    @classmethod
    def from_settings(cls, settings: Settings) -> Thresholds:
        return cls(
            low=settings.RISK_THRESHOLD_LOW,
            medium=settings.RISK_THRESHOLD_MEDIUM,
            high=settings.RISK_THRESHOLD_HIGH,
        )


class RiskClassifier:
    """Maps scores to risk bands.  Upper bands include their boundary."""

    def __init__(self, thresholds: Thresholds) -> None:
        self.thresholds = thresholds

    def classify(self, score: float) -> RiskLevel:
        return classify(score, self.thresholds)


def classify(score: float, thresholds: Thresholds) -> RiskLevel:
    """Return ``high``, ``medium`` or ``low`` for ``score``."""
    if score >= thresholds.high:
        return RiskLevel.HIGH
    if score >= thresholds.medium:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
