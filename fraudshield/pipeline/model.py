"""Scoring model, model artifact loading and the process-wide model cache.

The pipeline only depends on the ``ScoringModel`` interface: a versioned
object exposing ``predict(features) -> score``.  The reference
implementation is ``RuleBasedScoringModel``, an additive weight table whose
weights may be overridden by a JSON model artifact::

    {
        "name": "fraud-rules",
        "version": "2024.06",
        "type": "rule_based",
        "weights": {"location_mismatch": 0.35}
    }

``ModelCache`` loads the model once and shares it between all callers.
"""

from __future__ import annotations

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from fraudshield.pipeline.features import FeatureVector

logger = logging.getLogger(__name__)

SCORE_PRECISION = 4


class ModelLoadError(Exception):
    """Raised when the scoring model artifact cannot be loaded."""


class ScoringModel(ABC):
    """Versioned artifact turning a feature vector into a risk score."""

    name: str
    version: str

    @abstractmethod
    def predict(self, features: FeatureVector) -> float:
        """Return a risk score in ``[0, 1]`` for ``features``."""


@dataclass(frozen=True, slots=True)
class RuleWeights:
    """Additive weights of the rule-based model.

    Amount and velocity tiers are exclusive: only the highest matching tier
    contributes.
    """

    amount_over_1000: float = 0.3
    amount_over_500: float = 0.2
    amount_over_200: float = 0.1
    new_ip: float = 0.2
    new_device: float = 0.2
    velocity_over_5: float = 0.3
    velocity_over_2: float = 0.1
    location_mismatch: float = 0.3

    @classmethod
    def from_mapping(cls, overrides: dict[str, Any]) -> RuleWeights:
        """Return default weights with ``overrides`` applied.

        Raises:
            ValueError: On unknown names or non-numeric values.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown rule weights: {sorted(unknown)}")
        values: dict[str, float] = {}
        for key, value in overrides.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"Weight {key!r} must be a number, got {value!r}")
            values[key] = float(value)
        return replace(cls(), **values)


class RuleBasedScoringModel(ScoringModel):
    """Reference scoring model: sum of rule weights clamped to ``[0, 1]``.

    The clamped sum is rounded to ``SCORE_PRECISION`` decimals so that
    band boundaries compare exactly (``0.4 + 0.3`` scores ``0.7``).
    """

    def __init__(
        self,
        name: str = "FraudShield rule-based model",
        version: str = "1.0.0",
        weights: RuleWeights | None = None,
    ) -> None:
        self.name = name
        self.version = version
        self.weights = weights or RuleWeights()

    def predict(self, features: FeatureVector) -> float:
        w = self.weights
        score = 0.0

        # Higher amounts are riskier
        if features.amount > 1000:
            score += w.amount_over_1000
        elif features.amount > 500:
            score += w.amount_over_500
        elif features.amount > 200:
            score += w.amount_over_200

        if features.is_new_ip:
            score += w.new_ip
        if features.is_new_device:
            score += w.new_device

        if features.num_transactions_24h > 5:
            score += w.velocity_over_5
        elif features.num_transactions_24h > 2:
            score += w.velocity_over_2

        if features.is_location_mismatch:
            score += w.location_mismatch

        return round(min(max(score, 0.0), 1.0), SCORE_PRECISION)

    def __repr__(self) -> str:
        return f"RuleBasedScoringModel(name={self.name!r}, version={self.version!r})"


def load_scoring_model(
    model_path: str | None = None,
    *,
    default_name: str = "FraudShield rule-based model",
    default_version: str = "1.0.0",
) -> ScoringModel:
    """Load the scoring model described by ``model_path``.

    Without a path the built-in rule-based model is returned.

    Args:
        model_path: Optional path to a JSON model artifact.
        default_name: Name used when the artifact does not supply one.
        default_version: Version used when the artifact does not supply one.

    Returns:
        The loaded ``ScoringModel``.

    Raises:
        ModelLoadError: If the artifact is missing, unreadable, not valid
            JSON, of an unsupported type, or carries invalid weights.
    """
    if not model_path:
        return RuleBasedScoringModel(name=default_name, version=default_version)

    path = Path(model_path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            artifact = json.load(fh)
    except FileNotFoundError as exc:
        raise ModelLoadError(f"Model artifact not found: {path}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise ModelLoadError(f"Model artifact {path} is unreadable: {exc}") from exc

    if not isinstance(artifact, dict):
        raise ModelLoadError(f"Model artifact {path} must be a JSON object")

    model_type = artifact.get("type", "rule_based")
    if model_type != "rule_based":
        raise ModelLoadError(f"Unsupported model type {model_type!r} in {path}")

    weights_data = artifact.get("weights") or {}
    if not isinstance(weights_data, dict):
        raise ModelLoadError(f"'weights' in {path} must be a JSON object")
    try:
        weights = RuleWeights.from_mapping(weights_data)
    except ValueError as exc:
        raise ModelLoadError(f"Invalid weights in {path}: {exc}") from exc

    return RuleBasedScoringModel(
        name=str(artifact.get("name", default_name)),
        version=str(artifact.get("version", default_version)),
        weights=weights,
    )


class ModelCache:
    """Process-scoped, single-flight cache of one ``ScoringModel``.

    The first call to ``get`` runs ``loader``; callers arriving while that
    load is in flight wait on the same future and receive the same model or
    the same ``ModelLoadError``.  A successful load is kept for the lifetime
    of the cache and later reads take no lock.  A failed load is not cached,
    so the next caller retries.

    Args:
        loader: Zero-argument callable producing the model.  Any exception
            it raises other than ``ModelLoadError`` is wrapped in one.
    """

    def __init__(self, loader: Callable[[], ScoringModel]) -> None:
        self._loader = loader
        self._lock = threading.Lock()
        self._model: ScoringModel | None = None
        self._inflight: Future[ScoringModel] | None = None
        self.load_count = 0

    @property
    def loaded(self) -> bool:
        return self._model is not None

    def get(self) -> ScoringModel:
        """Return the cached model, loading it on first use.

        Raises:
            ModelLoadError: If the load this caller observed failed.
        """
        model = self._model
        if model is not None:
            return model

        with self._lock:
            if self._model is not None:
                return self._model
            future = self._inflight
            owner = future is None
            if owner:
                future = Future()
                self._inflight = future
                self.load_count += 1

        if not owner:
            return future.result()

        try:
            model = self._load()
        except ModelLoadError as exc:
            with self._lock:
                self._inflight = None
            future.set_exception(exc)
            raise

        with self._lock:
            self._model = model
            self._inflight = None
        future.set_result(model)
        return model

    def _load(self) -> ScoringModel:
        try:
            model = self._loader()
        except ModelLoadError:
            logger.error("Error loading fraud detection model", exc_info=True)
            raise
        except Exception as exc:
            logger.error("Error loading fraud detection model", exc_info=True)
            raise ModelLoadError(f"Failed to load fraud detection model: {exc}") from exc
        logger.info("Fraud detection model loaded: %s %s", model.name, model.version)
        return model
