"""Unit tests for the scoring model, artifact loading and the model cache."""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from fraudshield.pipeline.model import (
    ModelCache,
    ModelLoadError,
    RuleBasedScoringModel,
    RuleWeights,
    load_scoring_model,
)


class TestRuleBasedScoringModel:
    """Additive weights clamped to [0, 1]."""

    @pytest.fixture
    def model(self):
        return RuleBasedScoringModel()

    def test_no_signals_scores_zero(self, model, make_features):
        assert model.predict(make_features()) == 0.0

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            (200.0, 0.0),
            (200.01, 0.1),
            (500.0, 0.1),
            (500.01, 0.2),
            (1000.0, 0.2),
            (1500.0, 0.3),
        ],
    )
    def test_amount_tiers_are_exclusive(self, model, make_features, amount, expected):
        assert model.predict(make_features(amount=amount)) == expected

    @pytest.mark.parametrize(
        ("count", "expected"),
        [(2, 0.0), (3, 0.1), (5, 0.1), (6, 0.3), (40, 0.3)],
    )
    def test_velocity_tiers_are_exclusive(self, model, make_features, count, expected):
        assert model.predict(make_features(num_transactions_24h=count)) == expected

    def test_new_ip_and_device(self, model, make_features):
        assert model.predict(make_features(is_new_ip=True)) == 0.2
        assert model.predict(make_features(is_new_ip=True, is_new_device=True)) == 0.4

    def test_sum_is_exact_at_band_boundary(self, model, make_features):
        features = make_features(amount=600.0, is_new_ip=True, is_location_mismatch=True)

        assert model.predict(features) == 0.7

    def test_sum_is_clamped(self, model, make_features):
        features = make_features(
            amount=1500.0,
            is_new_ip=True,
            is_new_device=True,
            num_transactions_24h=10,
            is_location_mismatch=True,
        )

        assert model.predict(features) == 1.0

    def test_negative_sum_is_clamped_to_zero(self, make_features):
        model = RuleBasedScoringModel(weights=RuleWeights(new_ip=-0.5))

        assert model.predict(make_features(is_new_ip=True)) == 0.0
        assert model.predict(make_features(is_new_ip=True, is_new_device=True)) == 0.0

    @pytest.mark.parametrize(
        "condition",
        [
            {"amount": 1500.0},
            {"amount": 750.0},
            {"amount": 300.0},
            {"is_new_ip": True},
            {"is_new_device": True},
            {"num_transactions_24h": 8},
            {"num_transactions_24h": 4},
            {"is_location_mismatch": True},
        ],
    )
    @pytest.mark.parametrize(
        "baseline",
        [
            {},
            {"is_new_device": True, "is_location_mismatch": True},
            {"is_new_ip": True, "is_new_device": True, "is_location_mismatch": True},
        ],
    )
    def test_switching_on_a_condition_never_lowers_the_score(
        self, model, make_features, condition, baseline
    ):
        without = make_features(**baseline)
        with_condition = make_features(**{**baseline, **condition})

        assert model.predict(with_condition) >= model.predict(without)

    def test_signals_without_weight_do_not_score(self, model, make_features):
        features = make_features(is_high_risk_country=True, num_declined_24h=5, is_weekend=True)

        assert model.predict(features) == 0.0

    def test_custom_weights(self, make_features):
        model = RuleBasedScoringModel(weights=RuleWeights(new_ip=0.5))

        assert model.predict(make_features(is_new_ip=True)) == 0.5


class TestRuleWeights:
    def test_overrides(self):
        weights = RuleWeights.from_mapping({"location_mismatch": 0.35, "new_ip": 1})

        assert weights.location_mismatch == 0.35
        assert weights.new_ip == 1.0
        assert weights.new_device == 0.2

    def test_unknown_weight(self):
        with pytest.raises(ValueError, match="Unknown rule weights"):
            RuleWeights.from_mapping({"moon_phase": 0.1})

    @pytest.mark.parametrize("value", ["0.2", None, True])
    def test_non_numeric_weight(self, value):
        with pytest.raises(ValueError, match="must be a number"):
            RuleWeights.from_mapping({"new_ip": value})


class TestLoadScoringModel:
    """Loading the model from an optional JSON artifact."""

    def test_builtin_model_without_path(self):
        model = load_scoring_model(None, default_name="builtin", default_version="9.9")

        assert isinstance(model, RuleBasedScoringModel)
        assert model.name == "builtin"
        assert model.version == "9.9"

    def test_artifact(self, tmp_path, make_features):
        path = tmp_path / "model.json"
        path.write_text(
            json.dumps(
                {
                    "name": "fraud-rules",
                    "version": "2024.06",
                    "type": "rule_based",
                    "weights": {"location_mismatch": 0.5},
                }
            )
        )

        model = load_scoring_model(str(path))

        assert model.name == "fraud-rules"
        assert model.version == "2024.06"
        assert model.predict(make_features(is_location_mismatch=True)) == 0.5

    def test_artifact_defaults(self, tmp_path):
        path = tmp_path / "model.json"
        path.write_text("{}")

        model = load_scoring_model(str(path), default_name="builtin", default_version="1.2.3")

        assert model.name == "builtin"
        assert model.version == "1.2.3"
        assert model.weights == RuleWeights()

    def test_missing_artifact(self, tmp_path):
        with pytest.raises(ModelLoadError, match="not found"):
            load_scoring_model(str(tmp_path / "missing.json"))

    @pytest.mark.parametrize(
        ("content", "message"),
        [
            ("{not json", "unreadable"),
            ("[1, 2, 3]", "must be a JSON object"),
            ('{"type": "xgboost"}', "Unsupported model type"),
            ('{"weights": [0.1]}', "'weights'"),
            ('{"weights": {"moon_phase": 0.1}}', "Invalid weights"),
        ],
    )
    def test_invalid_artifact(self, tmp_path, content, message):
        path = tmp_path / "model.json"
        path.write_text(content)

        with pytest.raises(ModelLoadError, match=message):
            load_scoring_model(str(path))


class TestModelCache:
    """Single-flight, process-scoped model cache."""

    def test_returns_same_instance(self):
        cache = ModelCache(RuleBasedScoringModel)

        first = cache.get()
        second = cache.get()

        assert first is second
        assert cache.load_count == 1
        assert cache.loaded is True

    def test_not_loaded_until_first_get(self):
        cache = ModelCache(RuleBasedScoringModel)

        assert cache.loaded is False
        assert cache.load_count == 0

    def test_failure_is_not_cached(self):
        calls = []

        def flaky_loader():
            calls.append(1)
            if len(calls) == 1:
                raise ModelLoadError("artifact store unavailable")
            return RuleBasedScoringModel()

        cache = ModelCache(flaky_loader)

        with pytest.raises(ModelLoadError, match="artifact store unavailable"):
            cache.get()
        assert cache.loaded is False

        model = cache.get()

        assert isinstance(model, RuleBasedScoringModel)
        assert len(calls) == 2

    def test_unexpected_errors_are_wrapped(self, caplog):
        def broken_loader():
            raise RuntimeError("disk on fire")

        cache = ModelCache(broken_loader)

        with pytest.raises(ModelLoadError, match="disk on fire") as exc_info:
            cache.get()

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert "Error loading fraud detection model" in caplog.text

    def test_concurrent_callers_share_one_load(self):
        release = threading.Event()
        calls = []

        def slow_loader():
            calls.append(1)
            release.wait(timeout=5)
            return RuleBasedScoringModel()

        cache = ModelCache(slow_loader)

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(cache.get) for _ in range(8)]
            time.sleep(0.2)
            release.set()
            models = [f.result(timeout=5) for f in futures]

        assert len(calls) == 1
        assert all(m is models[0] for m in models)

    def test_concurrent_callers_share_one_failure(self):
        release = threading.Event()
        calls = []

        def failing_loader():
            calls.append(1)
            release.wait(timeout=5)
            raise ModelLoadError("corrupt artifact")

        cache = ModelCache(failing_loader)

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(cache.get) for _ in range(8)]
            time.sleep(0.2)
            release.set()
            errors = [f.exception(timeout=5) for f in futures]

        assert len(calls) == 1
        assert all(isinstance(e, ModelLoadError) for e in errors)
        assert all(str(e) == "corrupt artifact" for e in errors)
