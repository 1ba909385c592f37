"""Unit tests for the red-flag rules and the alert decision."""

import pytest

from fraudshield.pipeline.rules_engine import RedFlagEvaluator, should_create_alert
from fraudshield.schemas.schemas import RiskLevel


@pytest.fixture
def evaluator():
    return RedFlagEvaluator()


class TestHighRiskCountryRule:
    def test_triggers(self, evaluator, make_features):
        result = evaluator.evaluate_high_risk_country(
            make_features(country="KP", is_high_risk_country=True)
        )

        assert result.triggered is True
        assert result.rule_name == "HIGH_RISK_COUNTRY"
        assert "KP is on the high-risk list" in result.reason

    def test_does_not_trigger(self, evaluator, make_features):
        assert evaluator.evaluate_high_risk_country(make_features()).triggered is False


class TestLocationMismatchRule:
    @pytest.mark.parametrize(
        ("amount", "expected"),
        [(150.0, False), (200.0, False), (200.01, True), (900.0, True)],
    )
    def test_amount_gate(self, evaluator, make_features, amount, expected):
        features = make_features(amount=amount, is_location_mismatch=True)

        assert evaluator.evaluate_location_mismatch(features).triggered is expected

    def test_requires_mismatch(self, evaluator, make_features):
        features = make_features(amount=5000.0)

        assert evaluator.evaluate_location_mismatch(features).triggered is False


class TestNewIpAndDeviceRule:
    @pytest.mark.parametrize(
        ("amount", "expected"),
        [(250.0, False), (300.0, False), (300.01, True)],
    )
    def test_amount_gate(self, evaluator, make_features, amount, expected):
        features = make_features(amount=amount, is_new_ip=True, is_new_device=True)

        assert evaluator.evaluate_new_ip_and_device(features).triggered is expected

    @pytest.mark.parametrize(
        ("new_ip", "new_device"),
        [(True, False), (False, True), (False, False)],
    )
    def test_requires_both(self, evaluator, make_features, new_ip, new_device):
        features = make_features(amount=2000.0, is_new_ip=new_ip, is_new_device=new_device)

        assert evaluator.evaluate_new_ip_and_device(features).triggered is False


class TestVelocityRule:
    @pytest.mark.parametrize(("count", "expected"), [(0, False), (5, False), (6, True)])
    def test_threshold(self, evaluator, make_features, count, expected):
        result = evaluator.evaluate_velocity(make_features(num_transactions_24h=count))

        assert result.triggered is expected
        assert f"Found {count} transactions" in result.reason


class TestMultipleDeclinesRule:
    @pytest.mark.parametrize(("count", "expected"), [(0, False), (1, False), (2, True)])
    def test_threshold(self, evaluator, make_features, count, expected):
        result = evaluator.evaluate_multiple_declines(make_features(num_declined_24h=count))

        assert result.triggered is expected


class TestEvaluateAll:
    def test_rule_order(self, evaluator, make_tx, make_features):
        results = evaluator.evaluate_all(make_tx(), make_features())

        assert [r.rule_name for r in results] == [
            "HIGH_RISK_COUNTRY",
            "LOCATION_MISMATCH",
            "NEW_IP_AND_DEVICE",
            "VELOCITY",
            "MULTIPLE_DECLINES",
        ]
        assert not any(r.triggered for r in results)

    def test_has_red_flag(self, evaluator, make_tx, make_features):
        assert evaluator.has_red_flag(make_tx(), make_features()) is False
        assert evaluator.has_red_flag(make_tx(), make_features(num_declined_24h=3)) is True


class TestShouldCreateAlert:
    @pytest.mark.parametrize(
        ("level", "red_flag", "expected"),
        [
            (RiskLevel.LOW, False, False),
            (RiskLevel.LOW, True, False),
            (RiskLevel.MEDIUM, False, False),
            (RiskLevel.MEDIUM, True, True),
            (RiskLevel.HIGH, False, True),
            (RiskLevel.HIGH, True, True),
        ],
    )
    def test_decision_table(self, level, red_flag, expected):
        assert should_create_alert(level, red_flag) is expected
