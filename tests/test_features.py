"""Unit tests for feature extraction."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fraudshield.pipeline.features import (
    UNKNOWN,
    FeatureExtractionError,
    FeatureExtractor,
    haversine_km,
)
from fraudshield.pipeline.history import UnavailableHistory
from fraudshield.schemas.schemas import CardType, Coordinates, Location, TransactionCreate

from conftest import LONDON, NEW_YORK

LOS_ANGELES = Location(
    country="US",
    city="Los Angeles",
    coordinates=Coordinates(latitude=34.0522, longitude=-118.2437),
)
NEWARK = Location(
    country="US",
    city="Newark",
    coordinates=Coordinates(latitude=40.7357, longitude=-74.1724),
)


class TestDefaults:
    """Missing optional fields resolve to documented defaults."""

    def test_minimal_transaction(self, extractor, make_history):
        tx = TransactionCreate(
            transaction_id="txn_min",
            user_id="user_1",
            merchant_id="merch_1",
            timestamp=datetime(2024, 6, 12, 9, 0, 0),
        )

        features = extractor.extract(tx, make_history())

        assert features.amount == 0.0
        assert features.country == UNKNOWN
        assert features.merchant_category == UNKNOWN
        assert features.is_debit is False
        assert features.is_credit is False
        assert features.is_prepaid is False
        assert features.is_high_risk_country is False
        assert features.is_location_mismatch is False

    def test_absent_ip_and_device_are_not_new(self, extractor, make_history):
        tx = TransactionCreate(
            transaction_id="txn_min",
            user_id="user_1",
            merchant_id="merch_1",
            timestamp=datetime(2024, 6, 12, 9, 0, 0),
        )

        features = extractor.extract(tx, make_history(known_ips=(), known_devices=()))

        assert features.is_new_ip is False
        assert features.is_new_device is False

    def test_card_type_flags(self, extractor, make_tx, make_history):
        debit = extractor.extract(make_tx(card_type=CardType.DEBIT), make_history())
        prepaid = extractor.extract(make_tx(card_type=CardType.PREPAID), make_history())

        assert (debit.is_debit, debit.is_credit, debit.is_prepaid) == (True, False, False)
        assert (prepaid.is_debit, prepaid.is_credit, prepaid.is_prepaid) == (False, False, True)


class TestTimeFeatures:
    """Time features come from the transaction timestamp."""

    def test_weekday(self, extractor, make_tx, make_history):
        features = extractor.extract(make_tx(), make_history())

        assert features.hour == 14
        assert features.day_of_week == 2
        assert features.is_weekend is False

    def test_weekend(self, extractor, make_tx, make_history):
        tx = make_tx(timestamp=datetime(2024, 6, 15, 23, 10, 0))

        features = extractor.extract(tx, make_history())

        assert features.hour == 23
        assert features.day_of_week == 5
        assert features.is_weekend is True

    def test_aware_timestamp_is_converted_to_utc(self, extractor, make_tx, make_history):
        # 01:00 on Sunday at UTC+5 is 20:00 on Saturday in UTC
        tz = timezone(timedelta(hours=5))
        tx = make_tx(timestamp=datetime(2024, 6, 16, 1, 0, 0, tzinfo=tz))

        features = extractor.extract(tx, make_history())

        assert features.hour == 20
        assert features.day_of_week == 5


class TestHistoryFeatures:
    """Velocity, device and IP features read from the history provider."""

    def test_velocity_copied_from_history(self, extractor, make_tx, make_history):
        history = make_history(count_24h=4, count_7d=11, sum_24h=812.5, declined_24h=2)

        features = extractor.extract(make_tx(), history)

        assert features.num_transactions_24h == 4
        assert features.num_transactions_7d == 11
        assert features.amount_sum_24h == 812.5
        assert features.num_declined_24h == 2

    def test_known_ip_and_device(self, extractor, make_tx, make_history):
        features = extractor.extract(make_tx(), make_history())

        assert features.is_new_ip is False
        assert features.is_new_device is False

    def test_unseen_ip_and_device(self, extractor, make_tx, make_history):
        tx = make_tx(ip_address="198.51.100.77", device_id="device-other")

        features = extractor.extract(tx, make_history())

        assert features.is_new_ip is True
        assert features.is_new_device is True

    def test_unknown_user_has_empty_velocity(self, extractor, make_tx, make_history):
        features = extractor.extract(make_tx(user_id="user_404"), make_history(count_24h=9))

        assert features.num_transactions_24h == 0
        assert features.num_declined_24h == 0

    def test_history_failure_raises(self, extractor, make_tx):
        history = UnavailableHistory(RuntimeError("database is locked"))

        with pytest.raises(FeatureExtractionError, match="History lookup failed"):
            extractor.extract(make_tx(), history)


class TestCountryFeatures:
    """High-risk country and location mismatch."""

    def test_high_risk_country_is_case_insensitive(self, extractor, make_tx, make_history):
        tx = make_tx(location=Location(country="kp"))

        features = extractor.extract(tx, make_history(billing=None))

        assert features.country == "kp"
        assert features.is_high_risk_country is True

    def test_country_outside_list(self, extractor, make_tx, make_history):
        features = extractor.extract(make_tx(), make_history())

        assert features.country == "US"
        assert features.is_high_risk_country is False

    def test_empty_high_risk_list(self, make_tx, make_history):
        features = FeatureExtractor().extract(
            make_tx(location=Location(country="KP")), make_history(billing=None),
        )

        assert features.is_high_risk_country is False

    def test_different_country_mismatches(self, extractor):
        assert extractor.is_location_mismatch(LONDON, NEW_YORK) is True

    def test_same_country_far_apart_mismatches(self, extractor):
        assert extractor.is_location_mismatch(LOS_ANGELES, NEW_YORK) is True

    def test_same_country_nearby_matches(self, extractor):
        assert extractor.is_location_mismatch(NEWARK, NEW_YORK) is False

    def test_country_comparison_ignores_case(self, extractor):
        assert extractor.is_location_mismatch(Location(country="us"), Location(country="US")) is False

    def test_unknown_locations_never_mismatch(self, extractor):
        assert extractor.is_location_mismatch(None, NEW_YORK) is False
        assert extractor.is_location_mismatch(LONDON, None) is False
        assert extractor.is_location_mismatch(Location(), Location(country="US")) is False

    def test_mismatch_uses_billing_from_history(self, extractor, make_tx, make_history):
        features = extractor.extract(make_tx(location=LONDON), make_history())

        assert features.is_location_mismatch is True


class TestExtraction:
    """General properties of ``extract``."""

    def test_non_finite_amount_raises(self, extractor, make_tx, make_history):
        tx = make_tx().model_copy(update={"amount": Decimal("NaN")})

        with pytest.raises(FeatureExtractionError, match="non-finite"):
            extractor.extract(tx, make_history())

    def test_extraction_is_deterministic(self, extractor, make_tx, make_history):
        tx = make_tx(location=LONDON, ip_address="198.51.100.77")
        history = make_history(count_24h=3)

        assert extractor.extract(tx, history) == extractor.extract(tx, history)

    def test_as_dict(self, extractor, make_tx, make_history):
        data = extractor.extract(make_tx(), make_history()).as_dict()

        assert data["amount"] == 100.0
        assert data["merchant_category"] == "shopping"
        assert len(data) == 17


def test_haversine_new_york_to_london():
    distance = haversine_km(40.7128, -74.0060, 51.5074, -0.1278)

    assert 5500 < distance < 5650


def test_haversine_same_point():
    assert haversine_km(10.0, 20.0, 10.0, 20.0) == pytest.approx(0.0)
