"""Pytest configuration and shared fixtures for FraudShield tests."""

import asyncio
import os
import tempfile
from datetime import datetime
from decimal import Decimal

import pytest

# Test environment setup
_DB_DIR = tempfile.mkdtemp(prefix="fraudshield-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["RISK_THRESHOLD_LOW"] = "0.3"
os.environ["RISK_THRESHOLD_MEDIUM"] = "0.7"
os.environ["RISK_THRESHOLD_HIGH"] = "0.9"
os.environ["HIGH_RISK_COUNTRIES"] = '["KP", "IR"]'
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ.pop("MODEL_PATH", None)

# Import after environment setup
from fraudshield.models.database import async_session, create_tables, drop_tables  # noqa: E402
from fraudshield.pipeline.classifier import Thresholds  # noqa: E402
from fraudshield.pipeline.features import FeatureExtractor, FeatureVector  # noqa: E402
from fraudshield.pipeline.history import HistorySnapshot, VelocityStats  # noqa: E402
from fraudshield.pipeline.model import ModelCache, RuleBasedScoringModel  # noqa: E402
from fraudshield.pipeline.risk_assessment import RiskAssessmentPipeline  # noqa: E402
from fraudshield.schemas.schemas import (  # noqa: E402
    CardType,
    Coordinates,
    Location,
    TransactionCreate,
)

NEW_YORK = Location(
    country="US",
    city="New York",
    coordinates=Coordinates(latitude=40.7128, longitude=-74.0060),
)
LONDON = Location(
    country="GB",
    city="London",
    coordinates=Coordinates(latitude=51.5074, longitude=-0.1278),
)

HOME_IP = "203.0.113.10"
HOME_DEVICE = "device-home-001"


def pytest_configure(config):
    """Configure pytest settings."""
    config.addinivalue_line("markers", "integration: tests that touch the database or API")


@pytest.fixture
def make_tx():
    """Factory for ``TransactionCreate`` with habitual defaults for ``user_1``."""

    def _make(**overrides) -> TransactionCreate:
        data = {
            "transaction_id": "txn_001",
            "user_id": "user_1",
            "merchant_id": "merch_0001",
            "merchant_category": "shopping",
            "amount": Decimal("100.00"),
            "currency": "USD",
            # Wednesday afternoon
            "timestamp": datetime(2024, 6, 12, 14, 30, 0),
            "card_type": CardType.CREDIT,
            "card_last4": "4242",
            "ip_address": HOME_IP,
            "device_id": HOME_DEVICE,
            "location": NEW_YORK,
        }
        data.update(overrides)
        return TransactionCreate(**data)

    return _make


@pytest.fixture
def make_history():
    """Factory for a ``HistorySnapshot`` that knows the home IP and device of ``user_1``."""

    def _make(
        *,
        count_24h: int = 0,
        count_7d: int = 0,
        sum_24h: float = 0.0,
        declined_24h: int = 0,
        known_devices=(HOME_DEVICE,),
        known_ips=(HOME_IP,),
        billing: Location | None = NEW_YORK,
    ) -> HistorySnapshot:
        return HistorySnapshot.build(
            velocity={
                "user_1": VelocityStats(
                    count_24h=count_24h,
                    count_7d=count_7d,
                    sum_24h=sum_24h,
                    declined_24h=declined_24h,
                )
            },
            known_devices=known_devices,
            known_ips=known_ips,
            billing_locations={"user_1": billing} if billing is not None else {},
        )

    return _make


@pytest.fixture
def make_features():
    """Factory for a ``FeatureVector`` with every signal switched off."""

    def _make(**overrides) -> FeatureVector:
        data = {
            "amount": 100.0,
            "hour": 14,
            "day_of_week": 2,
            "is_weekend": False,
            "is_debit": False,
            "is_credit": True,
            "is_prepaid": False,
            "country": "US",
            "is_high_risk_country": False,
            "is_location_mismatch": False,
            "is_new_ip": False,
            "is_new_device": False,
            "num_transactions_24h": 0,
            "num_transactions_7d": 0,
            "amount_sum_24h": 0.0,
            "num_declined_24h": 0,
            "merchant_category": "shopping",
        }
        data.update(overrides)
        return FeatureVector(**data)

    return _make


@pytest.fixture
def extractor():
    """Feature extractor with the test high-risk country list."""
    return FeatureExtractor(["KP", "IR"], mismatch_distance_km=500.0)


@pytest.fixture
def risk_pipeline(extractor):
    """Risk pipeline backed by the built-in rule-based model."""
    return RiskAssessmentPipeline(
        model_cache=ModelCache(RuleBasedScoringModel),
        thresholds=Thresholds(low=0.3, medium=0.7, high=0.9),
        extractor=extractor,
    )


async def _reset_database() -> None:
    await drop_tables()
    await create_tables()


@pytest.fixture
async def db_session():
    """Fresh database and an open async session."""
    await _reset_database()
    async with async_session() as session:
        yield session


@pytest.fixture
def client():
    """FastAPI test client on a fresh database with a freshly built pipeline."""
    from fastapi.testclient import TestClient

    from fraudshield.api.main import app

    asyncio.run(_reset_database())
    app.state.risk_pipeline = None
    with TestClient(app) as test_client:
        yield test_client
    app.state.risk_pipeline = None
