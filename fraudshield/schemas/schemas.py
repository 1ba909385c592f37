"""Pydantic v2 schemas for request validation and response serialization.

This module defines all data transfer objects (DTOs) used across the
FraudShield risk assessment service:

- ``TransactionCreate``          -- incoming transaction payload; also the
                                   structured input of the risk pipeline.
- ``RiskAssessment``             -- decision produced by the risk pipeline.
- ``TransactionResponse``        -- persisted transaction returned from the API.
- ``AlertResponse``              -- alert data returned from the API.
- ``AlertStatusUpdate``          -- request body for PATCH /alerts/{id}.
- ``TransactionReviewUpdate``    -- request body for PUT /transactions/{id}/review.
- ``AccountUpdate`` / ``AccountResponse`` -- billing location of a user.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CardType(str, Enum):
    """Payment card family of a transaction."""

    CREDIT = "credit"
    DEBIT = "debit"
    PREPAID = "prepaid"
    OTHER = "other"


class RiskLevel(str, Enum):
    """Risk band derived from a score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertType(str, Enum):
    """Category recorded on an investigative alert."""

    HIGH_RISK_TRANSACTION = "high_risk_transaction"
    UNUSUAL_IP_LOCATION = "unusual_ip_location"
    MULTIPLE_TRANSACTIONS = "multiple_transactions"
    NEW_DEVICE = "new_device"
    SUSPICIOUS_PATTERN = "suspicious_pattern"
    VELOCITY_CHECK = "velocity_check"
    AMOUNT_THRESHOLD = "amount_threshold"
    BIN_CHECK = "bin_check"
    HIGH_RISK_COUNTRY = "high_risk_country"
    SYSTEM_ERROR = "system_error"
    OTHER = "other"


class Coordinates(BaseModel):
    """Latitude/longitude pair in decimal degrees."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    model_config = ConfigDict(frozen=True)


class Location(BaseModel):
    """Geographic location, either IP-derived or a billing address.

    Attributes:
        country: Country code or name.  ``None`` when unknown.
        city: Optional city name.
        postal_code: Optional postal code.
        coordinates: Optional latitude/longitude pair.
    """

    country: str | None = None
    city: str | None = None
    postal_code: str | None = None
    coordinates: Coordinates | None = None

    model_config = ConfigDict(frozen=True)


class TransactionCreate(BaseModel):
    """Schema for an incoming transaction.

    Used as the FastAPI request body for ``POST /api/transactions``, as the
    validated record produced by batch ingestion, and as the read-only input
    of the risk pipeline.  Optional fields resolve to the defaults the
    feature extractor documents.

    Attributes:
        transaction_id: Unique identifier sourced from the upstream system.
        user_id: Identifier of the account holder.
        merchant_id: Identifier of the merchant.
        merchant_category: Merchant category, when known.
        amount: Transaction amount in ``currency``.  Defaults to 0.
        currency: ISO 4217 currency code.
        timestamp: Event time of the transaction.  Naive values are UTC.
        card_type: Payment card family, when known.
        card_last4: Last four digits of the card.
        ip_address: Client IP address.
        device_id: Client device identifier.
        location: IP-derived geolocation of the client.
        user_agent: Client user agent string.
        transaction_type: purchase, refund, authorization, capture or void.
        status: pending, completed, failed, refunded or flagged.
    """

    transaction_id: str = Field(
        ...,
        min_length=1,
        description="Unique transaction identifier.",
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Identifier of the account holder.",
    )
    merchant_id: str = Field(
        ...,
        description="Identifier of the merchant.",
    )
    merchant_category: str | None = Field(
        default=None,
        description="Merchant category.  Null when unknown.",
    )
    amount: Decimal = Field(
        default=Decimal("0"),
        description="Transaction amount in the transaction currency.",
    )
    currency: str = Field(
        default="USD",
        description="ISO 4217 currency code.",
    )
    timestamp: datetime = Field(
        ...,
        description="Event time of the transaction.  Naive values are treated as UTC.",
    )
    card_type: CardType | None = Field(
        default=None,
        description="Card family: credit, debit, prepaid or other.",
    )
    card_last4: str | None = Field(
        default=None,
        description="Last four digits of the payment card.",
    )
    ip_address: str | None = Field(
        default=None,
        description="IPv4 or IPv6 address of the client.",
    )
    device_id: str | None = Field(
        default=None,
        description="Identifier of the client device.",
    )
    location: Location | None = Field(
        default=None,
        description="IP-derived geolocation of the client.",
    )
    user_agent: str | None = Field(
        default=None,
        description="Client user agent string.",
    )
    transaction_type: str = Field(
        default="purchase",
        description="purchase, refund, authorization, capture or void.",
    )
    status: str = Field(
        default="pending",
        description="pending, completed, failed, refunded or flagged.",
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("amount")
    @classmethod
    def _amount_fits_float(cls, value: Decimal) -> Decimal:
        # Scoring and storage work on floats
        if not math.isfinite(float(value)):
            raise ValueError("amount is too large to be represented")
        return value


class RiskAssessment(BaseModel):
    """Decision returned by the risk assessment pipeline.

    Attributes:
        score: Risk score in ``[0, 1]``.
        level: Risk band derived from ``score``.
        create_alert: Whether an investigative alert must be raised.
        alert_type: Category of the alert, should one be raised.
        alert_severity: Mirrors ``level``.
        description: One-line human-readable summary.
        reasons: Ordered list of contributing factors.
        recommended_action: Suggested next step for the intake workflow.
    """

    score: float = Field(..., ge=0.0, le=1.0)
    level: RiskLevel
    create_alert: bool
    alert_type: AlertType
    alert_severity: RiskLevel
    description: str
    reasons: list[str]
    recommended_action: str

    model_config = ConfigDict(frozen=True)


class TransactionResponse(BaseModel):
    """Schema for a persisted transaction as returned by the API.

    ``from_attributes=True`` enables direct construction from a
    ``Transaction`` ORM instance.
    """

    transaction_id: str
    user_id: str
    merchant_id: str
    merchant_category: str | None = None
    amount: float
    currency: str
    timestamp: datetime
    card_type: str | None = None
    card_last4: str | None = None
    ip_address: str | None = None
    device_id: str | None = None
    country: str | None = None
    city: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    transaction_type: str
    status: str
    risk_score: float
    risk_level: str
    is_fraud: bool
    review_status: str
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AlertResponse(BaseModel):
    """Schema for an alert as returned by the API.

    Attributes:
        alert_id: Unique identifier of the alert (UUID).
        transaction_id: Reference to the source transaction.
        alert_type: Category of the alert.
        severity: low, medium or high.
        description: Summary produced by the insight generator.
        risk_score: Score of the transaction in ``[0, 1]``.
        status: new, under_review, resolved, false_positive or confirmed_fraud.
        reasons: Ordered contributing factors.
        recommended_action: Suggested next step.
        resolution_notes: Analyst notes recorded on resolution.
        resolved_at: Time the alert was resolved.
        created_at: Timestamp of alert creation.
        updated_at: Timestamp of the most recent update.
    """

    alert_id: str
    transaction_id: str
    alert_type: str
    severity: str
    description: str
    risk_score: float
    status: str
    reasons: list[str]
    recommended_action: str
    resolution_notes: str | None = None
    resolved_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class TransactionCreatedResponse(BaseModel):
    """Response body of ``POST /api/transactions``."""

    transaction: TransactionResponse
    assessment: RiskAssessment
    alert: AlertResponse | None = None
    message: str


class TransactionDetailResponse(BaseModel):
    """A transaction together with every alert raised for it."""

    transaction: TransactionResponse
    alerts: list[AlertResponse]


class Pagination(BaseModel):
    """Pagination metadata for list endpoints."""

    total: int
    page: int
    limit: int
    pages: int


class TransactionListResponse(BaseModel):
    """Paginated list of transactions."""

    transactions: list[TransactionResponse]
    pagination: Pagination


class AlertStatusUpdate(BaseModel):
    """Request body schema for ``PATCH /api/alerts/{alert_id}``.

    Attributes:
        status: New status.  One of: ``new``, ``under_review``,
            ``resolved``, ``false_positive``, ``confirmed_fraud``.
        resolution_notes: Optional analyst notes.
    """

    status: str = Field(
        ...,
        description=(
            "New alert status.  One of: new, under_review, resolved, "
            "false_positive, confirmed_fraud."
        ),
    )
    resolution_notes: str | None = None


class TransactionReviewUpdate(BaseModel):
    """Request body schema for ``PUT /api/transactions/{id}/review``."""

    review_status: str = Field(
        ...,
        description=(
            "One of: not_reviewed, reviewed, confirmed_fraud, false_positive."
        ),
    )
    notes: str | None = None


class AccountUpdate(BaseModel):
    """Request body schema for ``PUT /api/accounts/{user_id}``."""

    billing_location: Location


class AccountResponse(BaseModel):
    """Billing location on file for a user."""

    user_id: str
    billing_country: str | None = None
    billing_city: str | None = None
    billing_latitude: float | None = None
    billing_longitude: float | None = None

    model_config = ConfigDict(from_attributes=True)
