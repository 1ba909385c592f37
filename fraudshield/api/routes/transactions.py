"""Transaction intake, lookup and review endpoints."""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fraudshield.api.dependencies import get_intake
from fraudshield.models.database import Alert, Transaction, get_db
from fraudshield.pipeline.history import to_storage_time
from fraudshield.pipeline.ingestion import TransactionIntake
from fraudshield.schemas.schemas import (
    AlertResponse,
    Pagination,
    RiskAssessment,
    TransactionCreate,
    TransactionCreatedResponse,
    TransactionDetailResponse,
    TransactionListResponse,
    TransactionResponse,
    TransactionReviewUpdate,
)

logger = logging.getLogger(__name__)

transactions_router = APIRouter(prefix="/api/transactions", tags=["transactions"])

VALID_REVIEW_STATUSES: set[str] = {
    "not_reviewed",
    "reviewed",
    "confirmed_fraud",
    "false_positive",
}
VALID_RISK_LEVELS: set[str] = {"low", "medium", "high"}


@transactions_router.post(
    "",
    response_model=TransactionCreatedResponse,
    status_code=201,
)
async def create_transaction(
    body: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    intake: TransactionIntake = Depends(get_intake),
) -> TransactionCreatedResponse:
    """Assess a new transaction and persist it, raising an alert if needed.

    Args:
        body: The incoming transaction.
        db: Async database session dependency.
        intake: Intake workflow bound to the shared risk pipeline.

    Returns:
        The stored transaction, its risk assessment and the alert, if any.

    Raises:
        HTTPException: 409 if the transaction already exists.
    """
    result = await intake.process_transaction(body, db)
    if result is None:
        raise HTTPException(
            status_code=409,
            detail=f"Transaction '{body.transaction_id}' already exists",
        )

    alert = AlertResponse.model_validate(result.alert) if result.alert else None
    return TransactionCreatedResponse(
        transaction=TransactionResponse.model_validate(result.transaction),
        assessment=result.assessment,
        alert=alert,
        message=(
            "Transaction created and alert generated"
            if alert is not None
            else "Transaction created successfully"
        ),
    )


@transactions_router.post("/assess", response_model=RiskAssessment)
async def assess_transaction(
    body: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    intake: TransactionIntake = Depends(get_intake),
) -> RiskAssessment:
    """Assess a transaction against stored history without persisting it."""
    return await intake.assess(body, db)


@transactions_router.get("", response_model=TransactionListResponse)
async def list_transactions(
    status: str | None = Query(default=None, description="Filter by transaction status"),
    risk_level: str | None = Query(default=None, description="Filter by risk level"),
    min_amount: float | None = Query(default=None, ge=0, description="Minimum amount"),
    max_amount: float | None = Query(default=None, ge=0, description="Maximum amount"),
    start_date: datetime | None = Query(default=None, description="Stored on or after this time"),
    end_date: datetime | None = Query(default=None, description="Stored on or before this time"),
    search: str | None = Query(
        default=None,
        min_length=1,
        description="Case-insensitive match on transaction, user, merchant or card digits",
    ),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> TransactionListResponse:
    """List transactions, newest first, with optional filters and pagination.

    Raises:
        HTTPException: 400 if ``risk_level`` is not low, medium or high.
    """
    conditions = []
    if status is not None:
        conditions.append(Transaction.status == status)
    if risk_level is not None:
        if risk_level not in VALID_RISK_LEVELS:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid risk level '{risk_level}'. Must be one of: {', '.join(sorted(VALID_RISK_LEVELS))}",
            )
        conditions.append(Transaction.risk_level == risk_level)
    if min_amount is not None:
        conditions.append(Transaction.amount >= min_amount)
    if max_amount is not None:
        conditions.append(Transaction.amount <= max_amount)
    if start_date is not None:
        conditions.append(Transaction.created_at >= to_storage_time(start_date))
    if end_date is not None:
        conditions.append(Transaction.created_at <= to_storage_time(end_date))
    if search is not None:
        pattern = f"%{search}%"
        conditions.append(
            or_(
                Transaction.transaction_id.ilike(pattern),
                Transaction.user_id.ilike(pattern),
                Transaction.merchant_id.ilike(pattern),
                Transaction.card_last4.ilike(pattern),
            )
        )

    total: int = await db.scalar(
        select(func.count()).select_from(Transaction).where(*conditions)
    ) or 0

    stmt = (
        select(Transaction)
        .where(*conditions)
        .order_by(Transaction.timestamp.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    result = await db.execute(stmt)
    rows = result.scalars().all()

    return TransactionListResponse(
        transactions=[TransactionResponse.model_validate(row) for row in rows],
        pagination=Pagination(
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit),
        ),
    )


@transactions_router.get("/{transaction_id}", response_model=TransactionDetailResponse)
async def get_transaction(
    transaction_id: str,
    db: AsyncSession = Depends(get_db),
) -> TransactionDetailResponse:
    """Retrieve a single transaction and its alerts, newest alert first.

    Raises:
        HTTPException: 404 if the transaction is not found.
    """
    txn = await db.get(Transaction, transaction_id)
    if txn is None:
        raise HTTPException(
            status_code=404,
            detail=f"Transaction '{transaction_id}' not found",
        )

    alerts_result = await db.execute(
        select(Alert)
        .where(Alert.transaction_id == transaction_id)
        .order_by(Alert.created_at.desc())
    )
    return TransactionDetailResponse(
        transaction=TransactionResponse.model_validate(txn),
        alerts=[AlertResponse.model_validate(a) for a in alerts_result.scalars().all()],
    )


@transactions_router.put("/{transaction_id}/review", response_model=TransactionResponse)
async def update_transaction_review(
    transaction_id: str,
    body: TransactionReviewUpdate,
    db: AsyncSession = Depends(get_db),
) -> TransactionResponse:
    """Record an analyst review on a transaction.

    ``confirmed_fraud`` marks the transaction as fraud.  ``confirmed_fraud``
    and ``false_positive`` also resolve every alert of the transaction with
    the same verdict.

    Raises:
        HTTPException: 400 if the review status is invalid, 404 if the
            transaction is not found.
    """
    if body.review_status not in VALID_REVIEW_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid review status '{body.review_status}'. Must be one of: {', '.join(sorted(VALID_REVIEW_STATUSES))}",
        )

    txn = await db.get(Transaction, transaction_id)
    if txn is None:
        raise HTTPException(
            status_code=404,
            detail=f"Transaction '{transaction_id}' not found",
        )

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    txn.review_status = body.review_status
    txn.reviewed_at = now
    if body.review_status == "confirmed_fraud":
        txn.is_fraud = True

    if body.review_status in {"confirmed_fraud", "false_positive"}:
        await db.execute(
            update(Alert)
            .where(Alert.transaction_id == transaction_id)
            .values(
                status=body.review_status,
                resolved_at=now,
                resolution_notes=body.notes or "Updated by analyst review",
            )
        )
        logger.info(
            "Alerts for %s resolved as %s", transaction_id, body.review_status,
        )

    await db.commit()
    return TransactionResponse.model_validate(txn)
