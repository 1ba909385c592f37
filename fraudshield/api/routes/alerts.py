"""Alert management endpoints for fraud analysts."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fraudshield.models.database import Alert, get_db
from fraudshield.schemas.schemas import AlertResponse, AlertStatusUpdate

logger = logging.getLogger(__name__)

alerts_router = APIRouter(prefix="/api/alerts", tags=["alerts"])

VALID_STATUSES: set[str] = {
    "new",
    "under_review",
    "resolved",
    "false_positive",
    "confirmed_fraud",
}
RESOLVED_STATUSES: set[str] = {"resolved", "false_positive", "confirmed_fraud"}
VALID_SEVERITIES: set[str] = {"low", "medium", "high"}


def _invalid(kind: str, value: str, allowed: set[str]) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail=f"Invalid {kind} '{value}'. Must be one of: {', '.join(sorted(allowed))}",
    )


@alerts_router.get("", response_model=list[AlertResponse])
async def get_alerts(
    status: str | None = Query(default=None, description="Filter by alert status"),
    severity: str | None = Query(default=None, description="Filter by severity"),
    min_risk: float = Query(default=0.0, ge=0.0, le=1.0, description="Minimum risk score"),
    hours: int = Query(default=24, ge=1, description="Lookback window in hours"),
    db: AsyncSession = Depends(get_db),
) -> list[AlertResponse]:
    """Retrieve alerts with optional filtering.

    Args:
        status: Optional alert status filter.
        severity: Optional severity filter (low, medium, high).
        min_risk: Minimum risk score threshold (0-1).
        hours: Number of hours to look back from now.
        db: Async database session dependency.

    Returns:
        Alerts matching the filter criteria, most recent first.
    """
    cutoff = datetime.now(timezone.utc).replace(tzinfo=None) - timedelta(hours=hours)

    stmt = (
        select(Alert)
        .where(Alert.risk_score >= min_risk)
        .where(Alert.created_at >= cutoff)
    )

    if status is not None:
        if status not in VALID_STATUSES:
            raise _invalid("status", status, VALID_STATUSES)
        stmt = stmt.where(Alert.status == status)

    if severity is not None:
        if severity not in VALID_SEVERITIES:
            raise _invalid("severity", severity, VALID_SEVERITIES)
        stmt = stmt.where(Alert.severity == severity)

    stmt = stmt.order_by(Alert.created_at.desc()).limit(200)

    result = await db.execute(stmt)
    return [AlertResponse.model_validate(alert) for alert in result.scalars().all()]


@alerts_router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: str,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Retrieve a single alert by its ID.

    Raises:
        HTTPException: 404 if alert is not found.
    """
    alert = await db.get(Alert, alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert '{alert_id}' not found")
    return AlertResponse.model_validate(alert)


@alerts_router.patch("/{alert_id}", response_model=AlertResponse)
async def update_alert_status(
    alert_id: str,
    body: AlertStatusUpdate,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Update the status of an alert.

    Moving an alert to a resolved status records the resolution time and
    any analyst notes.

    Raises:
        HTTPException: 400 if status value is invalid, 404 if alert not found.
    """
    if body.status not in VALID_STATUSES:
        raise _invalid("status", body.status, VALID_STATUSES)

    alert = await db.get(Alert, alert_id)
    if alert is None:
        raise HTTPException(status_code=404, detail=f"Alert '{alert_id}' not found")

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    alert.status = body.status
    alert.updated_at = now
    if body.status in RESOLVED_STATUSES:
        alert.resolved_at = now
    if body.resolution_notes is not None:
        alert.resolution_notes = body.resolution_notes

    await db.commit()
    logger.info("Alert %s moved to %s", alert_id, body.status)
    return AlertResponse.model_validate(alert)
