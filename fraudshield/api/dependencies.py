"""FastAPI dependencies shared by the route modules."""
from __future__ import annotations

from fastapi import Request

from fraudshield.pipeline.ingestion import TransactionIntake
from fraudshield.pipeline.risk_assessment import RiskAssessmentPipeline


def get_risk_pipeline(request: Request) -> RiskAssessmentPipeline:
    """Return the risk pipeline composed at application startup."""
    return request.app.state.risk_pipeline


def get_intake(request: Request) -> TransactionIntake:
    """Return a ``TransactionIntake`` bound to the shared risk pipeline."""
    return TransactionIntake(get_risk_pipeline(request))
