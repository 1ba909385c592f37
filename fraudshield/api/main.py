"""FastAPI application entry point for the FraudShield risk assessment API.

Run with::

    uvicorn fraudshield.api.main:app --reload
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from fraudshield.api.routes.accounts import accounts_router
from fraudshield.api.routes.alerts import alerts_router
from fraudshield.api.routes.pipeline import pipeline_router
from fraudshield.api.routes.transactions import transactions_router
from fraudshield.config import settings
from fraudshield.logging_config import configure_logging
from fraudshield.models.database import create_tables
from fraudshield.pipeline.model import ModelLoadError
from fraudshield.pipeline.risk_assessment import RiskAssessmentPipeline, build_risk_pipeline

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Prepare storage and the risk pipeline before serving requests.

    A pipeline already placed on ``app.state`` is kept, otherwise one is
    composed from settings.  A model that fails to load does not stop the
    API: assessments fail safe and the next one retries the load.
    """
    configure_logging()
    await create_tables()
    if getattr(app.state, "risk_pipeline", None) is None:
        app.state.risk_pipeline = build_risk_pipeline(settings)
    try:
        app.state.risk_pipeline.model_cache.get()
    except ModelLoadError:
        logger.error("Scoring model unavailable at startup; assessments will fail safe")
    logger.info("FraudShield API ready")
    yield


app = FastAPI(
    title=settings.APP_TITLE,
    description="Transaction risk scoring, alerting and analyst review API",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

# Local development front ends run on other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (transactions_router, alerts_router, accounts_router, pipeline_router):
    app.include_router(router)


@app.get("/health", tags=["health"])
async def health(request: Request) -> dict[str, object]:
    """Report liveness and whether the scoring model has been loaded."""
    pipeline: RiskAssessmentPipeline | None = getattr(request.app.state, "risk_pipeline", None)
    return {
        "status": "ok",
        "model_loaded": bool(pipeline and pipeline.model_cache.loaded),
    }
