"""Batch ingestion jobs run in the background of the API process."""
from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field

from fraudshield.api.dependencies import get_risk_pipeline
from fraudshield.pipeline.ingestion import TransactionIntake
from fraudshield.pipeline.risk_assessment import RiskAssessmentPipeline

logger = logging.getLogger(__name__)

pipeline_router = APIRouter(prefix="/api/pipeline", tags=["pipeline"])


class IngestFileRequest(BaseModel):
    """Ingest the accounts and transactions stored in ``data_file``."""

    data_file: str = "data/transactions.json"


class SyntheticBatchRequest(BaseModel):
    """Generate ``count`` synthetic transactions from ``seed`` and ingest them."""

    count: int = Field(default=500, ge=1, le=50_000)
    seed: int = 42


class PipelineJobResponse(BaseModel):
    """Acknowledgement of a scheduled ingestion job."""

    status: Literal["started"] = "started"
    message: str


async def ingest_file(risk_pipeline: RiskAssessmentPipeline, data_file: str) -> None:
    try:
        summary = await TransactionIntake(risk_pipeline).ingest_from_json(data_file)
    except Exception:
        logger.exception("Ingestion job for %s failed", data_file)
        return
    logger.info("Ingestion job for %s finished: %s", data_file, summary)


async def ingest_synthetic(risk_pipeline: RiskAssessmentPipeline, count: int, seed: int) -> None:
    try:
        from data.generate_data import generate_dataset

        dataset = generate_dataset(total=count, seed=seed)
        intake = TransactionIntake(risk_pipeline)
        await intake.upsert_accounts(dataset["accounts"])
        summary = await intake.ingest_from_list(dataset["transactions"])
    except Exception:
        logger.exception("Synthetic ingestion job (count=%s, seed=%s) failed", count, seed)
        return
    logger.info("Synthetic ingestion job finished: %s", summary)


@pipeline_router.post("/trigger", response_model=PipelineJobResponse)
async def trigger_ingestion(
    body: IngestFileRequest,
    background_tasks: BackgroundTasks,
    risk_pipeline: RiskAssessmentPipeline = Depends(get_risk_pipeline),
) -> PipelineJobResponse:
    """Schedule ingestion of a JSON file through the intake workflow."""
    background_tasks.add_task(ingest_file, risk_pipeline, body.data_file)
    logger.info("Scheduled ingestion of %s", body.data_file)
    return PipelineJobResponse(message=f"Ingesting {body.data_file} in background")


@pipeline_router.post("/generate", response_model=PipelineJobResponse)
async def generate_and_ingest(
    body: SyntheticBatchRequest,
    background_tasks: BackgroundTasks,
    risk_pipeline: RiskAssessmentPipeline = Depends(get_risk_pipeline),
) -> PipelineJobResponse:
    """Schedule generation and ingestion of a seeded synthetic dataset."""
    background_tasks.add_task(ingest_synthetic, risk_pipeline, body.count, body.seed)
    logger.info("Scheduled synthetic ingestion: count=%s seed=%s", body.count, body.seed)
    return PipelineJobResponse(
        message=f"Generating {body.count} transactions in background (seed={body.seed})",
    )
