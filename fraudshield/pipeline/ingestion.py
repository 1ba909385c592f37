"""Transaction intake: history lookup, risk assessment and persistence.

``TransactionIntake.process_transaction`` handles one transaction inside a
caller-owned session.  The batch entry points open one session per record
so a failure in one record never rolls back another.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fraudshield.models.database import Account, Alert, Transaction, async_session
from fraudshield.pipeline.history import (
    HistoryProvider,
    UnavailableHistory,
    load_history_snapshot,
    to_storage_time,
)
from fraudshield.pipeline.risk_assessment import RiskAssessmentPipeline
from fraudshield.schemas.schemas import Location, RiskAssessment, TransactionCreate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IntakeResult:
    """Outcome of processing one transaction.

    Attributes:
        transaction: The persisted transaction row.
        assessment: The decision of the risk pipeline.
        alert: The persisted alert, when one was raised.
    """

    transaction: Transaction
    assessment: RiskAssessment
    alert: Alert | None = None


class TransactionIntake:
    """End-to-end intake of transactions through the risk pipeline.

    Args:
        risk_pipeline: The composed risk assessment pipeline.

    Attributes:
        processed_count: Running total of successfully processed transactions.
        flagged_count: Running total of transactions that generated alerts.
    """

    def __init__(self, risk_pipeline: RiskAssessmentPipeline) -> None:
        self.risk_pipeline = risk_pipeline
        self.processed_count: int = 0
        self.flagged_count: int = 0

    async def load_history(
        self,
        tx: TransactionCreate,
        session: AsyncSession,
    ) -> HistoryProvider:
        """Load the history snapshot for ``tx``.

        A database failure yields a provider whose lookups fail, so the risk
        pipeline reports it through the fail-safe assessment.
        """
        try:
            return await load_history_snapshot(session, tx)
        except SQLAlchemyError as exc:
            logger.error(
                "History lookup failed for %s: %s", tx.transaction_id, exc,
            )
            await session.rollback()
            return UnavailableHistory(exc)

    async def assess(
        self,
        tx: TransactionCreate,
        session: AsyncSession,
    ) -> RiskAssessment:
        """Assess ``tx`` against stored history without persisting anything."""
        history = await self.load_history(tx, session)
        return self.risk_pipeline.assess(tx, history)

    async def process_transaction(
        self,
        tx: TransactionCreate,
        session: AsyncSession,
    ) -> IntakeResult | None:
        """Assess ``tx`` and store it, together with an alert when one is due.

        Args:
            tx: The validated transaction.
            session: Active async database session.  Committed on success.

        Returns:
            The stored rows and the assessment, or ``None`` when a
            transaction with the same ``transaction_id`` already exists.
        """
        if await session.get(Transaction, tx.transaction_id) is not None:
            logger.warning("Transaction %s already stored, skipping", tx.transaction_id)
            return None

        assessment = await self.assess(tx, session)
        transaction = _to_row(tx, assessment)
        session.add(transaction)

        alert = _to_alert(tx, assessment) if assessment.create_alert else None
        if alert is not None:
            session.add(alert)
        await session.commit()

        self.processed_count += 1
        if alert is not None:
            self.flagged_count += 1
            logger.warning(
                "FRAUD ALERT %s for %s: %s, score %.2f, reasons %s",
                alert.alert_id,
                tx.transaction_id,
                alert.alert_type,
                assessment.score,
                assessment.reasons,
            )
        return IntakeResult(transaction=transaction, assessment=assessment, alert=alert)

    async def ingest_from_json(
        self,
        file_path: str,
        delay_seconds: float = 0.0,
    ) -> dict[str, Any]:
        """Run every record of a JSON file through ``process_transaction``.

        The document is either an array of transactions or an object with
        ``accounts`` and ``transactions`` arrays, in which case the accounts
        are upserted first.

        Args:
            file_path: Location of the JSON document.
            delay_seconds: Pause between records, to replay at a steady pace.

        Returns:
            The run summary, see ``_ingest``.
        """
        path = Path(file_path)
        logger.info("Reading batch from %s", path.resolve())
        with path.open("r", encoding="utf-8") as fh:
            payload: Any = json.load(fh)

        if isinstance(payload, dict):
            accounts = payload.get("accounts") or []
            records = payload.get("transactions") or []
        else:
            accounts, records = [], payload

        if accounts:
            await self.upsert_accounts(accounts)
        return await self._ingest(records, delay_seconds)

    async def ingest_from_list(
        self,
        transactions: list[dict[str, Any]],
        delay_seconds: float = 0.0,
    ) -> dict[str, Any]:
        """Same as ``ingest_from_json`` for records already in memory."""
        return await self._ingest(transactions, delay_seconds)

    async def upsert_accounts(self, accounts: list[dict[str, Any]]) -> int:
        """Create or update the billing location of each account.

        Each entry holds ``user_id`` and a ``billing_location`` object in the
        shape of ``Location``.

        Returns:
            Number of accounts written.
        """
        async with async_session() as session:
            for entry in accounts:
                location = Location.model_validate(entry.get("billing_location") or {})
                await save_account(session, str(entry["user_id"]), location)
            await session.commit()
        logger.info("Upserted %d account(s)", len(accounts))
        return len(accounts)

    async def _ingest(
        self,
        records: list[dict[str, Any]],
        delay_seconds: float,
    ) -> dict[str, Any]:
        """Validate and process ``records`` in order, one session each.

        Records failing validation are logged and counted, never raised.

        Returns:
            ``total`` and ``flagged`` (running counters of this intake),
            ``invalid`` (records rejected in this run) and
            ``processing_time_seconds``.
        """
        count = len(records)
        invalid = 0
        logger.info("Ingesting %d record(s)", count)
        started = time.perf_counter()

        for position, record in enumerate(records, start=1):
            label = record.get("transaction_id", "?")
            try:
                tx = TransactionCreate.model_validate(record)
            except ValidationError as exc:
                invalid += 1
                logger.error("Rejected record %s: %s", label, exc)
                continue

            async with async_session() as session:
                result = await self.process_transaction(tx, session)

            if result is None:
                print(f"[{position}/{count}] {label} | duplicate, skipped")
            else:
                assessment = result.assessment
                alert = result.alert.alert_type if result.alert else "-"
                print(
                    f"[{position}/{count}] {label} | score {assessment.score:.2f} | "
                    f"{assessment.level.value} | alert {alert}"
                )

            if delay_seconds > 0:
                await asyncio.sleep(delay_seconds)

        summary: dict[str, Any] = {
            "total": self.processed_count,
            "flagged": self.flagged_count,
            "invalid": invalid,
            "processing_time_seconds": round(time.perf_counter() - started, 4),
        }
        logger.info("Batch finished: %s", summary)
        return summary


async def save_account(session: AsyncSession, user_id: str, location: Location) -> Account:
    """Insert or update the ``Account`` row of ``user_id``.  Does not commit."""
    account = await session.get(Account, user_id)
    if account is None:
        account = Account(user_id=user_id)
        session.add(account)
    account.billing_country = location.country
    account.billing_city = location.city
    account.billing_latitude = (
        location.coordinates.latitude if location.coordinates else None
    )
    account.billing_longitude = (
        location.coordinates.longitude if location.coordinates else None
    )
    return account


def _to_row(tx: TransactionCreate, assessment: RiskAssessment) -> Transaction:
    location = tx.location
    coordinates = location.coordinates if location else None
    return Transaction(
        transaction_id=tx.transaction_id,
        user_id=tx.user_id,
        merchant_id=tx.merchant_id,
        merchant_category=tx.merchant_category,
        amount=float(tx.amount),
        currency=tx.currency,
        timestamp=to_storage_time(tx.timestamp),
        card_type=tx.card_type.value if tx.card_type else None,
        card_last4=tx.card_last4,
        ip_address=tx.ip_address,
        device_id=tx.device_id,
        country=location.country if location else None,
        city=location.city if location else None,
        latitude=coordinates.latitude if coordinates else None,
        longitude=coordinates.longitude if coordinates else None,
        user_agent=tx.user_agent,
        transaction_type=tx.transaction_type,
        status=tx.status,
        risk_score=assessment.score,
        risk_level=assessment.level.value,
        is_fraud=False,
        review_status="not_reviewed",
    )


def _to_alert(tx: TransactionCreate, assessment: RiskAssessment) -> Alert:
    return Alert(
        alert_id=str(uuid4()),
        transaction_id=tx.transaction_id,
        alert_type=assessment.alert_type.value,
        severity=assessment.alert_severity.value,
        description=assessment.description,
        risk_score=assessment.score,
        status="new",
        reasons=list(assessment.reasons),
        recommended_action=assessment.recommended_action,
    )
