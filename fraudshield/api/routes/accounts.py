"""Billing-location endpoints used by the location-mismatch feature."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from fraudshield.models.database import Account, get_db
from fraudshield.pipeline.ingestion import save_account
from fraudshield.schemas.schemas import AccountResponse, AccountUpdate

logger = logging.getLogger(__name__)

accounts_router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@accounts_router.put("/{user_id}", response_model=AccountResponse)
async def put_account(
    user_id: str,
    body: AccountUpdate,
    db: AsyncSession = Depends(get_db),
) -> AccountResponse:
    """Create or replace the billing location on file for ``user_id``."""
    account = await save_account(db, user_id, body.billing_location)
    await db.commit()
    logger.info("Billing location updated for user %s", user_id)
    return AccountResponse.model_validate(account)


@accounts_router.get("/{user_id}", response_model=AccountResponse)
async def get_account(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> AccountResponse:
    """Return the billing location on file for ``user_id``.

    Raises:
        HTTPException: 404 if no account exists.
    """
    account = await db.get(Account, user_id)
    if account is None:
        raise HTTPException(status_code=404, detail=f"Account '{user_id}' not found")
    return AccountResponse.model_validate(account)
