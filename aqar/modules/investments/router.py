"""Investments API router."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.auth import get_current_user, require_role
from aqar.core.database import get_db
from aqar.ledger.client import LedgerClient, get_ledger
from aqar.models.enums import UserRole
from aqar.modules.investments import service
from aqar.modules.investments.schemas import InvestmentReceipt, InvestRequest, UnfreezeResponse
from aqar.schemas.auth import CurrentUser

router = APIRouter(tags=["investments"])


@router.post("/investments", response_model=InvestmentReceipt, status_code=status.HTTP_201_CREATED)
async def invest(
    body: InvestRequest,
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
) -> InvestmentReceipt:
    """Invest fiat from the caller's balance into a property."""
    return await service.invest(db, ledger, current_user.user_id, body.property_id, body.fiat_amount)


@router.post(
    "/properties/{property_id}/holders/{user_id}/unfreeze",
    response_model=UnfreezeResponse,
)
async def unfreeze_holding(
    property_id: uuid.UUID,
    user_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
) -> UnfreezeResponse:
    return await service.unfreeze_holding(db, ledger, user_id, property_id)
