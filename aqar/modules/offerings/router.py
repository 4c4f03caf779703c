"""Offerings API router."""

import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.auth import get_current_user, require_role
from aqar.core.database import get_db
from aqar.ledger.client import LedgerClient, get_ledger
from aqar.models.enums import UserRole
from aqar.modules.offerings import service
from aqar.modules.offerings.schemas import MintResponse, PropertyCreateRequest, PropertyResponse
from aqar.schemas.auth import CurrentUser

router = APIRouter(prefix="/properties", tags=["properties"])


@router.get("", response_model=list[PropertyResponse])
async def list_properties(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[PropertyResponse]:
    """List all properties, newest first."""
    return await service.list_properties(db)


@router.post("", response_model=PropertyResponse, status_code=status.HTTP_201_CREATED)
async def create_property(
    body: PropertyCreateRequest,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
) -> PropertyResponse:
    prop = await service.create_property(
        db,
        ledger,
        name=body.name,
        total_value=body.total_value,
        total_supply=body.total_supply,
        token_name=body.token_name,
    )
    return service.to_response(prop, raised=Decimal("0.00"))


@router.post("/{property_id}/mint", response_model=MintResponse)
async def mint_supply(
    property_id: uuid.UUID,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
) -> MintResponse:
    """Issue the property's full token supply to the distribution wallet."""
    return await service.mint_supply(db, ledger, property_id)
