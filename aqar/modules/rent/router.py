"""Rent distribution API router."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.auth import require_role
from aqar.core.database import get_db
from aqar.core.money import parse_rate
from aqar.ledger.client import LedgerClient, get_ledger
from aqar.models.enums import UserRole
from aqar.modules.offerings import service as offerings
from aqar.modules.rent import service
from aqar.modules.rent.schemas import RentDistributionQueued, RentDistributionRequest, RentDistributionResponse
from aqar.schemas.auth import CurrentUser

router = APIRouter(prefix="/properties", tags=["rent"])


@router.post(
    "/{property_id}/rent-distributions",
    response_model=RentDistributionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def distribute_rent(
    property_id: uuid.UUID,
    body: RentDistributionRequest,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
) -> RentDistributionResponse:
    """Pay rent to every holder now and return per-holder results."""
    return await service.distribute_rent(db, ledger, property_id, body.rate_per_token, body.period)


@router.post(
    "/{property_id}/rent-distributions/queue",
    response_model=RentDistributionQueued,
    status_code=status.HTTP_202_ACCEPTED,
)
async def queue_rent_distribution(
    property_id: uuid.UUID,
    body: RentDistributionRequest,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
) -> RentDistributionQueued:
    """Run the distribution on a worker; for properties with many holders."""
    await offerings.get_property(db, property_id)
    parse_rate(body.rate_per_token)

    from aqar.tasks.rent import distribute_rent_task

    result = distribute_rent_task.delay(str(property_id), str(body.rate_per_token), body.period)
    return RentDistributionQueued(
        message="Rent distribution queued",
        property_id=property_id,
        task_id=result.id,
    )
