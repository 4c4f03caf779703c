"""Users API router."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.auth import get_current_user, require_role
from aqar.core.database import get_db
from aqar.ledger.client import LedgerClient, get_ledger
from aqar.models.enums import UserRole
from aqar.modules.users import service
from aqar.modules.users.schemas import DashboardResponse, DepositRequest, UserCreateRequest, UserResponse
from aqar.schemas.auth import CurrentUser

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreateRequest,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
    ledger: LedgerClient = Depends(get_ledger),
) -> UserResponse:
    """Onboard a user with a funded custodial ledger account."""
    user = await service.create_user(db, ledger, name=body.name, email=body.email, role=body.role)
    return UserResponse.model_validate(user)


@router.post("/{user_id}/deposits", response_model=UserResponse)
async def deposit_fiat(
    user_id: uuid.UUID,
    body: DepositRequest,
    current_user: CurrentUser = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    user = await service.deposit_fiat(db, user_id, body.amount)
    return UserResponse.model_validate(user)


@router.get("/me/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    current_user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DashboardResponse:
    """Balance and holdings for the authenticated user."""
    return await service.get_dashboard(db, current_user.user_id)
