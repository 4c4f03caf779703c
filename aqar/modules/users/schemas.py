"""User schemas: onboarding, deposits, dashboard."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from aqar.models.enums import TrustLineState, UserRole


class UserCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    role: UserRole = UserRole.INVESTOR


class DepositRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(..., gt=0, decimal_places=2)


class UserResponse(BaseModel):
    """Public view of a user; never carries the custodial secret."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    role: UserRole
    fiat_balance: Decimal
    ledger_address: str
    created_at: datetime


class HoldingResponse(BaseModel):
    property_id: uuid.UUID
    property_name: str
    token_name: str
    token_currency_code: str
    tokens: int
    fiat_invested: Decimal
    trust_line_state: TrustLineState | None = None  # None: no trust line recorded


class DashboardResponse(BaseModel):
    user: UserResponse
    holdings: list[HoldingResponse]
