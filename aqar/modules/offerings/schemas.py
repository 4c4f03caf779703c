"""Offering schemas: property listing, minting."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class PropertyCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=200)
    total_value: Decimal = Field(..., gt=0, decimal_places=2)
    total_supply: int = Field(..., gt=0)
    token_name: str = Field(..., min_length=1, max_length=20)


class PropertyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    total_value: Decimal
    total_supply: int
    token_name: str
    token_currency_code: str
    issuer_address: str
    raised_amount: Decimal = Decimal("0")  # computed from the investment log
    is_funded: bool
    funded_at: datetime | None = None
    is_minted: bool
    mint_tx_ref: str | None = None
    minted_at: datetime | None = None
    created_at: datetime


class MintResponse(BaseModel):
    property_id: uuid.UUID
    token_currency_code: str
    total_supply: int
    mint_tx_ref: str
