"""Rent distribution schemas."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class RentDistributionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rate_per_token: Decimal = Field(..., gt=0, decimal_places=6)
    period: str | None = Field(None, min_length=1, max_length=32)  # e.g. "2026-09"


class PayoutResult(BaseModel):
    user_id: uuid.UUID
    holder_address: str
    tokens: int
    amount: Decimal
    status: str              # ledger result code, tesSUCCESS when paid
    ledger_tx_ref: str | None = None
    error: str | None = None

    @property
    def paid(self) -> bool:
        return self.error is None


class RentDistributionResponse(BaseModel):
    distribution_id: uuid.UUID
    property_id: uuid.UUID
    period: str | None
    rate_per_token: Decimal
    calculated_total: Decimal
    paid_total: Decimal
    holder_count: int
    failed_count: int
    created_at: datetime
    payouts: list[PayoutResult]


class RentDistributionQueued(BaseModel):
    message: str
    property_id: uuid.UUID
    task_id: str
