"""Investment schemas: invest request/receipt, unfreeze."""

import uuid
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from aqar.models.enums import TrustLineState


class InvestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    property_id: uuid.UUID
    fiat_amount: Decimal = Field(..., gt=0, decimal_places=2)


class InvestmentReceipt(BaseModel):
    investment_id: uuid.UUID
    property_id: uuid.UUID
    fiat_amount: Decimal
    tokens_received: int
    ledger_tx_ref: str
    unconverted_fiat: Decimal   # debited but not represented by a whole token
    property_funded: bool


class UnfreezeResponse(BaseModel):
    user_id: uuid.UUID
    property_id: uuid.UUID
    token_currency_code: str
    tokens: int
    ledger_tx_ref: str
    trust_line_state: TrustLineState
