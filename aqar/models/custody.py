"""Custody models: persisted trust-line state per (user, currency)."""

import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from aqar.models.base import BaseModel
from aqar.models.enums import TrustLineState


class TrustLine(BaseModel):
    __tablename__ = "trust_lines"
    __table_args__ = (
        UniqueConstraint("user_id", "currency_code", name="uq_trust_lines_user_currency"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    currency_code: Mapped[str] = mapped_column(String(40), nullable=False)
    issuer_address: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[TrustLineState] = mapped_column(nullable=False)
