"""Offering models: Property, the append-only Investment log, RentDistribution."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from aqar.models.base import BaseModel, TimestampedModel


class Property(BaseModel):
    """A tokenized property offering.

    ``is_funded`` and ``is_minted`` only ever go from False to True.
    """

    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint("total_value > 0", name="ck_properties_total_value_positive"),
        CheckConstraint("total_supply > 0", name="ck_properties_total_supply_positive"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_value: Mapped[Decimal] = mapped_column(nullable=False)
    total_supply: Mapped[int] = mapped_column(BigInteger, nullable=False)
    token_name: Mapped[str] = mapped_column(String(20), nullable=False)
    token_currency_code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    issuer_address: Mapped[str] = mapped_column(String(64), nullable=False)

    is_funded: Mapped[bool] = mapped_column(nullable=False, default=False)
    funded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_minted: Mapped[bool] = mapped_column(nullable=False, default=False)
    mint_tx_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)
    minted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Investment(TimestampedModel):
    """Immutable record of one investment.

    Holdings are always derived by summing ``tokens_received``; there is no
    separate balance column.
    """

    __tablename__ = "investments"
    __table_args__ = (
        Index("ix_investments_property_id", "property_id"),
        Index("ix_investments_user_property", "user_id", "property_id"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    property_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("properties.id"), nullable=False)
    fiat_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tokens_received: Mapped[int] = mapped_column(BigInteger, nullable=False)
    ledger_tx_ref: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)


class RentDistribution(TimestampedModel):
    """Summary of one rent distribution; per-holder payouts are not stored."""

    __tablename__ = "rent_distributions"
    __table_args__ = (
        UniqueConstraint("property_id", "period", name="uq_rent_distributions_property_period"),
        Index("ix_rent_distributions_property_id", "property_id"),
    )

    property_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("properties.id"), nullable=False)
    period: Mapped[str | None] = mapped_column(String(32), nullable=True)
    rate_per_token: Mapped[Decimal] = mapped_column(Numeric(19, 6), nullable=False)
    calculated_total: Mapped[Decimal] = mapped_column(Numeric(19, 6), nullable=False)
    paid_total: Mapped[Decimal] = mapped_column(Numeric(19, 6), nullable=False)
    holder_count: Mapped[int] = mapped_column(Integer, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False)
