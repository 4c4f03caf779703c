"""Core models: User and its custodial account."""

from decimal import Decimal

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from aqar.models.base import BaseModel
from aqar.models.enums import UserRole
from aqar.models.types import CustodialSecretType
from aqar.services.encryption import CustodialSecret


class User(BaseModel):
    """Platform user holding a custodial fiat balance and a custodial ledger account.

    The ledger account is created once at onboarding and never deleted. The
    platform alone signs with its secret.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("fiat_balance >= 0", name="ck_users_fiat_balance_non_negative"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[UserRole] = mapped_column(nullable=False, default=UserRole.INVESTOR)
    fiat_balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    ledger_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    ledger_secret: Mapped[CustodialSecret] = mapped_column(CustodialSecretType, nullable=False)

    # Managed by the identity service
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
