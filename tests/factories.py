"""Builders for users, properties and auth headers used across tests."""

import uuid
from decimal import Decimal

from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.core.config import settings
from aqar.models.core import User
from aqar.models.enums import UserRole
from aqar.models.offerings import Property
from aqar.modules.offerings import service as offerings
from aqar.modules.users import service as users

from tests.fakes import FakeLedgerClient

ADMIN_ID = uuid.UUID("00000000-0000-0000-0000-0000000000ad")


async def make_investor(
    db: AsyncSession,
    ledger: FakeLedgerClient,
    balance: Decimal | str = Decimal("0"),
    email: str | None = None,
) -> User:
    user = await users.create_user(
        db,
        ledger,
        name="Test Investor",
        email=email or f"investor-{uuid.uuid4().hex[:8]}@example.com",
    )
    if Decimal(balance) > 0:
        user = await users.deposit_fiat(db, user.id, balance)
    return user


async def make_property(
    db: AsyncSession,
    ledger: FakeLedgerClient,
    total_value: Decimal | str = Decimal("1000000"),
    total_supply: int = 1_000_000,
    token_name: str | None = None,
    minted: bool = True,
) -> Property:
    prop = await offerings.create_property(
        db,
        ledger,
        name="Marina Tower 12B",
        total_value=total_value,
        total_supply=total_supply,
        token_name=token_name or f"PRP{uuid.uuid4().hex[:6].upper()}",
    )
    if minted:
        await offerings.mint_supply(db, ledger, prop.id)
        await db.refresh(prop)
    return prop


def make_token(user_id: uuid.UUID, role: UserRole) -> str:
    return jwt.encode(
        {"sub": str(user_id), "role": role.value},
        settings.SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )


def auth_headers(user_id: uuid.UUID, role: UserRole = UserRole.INVESTOR) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}
