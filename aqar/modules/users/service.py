"""User service: onboarding with a custodial ledger account, fiat deposits, dashboard."""

import uuid
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.core.config import settings
from aqar.core.errors import DomainError, NotFound, StorageFailure, ValidationError
from aqar.core.money import FILS, parse_fiat_amount
from aqar.ledger.client import LedgerClient
from aqar.models.core import User
from aqar.models.enums import TrustLineState, UserRole
from aqar.models.offerings import Investment, Property
from aqar.modules.custody import service as custody
from aqar.modules.users.schemas import DashboardResponse, HoldingResponse, UserResponse

logger = structlog.get_logger()


async def get_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found", user_id=str(user_id))
    return user


async def lock_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    stmt = (
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFound(f"User {user_id} not found", user_id=str(user_id))
    return user


async def create_user(
    db: AsyncSession,
    ledger: LedgerClient,
    *,
    name: str,
    email: str,
    role: UserRole = UserRole.INVESTOR,
) -> User:
    """Onboard a user: create, fund and trust-line a custodial account, then persist."""
    if not name or not name.strip():
        raise ValidationError("name must not be empty.", field="name")
    email = email.strip().lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError("A user with this email already exists.", field="email")

    address = None
    try:
        address, secret = await custody.create_custodial_account(ledger)

        user = User(
            name=name.strip(),
            email=email,
            role=role,
            fiat_balance=Decimal("0.00"),
            ledger_address=address,
            ledger_secret=secret,
        )
        db.add(user)
        await db.flush()
        await custody.record_trust_line_state(
            db,
            user.id,
            settings.FIAT_CURRENCY_CODE,
            ledger.wallets.operational.address,
            TrustLineState.TRUSTED,
        )
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        # The ledger account exists but no user row points at it
        logger.error("user.account_not_recorded", address=address, error_type=type(exc).__name__)
        if isinstance(exc, IntegrityError):
            raise ValidationError("A user with this email already exists.", field="email") from exc
        raise StorageFailure() from exc

    logger.info("user.created", user_id=str(user.id), address=address, role=role.value)
    return user


async def deposit_fiat(db: AsyncSession, user_id: uuid.UUID, amount: Decimal | int | str) -> User:
    """Credit a (simulated) fiat deposit to the user's balance."""
    credit = parse_fiat_amount(amount)
    try:
        user = await lock_user(db, user_id)
        user.fiat_balance = (user.fiat_balance + credit).quantize(FILS)
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageFailure() from exc

    logger.info("user.deposit", user_id=str(user_id), amount=str(credit))
    return user


async def get_dashboard(db: AsyncSession, user_id: uuid.UUID) -> DashboardResponse:
    """User info, fiat balance and holdings derived from the investment log."""
    user = await get_user(db, user_id)
    states = await custody.get_trust_line_states(db, user_id)

    stmt = (
        select(
            Property.id,
            Property.name,
            Property.token_name,
            Property.token_currency_code,
            func.sum(Investment.tokens_received).label("tokens"),
            func.sum(Investment.fiat_amount).label("invested"),
        )
        .join(Property, Property.id == Investment.property_id)
        .where(Investment.user_id == user_id)
        .group_by(Property.id, Property.name, Property.token_name, Property.token_currency_code)
        .order_by(Property.name)
    )
    rows = (await db.execute(stmt)).all()

    holdings = [
        HoldingResponse(
            property_id=row.id,
            property_name=row.name,
            token_name=row.token_name,
            token_currency_code=row.token_currency_code,
            tokens=int(row.tokens),
            fiat_invested=Decimal(str(row.invested)).quantize(FILS),
            trust_line_state=states.get(row.token_currency_code),
        )
        for row in rows
    ]
    return DashboardResponse(user=UserResponse.model_validate(user), holdings=holdings)
