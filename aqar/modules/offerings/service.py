"""Offering registry: property records, funded bookkeeping and one-time minting."""

import uuid
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from xrpl.models.transactions import AccountSet, AccountSetAsfFlag, Payment, TrustSet
from xrpl.utils import str_to_hex

from aqar.core.config import settings
from aqar.core.database import hold_across_ledger_calls
from aqar.core.errors import AlreadyMinted, DomainError, NotFound, StorageFailure, ValidationError
from aqar.core.money import FILS, parse_fiat_amount, to_fils
from aqar.ledger.client import LedgerClient, LedgerResult
from aqar.ledger.currency import token_currency_code
from aqar.models.base import utcnow
from aqar.models.offerings import Investment, Property
from aqar.modules.custody.service import issued_amount
from aqar.modules.offerings.schemas import MintResponse, PropertyResponse

logger = structlog.get_logger()


def to_response(prop: Property, raised: Decimal) -> PropertyResponse:
    return PropertyResponse.model_validate(prop).model_copy(update={"raised_amount": raised})


# ── Reads and locks ─────────────────────────────────────────────────────────


async def get_property(db: AsyncSession, property_id: uuid.UUID) -> Property:
    prop = await db.get(Property, property_id)
    if prop is None:
        raise NotFound(f"Property {property_id} not found", property_id=str(property_id))
    return prop


async def lock_property(db: AsyncSession, property_id: uuid.UUID) -> Property:
    """SELECT ... FOR UPDATE the property row for the rest of the transaction."""
    stmt = (
        select(Property)
        .where(Property.id == property_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    prop = (await db.execute(stmt)).scalar_one_or_none()
    if prop is None:
        raise NotFound(f"Property {property_id} not found", property_id=str(property_id))
    return prop


async def raised_amount(db: AsyncSession, property_id: uuid.UUID) -> Decimal:
    stmt = select(func.sum(Investment.fiat_amount)).where(Investment.property_id == property_id)
    total = (await db.execute(stmt)).scalar_one_or_none()
    return Decimal(str(total or 0)).quantize(FILS)


async def list_properties(db: AsyncSession) -> list[PropertyResponse]:
    """All properties, newest first, each with the amount raised so far."""
    raised = (
        select(Investment.property_id, func.sum(Investment.fiat_amount).label("raised"))
        .group_by(Investment.property_id)
        .subquery()
    )
    stmt = (
        select(Property, raised.c.raised)
        .outerjoin(raised, raised.c.property_id == Property.id)
        .order_by(Property.created_at.desc())
    )
    result = await db.execute(stmt)
    return [to_response(prop, Decimal(str(total or 0)).quantize(FILS)) for prop, total in result.all()]


# ── Writes ──────────────────────────────────────────────────────────────────


async def create_property(
    db: AsyncSession,
    ledger: LedgerClient,
    *,
    name: str,
    total_value: Decimal | int | str,
    total_supply: int,
    token_name: str,
) -> Property:
    if not name or not name.strip():
        raise ValidationError("name must not be empty.", field="name")
    value = parse_fiat_amount(total_value, field="total_value")
    if isinstance(total_supply, bool) or not isinstance(total_supply, int) or total_supply < 1:
        raise ValidationError("total_supply must be a positive integer.", field="total_supply")
    currency = token_currency_code(token_name)

    existing = await db.execute(select(Property.id).where(Property.token_currency_code == currency))
    if existing.scalar_one_or_none() is not None:
        raise ValidationError(f"token_name '{token_name}' is already in use.", field="token_name")

    prop = Property(
        name=name.strip(),
        total_value=value,
        total_supply=total_supply,
        token_name=token_name,
        token_currency_code=currency,
        issuer_address=ledger.wallets.issuer.address,
        is_funded=False,
        is_minted=False,
    )
    db.add(prop)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ValidationError(f"token_name '{token_name}' is already in use.", field="token_name") from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageFailure() from exc

    logger.info("property.created", property_id=str(prop.id), currency=currency, total_supply=total_supply)
    return prop


def mark_funded(prop: Property, raised_fils: int) -> bool:
    """Set the funded flag once raised reaches total value. Never clears it."""
    if prop.is_funded or raised_fils < to_fils(prop.total_value):
        return False
    prop.is_funded = True
    prop.funded_at = utcnow()
    return True


async def _issue_supply(ledger: LedgerClient, currency: str, supply: int) -> LedgerResult:
    issuer = ledger.wallets.issuer
    distribution = ledger.wallets.distribution
    amount = issued_amount(currency, issuer.address, supply)

    await ledger.submit_and_await(
        TrustSet(account=distribution.address, limit_amount=amount),
        distribution,
    )
    return await ledger.submit_and_await(
        Payment(account=issuer.address, amount=amount, destination=distribution.address),
        issuer,
    )


async def mint_supply(db: AsyncSession, ledger: LedgerClient, property_id: uuid.UUID) -> MintResponse:
    """Issue the whole token supply to the distribution wallet, exactly once.

    The property row stays locked across the ledger calls so two concurrent
    mints cannot both see ``is_minted`` False.
    """
    try:
        await hold_across_ledger_calls(db)
        prop = await lock_property(db, property_id)
        if prop.is_minted:
            raise AlreadyMinted(property_id=str(property_id))

        result = await _issue_supply(ledger, prop.token_currency_code, prop.total_supply)

        prop.is_minted = True
        prop.mint_tx_ref = result.reference
        prop.minted_at = utcnow()
        response = MintResponse(
            property_id=prop.id,
            token_currency_code=prop.token_currency_code,
            total_supply=prop.total_supply,
            mint_tx_ref=result.reference,
        )
        try:
            await db.commit()
        except SQLAlchemyError:
            logger.error(
                "property.mint_not_recorded",
                property_id=str(property_id),
                tx_ref=result.reference,
            )
            raise
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageFailure() from exc

    logger.info("property.minted", property_id=str(property_id), tx_ref=response.mint_tx_ref)
    return response


async def configure_issuer(ledger: LedgerClient) -> LedgerResult:
    """Enable rippling on the issuer so holders can trade its tokens; set its domain if configured."""
    issuer = ledger.wallets.issuer
    tx = AccountSet(
        account=issuer.address,
        set_flag=AccountSetAsfFlag.ASF_DEFAULT_RIPPLE,
        domain=str_to_hex(settings.ISSUER_DOMAIN) if settings.ISSUER_DOMAIN else None,
    )
    result = await ledger.submit_and_await(tx, issuer)
    logger.info("issuer.configured", issuer=issuer.address, tx_ref=result.reference)
    return result
