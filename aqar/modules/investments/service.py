"""Investment transaction engine.

An investment debits the investor's fiat balance, moves whole property
tokens to their custodial account and freezes them there, all inside one
database transaction that holds the property row lock and then the user row
lock. Either every local effect commits together with a validated ledger
transfer, or nothing does.
"""

import uuid
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from aqar.core.database import hold_across_ledger_calls
from aqar.core.errors import (
    AlreadyFunded,
    BelowTokenMinimum,
    CapacityExceeded,
    DomainError,
    InsufficientBalance,
    NotFound,
    NotMinted,
    StorageFailure,
)
from aqar.core.money import allocate_tokens, from_fils, parse_fiat_amount, to_fils, unconverted_fiat
from aqar.ledger.client import LedgerClient
from aqar.models.enums import TrustLineState
from aqar.models.offerings import Investment
from aqar.modules.custody import service as custody
from aqar.modules.investments.schemas import InvestmentReceipt, UnfreezeResponse
from aqar.modules.offerings import service as offerings
from aqar.modules.users import service as users

logger = structlog.get_logger()


async def holding_of(db: AsyncSession, user_id: uuid.UUID, property_id: uuid.UUID) -> int:
    stmt = select(func.sum(Investment.tokens_received)).where(
        Investment.user_id == user_id,
        Investment.property_id == property_id,
    )
    return int((await db.execute(stmt)).scalar_one_or_none() or 0)


async def invest(
    db: AsyncSession,
    ledger: LedgerClient,
    user_id: uuid.UUID,
    property_id: uuid.UUID,
    fiat_amount: Decimal | int | str,
) -> InvestmentReceipt:
    amount = parse_fiat_amount(fiat_amount, field="fiat_amount")
    amount_fils = to_fils(amount)
    log = logger.bind(user_id=str(user_id), property_id=str(property_id), amount=str(amount))
    transfer = None

    try:
        await hold_across_ledger_calls(db)
        # Lock order is property then user for every writer
        prop = await offerings.lock_property(db, property_id)
        if prop.is_funded:
            raise AlreadyFunded(property_id=str(property_id))
        if not prop.is_minted:
            raise NotMinted(property_id=str(property_id))

        user = await users.lock_user(db, user_id)

        total_fils = to_fils(prop.total_value)
        raised_fils = to_fils(await offerings.raised_amount(db, property_id))
        remaining_fils = total_fils - raised_fils
        if amount_fils > remaining_fils:
            raise CapacityExceeded(remaining=str(from_fils(max(remaining_fils, 0))))

        balance_fils = to_fils(user.fiat_balance)
        if balance_fils < amount_fils:
            raise InsufficientBalance(balance=str(from_fils(balance_fils)), requested=str(amount))

        tokens = allocate_tokens(amount_fils, total_fils, prop.total_supply)
        if tokens < 1:
            price = from_fils(total_fils) / prop.total_supply
            raise BelowTokenMinimum(price_per_token=str(price))

        user.fiat_balance = from_fils(balance_fils - amount_fils)

        transfer = await custody.transfer_and_freeze(
            ledger, user.ledger_secret, prop.token_currency_code, tokens
        )

        investment = Investment(
            user_id=user.id,
            property_id=prop.id,
            fiat_amount=amount,
            tokens_received=tokens,
            ledger_tx_ref=transfer.tx_ref,
        )
        db.add(investment)
        await custody.record_trust_line_state(
            db, user.id, prop.token_currency_code, prop.issuer_address, TrustLineState.FROZEN
        )
        funded_now = offerings.mark_funded(prop, raised_fils + amount_fils)
        await db.flush()
        await db.commit()
    except DomainError as exc:
        await db.rollback()
        log.info("investment.rejected", error=exc.error, reason=exc.message)
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        if transfer is not None:
            # Tokens moved on the ledger but the debit and record did not persist
            log.error("investment.not_recorded", tx_ref=transfer.tx_ref, error_type=type(exc).__name__)
        raise StorageFailure() from exc
    except Exception:
        await db.rollback()
        raise

    log.info(
        "investment.completed",
        investment_id=str(investment.id),
        tokens=tokens,
        tx_ref=transfer.tx_ref,
        property_funded=funded_now,
    )
    if funded_now:
        logger.info("property.funded", property_id=str(property_id))

    return InvestmentReceipt(
        investment_id=investment.id,
        property_id=prop.id,
        fiat_amount=amount,
        tokens_received=tokens,
        ledger_tx_ref=transfer.tx_ref,
        unconverted_fiat=unconverted_fiat(amount_fils, tokens, total_fils, prop.total_supply),
        property_funded=prop.is_funded,
    )


async def unfreeze_holding(
    db: AsyncSession,
    ledger: LedgerClient,
    user_id: uuid.UUID,
    property_id: uuid.UUID,
) -> UnfreezeResponse:
    """Make a holder's property tokens transferable again. Repeating it is harmless."""
    try:
        await hold_across_ledger_calls(db)
        prop = await offerings.lock_property(db, property_id)
        user = await users.lock_user(db, user_id)
        tokens = await holding_of(db, user_id, property_id)
        if tokens < 1:
            raise NotFound(
                "User holds no tokens of this property",
                user_id=str(user_id),
                property_id=str(property_id),
            )

        result = await custody.unfreeze(ledger, user.ledger_secret, prop.token_currency_code)
        await custody.record_trust_line_state(
            db, user.id, prop.token_currency_code, prop.issuer_address, TrustLineState.UNFROZEN
        )
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageFailure() from exc

    logger.info("investment.unfrozen", user_id=str(user_id), property_id=str(property_id), tx_ref=result.reference)
    return UnfreezeResponse(
        user_id=user_id,
        property_id=property_id,
        token_currency_code=prop.token_currency_code,
        tokens=tokens,
        ledger_tx_ref=result.reference,
        trust_line_state=TrustLineState.UNFROZEN,
    )
