"""Rent distribution engine.

Pays every holder of a funded property ``holding * rate_per_token`` in the
fiat token. Payouts are independent: a failed payment is reported in that
holder's result and the rest of the batch carries on. One summary record is
written per run.
"""

import uuid
from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from xrpl.models.transactions import Memo, Payment
from xrpl.utils import str_to_hex

from aqar.core.config import settings
from aqar.core.database import hold_across_ledger_calls
from aqar.core.errors import DomainError, DuplicateDistribution, LedgerFailure, NotFunded, StorageFailure, ValidationError
from aqar.core.money import parse_rate, payout_for
from aqar.ledger.client import LedgerClient
from aqar.models.core import User
from aqar.models.offerings import Investment, Property, RentDistribution
from aqar.modules.custody.service import issued_amount
from aqar.modules.offerings import service as offerings
from aqar.modules.rent.schemas import PayoutResult, RentDistributionResponse

logger = structlog.get_logger()

RENT_MEMO_TYPE = "rent_payment"


async def _holders(db: AsyncSession, property_id: uuid.UUID) -> list[tuple[uuid.UUID, str, int]]:
    """(user_id, ledger_address, summed tokens) for every holder of the property."""
    stmt = (
        select(User.id, User.ledger_address, func.sum(Investment.tokens_received))
        .join(User, User.id == Investment.user_id)
        .where(Investment.property_id == property_id)
        .group_by(User.id, User.ledger_address)
        .order_by(User.ledger_address)
    )
    return [(user_id, address, int(tokens)) for user_id, address, tokens in (await db.execute(stmt)).all()]


def _rent_payment(ledger: LedgerClient, prop: Property, destination: str, amount: Decimal) -> Payment:
    operational = ledger.wallets.operational
    return Payment(
        account=operational.address,
        amount=issued_amount(settings.FIAT_CURRENCY_CODE, operational.address, amount),
        destination=destination,
        memos=[
            Memo(
                memo_type=str_to_hex(RENT_MEMO_TYPE),
                memo_data=str_to_hex(f"Rent for PropertyID: {prop.id}"),
            )
        ],
    )


async def _pay_holder(
    ledger: LedgerClient,
    prop: Property,
    user_id: uuid.UUID,
    address: str,
    tokens: int,
    amount: Decimal,
) -> PayoutResult:
    try:
        result = await ledger.submit_and_await(
            _rent_payment(ledger, prop, address, amount), ledger.wallets.operational
        )
    except LedgerFailure as exc:
        logger.warning(
            "rent.payout_failed",
            property_id=str(prop.id),
            holder=address,
            amount=str(amount),
            code=exc.code,
        )
        return PayoutResult(
            user_id=user_id,
            holder_address=address,
            tokens=tokens,
            amount=amount,
            status=exc.code,
            error=exc.message,
        )
    return PayoutResult(
        user_id=user_id,
        holder_address=address,
        tokens=tokens,
        amount=amount,
        status=result.code,
        ledger_tx_ref=result.reference,
    )


async def distribute_rent(
    db: AsyncSession,
    ledger: LedgerClient,
    property_id: uuid.UUID,
    rate_per_token: Decimal | int | str,
    period: str | None = None,
) -> RentDistributionResponse:
    """Pay rent to all holders of a funded property.

    The property row stays locked for the whole run, so two distributions for
    one property never interleave. With a ``period`` label a second run for the
    same period is refused.
    """
    rate = parse_rate(rate_per_token)
    if period is not None:
        period = period.strip()
        if not period or len(period) > 32:
            raise ValidationError("period must be 1-32 characters.", field="period")
    log = logger.bind(property_id=str(property_id), rate=str(rate), period=period)

    payouts: list[PayoutResult] = []
    try:
        await hold_across_ledger_calls(db)
        prop = await offerings.lock_property(db, property_id)
        if not prop.is_funded:
            raise NotFunded(property_id=str(property_id))
        if period is not None:
            existing = await db.execute(
                select(RentDistribution.id).where(
                    RentDistribution.property_id == property_id,
                    RentDistribution.period == period,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise DuplicateDistribution(property_id=str(property_id), period=period)

        for user_id, address, tokens in await _holders(db, property_id):
            amount = payout_for(tokens, rate)
            if amount <= 0:
                continue
            payouts.append(await _pay_holder(ledger, prop, user_id, address, tokens, amount))

        record = RentDistribution(
            property_id=prop.id,
            period=period,
            rate_per_token=rate,
            calculated_total=sum((p.amount for p in payouts), Decimal("0")),
            paid_total=sum((p.amount for p in payouts if p.paid), Decimal("0")),
            holder_count=len(payouts),
            failed_count=sum(1 for p in payouts if not p.paid),
        )
        db.add(record)
        await db.flush()
        await db.commit()
    except DomainError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        paid_refs = [p.ledger_tx_ref for p in payouts if p.paid]
        if paid_refs:
            log.error("rent.distribution_not_recorded", tx_refs=paid_refs, error_type=type(exc).__name__)
        raise StorageFailure() from exc

    log.info(
        "rent.distributed",
        distribution_id=str(record.id),
        holders=record.holder_count,
        failed=record.failed_count,
        paid_total=str(record.paid_total),
    )
    return RentDistributionResponse(
        distribution_id=record.id,
        property_id=prop.id,
        period=period,
        rate_per_token=rate,
        calculated_total=record.calculated_total,
        paid_total=record.paid_total,
        holder_count=record.holder_count,
        failed_count=record.failed_count,
        created_at=record.created_at,
        payouts=payouts,
    )
