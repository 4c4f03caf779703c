"""Tests for the rent distribution engine."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from xrpl.models.transactions import Payment
from xrpl.utils import hex_to_str

from aqar.core.config import settings
from aqar.core.errors import DuplicateDistribution, NotFunded, ValidationError
from aqar.models.offerings import RentDistribution
from aqar.modules.investments.service import invest
from aqar.modules.rent import service

from tests.factories import make_investor, make_property
from tests.fakes import payment_to

pytestmark = pytest.mark.anyio


async def _funded_property(db, ledger):
    """Property worth 400 at 1 per token, held 100 by A and 300 by B."""
    prop = await make_property(db, ledger, total_value="400", total_supply=400)
    holder_a = await make_investor(db, ledger, balance="100")
    holder_b = await make_investor(db, ledger, balance="300")
    await invest(db, ledger, holder_a.id, prop.id, "100")
    await invest(db, ledger, holder_b.id, prop.id, "300")
    return prop, holder_a, holder_b


def _fiat_balance(ledger, address: str) -> Decimal:
    line = ledger.line(address, settings.FIAT_CURRENCY_CODE, ledger.wallets.operational.address)
    return line.balance


async def test_pays_each_holder_rate_times_holding(db, ledger):
    prop, a, b = await _funded_property(db, ledger)

    result = await service.distribute_rent(db, ledger, prop.id, Decimal("2.5"))

    paid = {p.holder_address: p for p in result.payouts}
    assert paid[a.ledger_address].amount == Decimal("250")
    assert paid[b.ledger_address].amount == Decimal("750")
    assert all(p.status == "tesSUCCESS" for p in result.payouts)
    assert result.calculated_total == Decimal("1000")
    assert result.paid_total == Decimal("1000")
    assert _fiat_balance(ledger, a.ledger_address) == Decimal("250")
    assert _fiat_balance(ledger, b.ledger_address) == Decimal("750")


async def test_one_failed_payout_does_not_block_others(db, ledger):
    prop, a, b = await _funded_property(db, ledger)
    ledger.fail_when(payment_to(a.ledger_address), "tecPATH_DRY")

    result = await service.distribute_rent(db, ledger, prop.id, "2.5")

    paid = {p.holder_address: p for p in result.payouts}
    assert paid[a.ledger_address].status == "tecPATH_DRY"
    assert paid[a.ledger_address].error is not None
    assert paid[a.ledger_address].ledger_tx_ref is None
    assert paid[b.ledger_address].status == "tesSUCCESS"
    assert _fiat_balance(ledger, b.ledger_address) == Decimal("750")

    assert result.calculated_total == Decimal("1000")
    assert result.paid_total == Decimal("750")
    assert result.holder_count == 2
    assert result.failed_count == 1

    count = (await db.execute(select(func.count()).select_from(RentDistribution))).scalar_one()
    assert count == 1
    record = await db.get(RentDistribution, result.distribution_id)
    assert record.calculated_total == Decimal("1000")


async def test_holder_with_several_investments_is_paid_once(db, ledger):
    prop = await make_property(db, ledger, total_value="400", total_supply=400)
    holder = await make_investor(db, ledger, balance="400")
    for amount in ("100", "100", "200"):
        await invest(db, ledger, holder.id, prop.id, amount)

    result = await service.distribute_rent(db, ledger, prop.id, "0.5")

    assert len(result.payouts) == 1
    assert result.payouts[0].tokens == 400
    assert result.payouts[0].amount == Decimal("200")


async def test_payment_carries_rent_memo(db, ledger):
    prop, a, _ = await _funded_property(db, ledger)

    await service.distribute_rent(db, ledger, prop.id, "1")

    rent_payments = [
        tx for tx in ledger.submitted_of(Payment)
        if tx.account == ledger.wallets.operational.address and tx.memos
    ]
    assert len(rent_payments) == 2
    memo = rent_payments[0].memos[0]
    assert hex_to_str(memo.memo_type) == "rent_payment"
    assert hex_to_str(memo.memo_data) == f"Rent for PropertyID: {prop.id}"


async def test_unfunded_property_is_refused(db, ledger):
    prop = await make_property(db, ledger, total_value="400", total_supply=400)
    holder = await make_investor(db, ledger, balance="100")
    await invest(db, ledger, holder.id, prop.id, "100")
    submitted = len(ledger.submitted)

    with pytest.raises(NotFunded):
        await service.distribute_rent(db, ledger, prop.id, "2.5")

    assert len(ledger.submitted) == submitted


async def test_same_period_cannot_be_distributed_twice(db, ledger):
    prop, _, _ = await _funded_property(db, ledger)
    prop_id = prop.id
    await service.distribute_rent(db, ledger, prop_id, "2.5", period="2026-09")
    submitted = len(ledger.submitted)

    with pytest.raises(DuplicateDistribution):
        await service.distribute_rent(db, ledger, prop_id, "2.5", period="2026-09")

    assert len(ledger.submitted) == submitted
    result = await service.distribute_rent(db, ledger, prop_id, "2.5", period="2026-10")
    assert result.period == "2026-10"


@pytest.mark.parametrize("rate", ["0", "-1", "0.0000001", "abc"])
async def test_invalid_rate_is_rejected(db, ledger, rate):
    prop, _, _ = await _funded_property(db, ledger)
    with pytest.raises(ValidationError):
        await service.distribute_rent(db, ledger, prop.id, rate)


async def test_distribution_transaction_outlives_idle_timeout(db, ledger):
    prop, _, _ = await _funded_property(db, ledger)

    with patch("aqar.modules.rent.service.hold_across_ledger_calls", new=AsyncMock()) as hold:
        await service.distribute_rent(db, ledger, prop.id, Decimal("1"))

    hold.assert_awaited_once_with(db)
