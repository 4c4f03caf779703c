"""Tests for the custodial account manager and the transfer-and-freeze saga."""

from decimal import Decimal

import pytest
from xrpl.models.amounts import IssuedCurrencyAmount
from xrpl.models.transactions import Payment, TrustSet

from aqar.core.config import settings
from aqar.core.errors import CompensationFailed, LedgerRejected, LedgerTimeout
from aqar.ledger.currency import token_currency_code
from aqar.models.enums import TrustLineState
from aqar.modules.custody import service
from aqar.services.encryption import CustodialSecret

from tests.factories import make_investor
from tests.fakes import HANG, LANDS_LATE, FakeLedgerClient, is_freeze, payment_from

pytestmark = pytest.mark.anyio

CURRENCY = token_currency_code("MARINA12")


async def _minted(ledger: FakeLedgerClient, supply: int = 1000) -> None:
    """Give the distribution wallet ``supply`` tokens of CURRENCY."""
    issuer = ledger.wallets.issuer
    distribution = ledger.wallets.distribution
    amount = IssuedCurrencyAmount(currency=CURRENCY, issuer=issuer.address, value=str(supply))
    await ledger.submit_and_await(TrustSet(account=distribution.address, limit_amount=amount), distribution)
    await ledger.submit_and_await(
        Payment(account=issuer.address, amount=amount, destination=distribution.address), issuer
    )


async def _account(ledger: FakeLedgerClient) -> tuple[str, CustodialSecret]:
    return await service.create_custodial_account(ledger)


# ── Onboarding ────────────────────────────────────────────────────────────


async def test_create_account_funds_and_trusts_fiat(ledger):
    address, secret = await _account(ledger)

    assert ledger.xrp_drops[address] == 1_500_000
    line = ledger.line(address, settings.FIAT_CURRENCY_CODE, ledger.wallets.operational.address)
    assert line is not None
    assert line.limit == Decimal("100000000")
    assert secret.signing_wallet().address == address


async def test_fiat_trust_line_setup_is_idempotent(ledger):
    _, secret = await _account(ledger)
    trust_sets_before = len(ledger.submitted_of(TrustSet))

    created = await service.setup_fiat_trust_line(ledger, secret)

    assert created is False
    assert len(ledger.submitted_of(TrustSet)) == trust_sets_before


# ── Transfer and freeze ───────────────────────────────────────────────────


async def test_transfer_and_freeze_moves_and_locks_tokens(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)

    receipt = await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    line = ledger.line(address, CURRENCY, ledger.wallets.issuer.address)
    assert line.balance == Decimal("250")
    assert line.frozen is True
    assert line.limit == Decimal("0")
    assert receipt.trust_line_ref is not None
    assert len({receipt.tx_ref, receipt.freeze_ref, receipt.trust_line_ref}) == 3


async def test_second_transfer_raises_limit_on_frozen_line(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    await service.transfer_and_freeze(ledger, secret, CURRENCY, 100)

    await service.transfer_and_freeze(ledger, secret, CURRENCY, 50)

    line = ledger.line(address, CURRENCY, ledger.wallets.issuer.address)
    assert line.balance == Decimal("150")
    assert line.frozen is True


async def test_existing_adequate_line_is_reused(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    await service.transfer_and_freeze(ledger, secret, CURRENCY, 100)
    await service.unfreeze(ledger, secret, CURRENCY)

    receipt = await service.transfer_and_freeze(ledger, secret, CURRENCY, 10)

    assert receipt.trust_line_ref is None


async def test_unfreeze_round_trip_keeps_balance(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    await service.unfreeze(ledger, secret, CURRENCY)
    await service.unfreeze(ledger, secret, CURRENCY)

    line = ledger.line(address, CURRENCY, ledger.wallets.issuer.address)
    assert line.frozen is False
    assert line.balance == Decimal("250")
    assert line.limit == Decimal("1000000000")


async def test_transfer_failure_surfaces_without_moving_tokens(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    ledger.fail_when(payment_from(ledger.wallets.distribution.address), "tecPATH_DRY")

    with pytest.raises(LedgerRejected) as exc:
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    assert exc.value.code == "tecPATH_DRY"
    assert ledger.line(address, CURRENCY, ledger.wallets.issuer.address).balance == 0
    assert not any(is_freeze(tx) for tx in ledger.submitted)


async def test_freeze_failure_returns_tokens_to_distribution(ledger):
    await _minted(ledger, supply=1000)
    address, secret = await _account(ledger)
    ledger.fail_when(is_freeze, "tecNO_PERMISSION")

    with pytest.raises(LedgerRejected) as exc:
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    assert exc.value.code == "tecNO_PERMISSION"
    issuer = ledger.wallets.issuer.address
    assert ledger.line(address, CURRENCY, issuer).balance == 0
    assert ledger.line(ledger.wallets.distribution.address, CURRENCY, issuer).balance == Decimal("1000")


async def test_freeze_timeout_is_compensated(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    ledger.timeout = 0.05
    ledger.fail_when(is_freeze, HANG)

    with pytest.raises(LedgerTimeout):
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 40)

    assert ledger.line(address, CURRENCY, ledger.wallets.issuer.address).balance == 0


async def test_failed_compensation_raises_compensation_failed(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    ledger.fail_when(is_freeze, "tecNO_PERMISSION")
    ledger.fail_when(payment_from(address), "tecPATH_DRY")

    with pytest.raises(CompensationFailed) as exc:
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    assert exc.value.detail["step"] == "transfer"
    assert isinstance(exc.value.__cause__, LedgerRejected)
    # Tokens stay with the holder, unfrozen, for manual reconciliation
    assert ledger.line(address, CURRENCY, ledger.wallets.issuer.address).balance == Decimal("250")


# ── Transfer timeouts ─────────────────────────────────────────────────────


async def test_transfer_that_lands_after_timeout_is_returned(ledger):
    await _minted(ledger, supply=1000)
    address, secret = await _account(ledger)
    ledger.timeout = 0.05
    ledger.fail_when(payment_from(ledger.wallets.distribution.address), LANDS_LATE)

    with pytest.raises(LedgerTimeout):
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    issuer = ledger.wallets.issuer.address
    assert ledger.line(address, CURRENCY, issuer).balance == 0
    assert ledger.line(ledger.wallets.distribution.address, CURRENCY, issuer).balance == Decimal("1000")
    assert len([tx for tx in ledger.submitted_of(Payment) if tx.account == address]) == 1
    assert not any(is_freeze(tx) for tx in ledger.submitted)


async def test_transfer_timeout_that_never_lands_sends_no_refund(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    ledger.timeout = 0.05
    ledger.fail_when(payment_from(ledger.wallets.distribution.address), HANG)

    with pytest.raises(LedgerTimeout):
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    assert ledger.line(address, CURRENCY, ledger.wallets.issuer.address).balance == 0
    assert not [tx for tx in ledger.submitted_of(Payment) if tx.account == address]


async def test_late_transfer_with_failed_refund_needs_reconciliation(ledger):
    await _minted(ledger)
    address, secret = await _account(ledger)
    ledger.timeout = 0.05
    ledger.fail_when(payment_from(ledger.wallets.distribution.address), LANDS_LATE)
    ledger.fail_when(payment_from(address), "tecPATH_DRY")

    with pytest.raises(CompensationFailed) as exc:
        await service.transfer_and_freeze(ledger, secret, CURRENCY, 250)

    assert exc.value.detail["step"] == "transfer"
    assert ledger.line(address, CURRENCY, ledger.wallets.issuer.address).balance == Decimal("250")


# ── Persisted state ───────────────────────────────────────────────────────


async def test_record_trust_line_state_upserts(db, ledger):
    user = await make_investor(db, ledger)
    issuer = ledger.wallets.issuer.address

    await service.record_trust_line_state(db, user.id, CURRENCY, issuer, TrustLineState.FROZEN)
    await service.record_trust_line_state(db, user.id, CURRENCY, issuer, TrustLineState.UNFROZEN)
    await db.commit()

    states = await service.get_trust_line_states(db, user.id)
    assert states == {
        settings.FIAT_CURRENCY_CODE: TrustLineState.TRUSTED,
        CURRENCY: TrustLineState.UNFROZEN,
    }
