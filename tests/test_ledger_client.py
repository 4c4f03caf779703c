"""Tests for the XRPL adapter's outcome mapping and bounded waits."""

import asyncio
from decimal import Decimal

import pytest
from xrpl.asyncio.transaction import XRPLReliableSubmissionException
from xrpl.models.amounts import IssuedCurrencyAmount
from xrpl.models.transactions import TrustSet
from xrpl.wallet import Wallet

from aqar.core.errors import LedgerRejected, LedgerTimeout, LedgerUnavailable
from aqar.ledger.client import LedgerClient
from aqar.ledger.wallets import PlatformWallets

from tests.fakes import DISCONNECT, HANG, FakeLedgerClient

pytestmark = pytest.mark.anyio


class ScriptedClient(LedgerClient):
    """Adapter whose network call is replaced by a scripted coroutine."""

    def __init__(self, outcome, *, timeout: float = 0.2) -> None:
        wallets = PlatformWallets(Wallet.create(), Wallet.create(), Wallet.create())
        super().__init__("wss://scripted.invalid", wallets, timeout=timeout)
        self.outcome = outcome

    async def _submit(self, transaction, wallet):
        return await self.outcome()


def _trust_set(wallet: Wallet) -> TrustSet:
    return TrustSet(
        account=wallet.address,
        limit_amount=IssuedCurrencyAmount(currency="AED", issuer=Wallet.create().address, value="100"),
    )


async def test_success_returns_code_and_reference():
    async def ok():
        return {"hash": "AB" * 32, "meta": {"TransactionResult": "tesSUCCESS"}}

    client = ScriptedClient(ok)
    wallet = Wallet.create()
    result = await client.submit_and_await(_trust_set(wallet), wallet)
    assert result.code == "tesSUCCESS"
    assert result.reference == "AB" * 32


async def test_non_success_result_is_rejected_with_code():
    async def tec():
        return {"hash": "CD" * 32, "meta": {"TransactionResult": "tecNO_LINE"}}

    client = ScriptedClient(tec)
    wallet = Wallet.create()
    with pytest.raises(LedgerRejected) as exc:
        await client.submit_and_await(_trust_set(wallet), wallet)
    assert exc.value.code == "tecNO_LINE"


async def test_reliable_submission_failure_extracts_code():
    async def failed():
        raise XRPLReliableSubmissionException("Transaction failed: tecUNFUNDED_PAYMENT")

    client = ScriptedClient(failed)
    wallet = Wallet.create()
    with pytest.raises(LedgerRejected) as exc:
        await client.submit_and_await(_trust_set(wallet), wallet)
    assert exc.value.code == "tecUNFUNDED_PAYMENT"


async def test_hang_becomes_timeout():
    async def hang():
        await asyncio.sleep(3600)

    client = ScriptedClient(hang, timeout=0.05)
    wallet = Wallet.create()
    with pytest.raises(LedgerTimeout) as exc:
        await client.submit_and_await(_trust_set(wallet), wallet)
    assert exc.value.code == "timeout"


async def test_transport_error_is_unavailable():
    async def broken():
        raise ConnectionRefusedError("refused")

    client = ScriptedClient(broken)
    wallet = Wallet.create()
    with pytest.raises(LedgerUnavailable):
        await client.submit_and_await(_trust_set(wallet), wallet)


async def test_account_lock_released_after_timeout():
    ledger = FakeLedgerClient(timeout=0.05)
    wallet = Wallet.create()
    ledger.fail_when(lambda tx: tx.account == wallet.address, HANG, times=1)

    with pytest.raises(LedgerTimeout):
        await ledger.submit_and_await(_trust_set(wallet), wallet)
    result = await ledger.submit_and_await(_trust_set(wallet), wallet)
    assert result.code == "tesSUCCESS"


async def test_signer_locks_are_dropped_when_idle():
    ledger = FakeLedgerClient(timeout=0.05)
    wallets = [Wallet.create() for _ in range(3)]
    ledger.fail_when(lambda tx: tx.account == wallets[0].address, HANG, times=1)

    with pytest.raises(LedgerTimeout):
        await ledger.submit_and_await(_trust_set(wallets[0]), wallets[0])
    for wallet in wallets:
        await ledger.submit_and_await(_trust_set(wallet), wallet)

    assert ledger._account_locks == {}


async def test_one_signer_submits_one_at_a_time():
    active = 0
    peak = 0

    async def outcome():
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return {"hash": "AB" * 32, "meta": {"TransactionResult": "tesSUCCESS"}}

    ledger = ScriptedClient(outcome)
    wallet = Wallet.create()

    await asyncio.gather(*(ledger.submit_and_await(_trust_set(wallet), wallet) for _ in range(4)))

    assert peak == 1
    assert ledger._account_locks == {}


async def test_disconnect_maps_to_unavailable():
    ledger = FakeLedgerClient()
    wallet = Wallet.create()
    ledger.fail_when(lambda tx: True, DISCONNECT)
    with pytest.raises(LedgerUnavailable):
        await ledger.submit_and_await(_trust_set(wallet), wallet)


async def test_get_trust_line_reads_balance_limit_and_freeze():
    ledger = FakeLedgerClient()
    holder = Wallet.create()
    issuer = ledger.wallets.operational.address
    trust = TrustSet(
        account=holder.address,
        limit_amount=IssuedCurrencyAmount(currency="AED", issuer=issuer, value="500"),
    )
    await ledger.submit_and_await(trust, holder)

    line = await ledger.get_trust_line(holder.address, "AED", issuer)
    assert line is not None
    assert line.limit == Decimal("500")
    assert line.balance == Decimal("0")
    assert line.frozen is False
    assert await ledger.get_trust_line(holder.address, "USD", issuer) is None
