"""Custodial account manager.

Creates and funds custodial ledger accounts and runs the trust-line
choreography for property tokens. Per (user, token) the line moves
NoTrustLine -> TRUSTED -> FROZEN -> UNFROZEN; the persisted copy of that
state lives in ``trust_lines``.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from xrpl.models.amounts import IssuedCurrencyAmount
from xrpl.models.transactions import Payment, TrustSet, TrustSetFlag
from xrpl.utils import xrp_to_drops
from xrpl.wallet import Wallet

from aqar.core.config import settings
from aqar.core.errors import CompensationFailed, LedgerFailure, LedgerTimeout
from aqar.ledger.client import LedgerClient, LedgerResult
from aqar.models.custody import TrustLine
from aqar.models.enums import TrustLineState
from aqar.services.encryption import CustodialSecret

logger = structlog.get_logger()


def issued_amount(currency: str, issuer: str, value: Decimal | int) -> IssuedCurrencyAmount:
    return IssuedCurrencyAmount(currency=currency, issuer=issuer, value=format(Decimal(value), "f"))


@dataclass(frozen=True)
class TransferReceipt:
    tx_ref: str                 # the token transfer
    freeze_ref: str
    trust_line_ref: str | None  # None when an adequate line already existed


class _Saga:
    """Runs ledger steps in order; on failure undoes completed steps in reverse."""

    def __init__(self, log) -> None:
        self._log = log
        self._compensations: list[tuple[str, Callable[[], Awaitable[LedgerResult]]]] = []

    async def step(
        self,
        name: str,
        action: Callable[[], Awaitable[LedgerResult]],
        compensate: Callable[[], Awaitable[LedgerResult]] | None = None,
    ) -> LedgerResult:
        try:
            result = await action()
        except LedgerFailure as exc:
            self._log.warning("custody.step_failed", step=name, error=exc.message)
            await self._unwind(exc)
            raise
        if compensate is not None:
            self._compensations.append((name, compensate))
        return result

    async def _unwind(self, cause: LedgerFailure) -> None:
        while self._compensations:
            name, compensate = self._compensations.pop()
            try:
                undone = await compensate()
            except LedgerFailure as exc:
                self._log.error(
                    "custody.compensation_failed",
                    step=name,
                    cause=cause.message,
                    error=exc.message,
                )
                raise CompensationFailed(
                    f"Could not undo '{name}' after: {cause.message}", step=name
                ) from exc
            self._log.info("custody.compensated", step=name, tx_ref=undone.reference)


# ── Account onboarding ──────────────────────────────────────────────────────


async def fund_account(ledger: LedgerClient, address: str) -> LedgerResult:
    """Send the account reserve from the operational wallet."""
    operational = ledger.wallets.operational
    payment = Payment(
        account=operational.address,
        amount=xrp_to_drops(settings.ACCOUNT_FUNDING_XRP),
        destination=address,
    )
    return await ledger.submit_and_await(payment, operational)


async def setup_fiat_trust_line(ledger: LedgerClient, secret: CustodialSecret) -> bool:
    """Trust the operational wallet's fiat token. Returns False if the line already existed."""
    holder = secret.signing_wallet()
    issuer = ledger.wallets.operational.address
    currency = settings.FIAT_CURRENCY_CODE

    if await ledger.get_trust_line(holder.address, currency, issuer) is not None:
        logger.info("custody.fiat_trust_line_exists", address=holder.address)
        return False

    trust = TrustSet(
        account=holder.address,
        limit_amount=issued_amount(currency, issuer, settings.FIAT_TRUST_LIMIT),
    )
    result = await ledger.submit_and_await(trust, holder)
    logger.info("custody.fiat_trust_line_set", address=holder.address, tx_ref=result.reference)
    return True


async def create_custodial_account(ledger: LedgerClient) -> tuple[str, CustodialSecret]:
    wallet = ledger.generate_wallet()
    secret = CustodialSecret.seal(wallet.seed)
    await fund_account(ledger, wallet.address)
    await setup_fiat_trust_line(ledger, secret)
    logger.info("custody.account_created", address=wallet.address)
    return wallet.address, secret


# ── Property token choreography ─────────────────────────────────────────────


def _freeze_tx(holder: Wallet, currency: str, issuer: str) -> TrustSet:
    return TrustSet(
        account=holder.address,
        limit_amount=issued_amount(currency, issuer, 0),
        flags=TrustSetFlag.TF_SET_FREEZE,
    )


async def _settle_timed_out_transfer(
    ledger: LedgerClient,
    log,
    holder: Wallet,
    currency: str,
    landed_balance: Decimal,
    refund: Payment,
) -> None:
    """A timed-out transfer may still have validated: check the holder's line and undo it if so."""
    issuer = ledger.wallets.issuer.address
    try:
        line = await ledger.get_trust_line(holder.address, currency, issuer)
    except LedgerFailure as exc:
        log.error("custody.transfer_outcome_unknown", error=exc.message)
        return

    if line is None or line.balance < landed_balance:
        # Not validated yet; it can still land until its LastLedgerSequence passes
        log.error("custody.transfer_unconfirmed", held=str(line.balance if line else 0))
        return

    try:
        undone = await ledger.submit_and_await(refund, holder)
    except LedgerFailure as exc:
        log.error("custody.compensation_failed", step="transfer", cause="timeout", error=exc.message)
        raise CompensationFailed(
            "Could not undo 'transfer' after it validated past the timeout", step="transfer"
        ) from exc
    log.warning("custody.compensated", step="transfer", cause="timeout", tx_ref=undone.reference)


async def transfer_and_freeze(
    ledger: LedgerClient,
    secret: CustodialSecret,
    currency: str,
    amount: int,
) -> TransferReceipt:
    """Trust the issuer if needed, move ``amount`` tokens in, then freeze the line.

    Each step waits for a validated result before the next is submitted. If
    the freeze fails, or the transfer times out yet validates, the tokens are
    sent back to the distribution wallet.
    """
    holder = secret.signing_wallet()
    issuer = ledger.wallets.issuer.address
    distribution = ledger.wallets.distribution
    log = logger.bind(holder=holder.address, currency=currency, amount=amount)
    saga = _Saga(log)

    trust_line_ref = None
    line = await ledger.get_trust_line(holder.address, currency, issuer)
    if line is None or line.limit < line.balance + amount:
        trust = TrustSet(
            account=holder.address,
            limit_amount=issued_amount(currency, issuer, settings.PROPERTY_TRUST_LIMIT),
        )
        trusted = await saga.step("trust_line", lambda: ledger.submit_and_await(trust, holder))
        trust_line_ref = trusted.reference

    transfer = Payment(
        account=distribution.address,
        amount=issued_amount(currency, issuer, amount),
        destination=holder.address,
    )
    refund = Payment(
        account=holder.address,
        amount=issued_amount(currency, issuer, amount),
        destination=distribution.address,
    )
    held_before = line.balance if line is not None else Decimal("0")
    try:
        transferred = await saga.step(
            "transfer",
            lambda: ledger.submit_and_await(transfer, distribution),
            compensate=lambda: ledger.submit_and_await(refund, holder),
        )
    except LedgerTimeout:
        await _settle_timed_out_transfer(ledger, log, holder, currency, held_before + amount, refund)
        raise

    frozen = await saga.step(
        "freeze",
        lambda: ledger.submit_and_await(_freeze_tx(holder, currency, issuer), holder),
    )

    log.info("custody.transferred_and_frozen", tx_ref=transferred.reference)
    return TransferReceipt(
        tx_ref=transferred.reference,
        freeze_ref=frozen.reference,
        trust_line_ref=trust_line_ref,
    )


async def unfreeze(ledger: LedgerClient, secret: CustodialSecret, currency: str) -> LedgerResult:
    """Clear the freeze and restore the high ceiling. Safe to repeat."""
    holder = secret.signing_wallet()
    issuer = ledger.wallets.issuer.address
    trust = TrustSet(
        account=holder.address,
        limit_amount=issued_amount(currency, issuer, settings.PROPERTY_TRUST_LIMIT),
        flags=TrustSetFlag.TF_CLEAR_FREEZE,
    )
    result = await ledger.submit_and_await(trust, holder)
    logger.info("custody.unfrozen", holder=holder.address, currency=currency, tx_ref=result.reference)
    return result


# ── Persisted state ─────────────────────────────────────────────────────────


async def get_trust_line_states(db: AsyncSession, user_id: uuid.UUID) -> dict[str, TrustLineState]:
    result = await db.execute(select(TrustLine).where(TrustLine.user_id == user_id))
    return {line.currency_code: line.state for line in result.scalars()}


async def record_trust_line_state(
    db: AsyncSession,
    user_id: uuid.UUID,
    currency: str,
    issuer: str,
    state: TrustLineState,
) -> TrustLine:
    """Upsert the (user, currency) row inside the caller's transaction."""
    result = await db.execute(
        select(TrustLine).where(TrustLine.user_id == user_id, TrustLine.currency_code == currency)
    )
    line = result.scalar_one_or_none()
    if line is None:
        line = TrustLine(user_id=user_id, currency_code=currency, issuer_address=issuer, state=state)
        db.add(line)
    else:
        line.state = state
    await db.flush()
    return line
