"""XRP Ledger adapter.

Owns the websocket connection, signs and submits transactions, and waits for
each one to reach a final validated result. Every call is bounded by
LEDGER_SUBMIT_TIMEOUT_SECONDS; a timeout is reported separately from a
rejection so callers can tell "did not happen" from "outcome unknown".
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from typing import Any

import structlog
from websockets.exceptions import WebSocketException
from xrpl.asyncio.clients import AsyncWebsocketClient
from xrpl.asyncio.transaction import XRPLReliableSubmissionException, submit_and_wait
from xrpl.constants import XRPLException
from xrpl.models.requests import AccountLines, ServerInfo
from xrpl.models.transactions.transaction import Transaction
from xrpl.wallet import Wallet

from aqar.core.config import settings
from aqar.core.errors import LedgerRejected, LedgerTimeout, LedgerUnavailable
from aqar.ledger.wallets import PlatformWallets

logger = structlog.get_logger()

SUCCESS = "tesSUCCESS"

_RESULT_CODE_RE = re.compile(r"\bte[cflmrs][A-Z_]+\b")
_TRANSPORT_ERRORS = (XRPLException, OSError, WebSocketException)


def _result_code(message: str) -> str:
    match = _RESULT_CODE_RE.search(message)
    return match.group(0) if match else "tx_failed"


@dataclass(frozen=True)
class LedgerResult:
    code: str
    reference: str


@dataclass(frozen=True)
class TrustLineInfo:
    currency: str
    issuer: str
    balance: Decimal
    limit: Decimal
    frozen: bool


@dataclass
class _SignerLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class LedgerClient:
    def __init__(self, url: str, wallets: PlatformWallets, *, timeout: float) -> None:
        self.url = url
        self.wallets = wallets
        self.timeout = timeout
        self._client: AsyncWebsocketClient | None = None
        self._connect_lock = asyncio.Lock()
        # Sequence numbers are per account: one in-flight submission per signer
        self._account_locks: dict[str, _SignerLock] = {}

    @staticmethod
    def generate_wallet() -> Wallet:
        return Wallet.create()

    # ── Connection lifecycle ────────────────────────────────────────────────

    async def _connection(self) -> AsyncWebsocketClient:
        async with self._connect_lock:
            if self._client is None or not self._client.is_open():
                logger.info("ledger.connecting", url=self.url)
                client = AsyncWebsocketClient(self.url)
                try:
                    await client.open()
                except _TRANSPORT_ERRORS as exc:
                    raise LedgerUnavailable(f"Could not connect to {self.url}") from exc
                self._client = client
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._client.is_open():
            await self._client.close()
            logger.info("ledger.disconnected", url=self.url)
        self._client = None

    # ── Transactions ────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _signing(self, address: str) -> AsyncIterator[None]:
        """Hold the signer's lock; the entry is dropped once nobody holds or awaits it."""
        entry = self._account_locks.setdefault(address, _SignerLock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._account_locks[address]

    async def _submit(self, transaction: Transaction, wallet: Wallet) -> dict[str, Any]:
        client = await self._connection()
        response = await submit_and_wait(transaction, client, wallet)
        return response.result

    async def submit_and_await(self, transaction: Transaction, wallet: Wallet) -> LedgerResult:
        """Sign with ``wallet``, submit, and wait for the validated outcome."""
        tx_type = transaction.transaction_type.value
        log = logger.bind(tx_type=tx_type, account=transaction.account)

        async with self._signing(wallet.address):
            try:
                result = await asyncio.wait_for(self._submit(transaction, wallet), timeout=self.timeout)
            except asyncio.TimeoutError as exc:
                log.warning("ledger.timeout", timeout=self.timeout)
                raise LedgerTimeout(tx_type=tx_type) from exc
            except XRPLReliableSubmissionException as exc:
                code = _result_code(str(exc))
                log.warning("ledger.rejected", code=code)
                raise LedgerRejected(code, tx_type=tx_type) from exc
            except _TRANSPORT_ERRORS as exc:
                log.warning("ledger.unavailable", error=str(exc))
                raise LedgerUnavailable(tx_type=tx_type) from exc

        code = result.get("meta", {}).get("TransactionResult", "tx_failed")
        if code != SUCCESS:
            log.warning("ledger.rejected", code=code)
            raise LedgerRejected(code, tx_type=tx_type)

        log.info("ledger.validated", tx_ref=result["hash"])
        return LedgerResult(code=code, reference=result["hash"])

    # ── Queries ─────────────────────────────────────────────────────────────

    async def ping(self) -> bool:
        client = await self._connection()
        response = await asyncio.wait_for(client.request(ServerInfo()), timeout=self.timeout)
        return response.is_successful()

    async def _account_lines(self, address: str, peer: str) -> list[dict[str, Any]]:
        client = await self._connection()
        response = await client.request(AccountLines(account=address, peer=peer))
        if not response.is_successful():
            if response.result.get("error") == "actNotFound":
                return []
            raise LedgerUnavailable(f"account_lines failed: {response.result.get('error')}")
        return response.result.get("lines", [])

    async def get_trust_line(self, address: str, currency: str, issuer: str) -> TrustLineInfo | None:
        try:
            lines = await asyncio.wait_for(self._account_lines(address, issuer), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise LedgerTimeout(request="account_lines") from exc
        except _TRANSPORT_ERRORS as exc:
            raise LedgerUnavailable(request="account_lines") from exc

        for line in lines:
            if line["currency"] == currency and line["account"] == issuer:
                return TrustLineInfo(
                    currency=currency,
                    issuer=issuer,
                    balance=Decimal(line["balance"]),
                    limit=Decimal(line["limit"]),
                    frozen=bool(line.get("freeze", False)),
                )
        return None


def build_ledger_client() -> LedgerClient:
    return LedgerClient(
        settings.XRPL_WEBSOCKET_URL,
        PlatformWallets.from_settings(settings),
        timeout=settings.LEDGER_SUBMIT_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_ledger_client() -> LedgerClient:
    """Process-wide client; connections are bound to the event loop that opened them."""
    return build_ledger_client()


async def get_ledger() -> LedgerClient:
    """FastAPI dependency returning the process-wide ledger client."""
    return get_ledger_client()
