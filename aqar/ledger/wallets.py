"""The platform's own signing accounts."""

from dataclasses import dataclass

from xrpl.wallet import Wallet

from aqar.core.config import Settings
from aqar.core.errors import LedgerUnavailable


@dataclass(frozen=True)
class PlatformWallets:
    issuer: Wallet        # issues property tokens
    operational: Wallet   # issues the fiat token, funds new accounts, pays rent
    distribution: Wallet  # holds minted property supply until it is sold

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlatformWallets":
        seeds = {
            "issuer": settings.ISSUER_WALLET_SEED,
            "operational": settings.OPERATIONAL_WALLET_SEED,
            "distribution": settings.DISTRIBUTION_WALLET_SEED,
        }
        missing = [name for name, seed in seeds.items() if not seed]
        if missing:
            raise LedgerUnavailable(f"Platform wallet seeds not configured: {', '.join(missing)}")
        return cls(**{name: Wallet.from_seed(seed) for name, seed in seeds.items()})
