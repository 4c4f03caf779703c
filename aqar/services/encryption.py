"""Sealing of custodial ledger seeds at rest.

Uses Fernet (AES-128-CBC + HMAC-SHA256) with a key derived from
CUSTODY_ENCRYPTION_KEY, falling back to SECRET_KEY. To rotate keys, set
CUSTODY_ENCRYPTION_KEY to a new value and re-seal stored seeds.
"""

from __future__ import annotations

import base64
from functools import lru_cache

import structlog
from xrpl.wallet import Wallet

logger = structlog.get_logger()

_SENTINEL_PREFIX = "enc:"  # Prefix to identify encrypted values


@lru_cache(maxsize=1)
def _get_fernet():
    """Return a Fernet instance. Key derived from CUSTODY_ENCRYPTION_KEY or SECRET_KEY."""
    from cryptography.fernet import Fernet
    from cryptography.hazmat.primitives import hashes
    from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
    from aqar.core.config import settings

    raw_key = settings.CUSTODY_ENCRYPTION_KEY or settings.SECRET_KEY
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"aqar-custody-seeds-v1",
        iterations=100_000,
    )
    derived = kdf.derive(raw_key.encode("utf-8"))
    fernet_key = base64.urlsafe_b64encode(derived)
    return Fernet(fernet_key)


def encrypt_field(plaintext: str) -> str:
    try:
        token = _get_fernet().encrypt(plaintext.encode("utf-8"))
    except Exception as exc:
        logger.error("field_encryption_failed", error_type=type(exc).__name__)
        raise
    return _SENTINEL_PREFIX + token.decode("utf-8")


def decrypt_field(ciphertext: str) -> str:
    """Decrypt a sealed value.

    Values without the sentinel prefix are seeds stored before sealing was
    introduced; they are returned as-is so those accounts stay usable.
    """
    if not ciphertext.startswith(_SENTINEL_PREFIX):
        return ciphertext
    try:
        token = ciphertext[len(_SENTINEL_PREFIX):].encode("utf-8")
        return _get_fernet().decrypt(token).decode("utf-8")
    except Exception as exc:
        logger.error("field_decryption_failed", error_type=type(exc).__name__)
        raise


class CustodialSecret:
    """Opaque handle on a sealed custodial seed.

    Only the custody signing path calls ``signing_wallet``; everything else
    sees a redacted value.
    """

    __slots__ = ("_ciphertext",)

    def __init__(self, ciphertext: str) -> None:
        self._ciphertext = ciphertext

    @classmethod
    def seal(cls, seed: str) -> CustodialSecret:
        return cls(encrypt_field(seed))

    @property
    def ciphertext(self) -> str:
        return self._ciphertext

    def signing_wallet(self) -> Wallet:
        return Wallet.from_seed(decrypt_field(self._ciphertext))

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CustodialSecret) and other._ciphertext == self._ciphertext

    def __hash__(self) -> int:
        return hash(self._ciphertext)

    def __repr__(self) -> str:
        return "CustodialSecret('[REDACTED]')"

    __str__ = __repr__
