"""Custom column types."""

from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from aqar.services.encryption import CustodialSecret


class CustodialSecretType(TypeDecorator):
    """Stores the sealed seed; loads it back as an opaque CustodialSecret."""

    impl = String(512)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if not isinstance(value, CustodialSecret):
            raise TypeError("custodial secrets must be sealed before they are stored")
        return value.ciphertext

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return CustodialSecret(value)
