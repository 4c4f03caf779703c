"""Currency codes for issued tokens."""

import re

from aqar.core.errors import ValidationError

_HEX_CODE_LENGTH = 40
_TOKEN_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _.-]{0,19}$")


def token_currency_code(token_name: str) -> str:
    """Derive the fixed-width currency code for a property token.

    The name is hex-encoded and right-padded with zeros to the 160-bit
    non-standard currency format, e.g. ``HSMB01`` ->
    ``48534D4230310000000000000000000000000000``.
    """
    if not _TOKEN_NAME_RE.match(token_name):
        raise ValidationError(
            "token_name must be 1-20 ASCII letters, digits, spaces, '.', '_' or '-'.",
            field="token_name",
        )
    if token_name.upper() == "XRP":
        raise ValidationError("token_name may not be XRP.", field="token_name")
    return token_name.encode("ascii").hex().upper().ljust(_HEX_CODE_LENGTH, "0")
