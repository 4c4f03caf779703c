"""Fixed-point fiat arithmetic.

Fiat amounts are Decimals with at most two places (fils). Every comparison
that decides capacity or funded status is done on integer fils.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation

from aqar.core.errors import ValidationError

FILS = Decimal("0.01")
RATE_QUANTUM = Decimal("0.000001")


def _as_decimal(value: Decimal | int | str, field: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"{field} must be a decimal number.", field=field) from exc
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number.", field=field)
    return amount


def parse_fiat_amount(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """Validate a positive fiat amount with at most two decimal places."""
    amount = _as_decimal(value, field)
    if amount <= 0:
        raise ValidationError(f"{field} must be positive.", field=field)
    try:
        quantized = amount.quantize(FILS)
    except InvalidOperation as exc:
        raise ValidationError(f"{field} is out of range.", field=field) from exc
    if quantized != amount:
        raise ValidationError(f"{field} must have at most two decimal places.", field=field)
    return quantized


def parse_rate(value: Decimal | int | str, field: str = "rate_per_token") -> Decimal:
    rate = _as_decimal(value, field)
    if rate <= 0:
        raise ValidationError(f"{field} must be positive.", field=field)
    try:
        quantized = rate.quantize(RATE_QUANTUM)
    except InvalidOperation as exc:
        raise ValidationError(f"{field} is out of range.", field=field) from exc
    if quantized != rate:
        raise ValidationError(f"{field} must have at most six decimal places.", field=field)
    return quantized


def to_fils(amount: Decimal) -> int:
    """Stored amounts are already fils-exact; rounding only strips storage noise."""
    return int(amount.quantize(FILS) * 100)


def from_fils(fils: int) -> Decimal:
    return (Decimal(fils) / 100).quantize(FILS)


def allocate_tokens(amount_fils: int, total_value_fils: int, total_supply: int) -> int:
    """floor(amount / (total_value / total_supply)), exact in integers."""
    return (amount_fils * total_supply) // total_value_fils


def unconverted_fiat(amount_fils: int, tokens: int, total_value_fils: int, total_supply: int) -> Decimal:
    """Part of an investment not represented by whole tokens, rounded down to fils."""
    converted = Decimal(tokens * total_value_fils) / Decimal(total_supply)
    return (Decimal(amount_fils) - converted).quantize(Decimal("1"), rounding=ROUND_DOWN) / 100


def payout_for(holding: int, rate: Decimal) -> Decimal:
    return (rate * holding).quantize(RATE_QUANTUM, rounding=ROUND_DOWN)
