"""
Amount Helpers
Exact conversions between human amounts and smallest-unit integer strings.

Amounts that cross the RPC boundary are plain digit strings: integer-amount
parsing on the contract side cannot read scientific notation ("1e+21").
"""

import logging
from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext

from config.contracts import DEFAULT_GAS_RESERVE, NEAR_NOMINATION

logger = logging.getLogger(__name__)

# Enough digits for yocto amounts of any realistic supply
_PRECISION = 80


def _to_decimal(value) -> Decimal:
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid number: {value}") from e


def normalize_amount(value) -> str:
    """
    Rewrite an amount in scientific notation to plain digits.

    normalize_amount("1e+21") -> "1000000000000000000000"
    Plain strings pass through unchanged, so normalize(normalize(x)) == normalize(x).
    """
    text = str(value).strip()
    if "e" not in text.lower():
        return text

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        number = _to_decimal(text)
        if not number.is_finite():
            raise ValueError(f"Invalid number: {value}")
        return format(number.to_integral_value(), "f")


def to_token_amount(amount: str, decimals: int) -> str:
    """Human amount ("1.5") -> smallest unit integer string, rounded down"""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        number = _to_decimal(amount)
        if not number.is_finite() or number <= 0:
            raise ValueError(f"Invalid amount: {amount}")
        scaled = (number * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
        return format(scaled, "f")


def from_token_amount(amount: str, decimals: int, max_decimals: int = 6) -> str:
    """Smallest unit -> human amount with at most max_decimals places, trailing zeros trimmed"""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        try:
            number = _to_decimal(normalize_amount(amount))
        except ValueError:
            return "0"
        value = (number / (Decimal(10) ** decimals)).quantize(
            Decimal(1).scaleb(-max_decimals), rounding=ROUND_DOWN
        )
        text = format(value, "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"


def parse_near_amount(near: str) -> str:
    """NEAR -> yoctoNEAR"""
    return to_token_amount(near, NEAR_NOMINATION)


def format_near_amount(yocto: str, max_decimals: int = NEAR_NOMINATION) -> str:
    """yoctoNEAR -> NEAR, exact up to max_decimals"""
    return from_token_amount(yocto, NEAR_NOMINATION, max_decimals)


def has_sufficient_balance(balance: str, amount: str, gas_reserve: str = DEFAULT_GAS_RESERVE) -> bool:
    """
    balance >= amount + gas_reserve, in exact integer arithmetic.
    Unparsable input is treated as insufficient.
    """
    try:
        return int(balance) >= int(amount) + int(gas_reserve)
    except (TypeError, ValueError) as e:
        logger.error(f"[Amounts] Error checking balance: {e}")
        return False
