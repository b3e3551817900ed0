"""
Commission-aware income split and token amount helpers.

All arithmetic is done on Decimal in a local context wide enough for
uint256 base-unit values; floats never enter the calculation.
"""

from decimal import Decimal, ROUND_HALF_EVEN, Context, localcontext
from typing import List

from marketsync.core.exceptions import ValidationError
from .types import IncomeSplit

MAX_DECIMALS = 18  # scale of the Numeric(78, 18) money columns
_PRECISION = 78
_HUNDRED = Decimal(100)


def _context() -> Context:
    return Context(prec=_PRECISION, rounding=ROUND_HALF_EVEN)


def _check_decimals(decimals: int, errors: List[str]) -> None:
    if not isinstance(decimals, int) or isinstance(decimals, bool):
        errors.append("decimals: Expected integer")
    elif decimals < 0 or decimals > MAX_DECIMALS:
        errors.append(f"decimals: Number must be between 0 and {MAX_DECIMALS}")


def split_income(price: Decimal, commission_rate: Decimal, decimals: int) -> IncomeSplit:
    """
    Split an order price into platform commission and seller income.

    Args:
        price: Order price in token units
        commission_rate: Platform commission in percent
        decimals: Token decimals the commission is rounded to

    Returns:
        IncomeSplit where seller_income + platform_income == price
    """
    price = Decimal(price)
    commission_rate = Decimal(commission_rate)

    errors: List[str] = []
    if price < 0:
        errors.append("price: Number must be greater than or equal to 0")
    if commission_rate < 0 or commission_rate > _HUNDRED:
        errors.append("commissionRate: Number must be between 0 and 100")
    _check_decimals(decimals, errors)
    if errors:
        raise ValidationError(errors)

    with localcontext(_context()):
        quantum = Decimal(1).scaleb(-decimals)
        platform_income = (price * commission_rate / _HUNDRED).quantize(
            quantum, rounding=ROUND_HALF_EVEN
        )
        seller_income = price - platform_income

    return IncomeSplit(
        seller_income=seller_income,
        platform_income=platform_income,
        decimals=decimals,
    )


def format_amount(amount: Decimal, symbol: str) -> str:
    """Render an amount as '<plain decimal> <SYMBOL>', e.g. '0.009692143 COIN'."""
    with localcontext(_context()):
        normalized = Decimal(amount).normalize()
    if normalized == 0:
        normalized = Decimal(0)
    return f"{format(normalized, 'f')} {symbol}"


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Convert a token amount to integer on-chain units."""
    errors: List[str] = []
    _check_decimals(decimals, errors)
    if errors:
        raise ValidationError(errors)

    with localcontext(_context()):
        scaled = Decimal(amount).scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                [f"amount: {amount} has more than {decimals} fractional digits"]
            )
        return int(scaled)


def from_base_units(value: int, decimals: int) -> Decimal:
    """Convert integer on-chain units to a token amount."""
    errors: List[str] = []
    _check_decimals(decimals, errors)
    if errors:
        raise ValidationError(errors)

    with localcontext(_context()):
        return Decimal(value).scaleb(-decimals)
