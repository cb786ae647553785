"""
Currency Support Module

Single-currency (INR) amount handling with paise precision. NEVER uses
float for monetary values: inputs are parsed straight into Decimal and
stored as integer minor units.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

CURRENCY_SYMBOL = "₹"
PRECISION = 2
MINOR_UNIT = Decimal("0.01")


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse a client-supplied amount into Decimal.
    
    Accepts Decimal, int, str and float (floats go through ``str`` so
    ``0.1`` stays ``0.1``). Returns None for anything that is not a finite
    number, including booleans.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            # ValueError: ints too long for str() conversion
            return None
    else:
        return None
    if not amount.is_finite():
        return None
    return amount


def has_minor_unit_precision(amount: Decimal) -> bool:
    """True if amount needs no more than paise precision"""
    return amount == amount.quantize(MINOR_UNIT)


def to_minor_units(amount: Decimal) -> int:
    """Convert a paise-precise Decimal amount to integer paise"""
    if not has_minor_unit_precision(amount):
        raise ValueError(f"Amount {amount} has more than {PRECISION} decimal places")
    return int(amount.quantize(MINOR_UNIT) * 100)


def from_minor_units(minor: int) -> Decimal:
    """Convert integer paise back to a Decimal amount"""
    return (Decimal(minor) / 100).quantize(MINOR_UNIT)


def _group_indian(digits: str) -> str:
    # 12345678 -> 1,23,45,678
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_inr(amount: Decimal) -> str:
    """
    Format an amount with the rupee symbol and Indian digit grouping.
    
    Whole amounts drop the paise: ``Decimal("100000")`` -> ``₹1,00,000``,
    ``Decimal("12.5")`` -> ``₹12.50``.
    """
    sign = "-" if amount < 0 else ""
    amount = abs(amount).quantize(MINOR_UNIT)
    whole, _, fraction = str(amount).partition(".")
    text = _group_indian(whole)
    if fraction and fraction != "00":
        text = f"{text}.{fraction}"
    return f"{sign}{CURRENCY_SYMBOL}{text}"
