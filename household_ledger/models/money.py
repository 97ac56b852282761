"""
Money Arithmetic

Every amount in the ledger is a Decimal with exactly two places, rounded
half-up whenever a division or percentage produces more precision.

DESIGN DECISION: Binary floats are refused at the boundary. A float that
reaches this module is a bug upstream (usually a JSON payload parsed without
Decimal support), and silently converting it would hide the bug.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Union

from pydantic import BeforeValidator, PlainSerializer

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def quantize_money(value: Decimal) -> Decimal:
    """Round to two places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: Union[Decimal, int, str]) -> Decimal:
    """
    Coerce a value into a two-place Decimal.

    Raises:
        TypeError: for floats and other unsupported types
        ValueError: for strings that are not numbers and for amounts too
                    large to carry two decimal places
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Money cannot be built from {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, str):
        try:
            amount = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"Not a monetary amount: {value!r}")
    else:
        raise TypeError(f"Money cannot be built from {type(value).__name__}: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return quantize_money(amount)
    except InvalidOperation:
        # Too many digits to hold two places at the context precision
        raise ValueError(f"Not a monetary amount: {value!r}")


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """`amount * percentage / 100`, rounded once at the end."""
    return quantize_money(amount * percentage / HUNDRED)


def split_evenly(total: Decimal, parts: int) -> Decimal:
    """
    Value of one part when `total` is divided into `parts`.

    The remainder is absorbed by rounding: 100.00 / 3 gives 33.33 for every
    part and the group sums to 99.99.
    """
    if parts < 1:
        raise ValueError(f"Cannot split into {parts} parts")
    return quantize_money(total / Decimal(parts))


def halve(amount: Decimal) -> Decimal:
    return split_evenly(amount, 2)


def format_money(amount: Decimal) -> str:
    """Plain decimal text with a dot separator and no exponent."""
    return format(quantize_money(amount), "f")


def _validate_money_field(value):
    # pydantic only reports ValueError as a validation error
    try:
        return to_money(value)
    except TypeError as e:
        raise ValueError(str(e))


# Field type for pydantic models: accepts Decimal/int/str, stores two places
Money = Annotated[
    Decimal,
    BeforeValidator(_validate_money_field),
    PlainSerializer(format_money, return_type=str, when_used="json"),
]
