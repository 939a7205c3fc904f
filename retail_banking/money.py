"""
Monetary Value Module

Decimal helpers for every balance and amount in the ledger. Values are held
as Decimal and rounded to cents. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from .exceptions import InvalidAmountError

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, int, str]


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert a value to Decimal without going through float

    Raises:
        ValueError: If the value cannot be represented as a Decimal
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Route through str so 0.1 stays 0.1
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")


def round_money(value: AmountLike) -> Decimal:
    """
    Round to cents using half-up rounding

    Raises:
        ValueError: If the value is not finite or too large to hold in cents
    """
    value = to_decimal(value)
    if not value.is_finite():
        raise ValueError(f"'{value}' is not a finite amount")
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"'{value}' is too large to represent in cents")


def validate_amount(amount: AmountLike) -> Decimal:
    """
    Validate a transaction amount and return it rounded to cents

    Raises:
        InvalidAmountError: If the rounded amount is not strictly positive
    """
    try:
        rounded = round_money(amount)
    except ValueError:
        raise InvalidAmountError(f"Invalid amount: {amount!r}")

    if rounded <= ZERO:
        raise InvalidAmountError("Invalid amount. Please enter a positive number.")
    return rounded


def validate_balance(amount: AmountLike) -> Decimal:
    """
    Validate an opening balance, which may be zero

    Raises:
        InvalidAmountError: If the amount is unparseable or negative
    """
    try:
        rounded = round_money(amount)
    except ValueError:
        raise InvalidAmountError(f"Invalid amount: {amount!r}")

    if rounded < ZERO:
        raise InvalidAmountError("Initial balance cannot be negative")
    return rounded


def format_money(value: AmountLike) -> str:
    """Format for display"""
    return f"{round_money(value):,.2f}"
