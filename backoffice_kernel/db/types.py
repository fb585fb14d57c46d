"""
Coercion of caller-supplied values before they reach a query or a row.

Stock and money are ``Decimal`` end to end and stored as ``Numeric(38, 9)``
(see ``db/base.py``).  Floats are refused outright so that ``0.1 + 0.2``
style drift never reaches the ledger.  Bad user input surfaces as
``InvalidFieldError`` so commands report it as a validation rejection.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import TypeVar

from backoffice_kernel.exceptions import InvalidFieldError

E = TypeVar("E", bound=Enum)


def to_decimal(value: Decimal | int | str, field: str = "value") -> Decimal:
    """Coerce an int, str or Decimal into Decimal.

    Raises:
        TypeError: for float or bool input.
        InvalidFieldError: for strings that are not numbers, or NaN/Infinity.
    """
    if isinstance(value, (bool, float)):
        raise TypeError(f"Expected Decimal, int or str, got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidFieldError(field, "must be a decimal number", value) from None
    if not result.is_finite():
        raise InvalidFieldError(field, "must be a finite number", value)
    return result


def to_choice(enum_cls: type[E], value: E | str, field: str) -> E:
    """``enum_cls(value)``, reporting an unknown value against ``field``."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise InvalidFieldError(field, f"must be one of {allowed}", value) from None
