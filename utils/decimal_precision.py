#!/usr/bin/env python3
"""
Decimal Precision Utilities for Stable-Value Amounts
Every amount is a fixed-point Decimal with 6 fractional digits (ROUND_HALF_UP)
and crosses service boundaries as a string with exactly 6 fractional digits.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from utils.exceptions import InvalidAmount

logger = logging.getLogger(__name__)

# Set global decimal precision for financial calculations
getcontext().prec = 28

Numeric = Union[str, int, float, Decimal]


class MonetaryDecimal:
    """Enforces Decimal-only monetary operations with 6-digit fixed-point precision"""

    AMOUNT_DIGITS = 6
    AMOUNT_PRECISION = Decimal("0.000001")
    ZERO = Decimal("0.000000")

    @classmethod
    def to_decimal(cls, value: Numeric, context: str = "amount") -> Decimal:
        """Convert a numeric value to Decimal, rejecting anything that is not a finite number"""
        if isinstance(value, bool) or value is None:
            raise InvalidAmount(f"Invalid {context}: {value!r}")

        if isinstance(value, Decimal):
            decimal_value = value
        else:
            try:
                # Convert to string first to avoid float precision issues
                decimal_value = Decimal(str(value).strip())
            except (InvalidOperation, ValueError):
                logger.warning(f"⚠️ DECIMAL_PARSE_FAILED: {value!r} in context {context}")
                raise InvalidAmount(f"Invalid {context}: {value!r}")

        if not decimal_value.is_finite():
            raise InvalidAmount(f"Invalid {context}: {value!r}")

        return decimal_value

    @classmethod
    def quantize_amount(cls, value: Numeric, context: str = "amount") -> Decimal:
        """Quantize to 6 fractional digits, rounding half up"""
        return cls.to_decimal(value, context).quantize(cls.AMOUNT_PRECISION, rounding=ROUND_HALF_UP)

    @classmethod
    def positive_amount(cls, value: Numeric, context: str = "amount") -> Decimal:
        """Quantize and require the result to be strictly positive"""
        amount = cls.quantize_amount(value, context)
        if amount <= 0:
            raise InvalidAmount(f"Transfer {context} must be greater than zero")
        return amount

    @classmethod
    def format_amount(cls, value: Numeric) -> str:
        """Render as a fixed-point string with exactly 6 fractional digits"""
        return f"{cls.quantize_amount(value):.{cls.AMOUNT_DIGITS}f}"

    @classmethod
    def has_valid_scale(cls, value: str) -> bool:
        """True when a decimal string carries at most 6 fractional digits"""
        try:
            exponent = Decimal(value.strip()).as_tuple().exponent
        except (InvalidOperation, AttributeError):
            return False
        return isinstance(exponent, int) and exponent >= -cls.AMOUNT_DIGITS


# Module-level conveniences
to_amount = MonetaryDecimal.quantize_amount
format_amount = MonetaryDecimal.format_amount
