"""
Number format service for rendering numeric cell values as display text.

Reproduces the display rules downstream consumers rely on for a small set of
number format ids (percentages, currency, plain decimal and dates). All
arithmetic is done in Decimal on the shortest float representation, so
0.045 at format 10 renders as "4.50%" rather than "4.49%".
"""

import datetime
import logging
import math
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Optional, Union

from openpyxl.utils.datetime import from_excel, WINDOWS_EPOCH

logger = logging.getLogger(__name__)

PERCENT_INTEGER_FORMAT_ID = 9         # 0%
PERCENT_DECIMAL_FORMAT_ID = 10        # 0.00%
PERCENT_SPACED_FORMAT_ID = 164        # first custom format in the loan template
CURRENCY_FORMAT_IDS = frozenset({4, 41, 42})

DEFAULT_CURRENCY_SYMBOL = '$'
PLAIN_DECIMAL_PLACES = 6

_ONE = Decimal('1')
_HUNDREDTH = Decimal('0.01')
_PLAIN_QUANTUM = Decimal(1).scaleb(-PLAIN_DECIMAL_PLACES)

Number = Union[int, float, Decimal]


class NumberFormatter:
    """Render numbers the way the spreadsheet displays them."""

    def __init__(self, currency_symbol: str = DEFAULT_CURRENCY_SYMBOL):
        """
        Initialize number formatter.

        Args:
            currency_symbol: Symbol used for currency formats (4, 41, 42)
        """
        self.currency_symbol = currency_symbol

    def format(self, value: Number, format_id: Optional[int] = None,
               is_date_formatted: bool = False) -> str:
        """
        Format a numeric value for display.

        Args:
            value: Stored numeric value (serial day number for dates)
            format_id: Number format id from the cell style, if any
            is_date_formatted: True when the cell's format renders a date

        Returns:
            Display text, e.g. "10%", "12.50%", "$1,234.50", "1234.5", "2024-01-31"
        """
        if isinstance(value, float) and not math.isfinite(value):
            return str(value)

        if is_date_formatted:
            date_text = self.format_date(value)
            if date_text is not None:
                return date_text

        number = _to_decimal(value)

        if format_id == PERCENT_INTEGER_FORMAT_ID:
            return f"{_fixed(number * 100, _ONE)}%"

        if format_id == PERCENT_DECIMAL_FORMAT_ID:
            return f"{_fixed(number * 100, _HUNDREDTH)}%"

        if format_id == PERCENT_SPACED_FORMAT_ID:
            return f"{_fixed(number * 100, _HUNDREDTH)} %"

        if format_id in CURRENCY_FORMAT_IDS:
            return self.format_currency(number)

        return self.format_plain(number)

    def format_currency(self, value: Number) -> str:
        """Currency with two decimals and thousands separators, e.g. -$1,234.50."""
        number = _to_decimal(value)
        with localcontext() as ctx:
            ctx.prec = 400
            amount = abs(number).quantize(_HUNDREDTH, rounding=ROUND_HALF_UP)
        sign = '-' if number < 0 and amount != 0 else ''
        return f"{sign}{self.currency_symbol}{amount:,.2f}"

    @staticmethod
    def format_plain(value: Number) -> str:
        """Up to six fractional digits, trailing zeros trimmed."""
        text = _fixed(_to_decimal(value), _PLAIN_QUANTUM)
        if '.' in text:
            text = text.rstrip('0').rstrip('.')
        return text

    @staticmethod
    def format_date(value: Number) -> Optional[str]:
        """
        Convert a serial day number (1900 date system) to YYYY-MM-DD.

        Returns None if the value is outside the representable date range.
        """
        try:
            converted = from_excel(float(value))
        except (OverflowError, ValueError) as e:
            logger.debug(f"Cannot convert {value!r} to a date: {e}")
            return None

        if isinstance(converted, datetime.time):
            # Serial numbers below one day carry only a time of day
            converted = WINDOWS_EPOCH
        return converted.strftime('%Y-%m-%d')


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    return Decimal(repr(float(value)))


def _fixed(number: Decimal, quantum: Decimal) -> str:
    """Round half away from zero and render without exponent; never '-0'."""
    with localcontext() as ctx:
        ctx.prec = 400
        rounded = number.quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    return format(rounded, 'f')
