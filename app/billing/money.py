# ==============================================================================
# app/billing/money.py
# ------------------------------------------------------------------------------
# Decimal helpers shared by the parser, the invoice builder and the
# commission engine. Binary floats never reach a stored amount.
# ==============================================================================

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from app.billing.errors import QuantityRangeError

CENT = Decimal('0.01')
MILLI = Decimal('0.001')
ZERO = Decimal('0')
# Largest value of a Numeric(12, 3) quantity column
MAX_QUANTITY = Decimal('999999999.999')

# Persian (U+06F0..) and Arabic-Indic (U+0660..) digits -> ASCII
_TO_ASCII_DIGITS = str.maketrans('۰۱۲۳۴۵۶۷۸۹٠١٢٣٤٥٦٧٨٩', '01234567890123456789')
_TO_PERSIAN_DIGITS = str.maketrans('0123456789', '۰۱۲۳۴۵۶۷۸۹')


def money(value):
    """Rounds to the currency's minor unit, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def quantize_quantity(value):
    """Quantities are stored with three decimals (GB volumes)."""
    return Decimal(value).quantize(MILLI, rounding=ROUND_HALF_UP)


def parse_quantity(value):
    """
    Parses a spreadsheet/JSON cell into a non-negative Decimal with three
    decimals.

    Empty, NaN, negative or otherwise unparseable values become 0; thousands
    separators and Persian digits are accepted. Values above MAX_QUANTITY
    raise QuantityRangeError.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ZERO
        # repr() keeps the shortest exact decimal form of the float
        value = repr(value)
    text = str(value).translate(_TO_ASCII_DIGITS)
    text = text.replace(',', '').replace('٬', '').replace('٫', '.').strip()
    if not text:
        return ZERO
    try:
        number = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not number.is_finite() or number < 0:
        return ZERO
    if number > MAX_QUANTITY:
        raise QuantityRangeError(f"مقدار '{value}' از حداکثر مقدار مجاز بیشتر است.")
    return quantize_quantity(number)


def is_blank(value):
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def fa_digits(s):
    return str(s).translate(_TO_PERSIAN_DIGITS)


def format_toman(amount):
    """
    Formats an amount with thousands separators and Persian digits.
    Example: Decimal('9000.00') -> "۹,۰۰۰"
    """
    amount = money(amount)
    if amount == amount.to_integral_value():
        return fa_digits(f'{int(amount):,}')
    return fa_digits(f'{amount:,}')


def format_quantity(quantity):
    """Quantity without trailing zeros, in Persian digits: 10.500 -> "۱۰.۵"."""
    quantity = Decimal(quantity)
    if quantity == quantity.to_integral_value():
        return fa_digits(str(int(quantity)))
    return fa_digits(format(quantity.normalize(), 'f'))
