"""Number parsing and rounding utilities for euro amounts."""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal('0.01')

# 1.234,56 (Belgian/French grouping) or plain 1234.56
EU_NUMBER_PATTERN = re.compile(r"^-?(?:\d{1,3}(?:[.\s]\d{3})+|\d+)(?:,\d+)?$")


def round_cents(value) -> Decimal:
    """Round to 2 decimals, half away from zero."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def to_decimal(value, field='value') -> Decimal:
    """
    Convert a JSON/CSV value to Decimal.

    Accepts ints, floats (via their repr), Decimals and strings in either
    plain (1234.56) or European (1.234,56) notation.

    Raises:
        ValueError: if the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f'Invalid number for {field}')
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    cleaned = str(value).strip()
    if not cleaned:
        raise ValueError(f'Invalid number for {field}')

    if EU_NUMBER_PATTERN.match(cleaned) and ',' in cleaned:
        cleaned = cleaned.replace('.', '').replace(' ', '').replace(',', '.')
    try:
        result = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f'Invalid number for {field}')
    if not result.is_finite():
        raise ValueError(f'Invalid number for {field}')
    return result


def money_eu(value, symbol='€') -> str:
    """
    Format an amount the Belgian way: 1.234,56 €

    Examples:
        money_eu(1234.5) -> "1.234,50 €"
        money_eu(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    amount = round_cents(Decimal(str(value)))
    integer_part, decimal_part = f"{abs(amount):.2f}".split('.')
    grouped = f"{int(integer_part):,}".replace(',', '.')
    sign = '-' if amount < 0 else ''
    return f"{sign}{grouped},{decimal_part} {symbol}"
