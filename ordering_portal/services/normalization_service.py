from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation


CENTS = Decimal('0.01')
ZERO = '0.00'
# Largest magnitude a Numeric(10, 2) column holds.
MAX_AMOUNT = Decimal('99999999.99')

ORDER_NOTES_MAX_LENGTH = 1000
ITEM_NOTES_MAX_LENGTH = 500


def parse_decimal(value) -> Decimal | None:
    """Parse loosely typed numeric input, returning None when it is not usable.

    Non-finite values and values beyond MAX_AMOUNT count as unusable.
    Strings may use a comma as decimal separator ("12,50"), as spreadsheet
    exports from the distributors commonly do.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if ',' in raw and '.' not in raw:
            raw = raw.replace(',', '.')
        try:
            parsed = Decimal(raw)
        except InvalidOperation:
            return None
    if not parsed.is_finite() or abs(parsed) > MAX_AMOUNT:
        return None
    return parsed


def to_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def normalize_decimal(value, default: str = ZERO) -> str:
    parsed = parse_decimal(value)
    if parsed is None or parsed < 0:
        return default
    if parsed.is_zero():
        return ZERO
    return f'{to_cents(parsed):.2f}'


def normalize_optional_decimal(value) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return normalize_decimal(value)


def format_decimal(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return f'{to_cents(Decimal(value)):.2f}'


def truncate_text(value: str | None, max_length: int) -> str | None:
    if value is None:
        return None
    return str(value)[:max_length]
