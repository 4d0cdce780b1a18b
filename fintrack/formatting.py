from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS = Decimal("0.01")
ISO_DATE_FORMAT = "%Y-%m-%d"

# Short date patterns keyed by language, then by region.
SHORT_DATE_FORMATS: dict[str, dict[str | None, str]] = {
    "en": {None: "%m/%d/%Y", "GB": "%d/%m/%Y", "AU": "%d/%m/%Y", "NZ": "%d/%m/%Y", "IE": "%d/%m/%Y", "IN": "%d/%m/%Y", "CA": "%Y-%m-%d"},
    "de": {None: "%d.%m.%Y"},
    "fr": {None: "%d/%m/%Y", "CA": "%Y-%m-%d"},
    "es": {None: "%d/%m/%Y"},
    "it": {None: "%d/%m/%Y"},
    "nl": {None: "%d-%m-%Y"},
    "pt": {None: "%d/%m/%Y"},
    "pl": {None: "%d.%m.%Y"},
    "ru": {None: "%d.%m.%Y"},
    "sv": {None: "%Y-%m-%d"},
    "ja": {None: "%Y/%m/%d"},
    "zh": {None: "%Y/%m/%d"},
    "ko": {None: "%Y. %m. %d."},
}


def round_amount(value: Decimal | int | float | str) -> Decimal:
    rounded = _coerce_amount(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    # Avoid rendering "-0.00" for tiny negative values.
    return abs(rounded) if rounded == 0 else rounded


def format_amount(value: Decimal | int | float | str) -> str:
    return f"{round_amount(value):.2f}"


def format_currency(value: Decimal | int | float | str, symbol: str = "$") -> str:
    rounded = round_amount(value)
    if rounded < 0:
        return f"-{symbol}{-rounded:.2f}"
    return f"{symbol}{rounded:.2f}"


def format_percentage(value: Decimal | int | float | str) -> str:
    return f"{format_amount(value)}%"


def format_date(value: date | datetime, locale: str | None = None) -> str:
    """Render a date in the short format of the given locale tag.

    Tags look like ``en-US`` or ``de_DE``. An unknown region falls back to
    the language default and an unknown language falls back to ISO dates.
    """
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime(short_date_pattern(locale))


def short_date_pattern(locale: str | None) -> str:
    if not locale:
        return ISO_DATE_FORMAT
    parts = locale.replace("_", "-").split("-")
    language = parts[0].lower()
    region = parts[-1].upper() if len(parts) > 1 else None
    patterns = SHORT_DATE_FORMATS.get(language)
    if patterns is None:
        return ISO_DATE_FORMAT
    return patterns.get(region, patterns[None])


def _coerce_amount(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValueError("Amount must be numeric.")
    else:
        try:
            # str() keeps floats such as 1.005 from carrying binary noise.
            amount = Decimal(str(value))
        except InvalidOperation as exc:
            raise ValueError("Amount must be numeric.") from exc
    if not amount.is_finite():
        raise ValueError("Amount must be finite.")
    return amount
