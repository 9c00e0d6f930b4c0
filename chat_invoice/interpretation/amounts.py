"""Locale-aware money parsing and quantization.

Merchants write amounts the way they say them: ``16.500.000``, ``Rp 4,1jt``,
``50rb``, ``1,5 juta``. Everything is normalized to ``Decimal``.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# Currencies without a minor unit in everyday invoicing
ZERO_DECIMAL_CURRENCIES = frozenset({"IDR", "JPY", "KRW", "VND"})

MULTIPLIERS: dict[str, Decimal] = {
    "k": Decimal("1000"),
    "rb": Decimal("1000"),
    "ribu": Decimal("1000"),
    "jt": Decimal("1000000"),
    "juta": Decimal("1000000"),
    "m": Decimal("1000000000"),
    "miliar": Decimal("1000000000"),
    "milyar": Decimal("1000000000"),
}

# Amount as it appears inside free text, optionally with a currency marker and suffix
AMOUNT_PATTERN = r"(?:rp\.?\s*|idr\s*)?\d[\d.,]*(?:\s*(?:ribu|rb|juta|jt|miliar|milyar|k)\b)?"

_AMOUNT_RE = re.compile(
    r"^(?P<number>\d[\d.,]*)\s*(?P<suffix>ribu|rb|juta|jt|miliar|milyar|k|m)?$"
)


def _normalize_separators(number: str, has_suffix: bool) -> str:
    """Turn a number with '.'/',' separators into a plain decimal string."""
    dots = number.count(".")
    commas = number.count(",")

    if dots and commas:
        # The separator that appears last is the decimal one
        if number.rfind(",") > number.rfind("."):
            return number.replace(".", "").replace(",", ".")
        return number.replace(",", "")

    separator = "." if dots else "," if commas else None
    if separator is None:
        return number

    if number.count(separator) > 1:
        return number.replace(separator, "")

    head, tail = number.split(separator)
    # "16.500" is sixteen thousand five hundred; "1,5jt" is one and a half million
    if len(tail) == 3 and not has_suffix:
        return head + tail
    return f"{head}.{tail}"


def parse_amount(value: Any) -> Decimal | None:
    """Parse a money amount written in any of the supported notations.

    Args:
        value: Number or string such as ``"16.500.000"``, ``"Rp 50rb"``, ``"1,5jt"``

    Returns:
        Parsed amount, or None if the value is not a recognizable finite amount
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        amount = Decimal(str(value))
        return amount if amount.is_finite() else None
    if not isinstance(value, str):
        return None

    text = value.strip().lower()
    text = re.sub(r"^(?:rp\.?|idr)\s*", "", text)
    # "50.000,-" is a common way to write a round price
    text = text.replace(" ", "").rstrip(".,-")

    match = _AMOUNT_RE.match(text)
    if not match:
        return None

    suffix = match.group("suffix")
    normalized = _normalize_separators(match.group("number"), has_suffix=suffix is not None)
    try:
        amount = Decimal(normalized)
    except InvalidOperation:
        return None

    if suffix:
        amount *= MULTIPLIERS[suffix]
    return amount


def minor_unit(currency: str) -> Decimal:
    """Smallest money step for a currency."""
    return Decimal("1") if currency.upper() in ZERO_DECIMAL_CURRENCIES else Decimal("0.01")


def quantize_money(value: Decimal, currency: str) -> Decimal:
    """Round an amount half-up to the currency's minor unit."""
    return Decimal(value).quantize(minor_unit(currency), rounding=ROUND_HALF_UP)
