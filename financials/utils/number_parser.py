"""Parsing of localized numeric strings found in financial documents."""

import math
import re
from typing import Optional, Union

_STRIP = re.compile(r"[^\d.,\-]")
_MULTIPLIERS = {"k": 1e3, "m": 1e6, "mm": 1e6, "bn": 1e9, "b": 1e9}
_SUFFIX = re.compile(r"(\d)\s*(k|mm|m|bn|b)\b", re.IGNORECASE)


def parse_localized_number(
    raw: Union[str, int, float, None], default_currency: str = "USD"
) -> Optional[float]:
    """Parse a number written in US/UK or continental European notation.

    US/UK: ``1,234.56`` (comma thousands, period decimal).
    EUR:   ``1.234,56`` (period thousands, comma decimal).

    When both separators appear, the rightmost one is the decimal separator.
    With a single separator followed by one or two digits it is read as the
    decimal mark; otherwise it is a thousands separator. The company currency
    breaks ties for ambiguous single-comma values. Parentheses and a leading
    minus mark negatives. A trailing ``k``/``m``/``bn`` scales the value.

    Args:
        raw: Raw value from an extraction
        default_currency: Company reporting currency, used as a tie-break hint

    Returns:
        The parsed float, or None when the value is not numeric
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None

    text = str(raw).strip()
    if not text:
        return None

    multiplier = 1.0
    suffix = _SUFFIX.search(text)
    if suffix:
        multiplier = _MULTIPLIERS[suffix.group(2).lower()]

    cleaned = _STRIP.sub("", text).strip()
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        return None

    negative = ("(" in text and ")" in text) or cleaned.startswith("-") or text.lstrip().startswith("-")
    cleaned = cleaned.lstrip("-")
    if "-" in cleaned:
        return None

    has_comma = "," in cleaned
    has_period = "." in cleaned

    if has_comma and has_period:
        if cleaned.rfind(",") > cleaned.rfind("."):
            normalized = cleaned.replace(".", "").replace(",", ".")
        else:
            normalized = cleaned.replace(",", "")
    elif has_comma:
        parts = cleaned.split(",")
        if len(parts) == 2 and len(parts[-1]) <= 2:
            normalized = cleaned.replace(",", ".")
        elif default_currency == "EUR" and len(parts) == 2:
            normalized = cleaned.replace(",", ".")
        else:
            normalized = cleaned.replace(",", "")
    elif has_period:
        parts = cleaned.split(".")
        if len(parts) > 2:
            # 1.234.567 can only be thousands grouping
            normalized = cleaned.replace(".", "")
        else:
            normalized = cleaned
    else:
        normalized = cleaned

    try:
        value = float(normalized) * multiplier
    except ValueError:
        return None

    if not math.isfinite(value):
        return None
    return -value if negative else value
