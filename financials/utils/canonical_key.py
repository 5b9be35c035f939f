"""Shared helpers for turning free-text labels into stable identifiers."""

import re
from typing import Tuple

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify_line_item(text: str) -> str:
    """Normalize a label to snake_case for use as a line item identifier.

    Args:
        text: Label to normalize (e.g., "Total Actual MRR")

    Returns:
        str: Slugified identifier (e.g., "total_actual_mrr")
    """
    if not text:
        return ""
    normalized = _NON_ALNUM.sub("_", str(text).lower())
    return normalized.strip("_")


def fact_key(line_item_id: str, period: str, scenario: str) -> Tuple[str, str, str]:
    """Identity of a fact within one company."""
    return (line_item_id, period, scenario.lower())


def safe_filename(name: str) -> str:
    """Replace characters that are unsafe in storage paths."""
    return re.sub(r"[^a-zA-Z0-9.-]", "_", name)
