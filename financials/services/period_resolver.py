"""Resolution of free-text period labels into canonical month buckets.

Patterns are tried strictly in priority order and the first pattern that
yields a valid date wins. They are alternatives, not combined: a filename
carrying both a budget year and a quarter resolves by the budget rule.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple

from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

MONTHS = {
    "jan": 1, "january": 1, "feb": 2, "february": 2, "mar": 3, "march": 3,
    "apr": 4, "april": 4, "may": 5, "jun": 6, "june": 6, "jul": 7, "july": 7,
    "aug": 8, "august": 8, "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10, "nov": 11, "november": 11, "dec": 12, "december": 12,
}

_SEP = r"[\s_\-]*"


def _month_start(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}-01"


def _budget_year(match: re.Match) -> Optional[str]:
    return _month_start(int(match.group(1)), 1)


def _quarter(match: re.Match) -> Optional[str]:
    quarter = int(match.group(1))
    year = int(match.group(2))
    return _month_start(year, (quarter - 1) * 3 + 1)


def _month_name(match: re.Match) -> Optional[str]:
    name = match.group(1).lower()
    month = MONTHS.get(name) or MONTHS.get(name[:3])
    if not month:
        return None
    return _month_start(int(match.group(2)), month)


def _year_month(match: re.Match) -> Optional[str]:
    year = int(match.group(1))
    month = int(match.group(2))
    if 2000 <= year <= 2100 and 1 <= month <= 12:
        return _month_start(year, month)
    return None


def _year_month_day(match: re.Match) -> Optional[str]:
    year = int(match.group(1))
    month = int(match.group(2))
    day = int(match.group(3))
    if not (2000 <= year <= 2099 and 1 <= month <= 12):
        return None
    try:
        date(year, month, day)
    except ValueError:
        return None
    return _month_start(year, month)


def _fiscal_year(match: re.Match) -> Optional[str]:
    year = int(match.group(1))
    if year < 100:
        year += 2000
    return _month_start(year, 1)


@dataclass(frozen=True)
class PeriodPattern:
    name: str
    regex: re.Pattern
    handler: Callable[[re.Match], Optional[str]]


PERIOD_PATTERNS: List[PeriodPattern] = [
    PeriodPattern("annual_budget", re.compile(rf"(\d{{4}}){_SEP}Annual{_SEP}Budget", re.IGNORECASE), _budget_year),
    PeriodPattern("budget_year", re.compile(rf"Budget{_SEP}(\d{{4}})", re.IGNORECASE), _budget_year),
    PeriodPattern("quarter", re.compile(rf"Q([1-4]){_SEP}(\d{{4}})", re.IGNORECASE), _quarter),
    PeriodPattern(
        "month_name",
        re.compile(
            r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|"
            r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
            rf"{_SEP}(\d{{4}})",
            re.IGNORECASE,
        ),
        _month_name,
    ),
    PeriodPattern("year_month", re.compile(r"(?<!\d)(\d{4})[\s_\-]?(\d{2})(?!\d)"), _year_month),
    PeriodPattern("year_month_day", re.compile(r"(?<!\d)(\d{4})(\d{2})(\d{2})(?!\d)"), _year_month_day),
    PeriodPattern("fiscal_year", re.compile(r"FY[\s_\-]?(\d{4}|\d{2})(?!\d)", re.IGNORECASE), _fiscal_year),
]


class PeriodResolver:
    """Derives a ``YYYY-MM-01`` period from period labels or filenames."""

    def __init__(self, patterns: Optional[List[PeriodPattern]] = None):
        self.patterns = patterns or PERIOD_PATTERNS

    def resolve(self, candidate_text: Optional[str]) -> Optional[str]:
        """Resolve a single piece of text, or None when no pattern applies."""
        if not candidate_text:
            return None

        for pattern in self.patterns:
            match = pattern.regex.search(candidate_text)
            if not match:
                continue
            result = pattern.handler(match)
            if result:
                LOGGER.debug(
                    f"Resolved period {result} from '{candidate_text}' via {pattern.name}"
                )
                return result
        return None

    def resolve_for_extraction(
        self, reported_period: Optional[str], filename: str
    ) -> Tuple[Optional[str], Optional[str]]:
        """Resolve from the document's own period label first, then its filename.

        Returns:
            Tuple of (period, source) where source is "reported" or "filename"
        """
        period = self.resolve(reported_period)
        if period:
            return period, "reported"
        period = self.resolve(filename)
        if period:
            return period, "filename"
        return None, None

    @staticmethod
    def fallback_period(today: Optional[date] = None) -> str:
        """Current month bucket, used when nothing else resolves."""
        today = today or date.today()
        return _month_start(today.year, today.month)
