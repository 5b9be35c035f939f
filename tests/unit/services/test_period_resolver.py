from datetime import date

import pytest

from financials.services.period_resolver import PeriodResolver


@pytest.fixture
def resolver():
    return PeriodResolver()


def test_annual_budget_wins_over_quarter(resolver):
    assert resolver.resolve("Q2 2024 Annual Budget.pdf") == "2024-01-01"


def test_budget_year_wins_over_quarter(resolver):
    assert resolver.resolve("Budget 2024_Q1_report.pdf") == "2024-01-01"


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Q3 2024 Board Deck.pdf", "2024-07-01"),
        ("q4_2023.xlsx", "2023-10-01"),
        ("March 2024", "2024-03-01"),
        ("Investor Report - Sept 2023.pdf", "2023-09-01"),
        ("2024-05", "2024-05-01"),
        ("report_202406.xlsx", "2024-06-01"),
        ("export_20240315.xlsx", "2024-03-01"),
        ("FY24 plan.xlsx", "2024-01-01"),
        ("FY2025", "2025-01-01"),
    ],
)
def test_resolves_common_labels(resolver, text, expected):
    assert resolver.resolve(text) == expected


@pytest.mark.parametrize("text", [None, "", "notes.pdf", "report_2024-13.pdf"])
def test_unresolvable_text_returns_none(resolver, text):
    assert resolver.resolve(text) is None


def test_reported_period_takes_precedence_over_filename(resolver):
    period, source = resolver.resolve_for_extraction("January 2024", "Q3 2023 Board Deck.pdf")
    assert period == "2024-01-01"
    assert source == "reported"


def test_falls_back_to_filename(resolver):
    period, source = resolver.resolve_for_extraction("last month", "Q3 2023 Board Deck.pdf")
    assert period == "2023-07-01"
    assert source == "filename"


def test_nothing_resolves(resolver):
    assert resolver.resolve_for_extraction(None, "deck.pdf") == (None, None)


def test_fallback_period_truncates_to_month():
    assert PeriodResolver.fallback_period(date(2024, 3, 15)) == "2024-03-01"
