import pytest

from financials.utils.number_parser import parse_localized_number


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1,234.56", 1234.56),
        ("1.234,56", 1234.56),
        ("1.234.567", 1234567.0),
        ("$1,200", 1200.0),
        ("(500)", -500.0),
        ("-42.5", -42.5),
        ("1.5m", 1_500_000.0),
        ("250k", 250_000.0),
        ("12,5", 12.5),
        (1000, 1000.0),
        (12.5, 12.5),
    ],
)
def test_parses_common_notations(raw, expected):
    assert parse_localized_number(raw) == pytest.approx(expected)


def test_single_comma_thousands_depends_on_currency():
    assert parse_localized_number("1,234", "USD") == 1234.0
    assert parse_localized_number("1,234", "EUR") == pytest.approx(1.234)


@pytest.mark.parametrize("raw", [None, "", "n/a", "--", True, float("inf")])
def test_non_numeric_values_return_none(raw):
    assert parse_localized_number(raw) is None
