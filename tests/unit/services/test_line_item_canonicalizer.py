import pytest

from financials.models.guide import CompanyGuide
from financials.services.guide_loader import normalize_guide
from financials.services.line_item_canonicalizer import LineItemCanonicalizer


@pytest.fixture
def canonicalizer():
    return LineItemCanonicalizer()


@pytest.fixture
def guide():
    raw = {
        "company_metadata": {"name": "Acme"},
        "metric_synonyms": {
            "tpv": ["Total Payment Volume"],
            "customers": ["Paying Practices"],
        },
    }
    return CompanyGuide.model_validate(normalize_guide("acme", raw))


def test_static_mapping(canonicalizer):
    assert canonicalizer.canonicalize("Total Actual MRR") == "mrr"
    assert canonicalizer.canonicalize("Annual Recurring Revenue") == "arr"
    assert canonicalizer.canonicalize("Cost of Goods Sold") == "cogs"


def test_canonical_name_is_kept(canonicalizer):
    assert canonicalizer.canonicalize("EBITDA") == "ebitda"


def test_guide_synonym_exact(canonicalizer, guide):
    assert canonicalizer.canonicalize("Total payment volume", guide) == "tpv"


def test_guide_synonym_contained(canonicalizer, guide):
    assert canonicalizer.canonicalize("Number of paying practices (EoP)", guide) == "customers"


def test_guide_fuzzy_match(canonicalizer, guide):
    assert canonicalizer.canonicalize("Total Payment Volumes", guide) == "tpv"


def test_unknown_label_is_slugified(canonicalizer, guide):
    assert canonicalizer.canonicalize("Headcount (FTE)", guide) == "headcount_fte"


def test_empty_label(canonicalizer):
    assert canonicalizer.canonicalize("  ") == ""
