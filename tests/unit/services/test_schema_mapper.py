import pytest

from financials.core.exceptions import ExtractionValidationError
from financials.models.extraction import parse_extraction_result
from financials.models.facts import FileType, Scenario
from financials.models.guide import CompanyGuide
from financials.services.guide_loader import normalize_guide
from financials.services.schema_mapper import SchemaMapper

PERIOD = "2024-03-01"


@pytest.fixture
def mapper():
    return SchemaMapper()


def _by_key(facts):
    return {(fact.line_item_id, fact.scenario.value): fact for fact in facts}


def test_maps_pdf_line_items_with_location(mapper, acme_guide):
    extraction = parse_extraction_result(
        {
            "file_type": "pdf",
            "filename": "Board Deck.pdf",
            "line_items": [
                {
                    "label": "ARR",
                    "value": "1,200,000",
                    "location": {"page": 2, "bbox": {"x0": 10, "y0": 20, "x1": 60, "y1": 30}},
                },
                {"label": "Paying Customers", "value": 42, "scenario": "Budget", "period": "Feb 2024"},
            ],
        }
    )

    facts = _by_key(mapper.map("pdf", extraction, acme_guide, "Board Deck.pdf", PERIOD))

    arr = facts[("arr", "actual")]
    assert arr.amount == 1_200_000
    assert arr.date == PERIOD
    assert arr.source_file == "Board Deck.pdf"
    assert arr.source_location.page == 2
    assert arr.source_location.bbox.x1 == 60

    customers = facts[("customers", "budget")]
    assert customers.amount == 42
    assert customers.date == "2024-02-01"
    assert customers.source_location is None


def test_maps_financial_summary_sections(mapper, acme_guide):
    extraction = parse_extraction_result(
        {
            "file_type": "pdf",
            "filename": "report.pdf",
            "financial_summary": {
                "actuals": {"ARR": "1.5m", "Cash in Bank": {"value": "300,000", "page": 4}},
                "budget": {"ARR": 1_400_000},
                "forecast": {"ARR": 1_600_000},
            },
        }
    )

    facts = _by_key(mapper.map(FileType.PDF, extraction, acme_guide, "report.pdf", PERIOD))

    assert facts[("arr", "actual")].amount == 1_500_000
    assert facts[("arr", "budget")].amount == 1_400_000
    assert facts[("arr", "forecast")].amount == 1_600_000
    cash = facts[("cash_balance", "actual")]
    assert cash.amount == 300_000
    assert cash.source_location.page == 4


def test_applies_spreadsheet_guide_rules(mapper, acme_guide):
    extraction = parse_extraction_result(
        {
            "file_type": "xlsx",
            "filename": "financial_model.xlsx",
            "sheets": [{"name": "P&L", "cells": {"A5": "Total revenue", "C5": 5000}}],
        }
    )

    facts = mapper.map("xlsx", extraction, acme_guide, "financial_model.xlsx", PERIOD, "2024-03-15T12:00:00+00:00")

    assert len(facts) == 1
    revenue = facts[0]
    assert revenue.line_item_id == "revenue"
    assert revenue.amount == 5000
    assert revenue.scenario == Scenario.ACTUAL
    assert revenue.extracted_at == "2024-03-15T12:00:00+00:00"
    assert revenue.source_location.sheet == "P&L"
    assert revenue.source_location.cell == "C5"
    assert revenue.source_location.context == "Guide mapping P&L!C5"


def test_reads_pdf_kpi_tables_by_anchor(mapper):
    guide = CompanyGuide.model_validate(
        normalize_guide(
            "nelly",
            {
                "company": {"name": "Nelly", "currency": "EUR"},
                "document_structure": {
                    "monthly_report": {
                        "kpi_tables": {
                            "saas_kpis": {
                                "anchor_text": ["SaaS KPIs"],
                                "metric_rows": {"mrr": "Total actual MRR"},
                            }
                        }
                    }
                },
            },
        )
    )
    extraction = parse_extraction_result(
        {
            "file_type": "pdf",
            "filename": "Investor Report.pdf",
            "pages": [
                {"page_number": 1, "text": "Cover page"},
                {"page_number": 3, "text": "SaaS KPIs\nTotal actual MRR: 45000\nLogo churn 2%"},
            ],
        }
    )

    facts = mapper.map("pdf", extraction, guide, "Investor Report.pdf", PERIOD)

    assert len(facts) == 1
    assert facts[0].line_item_id == "mrr"
    assert facts[0].amount == 45000
    assert facts[0].source_location.page == 3
    assert facts[0].source_location.context == "Extracted via regex from 'Total actual MRR'"


def test_drops_unparseable_and_unlabelled_items(mapper, acme_guide):
    extraction = parse_extraction_result(
        {
            "file_type": "pdf",
            "filename": "deck.pdf",
            "line_items": [
                {"label": "ARR", "value": "n/a"},
                {"label": "", "value": 10},
                {"label": "Burn", "value": "(80,000)"},
            ],
        }
    )

    facts = mapper.map("pdf", extraction, acme_guide, "deck.pdf", PERIOD)

    assert [(fact.line_item_id, fact.amount) for fact in facts] == [("burn_rate", -80_000)]


def test_rejects_mismatched_file_type(mapper, acme_guide):
    extraction = parse_extraction_result({"file_type": "pdf", "filename": "deck.pdf"})

    with pytest.raises(ExtractionValidationError):
        mapper.map("xlsx", extraction, acme_guide, "deck.pdf", PERIOD)
