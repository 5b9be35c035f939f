import pytest

from conftest import make_fact
from financials.core.exceptions import ExtractionValidationError
from financials.models.extraction import PdfExtraction, XlsxExtraction, parse_extraction_result
from financials.models.facts import FileType, Scenario, SourceLocation, normalize_period
from financials.models.storage import ExtractionDiff


class TestNormalizePeriod:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-03", "2024-03-01"),
            ("2024-03-31", "2024-03-01"),
            (" 2024-12-15 ", "2024-12-01"),
            ("2024-03-31T23:59:59", "2024-03-01"),
        ],
    )
    def test_first_of_month(self, value, expected):
        assert normalize_period(value) == expected

    @pytest.mark.parametrize("value", ["March 2024", "2024-13", ""])
    def test_rejects_non_iso(self, value):
        with pytest.raises(ValueError):
            normalize_period(value)

    def test_fact_dates_are_normalized(self):
        assert make_fact(date="2024-03-31").date == "2024-03-01"


class TestScenario:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Actual", Scenario.ACTUAL),
            ("BUDGET", Scenario.BUDGET),
            ("plan", Scenario.BUDGET),
            ("Reforecast", Scenario.FORECAST),
            (None, Scenario.ACTUAL),
            ("", Scenario.ACTUAL),
            ("whatever", Scenario.ACTUAL),
            (Scenario.FORECAST, Scenario.FORECAST),
        ],
    )
    def test_parse(self, value, expected):
        assert Scenario.parse(value) == expected

    def test_fact_key_uses_scenario_value(self):
        assert make_fact(scenario="Budget").key == ("arr", "2024-01-01", "budget")


class TestSourceLocation:
    def test_pdf_snippet_key(self):
        location = SourceLocation(file_type=FileType.PDF, page=3)
        assert location.snippet_key("deck.pdf") == "deck.pdf-p3"

    def test_xlsx_snippet_key(self):
        location = SourceLocation(file_type=FileType.XLSX, sheet="P&L", cell="C5")
        assert location.snippet_key("model.xlsx") == "model.xlsx-P&L-C5"

    def test_unlocatable(self):
        assert SourceLocation(file_type=FileType.PDF).snippet_key("deck.pdf") is None
        assert SourceLocation(file_type=FileType.XLSX, sheet="P&L").snippet_key("model.xlsx") is None


class TestParseExtractionResult:
    def test_dispatches_on_file_type(self):
        pdf = parse_extraction_result({"file_type": "pdf", "filename": "deck.pdf"})
        xlsx = parse_extraction_result({"file_type": "xlsx", "filename": "model.xlsx", "sheets": [{"name": "P&L"}]})

        assert isinstance(pdf, PdfExtraction)
        assert isinstance(xlsx, XlsxExtraction)
        assert xlsx.get_sheet(None).name == "P&L"
        assert xlsx.get_sheet("Cash") is None

    def test_typed_result_passes_through(self):
        result = PdfExtraction(filename="deck.pdf")
        assert parse_extraction_result(result) is result

    @pytest.mark.parametrize(
        "payload",
        [
            {"file_type": "docx", "filename": "memo.docx"},
            {"file_type": "pdf"},
            {"file_type": "pdf", "filename": "deck.pdf", "line_items": [{"value": 1}]},
            "not a dict",
        ],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(ExtractionValidationError):
            parse_extraction_result(payload)


class TestExtractionDiff:
    def test_added_removed_changed(self):
        old = [
            {"line_item_id": "arr", "amount": 100.0},
            {"line_item_id": "mrr", "amount": 8.0},
            {"line_item_id": "arr", "amount": 200.0, "scenario": "budget"},
        ]
        new = [
            {"line_item_id": "arr", "amount": 110.0},
            {"line_item_id": "customers", "amount": 42},
            {"line_item_id": "arr", "amount": 250.0, "scenario": "budget"},
        ]

        diff = ExtractionDiff.between(old, new)

        assert [(item.metric, item.value) for item in diff.added] == [("customers", 42.0)]
        assert [(item.metric, item.value) for item in diff.removed] == [("mrr", 8.0)]
        assert len(diff.changed) == 1
        assert diff.changed[0].metric == "arr"
        assert diff.changed[0].delta == pytest.approx(10.0)
        assert not diff.is_empty

    def test_identical_extractions(self):
        items = [{"line_item_id": "arr", "amount": 100.0}]
        assert ExtractionDiff.between(items, items).is_empty
