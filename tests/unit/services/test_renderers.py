from io import BytesIO

import openpyxl
import pytest
from PIL import Image
from pypdf import PdfReader, PdfWriter

from financials.core.exceptions import SnippetRenderError
from financials.services.snippets.renderers import ExcelCellRenderer, PdfPageExtractRenderer, PdfScreenshotRenderer

PNG_SIGNATURE = b"\x89PNG"


def blank_pdf(pages: int = 2) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def budget_workbook() -> bytes:
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.title = "P&L"
    for row in range(1, 21):
        sheet.cell(row=row, column=1, value=f"Line {row}")
        sheet.cell(row=row, column=3, value=row * 1000.5)
    sheet["B5"] = "A label long enough to be truncated in the grid"
    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestPdfPageExtractRenderer:
    def test_extracts_single_page(self):
        snippet = PdfPageExtractRenderer().render(blank_pdf(3), 2, [])

        assert snippet.extension == "pdf"
        assert snippet.media_type == "application/pdf"
        assert len(PdfReader(BytesIO(snippet.content)).pages) == 1

    @pytest.mark.parametrize("page", [0, 3])
    def test_page_out_of_bounds(self, page):
        with pytest.raises(SnippetRenderError, match="out of bounds"):
            PdfPageExtractRenderer().render(blank_pdf(2), page, [])

    def test_not_a_pdf(self):
        with pytest.raises(SnippetRenderError):
            PdfPageExtractRenderer().render(b"plain text", 1, [])


class TestPdfScreenshotRenderer:
    def test_page_out_of_bounds(self):
        with pytest.raises(SnippetRenderError, match="out of bounds"):
            PdfScreenshotRenderer().render(blank_pdf(1), 4, [])

    def test_not_a_pdf(self):
        with pytest.raises(SnippetRenderError):
            PdfScreenshotRenderer().render(b"plain text", 1, [])


class TestExcelCellRenderer:
    def test_renders_grid_around_cell(self):
        renderer = ExcelCellRenderer(padding=2, cell_width=100, cell_height=20)

        snippet = renderer.render(budget_workbook(), "P&L", "c5")

        assert snippet.extension == "png"
        assert snippet.content.startswith(PNG_SIGNATURE)
        image = Image.open(BytesIO(snippet.content))
        # rows 3-7 plus the header row; columns A-C plus the row number column
        assert image.size == (40 + 3 * 100, 6 * 20)

    def test_missing_sheet(self):
        with pytest.raises(SnippetRenderError, match="Sheet Cash not found"):
            ExcelCellRenderer().render(budget_workbook(), "Cash", "C5")

    def test_invalid_cell(self):
        with pytest.raises(SnippetRenderError, match="Invalid cell address"):
            ExcelCellRenderer().render(budget_workbook(), "P&L", "5C")

    def test_not_a_workbook(self):
        with pytest.raises(SnippetRenderError):
            ExcelCellRenderer().render(b"not a workbook", "P&L", "C5")

    def test_truncates_long_values(self):
        assert ExcelCellRenderer(max_chars=10)._format_value("abcdefghijklmnop") == "abcdefg..."
        assert ExcelCellRenderer()._format_value(1234567) == "1,234,567"
        assert ExcelCellRenderer()._format_value(0.5) == "0.50"
        assert ExcelCellRenderer()._format_value(None) == ""
