"""Renderers producing audit snippets for source locations.

PDF pages are rendered to PNG with pdfplumber and the located values are
outlined. When page rendering is unavailable the page itself is extracted
into a standalone single-page PDF with pypdf. Spreadsheet locations are
drawn as a small grid around the target cell with Pillow.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from io import BytesIO
from typing import List, Optional

import openpyxl
import pdfplumber
from openpyxl.utils.cell import column_index_from_string, coordinate_from_string, get_column_letter
from openpyxl.utils.exceptions import CellCoordinatesException
from PIL import Image, ImageDraw, ImageFont
from pypdf import PdfReader, PdfWriter

from financials.core.exceptions import SnippetRenderError
from financials.models.facts import BoundingBox
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

HIGHLIGHT_STROKE = (59, 130, 246)
HIGHLIGHT_FILL = (230, 243, 255)
HEADER_FILL = (245, 245, 245)
GRID_COLOR = (221, 221, 221)
TEXT_COLOR = (33, 33, 33)


@dataclass(frozen=True)
class RenderedSnippet:
    content: bytes
    extension: str
    media_type: str


class PdfSnippetRenderer(ABC):
    """Strategy for rendering one PDF page with highlighted regions."""

    name = "pdf"

    @abstractmethod
    def render(self, content: bytes, page_number: int, bboxes: List[BoundingBox]) -> RenderedSnippet:
        """Render a page.

        Raises:
            SnippetRenderError: If the page cannot be rendered
        """


class PdfScreenshotRenderer(PdfSnippetRenderer):
    """Page screenshot with every located value outlined."""

    name = "screenshot"

    def __init__(self, scale: float = 2.0, max_width: int = 1400):
        self.scale = scale
        self.max_width = max_width

    def render(self, content: bytes, page_number: int, bboxes: List[BoundingBox]) -> RenderedSnippet:
        try:
            with pdfplumber.open(BytesIO(content)) as pdf:
                if page_number < 1 or page_number > len(pdf.pages):
                    raise SnippetRenderError(
                        f"Page {page_number} out of bounds (PDF has {len(pdf.pages)} pages)"
                    )
                page = pdf.pages[page_number - 1]
                page_image = page.to_image(resolution=int(72 * self.scale))
                rects = [(box.x0, box.y0, box.x1, box.y1) for box in bboxes]
                if rects:
                    page_image.draw_rects(
                        rects,
                        stroke=HIGHLIGHT_STROKE,
                        fill=HIGHLIGHT_FILL + (64,),
                        stroke_width=3,
                    )
                image = page_image.annotated
        except SnippetRenderError:
            raise
        except Exception as e:
            raise SnippetRenderError(f"Failed to render PDF page {page_number}: {e}", original_error=e)

        return RenderedSnippet(content=_to_png(image, self.max_width), extension="png", media_type="image/png")


class PdfPageExtractRenderer(PdfSnippetRenderer):
    """Standalone single-page PDF, used when page rendering fails."""

    name = "page_extract"

    def render(self, content: bytes, page_number: int, bboxes: List[BoundingBox]) -> RenderedSnippet:
        try:
            reader = PdfReader(BytesIO(content))
            if page_number < 1 or page_number > len(reader.pages):
                raise SnippetRenderError(
                    f"Page {page_number} out of bounds (PDF has {len(reader.pages)} pages)"
                )
            writer = PdfWriter()
            writer.add_page(reader.pages[page_number - 1])
            buffer = BytesIO()
            writer.write(buffer)
        except SnippetRenderError:
            raise
        except Exception as e:
            raise SnippetRenderError(f"Failed to extract PDF page {page_number}: {e}", original_error=e)

        return RenderedSnippet(content=buffer.getvalue(), extension="pdf", media_type="application/pdf")


class ExcelCellRenderer:
    """Grid image of the cells surrounding a target cell."""

    def __init__(self, padding: int = 5, cell_width: int = 110, cell_height: int = 24, max_chars: int = 16):
        self.padding = padding
        self.cell_width = cell_width
        self.cell_height = cell_height
        self.max_chars = max_chars

    def render(self, content: bytes, sheet_name: str, cell: str) -> RenderedSnippet:
        try:
            workbook = openpyxl.load_workbook(BytesIO(content), data_only=True)
        except Exception as e:
            raise SnippetRenderError(f"Failed to open workbook: {e}", original_error=e)

        if sheet_name not in workbook.sheetnames:
            raise SnippetRenderError(f"Sheet {sheet_name} not found")
        worksheet = workbook[sheet_name]

        try:
            column_letter, target_row = coordinate_from_string(cell.upper())
            target_col = column_index_from_string(column_letter)
        except (CellCoordinatesException, ValueError) as e:
            raise SnippetRenderError(f"Invalid cell address {cell!r}", original_error=e)

        start_row = max(worksheet.min_row, target_row - self.padding)
        end_row = max(start_row, min(worksheet.max_row, target_row + self.padding))
        start_col = max(worksheet.min_column, target_col - self.padding)
        end_col = max(start_col, min(worksheet.max_column, target_col + self.padding))

        header_width = 40
        width = header_width + (end_col - start_col + 1) * self.cell_width
        height = (end_row - start_row + 2) * self.cell_height

        image = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(image)
        font = ImageFont.load_default()

        # Column letters
        for col in range(start_col, end_col + 1):
            x = header_width + (col - start_col) * self.cell_width
            self._draw_cell(draw, font, x, 0, self.cell_width, get_column_letter(col), HEADER_FILL)

        for row in range(start_row, end_row + 1):
            y = (row - start_row + 1) * self.cell_height
            self._draw_cell(draw, font, 0, y, header_width, str(row), HEADER_FILL)
            for col in range(start_col, end_col + 1):
                x = header_width + (col - start_col) * self.cell_width
                value = worksheet.cell(row=row, column=col).value
                is_target = row == target_row and col == target_col
                self._draw_cell(
                    draw,
                    font,
                    x,
                    y,
                    self.cell_width,
                    self._format_value(value),
                    HIGHLIGHT_FILL if is_target else None,
                    outline=HIGHLIGHT_STROKE if is_target else None,
                )

        workbook.close()
        return RenderedSnippet(content=_to_png(image), extension="png", media_type="image/png")

    def _draw_cell(
        self,
        draw: ImageDraw.ImageDraw,
        font,
        x: int,
        y: int,
        width: int,
        text: str,
        fill: Optional[tuple] = None,
        outline: Optional[tuple] = None,
    ) -> None:
        box = (x, y, x + width - 1, y + self.cell_height - 1)
        draw.rectangle(box, fill=fill, outline=outline or GRID_COLOR, width=2 if outline else 1)
        draw.text((x + 4, y + 6), text, fill=TEXT_COLOR, font=font)

    def _format_value(self, value) -> str:
        if value is None:
            return ""
        if isinstance(value, float):
            text = f"{value:,.2f}"
        elif isinstance(value, int) and not isinstance(value, bool):
            text = f"{value:,}"
        else:
            text = str(value)
        if len(text) > self.max_chars:
            text = text[: self.max_chars - 3] + "..."
        return text


def _to_png(image: Image.Image, max_width: Optional[int] = None) -> bytes:
    if max_width and image.width > max_width:
        ratio = max_width / float(image.width)
        image = image.resize((max_width, int(image.height * ratio)))
    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGB")
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
