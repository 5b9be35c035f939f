"""Extraction of structured financials from source documents.

The pipeline treats extraction as an opaque, possibly nondeterministic
collaborator. ``LLMExtractionOracle`` reads the document text
deterministically (pdfplumber for PDFs, openpyxl for workbooks), asks a chat
model for the financial summary and line items, then validates the merged
payload into a typed ``ExtractionResult``.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from datetime import date, datetime
from io import BytesIO
from typing import Any, Dict, List, Optional, Union

import openpyxl
import pdfplumber

from financials.core.base_llm_client import BaseLLMClient
from financials.core.exceptions import ExtractionError, ExtractionValidationError
from financials.models.extraction import (
    PdfExtraction,
    XlsxExtraction,
    parse_extraction_result,
)
from financials.models.facts import FileType
from financials.models.guide import CompanyGuide
from financials.services.extraction.file_loader import LoadedFile
from financials.utils.json_parser import parse_json_object
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

SYSTEM_INSTRUCTION = (
    "You extract financial figures from portfolio company reports. "
    "Respond with a single JSON object only."
)

RESPONSE_SHAPE = {
    "financial_summary": {
        "period": "reporting period label, e.g. 'March 2024' or 'Q1 2024'",
        "period_type": "month | quarter | year",
        "currency": "ISO currency code",
        "actuals": {"<metric label>": "<number>"},
        "budget": {"<metric label>": "<number>"},
        "forecast": {"<metric label>": "<number>"},
        "variance_explanations": [
            {
                "metric_id": "<metric label>",
                "explanation": "<why the value moved>",
                "explanation_type": "restatement | correction | one_time | forecast_revision | commentary | other",
                "period": "<optional period label>",
            }
        ],
    },
    "line_items": [
        {
            "label": "<row label as printed>",
            "value": "<number as printed>",
            "scenario": "actual | budget | forecast",
            "period": "<optional period label>",
            "location": {"page": "<pdf page number>", "sheet": "<sheet name>", "cell": "<A1 address>"},
        }
    ],
    "notes": "<anything a reviewer should know>",
}


class ExtractionOracle(ABC):
    """Turns a loaded file into a validated extraction result."""

    @abstractmethod
    async def extract(
        self, loaded_file: LoadedFile, guide: CompanyGuide
    ) -> Union[PdfExtraction, XlsxExtraction]:
        """Extract structured financials.

        Raises:
            ExtractionError: If the document cannot be read or the model fails
            ExtractionValidationError: If the model output has the wrong shape
            APIClientError: If the model endpoint fails after retries
        """


class LLMExtractionOracle(ExtractionOracle):
    """Extraction through an OpenAI-compatible chat completion endpoint."""

    def __init__(self, client: BaseLLMClient, max_document_chars: int = 60000):
        self.client = client
        self.max_document_chars = max_document_chars

    async def extract(
        self, loaded_file: LoadedFile, guide: CompanyGuide
    ) -> Union[PdfExtraction, XlsxExtraction]:
        if loaded_file.file_type == FileType.PDF:
            # pdfplumber and openpyxl parsing is CPU-bound; keep it off the event loop
            pages = await asyncio.to_thread(read_pdf_pages, loaded_file.content)
            document_text = "\n\n".join(
                f"--- Page {page['page_number']} ---\n{page['text']}" for page in pages
            )
            structure: Dict[str, Any] = {"pages": pages, "page_count": max(len(pages), 1)}
        else:
            sheets = await asyncio.to_thread(read_workbook_cells, loaded_file.content)
            document_text = "\n\n".join(_render_sheet(sheet) for sheet in sheets)
            structure = {"sheets": sheets, "page_count": max(len(sheets), 1)}

        prompt = self._build_prompt(loaded_file, guide, document_text)

        LOGGER.info(
            f"Requesting extraction for {loaded_file.filename}",
            extra={"file_type": loaded_file.file_type.value, "prompt_chars": len(prompt)},
        )
        response_text = await self.client.generate_content(prompt, system_instruction=SYSTEM_INSTRUCTION)

        payload = parse_json_object(response_text)
        if payload is None:
            raise ExtractionValidationError(f"Extraction model returned no JSON object for {loaded_file.filename}")

        payload.update(structure)
        payload["file_type"] = loaded_file.file_type.value
        payload["filename"] = loaded_file.filename
        payload["extraction_method"] = "llm"

        result = parse_extraction_result(payload)
        LOGGER.info(
            f"Extracted {len(result.line_items)} line items from {loaded_file.filename}",
            extra={"period": result.reported_period},
        )
        return result

    def _build_prompt(self, loaded_file: LoadedFile, guide: CompanyGuide, document_text: str) -> str:
        if len(document_text) > self.max_document_chars:
            LOGGER.warning(
                f"Truncating {loaded_file.filename} from {len(document_text)} to {self.max_document_chars} chars"
            )
            document_text = document_text[: self.max_document_chars]

        synonyms = {metric_id: labels for metric_id, labels in guide.metric_synonyms.items() if labels}
        return (
            f"Company: {guide.company_metadata.name} (reporting currency {guide.currency})\n"
            f"File: {loaded_file.filename}\n\n"
            f"Known metric labels:\n{json.dumps(synonyms, indent=2)}\n\n"
            f"Return JSON with this shape:\n{json.dumps(RESPONSE_SHAPE, indent=2)}\n\n"
            f"Document:\n{document_text}"
        )


def read_pdf_pages(content: bytes) -> List[Dict[str, Any]]:
    """Plain text of every page, 1-indexed.

    Raises:
        ExtractionError: If the bytes are not a readable PDF
    """
    try:
        with pdfplumber.open(BytesIO(content)) as pdf:
            return [
                {"page_number": page_number, "text": page.extract_text() or ""}
                for page_number, page in enumerate(pdf.pages, start=1)
            ]
    except Exception as e:
        raise ExtractionError(f"Failed to read PDF: {e}", original_error=e)


def read_workbook_cells(content: bytes) -> List[Dict[str, Any]]:
    """Non-empty cells of every sheet keyed by A1 address.

    Raises:
        ExtractionError: If the bytes are not a readable workbook
    """
    try:
        workbook = openpyxl.load_workbook(BytesIO(content), data_only=True, read_only=True)
    except Exception as e:
        raise ExtractionError(f"Failed to read workbook: {e}", original_error=e)

    try:
        sheets = []
        for worksheet in workbook.worksheets:
            cells: Dict[str, Any] = {}
            for row in worksheet.iter_rows():
                for cell in row:
                    value = getattr(cell, "value", None)
                    if value is None or not hasattr(cell, "coordinate"):
                        continue
                    cells[cell.coordinate] = _cell_value(value)
            sheets.append({"name": worksheet.title, "cells": cells})
        return sheets
    finally:
        workbook.close()


def _cell_value(value: Any) -> Optional[Union[float, int, str, bool]]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (int, float, str, bool)):
        return value
    return str(value)


def _render_sheet(sheet: Dict[str, Any]) -> str:
    lines = [f"--- Sheet {sheet['name']} ---"]
    lines.extend(f"{address}: {value}" for address, value in sheet["cells"].items())
    return "\n".join(lines)
