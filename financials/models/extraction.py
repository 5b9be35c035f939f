"""Typed shape of extraction oracle output.

The oracle returns loosely structured JSON. It is validated here into a
discriminated union over ``file_type`` before any pipeline stage reads it.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from financials.core.exceptions import ExtractionValidationError
from financials.models.facts import BoundingBox


class VarianceExplanation(BaseModel):
    """Source-document rationale for why a value moved."""

    metric_id: str
    explanation: str
    explanation_type: Literal[
        "restatement", "correction", "one_time", "forecast_revision", "commentary", "other"
    ] = "other"
    period: Optional[str] = None


class FinancialSummary(BaseModel):
    """Headline figures reported by the document."""

    model_config = ConfigDict(extra="ignore")

    actuals: Dict[str, Any] = Field(default_factory=dict)
    budget: Dict[str, Any] = Field(default_factory=dict)
    forecast: Dict[str, Any] = Field(default_factory=dict)
    key_metrics: Dict[str, Any] = Field(default_factory=dict)
    period: Optional[str] = None
    period_type: Optional[str] = None
    currency: Optional[str] = None
    business_model: Optional[str] = None
    variance_explanations: List[VarianceExplanation] = Field(default_factory=list)


class PdfItemLocation(BaseModel):
    page: Optional[int] = None
    bbox: Optional[BoundingBox] = None
    context: Optional[str] = None


class XlsxItemLocation(BaseModel):
    sheet: Optional[str] = None
    cell: Optional[str] = None
    context: Optional[str] = None


class RawPdfLineItem(BaseModel):
    """Line item as reported by the oracle for a PDF."""

    model_config = ConfigDict(extra="ignore")

    label: str
    value: Union[float, int, str, None] = None
    scenario: Optional[str] = None
    period: Optional[str] = None
    location: Optional[PdfItemLocation] = None


class RawXlsxLineItem(BaseModel):
    """Line item as reported by the oracle for a spreadsheet."""

    model_config = ConfigDict(extra="ignore")

    label: str
    value: Union[float, int, str, None] = None
    scenario: Optional[str] = None
    period: Optional[str] = None
    location: Optional[XlsxItemLocation] = None


class PdfPage(BaseModel):
    page_number: int
    text: str = ""


class XlsxSheet(BaseModel):
    name: str
    cells: Dict[str, Union[float, int, str, bool, None]] = Field(default_factory=dict)


class _BaseExtraction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filename: str
    page_count: int = 1
    financial_summary: FinancialSummary = Field(default_factory=FinancialSummary)
    extraction_method: Optional[str] = None
    notes: Optional[str] = None

    @property
    def reported_period(self) -> Optional[str]:
        return self.financial_summary.period

    @property
    def variance_explanations(self) -> List[VarianceExplanation]:
        return self.financial_summary.variance_explanations


class PdfExtraction(_BaseExtraction):
    file_type: Literal["pdf"] = "pdf"
    pages: List[PdfPage] = Field(default_factory=list)
    line_items: List[RawPdfLineItem] = Field(default_factory=list)

    def page_text(self, page_number: int) -> Optional[str]:
        for page in self.pages:
            if page.page_number == page_number:
                return page.text
        return None


class XlsxExtraction(_BaseExtraction):
    file_type: Literal["xlsx"] = "xlsx"
    sheets: List[XlsxSheet] = Field(default_factory=list)
    line_items: List[RawXlsxLineItem] = Field(default_factory=list)

    def get_sheet(self, name: Optional[str]) -> Optional[XlsxSheet]:
        if name is None:
            return self.sheets[0] if self.sheets else None
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None


ExtractionResult = Annotated[Union[PdfExtraction, XlsxExtraction], Field(discriminator="file_type")]

_EXTRACTION_ADAPTER = TypeAdapter(ExtractionResult)


def parse_extraction_result(payload: Any) -> Union[PdfExtraction, XlsxExtraction]:
    """Validate raw oracle or cache output into a typed extraction result.

    Args:
        payload: Parsed JSON (dict) or an already-typed extraction

    Returns:
        PdfExtraction or XlsxExtraction

    Raises:
        ExtractionValidationError: If the payload does not match either variant
    """
    if isinstance(payload, (PdfExtraction, XlsxExtraction)):
        return payload
    try:
        return _EXTRACTION_ADAPTER.validate_python(payload)
    except PydanticValidationError as e:
        raise ExtractionValidationError(
            f"Invalid extraction result: {e.error_count()} validation error(s)", original_error=e
        )


def dump_extraction_result(result: Union[PdfExtraction, XlsxExtraction]) -> Dict[str, Any]:
    """Serialize an extraction result into JSON-compatible data."""
    return result.model_dump(mode="json")
