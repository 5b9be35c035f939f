"""Domain models for line item facts and their audit history.

Facts are immutable: every pipeline stage returns new records built with
``model_copy(update=...)`` instead of mutating a shared instance.
"""

from datetime import date as date_type
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FileType(str, Enum):
    """Supported source document types."""

    PDF = "pdf"
    XLSX = "xlsx"


class Scenario(str, Enum):
    """Classification of a financial value."""

    ACTUAL = "actual"
    BUDGET = "budget"
    FORECAST = "forecast"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Scenario":
        """Parse a scenario label case-insensitively, defaulting to actual."""
        if isinstance(value, Scenario):
            return value
        if not value:
            return cls.ACTUAL
        normalized = str(value).strip().lower()
        aliases = {
            "actuals": cls.ACTUAL,
            "budgets": cls.BUDGET,
            "plan": cls.BUDGET,
            "forecasts": cls.FORECAST,
            "reforecast": cls.FORECAST,
        }
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return cls.ACTUAL


def normalize_period(value: str) -> str:
    """Coerce an ISO date string onto the first day of its month.

    Raises:
        ValueError: If the value is not an ISO ``YYYY-MM`` or ``YYYY-MM-DD`` date
    """
    text = str(value).strip()
    if len(text) == 7:
        text = f"{text}-01"
    parsed = date_type.fromisoformat(text[:10])
    return parsed.replace(day=1).isoformat()


class BoundingBox(BaseModel):
    """Bounding box in PDF points."""

    model_config = ConfigDict(frozen=True)

    x0: float
    y0: float
    x1: float
    y1: float


class SourceLocation(BaseModel):
    """Where in the source document a value was read from."""

    model_config = ConfigDict(frozen=True)

    file_type: FileType
    page: Optional[int] = Field(default=None, ge=1)
    bbox: Optional[BoundingBox] = None
    sheet: Optional[str] = None
    cell: Optional[str] = None
    context: Optional[str] = None

    def snippet_key(self, filename: str) -> Optional[str]:
        """Deduplication key for audit snippets, or None when unlocatable."""
        if self.file_type == FileType.PDF and self.page:
            return f"{filename}-p{self.page}"
        if self.file_type == FileType.XLSX and self.sheet and self.cell:
            return f"{filename}-{self.sheet}-{self.cell}"
        return None


class ChangeLogEntry(BaseModel):
    """One step in the history of a fact."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    old_value: Optional[float] = None
    new_value: float
    reason: str
    source_file: str
    explanation: Optional[str] = None
    view_source_url: Optional[str] = None
    accepted: bool = True


class LineItemFact(BaseModel):
    """A single (line_item_id, period, scenario) observation."""

    model_config = ConfigDict(frozen=True)

    line_item_id: str
    amount: float
    date: str
    scenario: Scenario = Scenario.ACTUAL
    source_file: str
    source_location: Optional[SourceLocation] = None
    snippet_url: Optional[str] = None
    explanation: Optional[str] = None
    priority: Optional[int] = None
    extracted_at: Optional[str] = None
    changelog: Tuple[ChangeLogEntry, ...] = ()

    @field_validator("date")
    @classmethod
    def _first_of_month(cls, value: str) -> str:
        return normalize_period(value)

    @field_validator("scenario", mode="before")
    @classmethod
    def _parse_scenario(cls, value) -> Scenario:
        return Scenario.parse(value)

    @property
    def key(self) -> Tuple[str, str, str]:
        """Identity of the fact within a company."""
        return (self.line_item_id, self.date, self.scenario.value)

    @property
    def period(self) -> str:
        return self.date
