"""Domain models for the financials pipeline."""

from financials.models.extraction import (
    ExtractionResult,
    PdfExtraction,
    VarianceExplanation,
    XlsxExtraction,
    parse_extraction_result,
)
from financials.models.facts import (
    ChangeLogEntry,
    FileType,
    LineItemFact,
    Scenario,
    SourceLocation,
)
from financials.models.guide import CompanyGuide
from financials.models.metrics import ComputedMetric, MetricDefinition
from financials.models.reconciliation import (
    ChangeRecord,
    ConflictEntry,
    ReconciliationResult,
    ReconciliationSummary,
)

__all__ = [
    "ChangeLogEntry",
    "ChangeRecord",
    "CompanyGuide",
    "ComputedMetric",
    "ConflictEntry",
    "ExtractionResult",
    "FileType",
    "LineItemFact",
    "MetricDefinition",
    "PdfExtraction",
    "ReconciliationResult",
    "ReconciliationSummary",
    "Scenario",
    "SourceLocation",
    "VarianceExplanation",
    "XlsxExtraction",
    "parse_extraction_result",
]
