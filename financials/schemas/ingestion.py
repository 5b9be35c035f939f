from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from financials.models.extraction import VarianceExplanation
from financials.models.facts import LineItemFact
from financials.models.metrics import ComputedMetric
from financials.models.reconciliation import ChangeRecord, ConflictEntry, ReconciliationSummary
from financials.models.storage import ExtractionDiff


class IngestionRequest(BaseModel):
    """Request model for ingesting a batch of source documents."""

    model_config = ConfigDict(populate_by_name=True)

    company_slug: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("company_slug", "companySlug"),
        description="Company the documents belong to; defaults to the configured company",
    )
    file_paths: List[str] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("file_paths", "filePaths"),
        description="Local paths or http(s) URLs of PDF and Excel documents",
    )
    use_cache: bool = Field(
        True,
        validation_alias=AliasChoices("use_cache", "useCache"),
        description="Reuse extractions of byte-identical files",
    )
    force_reextract: bool = Field(
        False,
        validation_alias=AliasChoices("force_reextract", "forceReextract"),
        description="Ignore cached extractions for this request",
    )


class ReconciliationReport(BaseModel):
    """Reconciliation outcome for one file, across every period it touched."""

    summary: ReconciliationSummary = Field(default_factory=ReconciliationSummary)
    changes: List[ChangeRecord] = Field(default_factory=list)
    conflicts: List[ConflictEntry] = Field(default_factory=list)


class FileResult(BaseModel):
    """Outcome of ingesting one file."""

    file: str = Field(..., description="Filename, or the requested path when loading failed")
    status: Literal["success", "needs_review", "error"]
    period: Optional[str] = Field(None, description="Resolved period (YYYY-MM-01)")
    period_source: Optional[Literal["reported", "filename", "fallback"]] = None
    file_type: Optional[str] = None
    priority: Optional[int] = Field(None, description="Source priority derived from the filename")
    used_cache: bool = False
    line_items_found: int = 0
    metrics_computed: int = 0
    reconciliation: Optional[ReconciliationReport] = None
    extracted_data: List[LineItemFact] = Field(default_factory=list)
    computed_metrics: List[ComputedMetric] = Field(default_factory=list)
    variance_explanations: List[VarianceExplanation] = Field(default_factory=list)
    diff: Optional[ExtractionDiff] = Field(None, description="Comparison with the prior extraction of this file")
    snapshot_location: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class BatchSummary(BaseModel):
    total: int = 0
    success: int = 0
    error: int = 0
    cached: int = 0


class IngestionResponse(BaseModel):
    """Result of an ingestion batch."""

    status: Literal["success", "partial", "error"]
    company: str
    guide_used: bool = Field(..., description="Whether a company guide was found")
    summary: BatchSummary
    results: List[FileResult] = Field(default_factory=list)
