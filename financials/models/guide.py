"""Per-company guide describing how to read its financial documents."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CompanyMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    domain: Optional[str] = None
    aliases: List[str] = Field(default_factory=list)
    currency: str = "USD"
    fiscal_year_end: Optional[str] = None
    business_models: List[str] = Field(default_factory=list)


class LineItemMapping(BaseModel):
    """Deterministic rule locating a line item in a source document."""

    model_config = ConfigDict(extra="ignore")

    source: str = "financials"
    sheet: Optional[str] = None
    cell: Optional[str] = None
    range_start: Optional[str] = None
    label_match: Optional[str] = None
    anchor_text: Optional[List[str]] = None
    table_key: Optional[str] = None

    @property
    def target_cell(self) -> Optional[str]:
        return self.cell or self.range_start


class KpiTable(BaseModel):
    model_config = ConfigDict(extra="ignore")

    anchor_text: List[str] = Field(default_factory=list)
    metric_rows: Dict[str, str] = Field(default_factory=dict)


class DocumentTemplate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kpi_tables: Dict[str, KpiTable] = Field(default_factory=dict)


class CompanyGuide(BaseModel):
    """Read-only configuration for one portfolio company."""

    model_config = ConfigDict(extra="ignore")

    slug: str
    company_metadata: CompanyMetadata
    metric_synonyms: Dict[str, List[str]] = Field(default_factory=dict)
    line_item_rules: Dict[str, LineItemMapping] = Field(default_factory=dict)
    document_structure: Dict[str, DocumentTemplate] = Field(default_factory=dict)
    file_patterns: Dict[str, List[str]] = Field(default_factory=dict)
    source_docs: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def currency(self) -> str:
        return self.company_metadata.currency

    @classmethod
    def default(cls, slug: str) -> "CompanyGuide":
        """Empty guide used when a company has no configuration yet."""
        return cls(slug=slug, company_metadata=CompanyMetadata(name=slug))
