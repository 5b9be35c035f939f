"""Reconciliation outputs."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from financials.models.facts import LineItemFact


class ChangeRecord(BaseModel):
    """What a reconciliation run changed, for the caller's audit view."""

    timestamp: str
    line_item_id: str
    period: str
    scenario: str
    old_value: Optional[float] = None
    new_value: float
    reason: str
    source_file: str
    explanation: Optional[str] = None
    view_source_url: Optional[str] = None
    accepted: bool = True


class ConflictEntry(BaseModel):
    """Value disagreement that needs human review."""

    metric_id: str
    period: str
    scenario: str
    existing_value: float
    new_value: float
    existing_source: str
    new_source: str
    existing_explanation: Optional[str] = None
    new_explanation: Optional[str] = None
    severity: Literal["high", "medium", "low"]
    recommendation: Literal["use_new", "keep_existing", "manual_review"]


class ReconciliationSummary(BaseModel):
    inserted: int = 0
    updated: int = 0
    ignored: int = 0
    conflicts: int = 0


class ReconciliationResult(BaseModel):
    final_facts: List[LineItemFact] = Field(default_factory=list)
    changes: List[ChangeRecord] = Field(default_factory=list)
    conflicts: List[ConflictEntry] = Field(default_factory=list)
    summary: ReconciliationSummary = Field(default_factory=ReconciliationSummary)
