"""Records held by the financials store."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from financials.models.facts import Scenario


class CachedExtraction(BaseModel):
    """Oracle output cached under the content hash of its source file."""

    file_hash: str
    filename: str
    cached_at: str
    result: Dict[str, Any]


class ExtractionSnapshot(BaseModel):
    """Immutable record of one extraction of one file version."""

    model_config = ConfigDict(frozen=True)

    company_slug: str
    filename: str
    file_hash: str
    extracted_at: str
    result: Dict[str, Any]
    line_items: List[Dict[str, Any]] = Field(default_factory=list)
    computed_metrics: List[Dict[str, Any]] = Field(default_factory=list)


class ExtractionListing(BaseModel):
    company: str
    filename: str
    extracted_at: str
    file_hash: str
    location: Optional[str] = None


class StoreSummary(BaseModel):
    extractions: int = 0
    facts: int = 0
    metrics: int = 0
    cache_entries: int = 0
    companies: List[str] = Field(default_factory=list)


class AddedItem(BaseModel):
    metric: str
    value: float


class ChangedItem(BaseModel):
    metric: str
    old_value: float
    new_value: float
    delta: float


class ExtractionDiff(BaseModel):
    """Actual-scenario differences between two extractions of one file."""

    added: List[AddedItem] = Field(default_factory=list)
    removed: List[AddedItem] = Field(default_factory=list)
    changed: List[ChangedItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)

    @classmethod
    def between(
        cls, old_line_items: List[Dict[str, Any]], new_line_items: List[Dict[str, Any]]
    ) -> "ExtractionDiff":
        old_values = _actual_values(old_line_items)
        new_values = _actual_values(new_line_items)

        diff = cls()
        for metric, new_value in new_values.items():
            if metric not in old_values:
                diff.added.append(AddedItem(metric=metric, value=new_value))
            elif old_values[metric] != new_value:
                diff.changed.append(
                    ChangedItem(
                        metric=metric,
                        old_value=old_values[metric],
                        new_value=new_value,
                        delta=new_value - old_values[metric],
                    )
                )
        for metric, old_value in old_values.items():
            if metric not in new_values:
                diff.removed.append(AddedItem(metric=metric, value=old_value))
        return diff


def _actual_values(line_items: List[Dict[str, Any]]) -> Dict[str, float]:
    values: Dict[str, float] = {}
    for item in line_items:
        if Scenario.parse(item.get("scenario")) != Scenario.ACTUAL:
            continue
        try:
            values[item["line_item_id"]] = float(item["amount"])
        except (KeyError, TypeError, ValueError):
            continue
    return values
