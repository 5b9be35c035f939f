"""Metric definitions and computed metric records."""

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class MetricDefinition(BaseModel):
    """A derived metric expressed as a formula over line item ids."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    name: Optional[str] = None
    formula: str
    inputs: List[str]
    unit: str = "unknown"
    category: Optional[str] = None


class ComputedMetric(BaseModel):
    """Value of one metric for one period."""

    model_config = ConfigDict(frozen=True)

    metric_id: str
    value: float
    unit: str
    period: str
    inputs: Dict[str, float] = Field(default_factory=dict)
    calculation_version: str = "1.0"
    calculated_at: Optional[str] = None
