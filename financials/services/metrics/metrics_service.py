"""Derived metric computation from reconciled actual facts."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from financials.core.exceptions import ConfigurationError, FormulaError
from financials.models.facts import LineItemFact, Scenario, normalize_period
from financials.models.metrics import ComputedMetric, MetricDefinition
from financials.services.metrics.formula import evaluate_formula, formula_names
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

CALCULATION_VERSION = "1.0"


def load_metric_definitions(path: Union[str, Path]) -> List[MetricDefinition]:
    """Load metric definitions from a YAML file.

    The file holds a top-level ``metrics`` list. Each formula is validated
    up front so a broken definition fails at startup, not mid-ingestion.

    Args:
        path: Path to the YAML definitions file

    Returns:
        List of MetricDefinition

    Raises:
        ConfigurationError: If the file is missing or malformed
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Metric definitions not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid metric definitions file {path}", original_error=e)

    entries = raw.get("metrics", []) if isinstance(raw, dict) else raw
    definitions: List[MetricDefinition] = []
    for entry in entries or []:
        try:
            definition = MetricDefinition.model_validate(entry)
            unknown = formula_names(definition.formula) - set(definition.inputs)
        except (PydanticValidationError, FormulaError) as e:
            raise ConfigurationError(f"Invalid metric definition: {entry}", original_error=e)
        if unknown:
            raise ConfigurationError(
                f"Metric {definition.id} references undeclared inputs: {sorted(unknown)}"
            )
        definitions.append(definition)

    LOGGER.info(f"Loaded {len(definitions)} metric definitions from {path}")
    return definitions


def actual_facts_for_period(facts: Iterable[LineItemFact], period: str) -> Dict[str, float]:
    """Line item values for one period, actual scenario only."""
    period = normalize_period(period)
    return {
        fact.line_item_id: fact.amount
        for fact in facts
        if fact.scenario == Scenario.ACTUAL and fact.date == period
    }


class MetricsEngine:
    """Pure computation of derived metrics for one period.

    Attributes:
        definitions: Metric definitions to evaluate
    """

    def __init__(self, definitions: List[MetricDefinition]):
        self.definitions = definitions

    def compute(
        self,
        company_slug: str,
        period: str,
        facts: Dict[str, float],
        calculated_at: Optional[str] = None,
    ) -> List[ComputedMetric]:
        """Compute every metric whose inputs are all present.

        A metric with any missing input is omitted rather than computed with a
        substitute value. Division by zero and non-finite results are omitted
        as well.

        Args:
            company_slug: Company the facts belong to
            period: Period bucket (YYYY-MM-01)
            facts: Mapping of line_item_id to actual value for the period
            calculated_at: Optional timestamp recorded on each metric

        Returns:
            List of ComputedMetric in definition order
        """
        calculated_at = calculated_at or datetime.now(timezone.utc).isoformat()
        results: List[ComputedMetric] = []

        for definition in self.definitions:
            missing = [name for name in definition.inputs if name not in facts]
            if missing:
                LOGGER.debug(
                    f"Skipping metric {definition.id}: missing inputs {missing}",
                    extra={"company": company_slug, "period": period},
                )
                continue

            inputs = {name: facts[name] for name in definition.inputs}
            value = evaluate_formula(definition.formula, inputs)
            if value is None:
                LOGGER.debug(f"Metric {definition.id} produced no finite value for {period}")
                continue

            results.append(
                ComputedMetric(
                    metric_id=definition.id,
                    value=value,
                    unit=definition.unit,
                    period=period,
                    inputs=inputs,
                    calculation_version=CALCULATION_VERSION,
                    calculated_at=calculated_at,
                )
            )

        LOGGER.info(
            f"Computed {len(results)}/{len(self.definitions)} metrics for {company_slug} {period}"
        )
        return results
