from financials.services.metrics.formula import evaluate_formula
from financials.services.metrics.metrics_service import (
    MetricsEngine,
    actual_facts_for_period,
    load_metric_definitions,
)

__all__ = [
    "MetricsEngine",
    "actual_facts_for_period",
    "evaluate_formula",
    "load_metric_definitions",
]
