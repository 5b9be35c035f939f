"""Source authority scoring used to settle value disagreements.

A higher score wins. Board materials are the reference for actuals, budget
files are the reference for budget figures, and raw exports rank lowest.
"""

from pathlib import PurePosixPath
from typing import Dict, Optional

from financials.models.extraction import VarianceExplanation
from financials.models.facts import Scenario

BOARD_DECK = "board_deck"
INVESTOR_REPORT = "investor_report"
BUDGET_FILE = "budget_file"
FINANCIAL_MODEL = "financial_model"
RAW_EXPORT = "raw_export"
UNKNOWN = "unknown"

PRIORITY_MAP: Dict[str, int] = {
    BOARD_DECK: 100,
    INVESTOR_REPORT: 80,
    BUDGET_FILE: 60,
    FINANCIAL_MODEL: 40,
    RAW_EXPORT: 20,
    UNKNOWN: 10,
}

# Budget files outrank board decks for budget-scenario numbers
BUDGET_SCENARIO_PRIORITY = 120

EXPLANATION_BOOSTS: Dict[str, int] = {
    "restatement": 50,
    "correction": 40,
    "forecast_revision": 20,
    "one_time": 10,
    "commentary": 0,
    "other": 0,
}

_FILE_TYPE_KEYWORDS = (
    (BOARD_DECK, ("board", "deck", "presentation")),
    (INVESTOR_REPORT, ("investor", "report", "monthly")),
    (BUDGET_FILE, ("budget", "plan", "forecast")),
    (FINANCIAL_MODEL, ("model", "financials")),
)

_RAW_EXPORT_SUFFIXES = (".xlsx", ".xls", ".csv")


def detect_file_type(filename: str) -> str:
    """Classify a source file by its name.

    Args:
        filename: Source filename or path

    Returns:
        str: One of the PRIORITY_MAP keys
    """
    lower_name = PurePosixPath(filename or "").name.lower()

    for file_type, keywords in _FILE_TYPE_KEYWORDS:
        if any(keyword in lower_name for keyword in keywords):
            return file_type

    if lower_name.endswith(_RAW_EXPORT_SUFFIXES):
        return RAW_EXPORT

    return UNKNOWN


def file_priority(filename: str, scenario=None) -> int:
    """Base authority of a source file for a given scenario."""
    file_type = detect_file_type(filename)
    if file_type == BUDGET_FILE and Scenario.parse(scenario) == Scenario.BUDGET:
        return BUDGET_SCENARIO_PRIORITY
    return PRIORITY_MAP[file_type]


def explanation_priority_boost(explanation: Optional[VarianceExplanation]) -> int:
    """Extra authority granted by an accompanying variance explanation."""
    if explanation is None:
        return 0
    return EXPLANATION_BOOSTS.get(explanation.explanation_type, 0)
