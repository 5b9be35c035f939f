from financials.services.reconciliation.priority import (
    detect_file_type,
    explanation_priority_boost,
    file_priority,
)
from financials.services.reconciliation.reconciliation_service import ReconciliationService

__all__ = [
    "ReconciliationService",
    "detect_file_type",
    "explanation_priority_boost",
    "file_priority",
]
