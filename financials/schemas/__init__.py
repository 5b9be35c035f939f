from .common import ApiResponse, ErrorDetail, HealthCheckResponse, ResponseMeta
from .ingestion import (
    BatchSummary,
    FileResult,
    IngestionRequest,
    IngestionResponse,
    ReconciliationReport,
)

__all__ = [
    "ApiResponse",
    "BatchSummary",
    "ErrorDetail",
    "FileResult",
    "HealthCheckResponse",
    "IngestionRequest",
    "IngestionResponse",
    "ReconciliationReport",
    "ResponseMeta",
]
