from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    """Metadata attached to every API response."""

    timestamp: datetime = Field(..., description="Response creation time (UTC)")
    request_id: str = Field(..., description="Request correlation ID")
    api_version: str = Field("v1", description="API version")


class ApiResponse(BaseModel):
    """Standard response envelope."""

    status: bool = Field(..., description="Whether the operation succeeded")
    message: str = Field(..., description="Human-readable status message")
    data: Dict[str, Any] = Field(default_factory=dict, description="Response payload")
    meta: ResponseMeta


class ErrorDetail(BaseModel):
    """Problem details (RFC 7807) for failed requests."""

    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime


class HealthCheckResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Service status
        version: Application version
        service: Service name
        storage_backend: Configured persistence backend
    """

    status: str = Field(
        default="healthy",
        description="Service health status",
        examples=["healthy", "degraded"],
    )
    version: str = Field(..., description="Application version", examples=["0.1.0"])
    service: str = Field(..., description="Service name", examples=["Portfolio Financials"])
    storage_backend: str = Field(..., description="Persistence backend", examples=["local", "sql"])
