"""Health check API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends

from financials.core.config import settings
from financials.dependencies import get_store
from financials.repositories.base import FinancialsStore
from financials.schemas.common import HealthCheckResponse
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="Check if the service and its store are reachable",
    operation_id="get_service_health_status",
)
async def health_check(
    store: Annotated[FinancialsStore, Depends(get_store)],
) -> HealthCheckResponse:
    """Health check endpoint."""
    healthy = True
    try:
        await store.summary()
    except Exception as e:
        LOGGER.warning(f"Store health check failed: {e}")
        healthy = False

    return HealthCheckResponse(
        status="healthy" if healthy else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        storage_backend=settings.storage_backend,
    )
