"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from financials.api.v1.endpoints import health
from financials.api.v1.router import api_router
from financials.core.config import settings
from financials.core.database import DatabaseClient, get_engine
from financials.core.exceptions import AppError, ConfigurationError
from financials.utils.logging import get_logger
from financials.utils.responses import create_error_detail

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Creates the relational tables when the SQL store is configured.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "storage_backend": settings.storage_backend,
        },
    )

    db_client = None
    if settings.storage_backend == "sql":
        db_client = DatabaseClient(
            get_engine(
                settings.database_url,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                echo=settings.database_echo,
            )
        )
        try:
            await db_client.connect()
            await db_client.create_tables()
        except Exception as e:
            # Continue startup; requests touching the store will report errors
            LOGGER.error("Failed to initialize database", exc_info=True, extra={"error": str(e)})

    yield

    LOGGER.info("Shutting down application")
    if db_client is not None:
        await db_client.disconnect()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Ingestion, reconciliation and metrics for portfolio company financials",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render uncaught application errors as problem details."""
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if isinstance(exc, ConfigurationError)
        else status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    LOGGER.error(f"Unhandled {type(exc).__name__}: {exc}", extra={"path": request.url.path})
    detail = create_error_detail(
        title=type(exc).__name__,
        status=status_code,
        detail=str(exc),
        request=request,
    )
    return JSONResponse(status_code=status_code, content=detail.model_dump(mode="json"))


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


app.include_router(health.router, tags=["Health"])
app.include_router(api_router, prefix=settings.api_v1_prefix)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "financials.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
