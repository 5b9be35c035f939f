"""Centralized dependency injection for the FastAPI application.

Collaborators are built once per process from ``settings`` and handed to the
endpoints through ``Depends``; tests replace them with
``app.dependency_overrides``.
"""

from functools import lru_cache
from typing import Annotated, List

from fastapi import Depends

from financials.core.base_llm_client import BaseLLMClient
from financials.core.config import Settings, settings
from financials.core.database import build_session_maker, get_engine
from financials.core.exceptions import ConfigurationError
from financials.models.metrics import MetricDefinition
from financials.repositories import (
    FinancialsStore,
    InMemoryFinancialsStore,
    LocalFileStore,
    SqlFinancialsStore,
)
from financials.services.extraction.file_loader import FileLoader
from financials.services.extraction.oracle import ExtractionOracle, LLMExtractionOracle
from financials.services.guide_loader import GuideLoader
from financials.services.ingestion_service import IngestionService
from financials.services.line_item_canonicalizer import LineItemCanonicalizer
from financials.services.metrics import load_metric_definitions
from financials.services.period_resolver import PeriodResolver
from financials.services.reconciliation import ReconciliationService
from financials.services.schema_mapper import SchemaMapper
from financials.services.snippets.renderers import (
    ExcelCellRenderer,
    PdfPageExtractRenderer,
    PdfScreenshotRenderer,
)
from financials.services.snippets.snippet_service import SnippetService
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


def build_store(app_settings: Settings) -> FinancialsStore:
    """Create the configured persistence backend.

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    backend = app_settings.storage_backend.lower()
    prefix = app_settings.storage.snippet_url_prefix

    if backend == "local":
        return LocalFileStore(app_settings.storage.local_data_dir, snippet_url_prefix=prefix)
    if backend == "sql":
        engine = get_engine(
            app_settings.database_url,
            pool_size=app_settings.database_pool_size,
            max_overflow=app_settings.database_max_overflow,
            echo=app_settings.database_echo,
        )
        return SqlFinancialsStore(build_session_maker(engine), snippet_url_prefix=prefix)
    if backend == "memory":
        LOGGER.warning("Using in-memory store; data is lost on restart")
        return InMemoryFinancialsStore(snippet_url_prefix=prefix)

    raise ConfigurationError(f"Unknown storage backend: {app_settings.storage_backend}")


@lru_cache
def get_store() -> FinancialsStore:
    """Get the process-wide financials store."""
    return build_store(settings)


@lru_cache
def get_guide_loader() -> GuideLoader:
    return GuideLoader(settings.pipeline.guides_dir)


@lru_cache
def get_metric_definitions() -> List[MetricDefinition]:
    return load_metric_definitions(settings.pipeline.metrics_definitions_path)


@lru_cache
def get_oracle() -> ExtractionOracle:
    """Get the LLM-backed extraction oracle."""
    client = BaseLLMClient(
        api_key=settings.llm.api_key,
        base_url=settings.llm.api_url,
        model=settings.llm.model,
        timeout=settings.llm.timeout,
        max_retries=settings.llm.max_retries,
        retry_delay=settings.llm.retry_delay,
    )
    return LLMExtractionOracle(client, max_document_chars=settings.llm.max_document_chars)


async def get_ingestion_service(
    store: Annotated[FinancialsStore, Depends(get_store)],
    oracle: Annotated[ExtractionOracle, Depends(get_oracle)],
    guide_loader: Annotated[GuideLoader, Depends(get_guide_loader)],
    metric_definitions: Annotated[List[MetricDefinition], Depends(get_metric_definitions)],
) -> IngestionService:
    """Get an ingestion service wired from settings.

    Args:
        store: Persistence backend
        oracle: Extraction oracle
        guide_loader: Company guide loader
        metric_definitions: Derived metric definitions

    Returns:
        IngestionService: Pipeline for one ingestion request
    """
    pipeline = settings.pipeline
    canonicalizer = LineItemCanonicalizer(fuzzy_threshold=pipeline.fuzzy_match_threshold)
    period_resolver = PeriodResolver()

    return IngestionService(
        store=store,
        oracle=oracle,
        guide_loader=guide_loader,
        metric_definitions=metric_definitions,
        file_loader=FileLoader(timeout=settings.http_timeout),
        period_resolver=period_resolver,
        canonicalizer=canonicalizer,
        schema_mapper=SchemaMapper(canonicalizer, period_resolver),
        snippet_service=SnippetService(
            store,
            pdf_renderers=[
                PdfScreenshotRenderer(scale=pipeline.snippet_scale, max_width=pipeline.snippet_max_width),
                PdfPageExtractRenderer(),
            ],
            excel_renderer=ExcelCellRenderer(),
            enabled=pipeline.snippets_enabled,
        ),
        reconciliation_service=ReconciliationService(
            rel_tolerance=pipeline.equality_rel_tolerance,
            abs_tolerance=pipeline.equality_abs_tolerance,
            variance_threshold=pipeline.conflict_variance_threshold,
        ),
        default_company_slug=pipeline.default_company_slug,
    )
