"""Storage contract for facts, metrics, extraction snapshots and caches."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

from pydantic import ValidationError as PydanticValidationError

from financials.models.facts import LineItemFact
from financials.models.metrics import ComputedMetric
from financials.models.storage import (
    CachedExtraction,
    ExtractionListing,
    ExtractionSnapshot,
    StoreSummary,
)
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


class FinancialsStore(ABC):
    """Append-only-per-key store used by the ingestion pipeline.

    Facts and metrics are keyed by (company, period) and replaced as a whole
    per period. Extraction snapshots are immutable and keyed by (company,
    filename, content hash); saving the same key again is a no-op. Cache
    entries are keyed by content hash only.
    """

    def __init__(self, snippet_url_prefix: str = "/api/v1/snippets"):
        self.snippet_url_prefix = snippet_url_prefix.rstrip("/")
        self.logger = LOGGER

    # Facts

    @abstractmethod
    async def load_facts(self, company_slug: str, period: str) -> List[LineItemFact]:
        """Facts for one period; missing or malformed history loads as empty.

        Raises:
            PersistenceError: If the backend cannot be read
        """

    @abstractmethod
    async def save_facts(self, company_slug: str, period: str, facts: List[LineItemFact]) -> None:
        """Replace the fact set of one period.

        Raises:
            PersistenceError: If the write fails
        """

    @abstractmethod
    async def list_fact_periods(self, company_slug: str) -> List[str]:
        """Periods with stored facts, ascending."""

    # Metrics

    @abstractmethod
    async def load_metrics(self, company_slug: str, period: str) -> List[ComputedMetric]:
        pass

    @abstractmethod
    async def save_metrics(self, company_slug: str, period: str, metrics: List[ComputedMetric]) -> None:
        """Replace the computed metrics of one period.

        Raises:
            PersistenceError: If the write fails
        """

    # Extraction snapshots

    @abstractmethod
    async def save_extraction(self, snapshot: ExtractionSnapshot) -> str:
        """Store a snapshot and return its location.

        A snapshot whose (company, filename, file hash) is already stored is
        not written again; the existing location is returned.

        Raises:
            PersistenceError: If the write fails
        """

    @abstractmethod
    async def load_latest_extraction(self, company_slug: str, filename: str) -> Optional[ExtractionSnapshot]:
        pass

    @abstractmethod
    async def list_extractions(self, company_slug: Optional[str] = None) -> List[ExtractionListing]:
        """Snapshot listings, newest first."""

    # Extraction cache

    @abstractmethod
    async def get_cached_extraction(self, file_hash: str) -> Optional[CachedExtraction]:
        pass

    @abstractmethod
    async def set_cached_extraction(self, file_hash: str, filename: str, result: Dict[str, Any]) -> None:
        pass

    # Snippets

    @abstractmethod
    async def save_snippet(self, company_slug: str, name: str, content: bytes) -> str:
        """Store rendered snippet bytes and return the URL that serves them."""

    @abstractmethod
    async def load_snippet(self, company_slug: str, name: str) -> Optional[bytes]:
        pass

    @abstractmethod
    async def summary(self) -> StoreSummary:
        pass

    def snippet_url(self, company_slug: str, name: str) -> str:
        return f"{self.snippet_url_prefix}/{quote(company_slug, safe='')}/{quote(name, safe='')}"


def parse_fact_records(records: Iterable[Any], source: str) -> List[LineItemFact]:
    """Validate stored fact records, skipping any that are malformed."""
    facts: List[LineItemFact] = []
    for record in records:
        try:
            facts.append(LineItemFact.model_validate(record))
        except PydanticValidationError as e:
            LOGGER.warning(
                f"Skipping malformed fact in {source}: {e.error_count()} validation error(s)"
            )
    return facts


def parse_metric_records(records: Iterable[Any], source: str) -> List[ComputedMetric]:
    metrics: List[ComputedMetric] = []
    for record in records:
        try:
            metrics.append(ComputedMetric.model_validate(record))
        except PydanticValidationError as e:
            LOGGER.warning(
                f"Skipping malformed metric in {source}: {e.error_count()} validation error(s)"
            )
    return metrics
