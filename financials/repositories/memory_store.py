"""Process-local store, used for tests and ephemeral runs."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from financials.models.facts import LineItemFact
from financials.models.metrics import ComputedMetric
from financials.models.storage import (
    CachedExtraction,
    ExtractionListing,
    ExtractionSnapshot,
    StoreSummary,
)
from financials.repositories.base import FinancialsStore


class InMemoryFinancialsStore(FinancialsStore):
    """Dictionary-backed implementation of the store contract."""

    def __init__(self, snippet_url_prefix: str = "/api/v1/snippets"):
        super().__init__(snippet_url_prefix)
        self.facts: Dict[Tuple[str, str], List[LineItemFact]] = {}
        self.metrics: Dict[Tuple[str, str], List[ComputedMetric]] = {}
        self.extractions: List[ExtractionSnapshot] = []
        self.cache: Dict[str, CachedExtraction] = {}
        self.snippets: Dict[Tuple[str, str], bytes] = {}

    async def load_facts(self, company_slug: str, period: str) -> List[LineItemFact]:
        return list(self.facts.get((company_slug, period), []))

    async def save_facts(self, company_slug: str, period: str, facts: List[LineItemFact]) -> None:
        self.facts[(company_slug, period)] = list(facts)

    async def list_fact_periods(self, company_slug: str) -> List[str]:
        return sorted(period for company, period in self.facts if company == company_slug)

    async def load_metrics(self, company_slug: str, period: str) -> List[ComputedMetric]:
        return list(self.metrics.get((company_slug, period), []))

    async def save_metrics(self, company_slug: str, period: str, metrics: List[ComputedMetric]) -> None:
        self.metrics[(company_slug, period)] = list(metrics)

    async def save_extraction(self, snapshot: ExtractionSnapshot) -> str:
        for index, stored in enumerate(self.extractions):
            if (stored.company_slug, stored.filename, stored.file_hash) == (
                snapshot.company_slug,
                snapshot.filename,
                snapshot.file_hash,
            ):
                return f"memory://extractions/{stored.company_slug}/{index + 1}"
        self.extractions.append(snapshot)
        return f"memory://extractions/{snapshot.company_slug}/{len(self.extractions)}"

    async def load_latest_extraction(self, company_slug: str, filename: str) -> Optional[ExtractionSnapshot]:
        for snapshot in reversed(self.extractions):
            if snapshot.company_slug == company_slug and snapshot.filename == filename:
                return snapshot
        return None

    async def list_extractions(self, company_slug: Optional[str] = None) -> List[ExtractionListing]:
        listings = [
            ExtractionListing(
                company=snapshot.company_slug,
                filename=snapshot.filename,
                extracted_at=snapshot.extracted_at,
                file_hash=snapshot.file_hash,
                location=f"memory://extractions/{snapshot.company_slug}/{index + 1}",
            )
            for index, snapshot in enumerate(self.extractions)
            if company_slug is None or snapshot.company_slug == company_slug
        ]
        return sorted(listings, key=lambda listing: listing.extracted_at, reverse=True)

    async def get_cached_extraction(self, file_hash: str) -> Optional[CachedExtraction]:
        return self.cache.get(file_hash)

    async def set_cached_extraction(self, file_hash: str, filename: str, result: Dict[str, Any]) -> None:
        self.cache[file_hash] = CachedExtraction(
            file_hash=file_hash,
            filename=filename,
            cached_at=datetime.now(timezone.utc).isoformat(),
            result=result,
        )

    async def save_snippet(self, company_slug: str, name: str, content: bytes) -> str:
        self.snippets[(company_slug, name)] = content
        return self.snippet_url(company_slug, name)

    async def load_snippet(self, company_slug: str, name: str) -> Optional[bytes]:
        return self.snippets.get((company_slug, name))

    async def summary(self) -> StoreSummary:
        companies = {company for company, _ in self.facts}
        companies.update(company for company, _ in self.metrics)
        companies.update(snapshot.company_slug for snapshot in self.extractions)
        return StoreSummary(
            extractions=len(self.extractions),
            facts=len(self.facts),
            metrics=len(self.metrics),
            cache_entries=len(self.cache),
            companies=sorted(companies),
        )
