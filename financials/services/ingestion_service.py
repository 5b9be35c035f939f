"""Ingestion of a batch of financial documents for one company.

Extraction runs concurrently across files (Phase A). Everything that touches
the shared per-period fact set runs one file at a time (Phase B), so each
file is reconciled against the state left by the file before it.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from financials.core.exceptions import AppError, GuideNotFoundError, ValidationError
from financials.models.extraction import (
    PdfExtraction,
    VarianceExplanation,
    XlsxExtraction,
    dump_extraction_result,
)
from financials.models.facts import LineItemFact
from financials.models.guide import CompanyGuide
from financials.models.metrics import ComputedMetric, MetricDefinition
from financials.models.storage import ExtractionDiff, ExtractionSnapshot
from financials.repositories.base import FinancialsStore
from financials.schemas.ingestion import (
    BatchSummary,
    FileResult,
    IngestionRequest,
    IngestionResponse,
    ReconciliationReport,
)
from financials.services.base_service import BaseService
from financials.services.extraction.cache import ExtractionCache
from financials.services.extraction.file_loader import FileLoader, LoadedFile
from financials.services.extraction.oracle import ExtractionOracle
from financials.services.guide_loader import GuideLoader
from financials.services.line_item_canonicalizer import LineItemCanonicalizer
from financials.services.metrics import MetricsEngine, actual_facts_for_period
from financials.services.period_resolver import PeriodResolver
from financials.services.reconciliation import ReconciliationService, file_priority
from financials.services.schema_mapper import SchemaMapper
from financials.services.snippets.snippet_service import SnippetService
from financials.utils.hashing import hash_content
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ExtractionOutcome:
    """Phase A result for one requested path."""

    path: str
    loaded_file: Optional[LoadedFile] = None
    file_hash: Optional[str] = None
    extraction: Optional[Union[PdfExtraction, XlsxExtraction]] = None
    used_cache: bool = False
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


class IngestionService(BaseService):
    """Runs the ingestion pipeline for a batch of files.

    Every collaborator is injected; the defaults build the standard pipeline
    around the given store and oracle.
    """

    def __init__(
        self,
        store: FinancialsStore,
        oracle: ExtractionOracle,
        guide_loader: GuideLoader,
        metric_definitions: List[MetricDefinition],
        file_loader: Optional[FileLoader] = None,
        cache: Optional[ExtractionCache] = None,
        period_resolver: Optional[PeriodResolver] = None,
        canonicalizer: Optional[LineItemCanonicalizer] = None,
        schema_mapper: Optional[SchemaMapper] = None,
        snippet_service: Optional[SnippetService] = None,
        reconciliation_service: Optional[ReconciliationService] = None,
        metrics_engine: Optional[MetricsEngine] = None,
        default_company_slug: str = "nelly",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__()
        self.store = store
        self.oracle = oracle
        self.guide_loader = guide_loader
        self.clock = clock or _utc_now
        self.file_loader = file_loader or FileLoader()
        self.cache = cache or ExtractionCache(store)
        self.period_resolver = period_resolver or PeriodResolver()
        self.canonicalizer = canonicalizer or LineItemCanonicalizer()
        self.schema_mapper = schema_mapper or SchemaMapper(self.canonicalizer, self.period_resolver)
        self.snippet_service = snippet_service or SnippetService(store)
        self.reconciliation_service = reconciliation_service or ReconciliationService(clock=self.clock)
        self.metrics_engine = metrics_engine or MetricsEngine(metric_definitions)
        self.default_company_slug = default_company_slug

    async def ingest(self, request: IngestionRequest) -> IngestionResponse:
        """Ingest every file in the request.

        Args:
            request: Company, file paths and cache options

        Returns:
            IngestionResponse with one FileResult per requested path

        Raises:
            ValidationError: If the request names no files
        """
        return await self.execute(request)

    def validate(self, request: IngestionRequest) -> None:
        if not request.file_paths:
            raise ValidationError("No files provided")

    async def run(self, request: IngestionRequest) -> IngestionResponse:
        company_slug = request.company_slug or self.default_company_slug
        guide, guide_used = self._load_guide(company_slug)

        LOGGER.info(
            f"Starting ingestion of {len(request.file_paths)} files for {company_slug}",
            extra={
                "use_cache": request.use_cache,
                "force_reextract": request.force_reextract,
                "guide_used": guide_used,
            },
        )

        # Phase A: extraction, concurrently
        outcomes = await asyncio.gather(
            *(self._extract(path, guide, request) for path in request.file_paths)
        )

        # Phase B: reconciliation against shared state, one file at a time
        results: List[FileResult] = []
        for outcome in outcomes:
            if outcome.error is not None:
                results.append(self._error_result(outcome, outcome.error))
                continue
            try:
                results.append(await self._process(company_slug, guide, outcome))
            except AppError as e:
                LOGGER.error(
                    f"Processing failed for {outcome.loaded_file.filename}: {e}",
                    extra={"company": company_slug, "error_type": type(e).__name__},
                )
                results.append(self._error_result(outcome, str(e)))
            except Exception as e:
                LOGGER.error(
                    f"Unexpected error processing {outcome.loaded_file.filename}",
                    exc_info=True,
                    extra={"company": company_slug},
                )
                results.append(self._error_result(outcome, f"Unexpected error: {e}"))

        response = IngestionResponse(
            status=self._batch_status(results),
            company=company_slug,
            guide_used=guide_used,
            summary=BatchSummary(
                total=len(results),
                success=sum(1 for result in results if result.status != "error"),
                error=sum(1 for result in results if result.status == "error"),
                cached=sum(1 for result in results if result.used_cache),
            ),
            results=results,
        )
        LOGGER.info(
            f"Ingestion finished for {company_slug}: {response.status}",
            extra=response.summary.model_dump(),
        )
        return response

    def _load_guide(self, company_slug: str) -> Tuple[CompanyGuide, bool]:
        try:
            return self.guide_loader.load(company_slug), True
        except GuideNotFoundError as e:
            LOGGER.warning(f"{e}; continuing with an empty guide")
            return CompanyGuide.default(company_slug), False

    async def _extract(
        self, path: str, guide: CompanyGuide, request: IngestionRequest
    ) -> ExtractionOutcome:
        """Load, fingerprint and extract one file, never raising."""
        outcome = ExtractionOutcome(path=path)
        try:
            loaded_file = await self.file_loader.load(path)
            outcome.loaded_file = loaded_file
            outcome.file_hash = hash_content(loaded_file.content)

            if request.use_cache and not request.force_reextract:
                cached = await self.cache.get(outcome.file_hash)
                if cached is not None:
                    # Same bytes may arrive under a different name
                    outcome.extraction = cached.model_copy(update={"filename": loaded_file.filename})
                    outcome.used_cache = True
                    return outcome

            outcome.extraction = await self.oracle.extract(loaded_file, guide)
            if request.use_cache:
                if not await self.cache.set(outcome.file_hash, loaded_file.filename, outcome.extraction):
                    outcome.warnings.append("Extraction cache write failed")
        except AppError as e:
            LOGGER.error(
                f"Extraction failed for {path}: {e}",
                extra={"error_type": type(e).__name__},
            )
            outcome.error = str(e)
        except Exception as e:
            LOGGER.error(f"Unexpected extraction error for {path}", exc_info=True)
            outcome.error = f"Unexpected error: {e}"
        return outcome

    async def _process(
        self, company_slug: str, guide: CompanyGuide, outcome: ExtractionOutcome
    ) -> FileResult:
        loaded_file = outcome.loaded_file
        extraction = outcome.extraction
        warnings = list(outcome.warnings)
        extracted_at = self.clock().isoformat()

        period, period_source = self.period_resolver.resolve_for_extraction(
            extraction.reported_period, loaded_file.filename
        )
        if period is None:
            period = PeriodResolver.fallback_period(self.clock().date())
            period_source = "fallback"
            warnings.append(f"Could not determine period; defaulted to {period}")
            LOGGER.warning(
                f"Period unresolvable for {loaded_file.filename}, using {period}",
                extra={"reported_period": extraction.reported_period},
            )

        facts = self.schema_mapper.map(
            loaded_file.file_type, extraction, guide, loaded_file.filename, period, extracted_at
        )
        facts, snippet_report = await self.snippet_service.generate(company_slug, loaded_file, facts)
        warnings.extend(snippet_report.warnings)

        explanations = self._canonical_explanations(extraction.variance_explanations, guide)
        report, final_facts, computed_metrics = await self._reconcile_and_persist(
            company_slug, facts, explanations
        )

        diff = await self._diff_with_previous(company_slug, loaded_file.filename, facts)
        snapshot = ExtractionSnapshot(
            company_slug=company_slug,
            filename=loaded_file.filename,
            file_hash=outcome.file_hash,
            extracted_at=extracted_at,
            result=dump_extraction_result(extraction),
            line_items=[fact.model_dump(mode="json") for fact in facts],
            computed_metrics=[metric.model_dump(mode="json") for metric in computed_metrics],
        )
        snapshot_location = await self.store.save_extraction(snapshot)

        status = "success" if facts else "needs_review"
        if not facts:
            warnings.append("No line items could be mapped from this file")

        LOGGER.info(
            f"Processed {loaded_file.filename}: {status}",
            extra={
                "period": period,
                "line_items": len(facts),
                "metrics": len(computed_metrics),
                **report.summary.model_dump(),
            },
        )

        return FileResult(
            file=loaded_file.filename,
            status=status,
            period=period,
            period_source=period_source,
            file_type=loaded_file.file_type.value,
            priority=file_priority(loaded_file.filename),
            used_cache=outcome.used_cache,
            line_items_found=len(facts),
            metrics_computed=len(computed_metrics),
            reconciliation=report,
            extracted_data=final_facts,
            computed_metrics=computed_metrics,
            variance_explanations=explanations,
            diff=diff,
            snapshot_location=snapshot_location,
            warnings=warnings,
        )

    async def _reconcile_and_persist(
        self,
        company_slug: str,
        facts: List[LineItemFact],
        explanations: List[VarianceExplanation],
    ) -> Tuple[ReconciliationReport, List[LineItemFact], List[ComputedMetric]]:
        """Reconcile and save facts and metrics for every period the file touches."""
        facts_by_period: Dict[str, List[LineItemFact]] = {}
        for fact in facts:
            facts_by_period.setdefault(fact.date, []).append(fact)

        report = ReconciliationReport()
        final_by_key: Dict[Tuple[str, str, str], LineItemFact] = {}
        computed_metrics: List[ComputedMetric] = []

        for period in sorted(facts_by_period):
            existing = await self.store.load_facts(company_slug, period)
            result = self.reconciliation_service.reconcile(facts_by_period[period], existing, explanations)
            await self.store.save_facts(company_slug, period, result.final_facts)

            report.changes.extend(result.changes)
            report.conflicts.extend(result.conflicts)
            report.summary.inserted += result.summary.inserted
            report.summary.updated += result.summary.updated
            report.summary.ignored += result.summary.ignored
            report.summary.conflicts += result.summary.conflicts
            for fact in result.final_facts:
                final_by_key[fact.key] = fact

            metrics = self.metrics_engine.compute(
                company_slug,
                period,
                actual_facts_for_period(result.final_facts, period),
                calculated_at=self.clock().isoformat(),
            )
            await self.store.save_metrics(company_slug, period, metrics)
            computed_metrics.extend(metrics)

        # Authoritative state of the keys this file reported, in mapping order
        final_facts: List[LineItemFact] = []
        seen = set()
        for fact in facts:
            if fact.key in seen or fact.key not in final_by_key:
                continue
            seen.add(fact.key)
            final_facts.append(final_by_key[fact.key])

        return report, final_facts, computed_metrics

    async def _diff_with_previous(
        self, company_slug: str, filename: str, facts: List[LineItemFact]
    ) -> Optional[ExtractionDiff]:
        previous = await self.store.load_latest_extraction(company_slug, filename)
        if previous is None:
            return None
        return ExtractionDiff.between(
            previous.line_items, [fact.model_dump(mode="json") for fact in facts]
        )

    def _canonical_explanations(
        self, explanations: List[VarianceExplanation], guide: CompanyGuide
    ) -> List[VarianceExplanation]:
        canonical = []
        for explanation in explanations:
            metric_id = self.canonicalizer.canonicalize(explanation.metric_id, guide)
            if not metric_id:
                continue
            canonical.append(explanation.model_copy(update={"metric_id": metric_id}))
        return canonical

    @staticmethod
    def _error_result(outcome: ExtractionOutcome, message: str) -> FileResult:
        loaded_file = outcome.loaded_file
        return FileResult(
            file=loaded_file.filename if loaded_file else outcome.path,
            status="error",
            file_type=loaded_file.file_type.value if loaded_file else None,
            used_cache=outcome.used_cache,
            warnings=list(outcome.warnings),
            error=message,
        )

    @staticmethod
    def _batch_status(results: List[FileResult]) -> str:
        errors = sum(1 for result in results if result.status == "error")
        if errors == len(results):
            return "error"
        if errors:
            return "partial"
        return "success"
