"""Relational store backed by async SQLAlchemy."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from financials.core.exceptions import PersistenceError
from financials.database.models import (
    ExtractionCacheRecord,
    ExtractionSnapshotRecord,
    FactRecord,
    MetricRecord,
    SnippetRecord,
)
from financials.models.facts import LineItemFact
from financials.models.metrics import ComputedMetric
from financials.models.storage import (
    CachedExtraction,
    ExtractionListing,
    ExtractionSnapshot,
    StoreSummary,
)
from financials.repositories.base import FinancialsStore, parse_fact_records, parse_metric_records


class SqlFinancialsStore(FinancialsStore):
    """Store contract over the ``financials.database.models`` tables.

    Every write runs in its own transaction, so a failed write for one file
    never rolls back another file's committed data.
    """

    def __init__(self, session_maker: async_sessionmaker, snippet_url_prefix: str = "/api/v1/snippets"):
        super().__init__(snippet_url_prefix)
        self.session_maker = session_maker

    # Facts

    async def load_facts(self, company_slug: str, period: str) -> List[LineItemFact]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(FactRecord.payload)
                    .where(FactRecord.company_slug == company_slug, FactRecord.period == period)
                    .order_by(FactRecord.line_item_id, FactRecord.scenario)
                )
                payloads = list(result.scalars().all())
        except SQLAlchemyError as e:
            # An unreachable history must not be reconciled as an empty one
            self.logger.error(f"Failed to load facts for {company_slug}/{period}", exc_info=True)
            raise PersistenceError(f"Failed to load facts for {company_slug}/{period}", original_error=e)
        return parse_fact_records(payloads, f"{company_slug}/{period}")

    async def save_facts(self, company_slug: str, period: str, facts: List[LineItemFact]) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await session.execute(
                        delete(FactRecord).where(
                            FactRecord.company_slug == company_slug, FactRecord.period == period
                        )
                    )
                    session.add_all(
                        [
                            FactRecord(
                                company_slug=company_slug,
                                period=period,
                                line_item_id=fact.line_item_id,
                                scenario=fact.scenario.value,
                                payload=fact.model_dump(mode="json"),
                            )
                            for fact in facts
                        ]
                    )
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to save facts for {company_slug}/{period}", exc_info=True)
            raise PersistenceError(f"Failed to save facts for {company_slug}/{period}", original_error=e)

    async def list_fact_periods(self, company_slug: str) -> List[str]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(FactRecord.period)
                .where(FactRecord.company_slug == company_slug)
                .distinct()
                .order_by(FactRecord.period)
            )
            return list(result.scalars().all())

    # Metrics

    async def load_metrics(self, company_slug: str, period: str) -> List[ComputedMetric]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(MetricRecord.payload)
                .where(MetricRecord.company_slug == company_slug, MetricRecord.period == period)
                .order_by(MetricRecord.metric_id)
            )
            payloads = list(result.scalars().all())
        return parse_metric_records(payloads, f"{company_slug}/{period}")

    async def save_metrics(self, company_slug: str, period: str, metrics: List[ComputedMetric]) -> None:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    await session.execute(
                        delete(MetricRecord).where(
                            MetricRecord.company_slug == company_slug, MetricRecord.period == period
                        )
                    )
                    session.add_all(
                        [
                            MetricRecord(
                                company_slug=company_slug,
                                period=period,
                                metric_id=metric.metric_id,
                                payload=metric.model_dump(mode="json"),
                            )
                            for metric in metrics
                        ]
                    )
        except SQLAlchemyError as e:
            self.logger.error(f"Failed to save metrics for {company_slug}/{period}", exc_info=True)
            raise PersistenceError(f"Failed to save metrics for {company_slug}/{period}", original_error=e)

    # Extraction snapshots

    async def save_extraction(self, snapshot: ExtractionSnapshot) -> str:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    existing = await session.execute(
                        select(ExtractionSnapshotRecord.id).where(
                            ExtractionSnapshotRecord.company_slug == snapshot.company_slug,
                            ExtractionSnapshotRecord.filename == snapshot.filename,
                            ExtractionSnapshotRecord.file_hash == snapshot.file_hash,
                        )
                    )
                    record_id = existing.scalar_one_or_none()
                    if record_id is not None:
                        self.logger.info(f"Extraction snapshot for {snapshot.filename} already stored")
                        return f"extraction_snapshots/{record_id}"

                    record = ExtractionSnapshotRecord(
                        company_slug=snapshot.company_slug,
                        filename=snapshot.filename,
                        file_hash=snapshot.file_hash,
                        extracted_at=snapshot.extracted_at,
                        payload=snapshot.model_dump(mode="json"),
                    )
                    session.add(record)
                    await session.flush()
                    record_id = record.id
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save extraction for {snapshot.filename}", original_error=e)
        return f"extraction_snapshots/{record_id}"

    async def load_latest_extraction(self, company_slug: str, filename: str) -> Optional[ExtractionSnapshot]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(ExtractionSnapshotRecord.payload)
                .where(
                    ExtractionSnapshotRecord.company_slug == company_slug,
                    ExtractionSnapshotRecord.filename == filename,
                )
                .order_by(ExtractionSnapshotRecord.extracted_at.desc())
                .limit(1)
            )
            payload = result.scalar_one_or_none()
        if payload is None:
            return None
        try:
            return ExtractionSnapshot.model_validate(payload)
        except PydanticValidationError:
            self.logger.warning(f"Ignoring malformed extraction snapshot for {company_slug}/{filename}")
            return None

    async def list_extractions(self, company_slug: Optional[str] = None) -> List[ExtractionListing]:
        query = select(ExtractionSnapshotRecord).order_by(ExtractionSnapshotRecord.extracted_at.desc())
        if company_slug:
            query = query.where(ExtractionSnapshotRecord.company_slug == company_slug)
        async with self.session_maker() as session:
            result = await session.execute(query)
            records = list(result.scalars().all())
        return [
            ExtractionListing(
                company=record.company_slug,
                filename=record.filename,
                extracted_at=record.extracted_at,
                file_hash=record.file_hash,
                location=f"extraction_snapshots/{record.id}",
            )
            for record in records
        ]

    # Extraction cache

    async def get_cached_extraction(self, file_hash: str) -> Optional[CachedExtraction]:
        async with self.session_maker() as session:
            record = await session.get(ExtractionCacheRecord, file_hash)
            if record is None:
                return None
            return CachedExtraction(
                file_hash=record.file_hash,
                filename=record.filename,
                cached_at=record.cached_at,
                result=record.result,
            )

    async def set_cached_extraction(self, file_hash: str, filename: str, result: Dict[str, Any]) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                # Identical hashes carry identical content, so last writer wins
                await session.merge(
                    ExtractionCacheRecord(
                        file_hash=file_hash,
                        filename=filename,
                        cached_at=datetime.now(timezone.utc).isoformat(),
                        result=result,
                    )
                )

    # Snippets

    async def save_snippet(self, company_slug: str, name: str, content: bytes) -> str:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    existing = await session.execute(
                        select(SnippetRecord).where(
                            SnippetRecord.company_slug == company_slug, SnippetRecord.name == name
                        )
                    )
                    record = existing.scalar_one_or_none()
                    if record is None:
                        session.add(SnippetRecord(company_slug=company_slug, name=name, content=content))
                    else:
                        record.content = content
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save snippet {name}", original_error=e)
        return self.snippet_url(company_slug, name)

    async def load_snippet(self, company_slug: str, name: str) -> Optional[bytes]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(SnippetRecord.content).where(
                    SnippetRecord.company_slug == company_slug, SnippetRecord.name == name
                )
            )
            return result.scalar_one_or_none()

    async def summary(self) -> StoreSummary:
        async with self.session_maker() as session:
            extractions = await session.scalar(select(func.count()).select_from(ExtractionSnapshotRecord))
            fact_periods = await session.execute(
                select(FactRecord.company_slug, FactRecord.period).distinct()
            )
            metric_periods = await session.execute(
                select(MetricRecord.company_slug, MetricRecord.period).distinct()
            )
            cache_entries = await session.scalar(select(func.count()).select_from(ExtractionCacheRecord))
            snapshot_companies = await session.execute(select(ExtractionSnapshotRecord.company_slug).distinct())

            fact_rows = fact_periods.all()
            metric_rows = metric_periods.all()
            companies = {row[0] for row in fact_rows}
            companies.update(row[0] for row in metric_rows)
            companies.update(snapshot_companies.scalars().all())

        return StoreSummary(
            extractions=extractions or 0,
            facts=len(fact_rows),
            metrics=len(metric_rows),
            cache_entries=cache_entries or 0,
            companies=sorted(companies),
        )
