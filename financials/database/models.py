"""SQLAlchemy models for the financials store.

Domain records are stored as JSON payloads next to the columns they are
queried by, so the payload shape can follow the pydantic models without a
column per field.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, LargeBinary, String, TIMESTAMP, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from financials.core.database import Base


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FactRecord(Base):
    """One line item fact for a company period."""

    __tablename__ = "financial_facts"
    __table_args__ = (
        UniqueConstraint(
            "company_slug", "period", "line_item_id", "scenario", name="uq_financial_facts_key"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_slug: Mapped[str] = mapped_column(String, nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    line_item_id: Mapped[str] = mapped_column(String, nullable=False)
    scenario: Mapped[str] = mapped_column(String(16), nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=_utc_now, onupdate=_utc_now
    )


class MetricRecord(Base):
    """One computed metric for a company period."""

    __tablename__ = "computed_metrics"
    __table_args__ = (
        UniqueConstraint("company_slug", "period", "metric_id", name="uq_computed_metrics_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_slug: Mapped[str] = mapped_column(String, nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    metric_id: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utc_now)


class ExtractionSnapshotRecord(Base):
    """Immutable snapshot of one extraction of one file version."""

    __tablename__ = "extraction_snapshots"
    __table_args__ = (
        UniqueConstraint("company_slug", "filename", "file_hash", name="uq_extraction_snapshots_version"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_slug: Mapped[str] = mapped_column(String, nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String, nullable=False, index=True)
    file_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    extracted_at: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)


class ExtractionCacheRecord(Base):
    """Oracle output keyed by content hash."""

    __tablename__ = "extraction_cache"

    file_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    filename: Mapped[str] = mapped_column(String, nullable=False)
    cached_at: Mapped[str] = mapped_column(String, nullable=False)
    result: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)


class SnippetRecord(Base):
    """Rendered audit snippet image or PDF page."""

    __tablename__ = "audit_snippets"
    __table_args__ = (UniqueConstraint("company_slug", "name", name="uq_audit_snippets_name"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_slug: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utc_now)
