"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

# Set environment for testing BEFORE importing the app
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("OPENROUTER_API_KEY", "test-llm-key")
os.environ.setdefault("SNIPPETS_ENABLED", "false")

from financials.core.config import DATA_DIR
from financials.core.exceptions import AppError
from financials.models.extraction import parse_extraction_result
from financials.models.facts import FileType, LineItemFact, Scenario, SourceLocation
from financials.models.guide import CompanyGuide
from financials.repositories.memory_store import InMemoryFinancialsStore
from financials.services.extraction.oracle import ExtractionOracle
from financials.services.guide_loader import normalize_guide
from financials.services.metrics import load_metric_definitions

FIXED_NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeOracle(ExtractionOracle):
    """Oracle returning canned payloads keyed by filename."""

    def __init__(self, payloads: Optional[Dict[str, Any]] = None):
        self.payloads = payloads or {}
        self.calls: List[str] = []

    async def extract(self, loaded_file, guide):
        self.calls.append(loaded_file.filename)
        payload = self.payloads.get(loaded_file.filename)
        if isinstance(payload, Exception):
            raise payload
        if payload is None:
            raise AppError(f"No canned extraction for {loaded_file.filename}")
        data = dict(payload)
        data.setdefault("file_type", loaded_file.file_type.value)
        data["filename"] = loaded_file.filename
        return parse_extraction_result(data)


def make_fact(
    line_item_id: str = "arr",
    amount: float = 100.0,
    date: str = "2024-01-01",
    scenario: Scenario = Scenario.ACTUAL,
    source_file: str = "financial_model.xlsx",
    **kwargs,
) -> LineItemFact:
    """Build a LineItemFact with sensible defaults."""
    return LineItemFact(
        line_item_id=line_item_id,
        amount=amount,
        date=date,
        scenario=scenario,
        source_file=source_file,
        **kwargs,
    )


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    """Clock frozen at 2024-03-15 12:00 UTC."""
    return lambda: FIXED_NOW


@pytest.fixture
def memory_store() -> InMemoryFinancialsStore:
    return InMemoryFinancialsStore()


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def metric_definitions():
    return load_metric_definitions(DATA_DIR / "common_metrics.yaml")


@pytest.fixture
def acme_guide() -> CompanyGuide:
    """Standard-format guide with synonyms and one spreadsheet rule."""
    raw = {
        "company_metadata": {"name": "Acme Analytics", "currency": "USD"},
        "metric_synonyms": {
            "arr": ["Annual Recurring Revenue", "ARR"],
            "customers": ["Paying Customers"],
            "cash_balance": ["Cash in Bank"],
        },
        "mapping_rules": {
            "line_items": {
                "revenue": {"source": "financials", "sheet": "P&L", "cell": "c5"},
            }
        },
    }
    return CompanyGuide.model_validate(normalize_guide("acme", raw))


@pytest.fixture
def pdf_location() -> SourceLocation:
    return SourceLocation(file_type=FileType.PDF, page=2, context="SaaS KPIs")


@pytest.fixture
def write_file(tmp_path) -> Callable[[str, bytes], str]:
    """Write bytes under tmp_path and return the path as a string."""

    def _write(name: str, content: bytes = b"%PDF-1.4 test") -> str:
        path = tmp_path / name
        path.write_bytes(content)
        return str(path)

    return _write
