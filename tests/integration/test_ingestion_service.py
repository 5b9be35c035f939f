from unittest.mock import AsyncMock

import pytest

from conftest import FakeOracle, make_fact
from financials.core.exceptions import PersistenceError, ValidationError
from financials.schemas.ingestion import IngestionRequest
from financials.services.guide_loader import GuideLoader
from financials.services.ingestion_service import IngestionService
from financials.services.snippets.snippet_service import SnippetService

ACME_GUIDE = """
company_metadata:
  name: Acme Analytics
  currency: USD
metric_synonyms:
  arr: [Annual Recurring Revenue, ARR]
  customers: [Paying Customers]
"""

MODEL_PAYLOAD = {
    "financial_summary": {"period": "January 2024"},
    "line_items": [
        {"label": "ARR", "value": "100"},
        {"label": "MRR", "value": 10},
        {"label": "Budgeted ARR", "value": 150, "scenario": "budget"},
    ],
}

DECK_PAYLOAD = {
    "financial_summary": {"period": "Jan 2024", "actuals": {"Annual Recurring Revenue": 110}},
}


@pytest.fixture
def guide_loader(tmp_path):
    guides_dir = tmp_path / "guides"
    guides_dir.mkdir()
    (guides_dir / "acme.yaml").write_text(ACME_GUIDE)
    return GuideLoader(guides_dir)


@pytest.fixture
def oracle():
    return FakeOracle(
        {
            "financial_model.xlsx": MODEL_PAYLOAD,
            "Board Deck.pdf": DECK_PAYLOAD,
        }
    )


@pytest.fixture
def service(memory_store, oracle, guide_loader, metric_definitions, fixed_clock):
    return IngestionService(
        store=memory_store,
        oracle=oracle,
        guide_loader=guide_loader,
        metric_definitions=metric_definitions,
        snippet_service=SnippetService(memory_store, enabled=False),
        clock=fixed_clock,
    )


def request_for(*paths, **kwargs):
    return IngestionRequest(company_slug=kwargs.pop("company_slug", "acme"), file_paths=list(paths), **kwargs)


class TestBatch:
    @pytest.mark.asyncio
    async def test_higher_priority_file_overwrites(self, service, memory_store, write_file):
        model = write_file("financial_model.xlsx", b"model bytes")
        deck = write_file("Board Deck.pdf", b"deck bytes")

        response = await service.ingest(request_for(model, deck))

        assert response.status == "success"
        assert response.company == "acme"
        assert response.guide_used is True
        assert response.summary.total == 2
        assert response.summary.success == 2

        model_result, deck_result = response.results
        assert model_result.period == "2024-01-01"
        assert model_result.period_source == "reported"
        assert model_result.priority == 40
        assert model_result.reconciliation.summary.inserted == 3
        assert deck_result.priority == 100
        assert deck_result.reconciliation.summary.updated == 1
        assert deck_result.reconciliation.changes[0].reason.startswith("Higher priority source: board_deck")

        stored = {fact.key: fact for fact in await memory_store.load_facts("acme", "2024-01-01")}
        arr = stored[("arr", "2024-01-01", "actual")]
        assert arr.amount == 110.0
        assert arr.source_file == "Board Deck.pdf"
        assert len(arr.changelog) == 2
        assert stored[("arr", "2024-01-01", "budget")].amount == 150.0

        assert deck_result.extracted_data[0].amount == 110.0
        assert len(memory_store.extractions) == 2

    @pytest.mark.asyncio
    async def test_metrics_computed_from_actuals(self, service, memory_store, write_file):
        model = write_file("financial_model.xlsx", b"model bytes")

        response = await service.ingest(request_for(model))

        metrics = {metric.metric_id: metric.value for metric in response.results[0].computed_metrics}
        assert metrics == {"arr_from_mrr": 120.0}
        assert response.results[0].metrics_computed == 1
        stored = await memory_store.load_metrics("acme", "2024-01-01")
        assert [metric.metric_id for metric in stored] == ["arr_from_mrr"]

    @pytest.mark.asyncio
    async def test_partial_failure(self, service, write_file, tmp_path):
        model = write_file("financial_model.xlsx", b"model bytes")
        missing = str(tmp_path / "missing.pdf")

        response = await service.ingest(request_for(model, missing))

        assert response.status == "partial"
        assert response.summary.success == 1
        assert response.summary.error == 1
        failed = response.results[1]
        assert failed.status == "error"
        assert failed.file == missing
        assert "File not found" in failed.error

    @pytest.mark.asyncio
    async def test_all_files_failed(self, service, write_file, tmp_path):
        notes = write_file("notes.docx", b"docx")

        response = await service.ingest(request_for(notes, str(tmp_path / "missing.xlsx")))

        assert response.status == "error"
        assert response.summary.error == 2
        assert "Unsupported file type" in response.results[0].error

    @pytest.mark.asyncio
    async def test_oracle_failure_is_isolated(self, service, oracle, write_file):
        oracle.payloads["Investor Report.pdf"] = RuntimeError("model timed out")
        model = write_file("financial_model.xlsx", b"model bytes")
        report = write_file("Investor Report.pdf", b"report bytes")

        response = await service.ingest(request_for(model, report))

        assert response.status == "partial"
        assert response.results[0].status == "success"
        assert response.results[1].error == "Unexpected error: model timed out"
        assert response.results[1].file_type == "pdf"

    @pytest.mark.asyncio
    async def test_empty_extraction_needs_review(self, service, oracle, write_file):
        oracle.payloads["Investor Report March 2024.pdf"] = {"line_items": []}
        path = write_file("Investor Report March 2024.pdf", b"report bytes")

        response = await service.ingest(request_for(path))

        result = response.results[0]
        assert result.status == "needs_review"
        assert result.period == "2024-03-01"
        assert result.period_source == "filename"
        assert "No line items could be mapped from this file" in result.warnings
        assert response.status == "success"
        assert response.summary.success == 1

    @pytest.mark.asyncio
    async def test_fallback_period(self, service, oracle, write_file):
        oracle.payloads["kpis.pdf"] = {"line_items": [{"label": "ARR", "value": 5}]}
        path = write_file("kpis.pdf", b"kpi bytes")

        response = await service.ingest(request_for(path))

        result = response.results[0]
        assert result.period == "2024-03-01"
        assert result.period_source == "fallback"
        assert any("defaulted to 2024-03-01" in warning for warning in result.warnings)

    @pytest.mark.asyncio
    async def test_missing_guide_uses_empty_guide(self, service, write_file):
        model = write_file("financial_model.xlsx", b"model bytes")

        response = await service.ingest(request_for(model, company_slug="globex"))

        assert response.guide_used is False
        assert response.company == "globex"
        assert response.results[0].status == "success"

    @pytest.mark.asyncio
    async def test_default_company(self, memory_store, oracle, guide_loader, metric_definitions, write_file):
        service = IngestionService(
            store=memory_store,
            oracle=oracle,
            guide_loader=guide_loader,
            metric_definitions=metric_definitions,
            default_company_slug="acme",
        )
        model = write_file("financial_model.xlsx", b"model bytes")

        response = await service.ingest(IngestionRequest(file_paths=[model]))

        assert response.company == "acme"
        assert response.guide_used is True

    @pytest.mark.asyncio
    async def test_no_files(self, service):
        with pytest.raises(ValidationError, match="No files provided"):
            await service.ingest(IngestionRequest.model_construct(company_slug="acme", file_paths=[]))


class TestCache:
    @pytest.mark.asyncio
    async def test_identical_bytes_reuse_extraction(self, service, oracle, memory_store, write_file):
        oracle.payloads["deck.pdf"] = DECK_PAYLOAD
        first = write_file("deck.pdf", b"same bytes")
        copy = write_file("Board Deck Copy.pdf", b"same bytes")

        await service.ingest(request_for(first))
        response = await service.ingest(request_for(copy))

        result = response.results[0]
        assert oracle.calls == ["deck.pdf"]
        assert result.used_cache is True
        assert result.file == "Board Deck Copy.pdf"
        assert response.summary.cached == 1
        assert memory_store.extractions[-1].result["filename"] == "Board Deck Copy.pdf"
        assert memory_store.extractions[-1].line_items[0]["source_file"] == "Board Deck Copy.pdf"

    @pytest.mark.asyncio
    async def test_force_reextract_skips_cache(self, service, oracle, write_file):
        deck = write_file("Board Deck.pdf", b"deck bytes")

        await service.ingest(request_for(deck))
        response = await service.ingest(request_for(deck, force_reextract=True))

        assert oracle.calls == ["Board Deck.pdf", "Board Deck.pdf"]
        assert response.results[0].used_cache is False

    @pytest.mark.asyncio
    async def test_cache_disabled(self, service, memory_store, write_file):
        deck = write_file("Board Deck.pdf", b"deck bytes")

        await service.ingest(request_for(deck, use_cache=False))

        assert memory_store.cache == {}

    @pytest.mark.asyncio
    async def test_cache_write_failure_is_a_warning(self, service, memory_store, write_file):
        memory_store.set_cached_extraction = AsyncMock(side_effect=OSError("read-only"))
        deck = write_file("Board Deck.pdf", b"deck bytes")

        response = await service.ingest(request_for(deck))

        assert response.results[0].status == "success"
        assert "Extraction cache write failed" in response.results[0].warnings


class TestHistory:
    @pytest.mark.asyncio
    async def test_reingest_reports_diff(self, service, oracle, write_file):
        path = write_file("financial_model.xlsx", b"v1")
        first = await service.ingest(request_for(path))

        oracle.payloads["financial_model.xlsx"] = {
            "financial_summary": {"period": "January 2024"},
            "line_items": [{"label": "ARR", "value": 120}, {"label": "Paying Customers", "value": 42}],
        }
        write_file("financial_model.xlsx", b"v2")
        second = await service.ingest(request_for(path))

        assert first.results[0].diff is None
        diff = second.results[0].diff
        assert [(item.metric, item.old_value, item.new_value) for item in diff.changed] == [("arr", 100.0, 120.0)]
        assert [item.metric for item in diff.added] == ["customers"]
        assert [item.metric for item in diff.removed] == ["mrr"]

    @pytest.mark.asyncio
    async def test_restatement_overrides_higher_priority(self, service, oracle, memory_store, write_file):
        oracle.payloads["Investor Report.pdf"] = {
            "financial_summary": {"period": "2024-01", "actuals": {"ARR": 110}},
        }
        oracle.payloads["financial_model.xlsx"] = {
            "financial_summary": {
                "period": "2024-01",
                "actuals": {"ARR": 100},
                "variance_explanations": [
                    {
                        "metric_id": "Annual Recurring Revenue",
                        "explanation": "Restated after audit",
                        "explanation_type": "restatement",
                    }
                ],
            },
        }
        report = write_file("Investor Report.pdf", b"report bytes")
        model = write_file("financial_model.xlsx", b"model bytes")

        response = await service.ingest(request_for(report, model))

        model_result = response.results[1]
        assert model_result.variance_explanations[0].metric_id == "arr"
        assert model_result.reconciliation.changes[0].reason == (
            "RESTATEMENT from financial_model (priority 90 > 80)"
        )
        stored = await memory_store.load_facts("acme", "2024-01-01")
        assert stored[0].amount == 100.0
        assert stored[0].explanation == "Restated after audit"

    @pytest.mark.asyncio
    async def test_persistence_failure_fails_only_that_file(self, service, memory_store, write_file):
        memory_store.save_facts = AsyncMock(side_effect=PersistenceError("disk full"))
        deck = write_file("Board Deck.pdf", b"deck bytes")

        response = await service.ingest(request_for(deck))

        assert response.status == "error"
        assert response.results[0].error == "disk full"
        assert memory_store.extractions == []

    @pytest.mark.asyncio
    async def test_unreadable_history_keeps_stored_facts(self, service, memory_store, write_file):
        await memory_store.save_facts(
            "acme",
            "2024-01-01",
            [make_fact("arr", 100.0), make_fact("cash_balance", 500.0)],
        )
        memory_store.load_facts = AsyncMock(side_effect=PersistenceError("database unavailable"))
        deck = write_file("Board Deck.pdf", b"deck bytes")

        response = await service.ingest(request_for(deck))

        assert response.results[0].status == "error"
        assert response.results[0].error == "database unavailable"
        stored = memory_store.facts[("acme", "2024-01-01")]
        assert [(fact.line_item_id, fact.amount) for fact in stored] == [("arr", 100.0), ("cash_balance", 500.0)]
        assert memory_store.extractions == []

    @pytest.mark.asyncio
    async def test_reingesting_same_bytes_keeps_one_snapshot(self, service, memory_store, write_file):
        deck = write_file("Board Deck.pdf", b"deck bytes")

        first = await service.ingest(request_for(deck))
        second = await service.ingest(request_for(deck))

        assert len(memory_store.extractions) == 1
        assert second.results[0].snapshot_location == first.results[0].snapshot_location
        assert second.results[0].diff.is_empty
