"""JSON file store for local development and single-node deployments.

Layout under the data directory::

    extractions/{company}/{filename}_{timestamp}.json
    facts/{company}/{period}.json
    metrics/{company}/{period}.json
    cache/{file_hash}.json
    snippets/{company}/{snippet_name}
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from financials.core.exceptions import PersistenceError
from financials.models.facts import LineItemFact
from financials.models.metrics import ComputedMetric
from financials.models.storage import (
    CachedExtraction,
    ExtractionListing,
    ExtractionSnapshot,
    StoreSummary,
)
from financials.repositories.base import FinancialsStore, parse_fact_records, parse_metric_records
from financials.utils.canonical_key import safe_filename


class LocalFileStore(FinancialsStore):
    """File-per-record store rooted at ``data_dir``."""

    def __init__(self, data_dir: Union[str, Path], snippet_url_prefix: str = "/api/v1/snippets"):
        super().__init__(snippet_url_prefix)
        self.data_dir = Path(data_dir)
        self.logger.info(f"Local file store at {self.data_dir}")

    # Facts

    async def load_facts(self, company_slug: str, period: str) -> List[LineItemFact]:
        path = self._company_dir("facts", company_slug) / f"{period}.json"
        records = self._read_json(path)
        if records is None:
            return []
        if not isinstance(records, list):
            self.logger.warning(f"Fact file {path} is not a list; treating as empty")
            return []
        return parse_fact_records(records, str(path))

    async def save_facts(self, company_slug: str, period: str, facts: List[LineItemFact]) -> None:
        path = self._company_dir("facts", company_slug) / f"{period}.json"
        if path.is_file() and not isinstance(self._read_json(path), list):
            self._set_aside(path)
        self._write_json(path, [fact.model_dump(mode="json") for fact in facts])
        self.logger.info(f"Saved {len(facts)} facts for {company_slug}/{period}")

    async def list_fact_periods(self, company_slug: str) -> List[str]:
        directory = self._company_dir("facts", company_slug)
        if not directory.is_dir():
            return []
        return sorted(path.stem for path in directory.glob("*.json"))

    # Metrics

    async def load_metrics(self, company_slug: str, period: str) -> List[ComputedMetric]:
        path = self._company_dir("metrics", company_slug) / f"{period}.json"
        records = self._read_json(path)
        if not isinstance(records, list):
            return []
        return parse_metric_records(records, str(path))

    async def save_metrics(self, company_slug: str, period: str, metrics: List[ComputedMetric]) -> None:
        path = self._company_dir("metrics", company_slug) / f"{period}.json"
        self._write_json(path, [metric.model_dump(mode="json") for metric in metrics])
        self.logger.info(f"Saved {len(metrics)} metrics for {company_slug}/{period}")

    # Extraction snapshots

    async def save_extraction(self, snapshot: ExtractionSnapshot) -> str:
        for path, stored in self._iter_snapshots(snapshot.company_slug):
            if stored.filename == snapshot.filename and stored.file_hash == snapshot.file_hash:
                self.logger.info(f"Extraction snapshot already stored: {path}")
                return str(path)

        directory = self._company_dir("extractions", snapshot.company_slug)
        stamp = snapshot.extracted_at.replace(":", "-").replace(".", "-").replace("+", "-")
        base_name = f"{safe_filename(snapshot.filename)}_{stamp}"

        path = directory / f"{base_name}.json"
        counter = 1
        while path.exists():
            path = directory / f"{base_name}_{counter}.json"
            counter += 1

        self._write_json(path, snapshot.model_dump(mode="json"))
        self.logger.info(f"Saved extraction snapshot: {path}")
        return str(path)

    async def load_latest_extraction(self, company_slug: str, filename: str) -> Optional[ExtractionSnapshot]:
        latest: Optional[ExtractionSnapshot] = None
        for path, snapshot in self._iter_snapshots(company_slug):
            if snapshot.filename != filename:
                continue
            if latest is None or snapshot.extracted_at >= latest.extracted_at:
                latest = snapshot
        return latest

    async def list_extractions(self, company_slug: Optional[str] = None) -> List[ExtractionListing]:
        companies = [company_slug] if company_slug else self._companies("extractions")
        listings = []
        for company in companies:
            for path, snapshot in self._iter_snapshots(company):
                listings.append(
                    ExtractionListing(
                        company=company,
                        filename=snapshot.filename,
                        extracted_at=snapshot.extracted_at,
                        file_hash=snapshot.file_hash,
                        location=str(path),
                    )
                )
        return sorted(listings, key=lambda listing: listing.extracted_at, reverse=True)

    # Extraction cache

    async def get_cached_extraction(self, file_hash: str) -> Optional[CachedExtraction]:
        path = self.data_dir / "cache" / f"{file_hash}.json"
        record = self._read_json(path)
        if record is None:
            return None
        try:
            return CachedExtraction.model_validate(record)
        except PydanticValidationError:
            self.logger.warning(f"Ignoring malformed cache entry {path}")
            return None

    async def set_cached_extraction(self, file_hash: str, filename: str, result: Dict[str, Any]) -> None:
        entry = CachedExtraction(
            file_hash=file_hash,
            filename=filename,
            cached_at=datetime.now(timezone.utc).isoformat(),
            result=result,
        )
        self._write_json(self.data_dir / "cache" / f"{file_hash}.json", entry.model_dump(mode="json"))
        self.logger.info(f"Cached extraction for {filename} (hash: {file_hash})")

    # Snippets

    async def save_snippet(self, company_slug: str, name: str, content: bytes) -> str:
        path = self._company_dir("snippets", company_slug) / safe_filename(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise PersistenceError(f"Failed to save snippet {path}", original_error=e)
        self.logger.info(f"Saved snippet: {path}")
        return self.snippet_url(company_slug, path.name)

    async def load_snippet(self, company_slug: str, name: str) -> Optional[bytes]:
        path = self._company_dir("snippets", company_slug) / safe_filename(name)
        if not path.is_file():
            return None
        return path.read_bytes()

    async def summary(self) -> StoreSummary:
        companies = set()
        counts = {}
        for kind in ("extractions", "facts", "metrics"):
            total = 0
            for company in self._companies(kind):
                companies.add(company)
                total += len(list((self.data_dir / kind / company).glob("*.json")))
            counts[kind] = total

        cache_dir = self.data_dir / "cache"
        cache_entries = len(list(cache_dir.glob("*.json"))) if cache_dir.is_dir() else 0

        return StoreSummary(
            extractions=counts["extractions"],
            facts=counts["facts"],
            metrics=counts["metrics"],
            cache_entries=cache_entries,
            companies=sorted(companies),
        )

    # Helpers

    def _company_dir(self, kind: str, company_slug: str) -> Path:
        return self.data_dir / kind / safe_filename(company_slug)

    def _companies(self, kind: str) -> List[str]:
        directory = self.data_dir / kind
        if not directory.is_dir():
            return []
        return sorted(entry.name for entry in directory.iterdir() if entry.is_dir())

    def _iter_snapshots(self, company_slug: str):
        directory = self._company_dir("extractions", company_slug)
        if not directory.is_dir():
            return
        for path in sorted(directory.glob("*.json")):
            record = self._read_json(path)
            if record is None:
                continue
            try:
                yield path, ExtractionSnapshot.model_validate(record)
            except PydanticValidationError:
                self.logger.warning(f"Skipping malformed extraction snapshot {path}")

    def _read_json(self, path: Path) -> Optional[Any]:
        """Parsed JSON at ``path``; None when missing or malformed.

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except ValueError as e:
            self.logger.warning(f"Malformed JSON in {path}: {e}")
            return None
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}", original_error=e)

    def _set_aside(self, path: Path) -> None:
        """Move a corrupt file to ``<name>.corrupt`` so it is never overwritten."""
        target = path.with_name(f"{path.name}.corrupt")
        counter = 1
        while target.exists():
            target = path.with_name(f"{path.name}.corrupt.{counter}")
            counter += 1
        try:
            os.replace(path, target)
        except OSError as e:
            raise PersistenceError(f"Failed to move corrupt file {path} aside", original_error=e)
        self.logger.warning(f"Moved corrupt file {path} to {target}")

    def _write_json(self, path: Path, data: Any) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {path}", original_error=e)
