"""Audit snippet generation for extracted facts."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from financials.core.exceptions import AppError, SnippetRenderError
from financials.models.facts import FileType, LineItemFact, SourceLocation
from financials.repositories.base import FinancialsStore
from financials.services.extraction.file_loader import LoadedFile
from financials.services.snippets.renderers import (
    ExcelCellRenderer,
    PdfPageExtractRenderer,
    PdfScreenshotRenderer,
    PdfSnippetRenderer,
    RenderedSnippet,
)
from financials.utils.canonical_key import safe_filename
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class SnippetReport:
    generated: int = 0
    failed: int = 0
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)


class SnippetService:
    """Renders one snippet per distinct source location and links facts to it.

    Facts sharing a snippet key (same PDF page, or same sheet cell) are
    highlighted in a single render and all receive the same URL. Failures are
    logged and reported, never raised: a fact without a snippet is still a
    valid fact.
    """

    def __init__(
        self,
        store: FinancialsStore,
        pdf_renderers: Optional[Sequence[PdfSnippetRenderer]] = None,
        excel_renderer: Optional[ExcelCellRenderer] = None,
        enabled: bool = True,
    ):
        self.store = store
        self.pdf_renderers = list(pdf_renderers) if pdf_renderers is not None else [
            PdfScreenshotRenderer(),
            PdfPageExtractRenderer(),
        ]
        self.excel_renderer = excel_renderer or ExcelCellRenderer()
        self.enabled = enabled

    async def generate(
        self, company_slug: str, loaded_file: LoadedFile, facts: List[LineItemFact]
    ) -> Tuple[List[LineItemFact], SnippetReport]:
        """Attach snippet URLs to facts.

        Args:
            company_slug: Company the snippets are stored under
            loaded_file: Source document the facts were read from
            facts: Mapped facts for this document

        Returns:
            New fact list with ``snippet_url`` set where rendering succeeded,
            and a report of what was rendered
        """
        report = SnippetReport()
        if not self.enabled or not facts:
            return list(facts), report

        groups: Dict[str, List[LineItemFact]] = {}
        for fact in facts:
            location = fact.source_location
            key = location.snippet_key(loaded_file.filename) if location else None
            if key is None or location.file_type != loaded_file.file_type:
                report.skipped += 1
                continue
            groups.setdefault(key, []).append(fact)

        urls: Dict[str, str] = {}
        for key, group in groups.items():
            location = group[0].source_location
            try:
                rendered = self._render(loaded_file, location, group)
                name = f"{self._snippet_name(loaded_file, location)}.{rendered.extension}"
                urls[key] = await self.store.save_snippet(company_slug, name, rendered.content)
                report.generated += 1
            except AppError as e:
                report.failed += 1
                report.warnings.append(f"Snippet for {key} failed: {e}")
                LOGGER.warning(
                    f"Snippet generation failed for {key}: {e}",
                    extra={"company": company_slug, "facts": len(group)},
                )

        LOGGER.info(
            f"Generated {report.generated} snippets for {loaded_file.filename}",
            extra={"failed": report.failed, "skipped": report.skipped},
        )

        annotated = []
        for fact in facts:
            key = fact.source_location.snippet_key(loaded_file.filename) if fact.source_location else None
            if key in urls:
                annotated.append(fact.model_copy(update={"snippet_url": urls[key]}))
            else:
                annotated.append(fact)
        return annotated, report

    def _render(
        self, loaded_file: LoadedFile, location: SourceLocation, group: List[LineItemFact]
    ) -> RenderedSnippet:
        if location.file_type == FileType.XLSX:
            return self.excel_renderer.render(loaded_file.content, location.sheet, location.cell)

        bboxes = [
            fact.source_location.bbox
            for fact in group
            if fact.source_location and fact.source_location.bbox is not None
        ]
        errors = []
        for renderer in self.pdf_renderers:
            try:
                return renderer.render(loaded_file.content, location.page, bboxes)
            except SnippetRenderError as e:
                LOGGER.debug(f"{renderer.name} renderer failed for page {location.page}: {e}")
                errors.append(f"{renderer.name}: {e}")
        raise SnippetRenderError(f"All PDF renderers failed for page {location.page} ({'; '.join(errors)})")

    def _snippet_name(self, loaded_file: LoadedFile, location: SourceLocation) -> str:
        stem = safe_filename(loaded_file.stem)
        if location.file_type == FileType.PDF:
            return f"{stem}_p{location.page}"
        return f"{stem}_{safe_filename(location.sheet)}_{location.cell.upper()}"
