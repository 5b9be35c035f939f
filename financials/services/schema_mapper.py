"""Normalization of extraction results into line item facts."""

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from financials.core.exceptions import ExtractionValidationError
from financials.models.extraction import (
    PdfExtraction,
    RawPdfLineItem,
    RawXlsxLineItem,
    XlsxExtraction,
)
from financials.models.facts import FileType, LineItemFact, Scenario, SourceLocation
from financials.models.guide import CompanyGuide
from financials.services.line_item_canonicalizer import LineItemCanonicalizer
from financials.services.period_resolver import PeriodResolver
from financials.utils.logging import get_logger
from financials.utils.number_parser import parse_localized_number

LOGGER = get_logger(__name__)

SUMMARY_SECTIONS: Tuple[Tuple[str, Scenario], ...] = (
    ("actuals", Scenario.ACTUAL),
    ("budget", Scenario.BUDGET),
    ("forecast", Scenario.FORECAST),
    ("key_metrics", Scenario.ACTUAL),
)

GUIDE_RULE_SOURCE = "financials"


class SchemaMapper:
    """Maps an extraction result onto canonical line item facts.

    Facts are produced from three sources, in order: the extraction's own
    line items, its financial summary, and the guide's deterministic rules.
    Duplicate keys are left for reconciliation to collapse.

    Attributes:
        canonicalizer: Label to canonical id resolver
        period_resolver: Resolver for per-item period labels
    """

    def __init__(
        self,
        canonicalizer: Optional[LineItemCanonicalizer] = None,
        period_resolver: Optional[PeriodResolver] = None,
    ):
        self.canonicalizer = canonicalizer or LineItemCanonicalizer()
        self.period_resolver = period_resolver or PeriodResolver()

    def map(
        self,
        file_type: Union[FileType, str],
        extraction: Union[PdfExtraction, XlsxExtraction],
        guide: CompanyGuide,
        filename: str,
        period_date: str,
        extracted_at: Optional[str] = None,
    ) -> List[LineItemFact]:
        """Normalize an extraction into facts.

        Args:
            file_type: Declared type of the source file
            extraction: Validated extraction result
            guide: Company guide (synonyms, currency, deterministic rules)
            filename: Source filename recorded on every fact
            period_date: Period used for items without their own period label
            extracted_at: Optional extraction timestamp recorded on every fact

        Returns:
            List of LineItemFact, possibly with repeated keys

        Raises:
            ExtractionValidationError: If file_type disagrees with the extraction variant
        """
        file_type = FileType(file_type)
        if file_type.value != extraction.file_type:
            raise ExtractionValidationError(
                f"Extraction for {filename} is '{extraction.file_type}' but file type is '{file_type.value}'"
            )

        context = _MappingContext(
            guide=guide,
            filename=filename,
            period_date=period_date,
            extracted_at=extracted_at,
            file_type=file_type,
        )

        facts: List[LineItemFact] = []
        facts.extend(self._map_line_items(extraction.line_items, context))
        facts.extend(self._map_financial_summary(extraction.financial_summary.model_dump(), context))

        if isinstance(extraction, XlsxExtraction):
            facts.extend(self._map_xlsx_rules(extraction, context))
        else:
            facts.extend(self._map_pdf_kpi_tables(extraction, context))

        LOGGER.info(
            f"Mapped {len(facts)} facts from {filename}",
            extra={"file_type": file_type.value, "period": period_date},
        )
        return facts

    def _map_line_items(
        self,
        items: Iterable[Union[RawPdfLineItem, RawXlsxLineItem]],
        context: "_MappingContext",
    ) -> List[LineItemFact]:
        facts = []
        for item in items:
            location = None
            if item.location is not None:
                if isinstance(item, RawPdfLineItem):
                    page = item.location.page if item.location.page and item.location.page >= 1 else None
                    location = SourceLocation(
                        file_type=FileType.PDF,
                        page=page,
                        bbox=item.location.bbox,
                        context=item.location.context,
                    )
                else:
                    location = SourceLocation(
                        file_type=FileType.XLSX,
                        sheet=item.location.sheet,
                        cell=item.location.cell.upper() if item.location.cell else None,
                        context=item.location.context,
                    )

            fact = self._build_fact(
                label=item.label,
                raw_value=item.value,
                scenario=Scenario.parse(item.scenario),
                period_label=item.period,
                location=location,
                context=context,
            )
            if fact is not None:
                facts.append(fact)
        return facts

    def _map_financial_summary(
        self, summary: Dict[str, Any], context: "_MappingContext"
    ) -> List[LineItemFact]:
        facts = []
        for section, scenario in SUMMARY_SECTIONS:
            for label, raw in (summary.get(section) or {}).items():
                location = None
                raw_value = raw
                if isinstance(raw, dict):
                    raw_value = raw.get("value")
                    location = self._summary_location(raw, context.file_type)

                fact = self._build_fact(
                    label=label,
                    raw_value=raw_value,
                    scenario=scenario,
                    period_label=None,
                    location=location,
                    context=context,
                )
                if fact is not None:
                    facts.append(fact)
        return facts

    def _map_xlsx_rules(self, extraction: XlsxExtraction, context: "_MappingContext") -> List[LineItemFact]:
        """Read cells the guide pins to a sheet and cell address."""
        facts = []
        for line_item_id, rule in context.guide.line_item_rules.items():
            if rule.source != GUIDE_RULE_SOURCE or not rule.target_cell:
                continue

            sheet = extraction.get_sheet(rule.sheet)
            if sheet is None:
                LOGGER.debug(f"Guide rule {line_item_id}: sheet {rule.sheet!r} not in {context.filename}")
                continue

            cell = rule.target_cell.upper()
            amount = parse_localized_number(sheet.cells.get(cell), context.guide.currency)
            if amount is None:
                continue

            facts.append(
                self._fact(
                    line_item_id=line_item_id,
                    amount=amount,
                    scenario=Scenario.ACTUAL,
                    period=context.period_date,
                    location=SourceLocation(
                        file_type=FileType.XLSX,
                        sheet=sheet.name,
                        cell=cell,
                        context=f"Guide mapping {sheet.name}!{cell}",
                    ),
                    context=context,
                )
            )
        return facts

    def _map_pdf_kpi_tables(self, extraction: PdfExtraction, context: "_MappingContext") -> List[LineItemFact]:
        """Find KPI tables by anchor text and read labelled values on every matching page."""
        facts = []
        for template_key, template in context.guide.document_structure.items():
            for table_key, table in template.kpi_tables.items():
                if not table.anchor_text or not table.metric_rows:
                    continue

                pages = self._pages_with_keywords(extraction, table.anchor_text)
                if not pages:
                    continue

                LOGGER.debug(
                    f"Found table '{table_key}' ({template_key}) on page(s) {pages} of {context.filename}"
                )

                for page_number in pages:
                    page_text = extraction.page_text(page_number) or ""
                    for line_item_id, label in table.metric_rows.items():
                        pattern = re.compile(rf"{re.escape(label)}[^\d\n]*([\d,.]+)", re.IGNORECASE)
                        match = pattern.search(page_text)
                        if not match:
                            continue

                        amount = parse_localized_number(match.group(1), context.guide.currency)
                        if amount is None:
                            continue

                        facts.append(
                            self._fact(
                                line_item_id=line_item_id,
                                amount=amount,
                                scenario=Scenario.ACTUAL,
                                period=context.period_date,
                                location=SourceLocation(
                                    file_type=FileType.PDF,
                                    page=page_number,
                                    context=f"Extracted via regex from '{label}'",
                                ),
                                context=context,
                            )
                        )
        return facts

    @staticmethod
    def _pages_with_keywords(extraction: PdfExtraction, keywords: List[str]) -> List[int]:
        lowered = [keyword.lower() for keyword in keywords if keyword]
        return [
            page.page_number
            for page in extraction.pages
            if page.page_number >= 1 and any(keyword in page.text.lower() for keyword in lowered)
        ]

    @staticmethod
    def _summary_location(raw: Dict[str, Any], file_type: FileType) -> Optional[SourceLocation]:
        page = raw.get("page")
        sheet = raw.get("sheet")
        cell = raw.get("cell")
        if file_type == FileType.PDF and isinstance(page, int) and page >= 1:
            return SourceLocation(file_type=file_type, page=page, context=raw.get("context"))
        if file_type == FileType.XLSX and sheet and cell:
            return SourceLocation(
                file_type=file_type, sheet=str(sheet), cell=str(cell).upper(), context=raw.get("context")
            )
        return None

    def _build_fact(
        self,
        label: str,
        raw_value: Any,
        scenario: Scenario,
        period_label: Optional[str],
        location: Optional[SourceLocation],
        context: "_MappingContext",
    ) -> Optional[LineItemFact]:
        line_item_id = self.canonicalizer.canonicalize(label, context.guide)
        if not line_item_id:
            LOGGER.debug(f"Dropping line item with empty label in {context.filename}")
            return None

        amount = parse_localized_number(raw_value, context.guide.currency)
        if amount is None:
            LOGGER.debug(f"Dropping unparseable value {raw_value!r} for '{label}' in {context.filename}")
            return None

        period = self.period_resolver.resolve(period_label) or context.period_date
        return self._fact(line_item_id, amount, scenario, period, location, context)

    @staticmethod
    def _fact(
        line_item_id: str,
        amount: float,
        scenario: Scenario,
        period: str,
        location: Optional[SourceLocation],
        context: "_MappingContext",
    ) -> LineItemFact:
        return LineItemFact(
            line_item_id=line_item_id,
            amount=amount,
            date=period,
            scenario=scenario,
            source_file=context.filename,
            source_location=location,
            extracted_at=context.extracted_at,
        )


class _MappingContext:
    """Per-call values shared by the mapping steps."""

    def __init__(
        self,
        guide: CompanyGuide,
        filename: str,
        period_date: str,
        extracted_at: Optional[str],
        file_type: FileType,
    ):
        self.guide = guide
        self.filename = filename
        self.period_date = period_date
        self.extracted_at = extracted_at
        self.file_type = file_type
