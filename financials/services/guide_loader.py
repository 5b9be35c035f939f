"""Loading of per-company guides from YAML.

Two layouts are accepted and normalized into ``CompanyGuide``:

- standard: ``company_metadata``, ``metric_synonyms``, ``mapping_rules.line_items``
- extended: ``company``, ``metrics_mapping``, ``line_item_mapping``,
  ``document_structure`` (templates holding ``kpi_tables``)
"""

import calendar
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from financials.core.exceptions import ConfigurationError, GuideNotFoundError
from financials.models.guide import CompanyGuide
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

GUIDE_FILENAME = "guide.yaml"


class GuideLoader:
    """Reads company guides from a directory.

    A guide lives at ``{guides_dir}/{slug}/guide.yaml`` or ``{guides_dir}/{slug}.yaml``.
    Loaded guides are cached for the lifetime of the loader.
    """

    def __init__(self, guides_dir: Union[str, Path]):
        self.guides_dir = Path(guides_dir)
        self._cache: Dict[str, CompanyGuide] = {}

    def load(self, slug: str) -> CompanyGuide:
        """Load and normalize the guide for a company.

        Raises:
            GuideNotFoundError: If no guide file exists for the slug
            ConfigurationError: If the guide file is not valid
        """
        if slug in self._cache:
            return self._cache[slug]

        path = self._guide_path(slug)
        if path is None:
            raise GuideNotFoundError(f"Guide not found for company: {slug} in {self.guides_dir}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML guide for {slug}", original_error=e)

        try:
            guide = CompanyGuide.model_validate(normalize_guide(slug, raw))
        except (PydanticValidationError, ValueError) as e:
            raise ConfigurationError(f"Invalid guide for {slug}: {e}", original_error=e)

        LOGGER.info(
            f"Loaded guide for {slug}",
            extra={
                "path": str(path),
                "synonyms": len(guide.metric_synonyms),
                "rules": len(guide.line_item_rules),
            },
        )
        self._cache[slug] = guide
        return guide

    def list_companies(self) -> List[str]:
        """Slugs of every company with a guide."""
        if not self.guides_dir.exists():
            return []
        slugs = set()
        for entry in self.guides_dir.iterdir():
            if entry.is_dir() and (entry / GUIDE_FILENAME).exists():
                slugs.add(entry.name)
            elif entry.is_file() and entry.suffix in (".yaml", ".yml"):
                slugs.add(entry.stem)
        return sorted(slugs)

    def _guide_path(self, slug: str) -> Optional[Path]:
        for candidate in (
            self.guides_dir / slug / GUIDE_FILENAME,
            self.guides_dir / f"{slug}.yaml",
            self.guides_dir / f"{slug}.yml",
        ):
            if candidate.exists():
                return candidate
        return None


def normalize_guide(slug: str, raw: Dict[str, Any]) -> Dict[str, Any]:
    """Convert either guide layout into ``CompanyGuide`` fields.

    Raises:
        ValueError: If the guide has neither ``company_metadata`` nor ``company``
    """
    if not isinstance(raw, dict):
        raise ValueError("Guide must be a mapping")

    if raw.get("company_metadata"):
        metadata = dict(raw["company_metadata"])
    elif raw.get("company"):
        company = raw["company"]
        fiscal_month = company.get("fiscal_year_end_month")
        metadata = {
            "name": company.get("name", slug),
            "domain": company.get("domain") or company.get("website"),
            "aliases": company.get("aliases") or [],
            "currency": company.get("currency") or "USD",
            "fiscal_year_end": _month_end(int(fiscal_month)) if fiscal_month else None,
            "business_models": company.get("business_models") or [],
        }
    else:
        raise ValueError("Guide must have either company_metadata or company field")

    document_structure = _document_structure(raw.get("document_structure") or {})

    synonyms: Dict[str, List[str]] = {}
    for metric_id, labels in (raw.get("metric_synonyms") or {}).items():
        _add_synonyms(synonyms, metric_id, labels)
    for metric_id, config in (raw.get("metrics_mapping") or {}).items():
        if isinstance(config, dict):
            _add_synonyms(synonyms, metric_id, config.get("synonyms") or config.get("labels") or [])
        else:
            _add_synonyms(synonyms, metric_id, config)
    for metric_id, config in (raw.get("line_item_mapping") or {}).items():
        if isinstance(config, dict):
            _add_synonyms(synonyms, metric_id, config.get("patterns") or [])
    for template in document_structure.values():
        for table in template["kpi_tables"].values():
            for metric_id, label in table["metric_rows"].items():
                _add_synonyms(synonyms, metric_id, [label])

    line_item_rules: Dict[str, Dict[str, Any]] = {}
    mapping_rules = raw.get("mapping_rules") or {}
    for line_item_id, rule in (mapping_rules.get("line_items") or {}).items():
        if isinstance(rule, dict):
            line_item_rules[line_item_id] = rule

    return {
        "slug": slug,
        "company_metadata": metadata,
        "metric_synonyms": synonyms,
        "line_item_rules": line_item_rules,
        "document_structure": document_structure,
        "file_patterns": raw.get("file_patterns") or {},
        "source_docs": raw.get("source_docs") or [],
    }


def _document_structure(raw_structure: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Keep only templates that describe KPI tables."""
    templates: Dict[str, Dict[str, Any]] = {}
    for template_key, template in raw_structure.items():
        if not isinstance(template, dict) or not isinstance(template.get("kpi_tables"), dict):
            continue
        tables = {}
        for table_key, table in template["kpi_tables"].items():
            if not isinstance(table, dict):
                continue
            anchor_text = table.get("anchor_text") or []
            if isinstance(anchor_text, str):
                anchor_text = [anchor_text]
            tables[table_key] = {
                "anchor_text": [str(text) for text in anchor_text],
                "metric_rows": {str(k): str(v) for k, v in (table.get("metric_rows") or {}).items()},
            }
        templates[template_key] = {"kpi_tables": tables}
    return templates


def _add_synonyms(synonyms: Dict[str, List[str]], metric_id: str, labels: Any) -> None:
    if isinstance(labels, str):
        labels = [labels]
    bucket = synonyms.setdefault(str(metric_id), [])
    for label in labels or []:
        label = str(label)
        if label and label not in bucket:
            bucket.append(label)


def _month_end(month: int) -> str:
    """``MM-DD`` of the last day of a month, e.g. 12 -> "12-31"."""
    return f"{month:02d}-{calendar.monthrange(2001, month)[1]:02d}"
