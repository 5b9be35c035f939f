"""Reconciliation of newly mapped facts against stored facts.

Merges a batch of new facts into the accumulated fact set for a company,
producing a deterministic final set, a change log and a conflict list for
human review. Nothing is deleted: keys that a new extraction does not report
pass through unchanged, and values that lose a priority contest are kept in
the fact's changelog.
"""

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from financials.models.extraction import VarianceExplanation
from financials.models.facts import ChangeLogEntry, LineItemFact, normalize_period
from financials.models.reconciliation import (
    ChangeRecord,
    ConflictEntry,
    ReconciliationResult,
    ReconciliationSummary,
)
from financials.services.reconciliation.priority import (
    detect_file_type,
    explanation_priority_boost,
    file_priority,
)
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

FactKey = Tuple[str, str, str]

INITIAL_IMPORT_REASON = "Initial import"
NEW_DATA_REASON = "New Data"
AUTHORITATIVE_EXPLANATIONS = ("restatement", "correction")

_RECOMMENDATIONS = {
    "high": "manual_review",
    "medium": "use_new",
    "low": "keep_existing",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationService:
    """Priority-based merge of new facts into existing facts.

    Decision matrix for a key present on both sides:
    - values equal within tolerance: ignore, existing record untouched
    - new source outranks existing: update
    - existing source outranks new: keep existing, record the losing value
    - equal rank, variance above threshold: update and raise a conflict
    - equal rank, variance within threshold: silent rounding update

    Attributes:
        rel_tolerance: Relative tolerance for value equality
        abs_tolerance: Absolute tolerance for value equality
        variance_threshold: Relative change above which equal-rank updates conflict
        clock: Callable returning the current time
    """

    def __init__(
        self,
        rel_tolerance: float = 1e-6,
        abs_tolerance: float = 1e-9,
        variance_threshold: float = 0.01,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.rel_tolerance = rel_tolerance
        self.abs_tolerance = abs_tolerance
        self.variance_threshold = variance_threshold
        self.clock = clock or _utc_now

    def reconcile(
        self,
        new_facts: Iterable[LineItemFact],
        existing_facts: Iterable[Union[LineItemFact, Dict[str, Any]]],
        explanations: Optional[Iterable[VarianceExplanation]] = None,
    ) -> ReconciliationResult:
        """Merge new facts into existing facts.

        Args:
            new_facts: Facts mapped from the current extraction
            existing_facts: Previously persisted facts (records or raw dicts)
            explanations: Variance explanations reported by the current document

        Returns:
            ReconciliationResult with final facts, changes, conflicts and counts
        """
        timestamp = self.clock().isoformat()
        explanation_lookup = self._build_explanation_lookup(explanations or [])

        final_map: Dict[FactKey, LineItemFact] = self._index_existing(existing_facts)
        candidates = self._collapse_new_facts(new_facts, explanation_lookup)

        changes: List[ChangeRecord] = []
        conflicts: List[ConflictEntry] = []
        summary = ReconciliationSummary()

        for key, (new_fact, new_priority, explanation) in candidates.items():
            enriched = new_fact.model_copy(
                update={
                    "priority": new_priority,
                    "explanation": explanation.explanation if explanation else new_fact.explanation,
                }
            )
            existing = final_map.get(key)

            if existing is None:
                entry = self._changelog_entry(timestamp, None, enriched, INITIAL_IMPORT_REASON)
                final_map[key] = enriched.model_copy(update={"changelog": (entry,)})
                changes.append(self._change_record(key, entry.model_copy(update={"reason": NEW_DATA_REASON})))
                summary.inserted += 1
                continue

            if self._values_equal(existing.amount, enriched.amount):
                summary.ignored += 1
                continue

            existing_priority = self._existing_priority(existing)
            history = self._history(existing, timestamp)
            new_type = detect_file_type(enriched.source_file)
            severity: Optional[str] = None

            if new_priority < existing_priority:
                summary.ignored += 1
                if self._already_recorded(history, enriched):
                    continue

                reason = f"Lower priority source: {new_type} ({new_priority} < {existing_priority})"
                entry = self._changelog_entry(timestamp, existing.amount, enriched, reason, accepted=False)
                final_map[key] = existing.model_copy(update={"changelog": history + (entry,)})
                changes.append(self._change_record(key, entry))

                if explanation is not None:
                    severity = "low"
            else:
                if new_priority > existing_priority:
                    if explanation_priority_boost(explanation) > 0:
                        reason = (
                            f"{explanation.explanation_type.upper()} from {new_type} "
                            f"(priority {new_priority} > {existing_priority})"
                        )
                    else:
                        reason = f"Higher priority source: {new_type} ({new_priority} > {existing_priority})"
                elif self._variance(existing.amount, enriched.amount) > self.variance_threshold:
                    if explanation is not None and explanation.explanation_type in AUTHORITATIVE_EXPLANATIONS:
                        reason = f"Equal priority but {explanation.explanation_type.upper()} takes precedence"
                        severity = "medium"
                    else:
                        reason = "Equal priority - newest file (NEEDS REVIEW)"
                        severity = "high"
                else:
                    reason = "Minor update (rounding)"

                entry = self._changelog_entry(timestamp, existing.amount, enriched, reason)
                final_map[key] = enriched.model_copy(update={"changelog": history + (entry,)})
                changes.append(self._change_record(key, entry))
                summary.updated += 1

            if severity:
                conflicts.append(
                    ConflictEntry(
                        metric_id=key[0],
                        period=key[1],
                        scenario=key[2],
                        existing_value=existing.amount,
                        new_value=enriched.amount,
                        existing_source=existing.source_file,
                        new_source=enriched.source_file,
                        existing_explanation=existing.explanation,
                        new_explanation=explanation.explanation if explanation else None,
                        severity=severity,
                        recommendation=_RECOMMENDATIONS[severity],
                    )
                )

        summary.conflicts = len(conflicts)

        LOGGER.info(
            "Reconciliation complete",
            extra={
                "inserted": summary.inserted,
                "updated": summary.updated,
                "ignored": summary.ignored,
                "conflicts": summary.conflicts,
            },
        )

        return ReconciliationResult(
            final_facts=list(final_map.values()),
            changes=changes,
            conflicts=conflicts,
            summary=summary,
        )

    def _values_equal(self, a: float, b: float) -> bool:
        return math.isclose(a, b, rel_tol=self.rel_tolerance, abs_tol=self.abs_tolerance)

    @staticmethod
    def _variance(old_value: float, new_value: float) -> float:
        # A move away from zero is always significant
        if old_value == 0:
            return 1.0
        return abs((new_value - old_value) / old_value)

    @staticmethod
    def _existing_priority(fact: LineItemFact) -> int:
        if fact.priority is not None:
            return fact.priority
        return file_priority(fact.source_file, fact.scenario)

    def _history(self, fact: LineItemFact, timestamp: str) -> Tuple[ChangeLogEntry, ...]:
        """Changelog of a stored fact, backfilling the initial import if absent."""
        if fact.changelog:
            return fact.changelog
        return (
            ChangeLogEntry(
                timestamp=fact.extracted_at or timestamp,
                old_value=None,
                new_value=fact.amount,
                reason=INITIAL_IMPORT_REASON,
                source_file=fact.source_file,
                explanation=fact.explanation,
                view_source_url=fact.snippet_url,
            ),
        )

    def _already_recorded(self, history: Tuple[ChangeLogEntry, ...], fact: LineItemFact) -> bool:
        return any(
            entry.source_file == fact.source_file and self._values_equal(entry.new_value, fact.amount)
            for entry in history
        )

    @staticmethod
    def _changelog_entry(
        timestamp: str,
        old_value: Optional[float],
        fact: LineItemFact,
        reason: str,
        accepted: bool = True,
    ) -> ChangeLogEntry:
        return ChangeLogEntry(
            timestamp=timestamp,
            old_value=old_value,
            new_value=fact.amount,
            reason=reason,
            source_file=fact.source_file,
            explanation=fact.explanation,
            view_source_url=fact.snippet_url,
            accepted=accepted,
        )

    @staticmethod
    def _change_record(key: FactKey, entry: ChangeLogEntry) -> ChangeRecord:
        return ChangeRecord(
            line_item_id=key[0],
            period=key[1],
            scenario=key[2],
            **entry.model_dump(),
        )

    def _collapse_new_facts(
        self,
        new_facts: Iterable[LineItemFact],
        explanation_lookup: Dict[Tuple[str, Optional[str]], VarianceExplanation],
    ) -> Dict[FactKey, Tuple[LineItemFact, int, Optional[VarianceExplanation]]]:
        """Keep one candidate per key: highest effective priority, later entries win ties."""
        candidates: Dict[FactKey, Tuple[LineItemFact, int, Optional[VarianceExplanation]]] = {}
        for fact in new_facts:
            explanation = self._match_explanation(explanation_lookup, fact)
            priority = file_priority(fact.source_file, fact.scenario) + explanation_priority_boost(explanation)
            current = candidates.get(fact.key)
            if current is not None and current[1] > priority:
                continue
            candidates[fact.key] = (fact, priority, explanation)
        return candidates

    @staticmethod
    def _index_existing(
        existing_facts: Iterable[Union[LineItemFact, Dict[str, Any]]]
    ) -> Dict[FactKey, LineItemFact]:
        indexed: Dict[FactKey, LineItemFact] = {}
        for raw in existing_facts or []:
            if isinstance(raw, LineItemFact):
                fact = raw
            else:
                try:
                    fact = LineItemFact.model_validate(raw)
                except PydanticValidationError as e:
                    LOGGER.warning(
                        f"Skipping malformed stored fact: {e.error_count()} validation error(s)",
                        extra={"record": str(raw)[:200]},
                    )
                    continue
            indexed[fact.key] = fact
        return indexed

    @staticmethod
    def _build_explanation_lookup(
        explanations: Iterable[VarianceExplanation],
    ) -> Dict[Tuple[str, Optional[str]], VarianceExplanation]:
        lookup: Dict[Tuple[str, Optional[str]], VarianceExplanation] = {}
        for explanation in explanations:
            period = None
            if explanation.period:
                try:
                    period = normalize_period(explanation.period)
                except ValueError:
                    period = None
            lookup[(explanation.metric_id, period)] = explanation
        return lookup

    @staticmethod
    def _match_explanation(
        lookup: Dict[Tuple[str, Optional[str]], VarianceExplanation], fact: LineItemFact
    ) -> Optional[VarianceExplanation]:
        return lookup.get((fact.line_item_id, fact.date)) or lookup.get((fact.line_item_id, None))
