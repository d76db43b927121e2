"""Join classifier output back onto source metrics and roll up the result."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Iterable, Sequence

from .models import (
    AnalysisResult,
    AnalysisSummary,
    AnalyzedQuery,
    Confidence,
    MinusWordSuggestion,
    QueryCategory,
    QueryCluster,
    QueryMetricRecord,
    money_sum,
)
from .ranking import RankedSlice

logger = logging.getLogger(__name__)

_MAX_EXAMPLE_QUERIES = 2


@dataclass(frozen=True, slots=True)
class SuggestedWord:
    """A minus-word as proposed by a classifier, before savings are computed."""

    word: str
    reason: str = ""
    category: str = "other"
    confidence: Confidence | None = None


@dataclass(frozen=True, slots=True)
class ClassifiedQuery:
    """One query as echoed back by the AI, category still unparsed."""

    query: str
    category: object
    reason: str = ""
    minus_words: tuple[str, ...] = ()
    record_id: int | None = None


@dataclass(frozen=True, slots=True)
class Reconciliation:
    analyzed: tuple[AnalyzedQuery, ...]
    unmatched: tuple[str, ...] = ()
    unrecognized: tuple[str, ...] = ()
    duplicates: tuple[str, ...] = ()

    @property
    def dropped_count(self) -> int:
        return len(self.unmatched) + len(self.unrecognized) + len(self.duplicates)


def reconcile(
    classified: Iterable[ClassifiedQuery],
    records: Sequence[QueryMetricRecord],
    *,
    join_by_id: bool = False,
) -> Reconciliation:
    """Attach source metrics to each classified query.

    Queries are matched by exact text against ``records``; when ``join_by_id``
    is set an echoed ``record_id`` is tried first. Echoes that match nothing
    and echoes with a category outside target/trash/review are dropped and
    logged, never given invented metrics. A record is classified at most once;
    repeated echoes of it are dropped as duplicates.
    """

    by_text = {record.query: record for record in records}
    analyzed: list[AnalyzedQuery] = []
    unmatched: list[str] = []
    unrecognized: list[str] = []
    duplicates: list[str] = []
    seen: set[int] = set()

    for item in classified:
        record: QueryMetricRecord | None = None
        if join_by_id and item.record_id is not None and 0 <= item.record_id < len(records):
            record = records[item.record_id]
        if record is None:
            record = by_text.get(item.query)
        if record is None:
            logger.warning("triage.reconcile.unmatched query=%r", item.query)
            unmatched.append(item.query)
            continue

        category = QueryCategory.parse(item.category)
        if category is None:
            logger.warning(
                "triage.reconcile.unknown_category query=%r category=%r", item.query, item.category
            )
            unrecognized.append(item.query)
            continue

        if id(record) in seen:
            logger.warning("triage.reconcile.duplicate query=%r", record.query)
            duplicates.append(record.query)
            continue
        seen.add(id(record))
        analyzed.append(
            AnalyzedQuery(
                query=record.query,
                category=category,
                reason=item.reason,
                metrics=record,
                suggested_minus_words=item.minus_words,
            )
        )

    if unmatched or unrecognized or duplicates:
        logger.info(
            "triage.reconcile.dropped unmatched=%s unrecognized=%s duplicates=%s kept=%s",
            len(unmatched),
            len(unrecognized),
            len(duplicates),
            len(analyzed),
        )
    return Reconciliation(
        analyzed=tuple(analyzed),
        unmatched=tuple(unmatched),
        unrecognized=tuple(unrecognized),
        duplicates=tuple(duplicates),
    )


def bucket_queries(
    analyzed: Iterable[AnalyzedQuery],
) -> dict[QueryCategory, tuple[AnalyzedQuery, ...]]:
    buckets: dict[QueryCategory, list[AnalyzedQuery]] = {category: [] for category in QueryCategory}
    for item in analyzed:
        buckets[item.category].append(item)
    return {category: tuple(items) for category, items in buckets.items()}


def aggregate_minus_words(
    suggestions: Iterable[SuggestedWord],
    trash_queries: Sequence[AnalyzedQuery],
) -> tuple[MinusWordSuggestion, ...]:
    """Compute per-word savings over the trash bucket.

    Words are deduplicated case-insensitively; the last suggestion seen for a
    word supplies its reason, category and confidence. A trash query counts
    toward every word it contains, so the per-word savings can add up to more
    than the wasted cost.
    """

    unique: dict[str, SuggestedWord] = {}
    for suggestion in suggestions:
        word = suggestion.word.strip()
        if not word:
            continue
        unique[word.casefold()] = suggestion

    results: list[MinusWordSuggestion] = []
    for key, suggestion in unique.items():
        matching = [item for item in trash_queries if key in item.query.casefold()]
        results.append(
            MinusWordSuggestion(
                word=suggestion.word.strip(),
                reason=suggestion.reason,
                category=suggestion.category,
                queries_affected=len(matching),
                potential_savings=money_sum(item.metrics.cost for item in matching),
                example_queries=tuple(item.query for item in matching[:_MAX_EXAMPLE_QUERIES]),
                confidence=suggestion.confidence,
            )
        )
    results.sort(key=lambda item: item.potential_savings, reverse=True)
    return tuple(results)


def _average_cpl(items: Sequence[AnalyzedQuery]) -> float:
    values = [
        item.metrics.cpl
        for item in items
        if item.metrics.conversions > 0 and item.metrics.cpl is not None
    ]
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


def build_summary(
    corpus: Sequence[QueryMetricRecord],
    buckets: dict[QueryCategory, tuple[AnalyzedQuery, ...]],
    suggestions: Sequence[MinusWordSuggestion],
) -> AnalysisSummary:
    wasted = money_sum(item.metrics.cost for item in buckets[QueryCategory.TRASH])
    return AnalysisSummary(
        total_cost=money_sum(record.cost for record in corpus),
        wasted_cost=wasted,
        potential_savings=wasted,
        minus_word_savings=money_sum(item.potential_savings for item in suggestions),
        avg_cpl_target=_average_cpl(buckets[QueryCategory.TARGET]),
        avg_cpl_trash=_average_cpl(buckets[QueryCategory.TRASH]),
    )


def assemble_result(
    *,
    corpus: Sequence[QueryMetricRecord],
    ranked: RankedSlice[QueryMetricRecord],
    analyzed: Iterable[AnalyzedQuery],
    suggestions: Iterable[SuggestedWord],
    clusters: Sequence[QueryCluster] | None = None,
    source: str = "ai",
    dropped_records: int = 0,
) -> AnalysisResult:
    """Bucket queries, aggregate minus-words and compute the summary."""

    buckets = bucket_queries(analyzed)
    minus_words = aggregate_minus_words(suggestions, buckets[QueryCategory.TRASH])
    return AnalysisResult(
        total_queries=ranked.analyzed_count,
        excluded_queries=ranked.excluded_count,
        target_queries=buckets[QueryCategory.TARGET],
        trash_queries=buckets[QueryCategory.TRASH],
        review_queries=buckets[QueryCategory.REVIEW],
        suggested_minus_words=minus_words,
        summary=build_summary(corpus, buckets, minus_words),
        clusters=None if clusters is None else tuple(clusters),
        source=source,
        dropped_records=dropped_records,
    )


__all__ = [
    "ClassifiedQuery",
    "Reconciliation",
    "SuggestedWord",
    "aggregate_minus_words",
    "assemble_result",
    "bucket_queries",
    "build_summary",
    "reconcile",
]
