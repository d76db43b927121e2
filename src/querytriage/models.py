"""Data model for search query triage and minus-word suggestions."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
import math
from typing import Any, Iterable, Mapping

_KOPECK = Decimal("0.01")


def money_sum(values: Iterable[float]) -> float:
    """Sum currency values without float drift, quantised to kopecks."""

    total = Decimal("0")
    for value in values:
        total += Decimal(str(value))
    return float(total.quantize(_KOPECK, rounding=ROUND_HALF_UP))


def _coerce_number(value: object, *, field_name: str) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric")
    if isinstance(value, str):
        value = value.replace(",", ".").strip()
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise ValueError(f"{field_name} must be a finite number")
    return number


def _coerce_count(value: object, *, field_name: str) -> int:
    return int(_coerce_number(value, field_name=field_name))


def _first_present(payload: Mapping[str, Any], *keys: str) -> object:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


class QueryCategory(str, Enum):
    """Closed set of triage buckets."""

    TARGET = "target"
    TRASH = "trash"
    REVIEW = "review"

    @classmethod
    def parse(cls, value: object) -> "QueryCategory | None":
        """Return the matching category or ``None`` for anything unrecognised."""

        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: object) -> "Confidence | None":
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return None

    @property
    def auto_apply(self) -> bool:
        """High confidence suggestions may be applied without manual review."""

        return self is Confidence.HIGH


class MinusWordOperator(str, Enum):
    """Yandex.Direct match operators for negative keywords."""

    NONE = "none"
    EXCLAMATION = "exclamation"
    QUOTES = "quotes"

    @classmethod
    def parse(cls, value: object) -> "MinusWordOperator":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        return cls.NONE

    def apply(self, word: str) -> str:
        if word.startswith("!") or word.startswith('"'):
            return word
        if self is MinusWordOperator.EXCLAMATION:
            return f"!{word}"
        if self is MinusWordOperator.QUOTES:
            return f'"{word}"'
        return word


@dataclass(frozen=True, slots=True)
class QueryMetricRecord:
    """Immutable per-query performance metrics as reported by the ad platform.

    ``ctr`` is a percentage. ``cpl`` is ``None`` when the query has no
    conversions and no positive value was supplied.
    """

    query: str
    impressions: int = 0
    clicks: int = 0
    cost: float = 0.0
    conversions: int = 0
    ctr: float = 0.0
    avg_cpc: float = 0.0
    cpl: float | None = None

    @classmethod
    def build(
        cls,
        query: str,
        *,
        impressions: int = 0,
        clicks: int = 0,
        cost: float = 0.0,
        conversions: int = 0,
        ctr: float | None = None,
        avg_cpc: float | None = None,
        cpl: float | None = None,
    ) -> "QueryMetricRecord":
        """Create a record, deriving ctr/avg_cpc/cpl when they are not supplied."""

        if ctr is None:
            ctr = (clicks / impressions) * 100 if impressions > 0 else 0.0
        if avg_cpc is None:
            avg_cpc = cost / clicks if clicks > 0 else 0.0
        if cpl is None or cpl <= 0:
            cpl = cost / conversions if conversions > 0 else None
        return cls(
            query=query,
            impressions=impressions,
            clicks=clicks,
            cost=cost,
            conversions=conversions,
            ctr=ctr,
            avg_cpc=avg_cpc,
            cpl=cpl,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "QueryMetricRecord":
        if not isinstance(payload, Mapping):
            raise ValueError("query record must be an object")
        query = str(payload.get("query") or "").strip()
        if not query:
            raise ValueError("query text is required")

        ctr_raw = _first_present(payload, "ctr")
        cpc_raw = _first_present(payload, "avgCpc", "avg_cpc")
        cpl_raw = _first_present(payload, "cpl")
        return cls.build(
            query,
            impressions=_coerce_count(payload.get("impressions"), field_name="impressions"),
            clicks=_coerce_count(payload.get("clicks"), field_name="clicks"),
            cost=_coerce_number(payload.get("cost"), field_name="cost"),
            conversions=_coerce_count(payload.get("conversions"), field_name="conversions"),
            ctr=None if ctr_raw is None else _coerce_number(ctr_raw, field_name="ctr"),
            avg_cpc=None if cpc_raw is None else _coerce_number(cpc_raw, field_name="avgCpc"),
            cpl=None if cpl_raw is None else _coerce_number(cpl_raw, field_name="cpl"),
        )

    def to_payload(self) -> dict[str, object]:
        return {
            "query": self.query,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "cost": self.cost,
            "conversions": self.conversions,
            "ctr": self.ctr,
            "avgCpc": self.avg_cpc,
            "cpl": self.cpl,
        }


@dataclass(frozen=True, slots=True)
class AnalyzedQuery:
    query: str
    category: QueryCategory
    reason: str
    metrics: QueryMetricRecord
    suggested_minus_words: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, object]:
        metrics = self.metrics.to_payload()
        metrics.pop("query", None)
        return {
            "query": self.query,
            "category": self.category.value,
            "reason": self.reason,
            "suggestedMinusWords": list(self.suggested_minus_words),
            "metrics": metrics,
        }


@dataclass(frozen=True, slots=True)
class MinusWordSuggestion:
    """A negative keyword candidate with the trash spend it would have blocked."""

    word: str
    reason: str
    category: str
    queries_affected: int
    potential_savings: float
    example_queries: tuple[str, ...] = ()
    confidence: Confidence | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "word": self.word,
            "reason": self.reason,
            "category": self.category,
            "queriesAffected": self.queries_affected,
            "potentialSavings": self.potential_savings,
            "exampleQueries": list(self.example_queries),
        }
        if self.confidence is not None:
            payload["confidence"] = self.confidence.value
        return payload


@dataclass(frozen=True, slots=True)
class QueryCluster:
    keyword: str
    is_bigram: bool
    queries: int
    impressions: int
    clicks: int
    cost: float
    conversions: int
    ctr: float
    avg_cpc: float
    cpl: float | None
    target_count: int
    trash_count: int
    review_count: int

    def to_payload(self) -> dict[str, object]:
        return {
            "keyword": self.keyword,
            "isBigram": self.is_bigram,
            "queries": self.queries,
            "impressions": self.impressions,
            "clicks": self.clicks,
            "cost": self.cost,
            "conversions": self.conversions,
            "ctr": self.ctr,
            "avgCpc": self.avg_cpc,
            "cpl": self.cpl,
            "targetCount": self.target_count,
            "trashCount": self.trash_count,
            "reviewCount": self.review_count,
        }


@dataclass(frozen=True, slots=True)
class AnalysisSummary:
    """Spend totals for one analysis.

    ``potential_savings`` equals ``wasted_cost``. ``minus_word_savings`` is the
    sum of per-word savings and counts a trash query once for every suggested
    word it contains, so the two figures are not additive.
    """

    total_cost: float
    wasted_cost: float
    potential_savings: float
    minus_word_savings: float = 0.0
    avg_cpl_target: float = 0.0
    avg_cpl_trash: float = 0.0

    def to_payload(self) -> dict[str, object]:
        return {
            "totalCost": self.total_cost,
            "wastedCost": self.wasted_cost,
            "potentialSavings": self.potential_savings,
            "minusWordSavings": self.minus_word_savings,
            "avgCplTarget": self.avg_cpl_target,
            "avgCplTrash": self.avg_cpl_trash,
        }


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    total_queries: int
    excluded_queries: int
    target_queries: tuple[AnalyzedQuery, ...]
    trash_queries: tuple[AnalyzedQuery, ...]
    review_queries: tuple[AnalyzedQuery, ...]
    suggested_minus_words: tuple[MinusWordSuggestion, ...]
    summary: AnalysisSummary
    clusters: tuple[QueryCluster, ...] | None = None
    source: str = "ai"
    dropped_records: int = 0

    def bucket(self, category: QueryCategory) -> tuple[AnalyzedQuery, ...]:
        if category is QueryCategory.TARGET:
            return self.target_queries
        if category is QueryCategory.TRASH:
            return self.trash_queries
        return self.review_queries

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "totalQueries": self.total_queries,
            "excludedQueries": self.excluded_queries,
            "targetQueries": [item.to_payload() for item in self.target_queries],
            "trashQueries": [item.to_payload() for item in self.trash_queries],
            "reviewQueries": [item.to_payload() for item in self.review_queries],
            "suggestedMinusWords": [item.to_payload() for item in self.suggested_minus_words],
            "summary": self.summary.to_payload(),
            "source": self.source,
            "droppedRecords": self.dropped_records,
        }
        if self.clusters is not None:
            payload["clusters"] = [cluster.to_payload() for cluster in self.clusters]
        return payload


@dataclass(frozen=True, slots=True)
class WordStatistic:
    """Per-word rollup produced upstream from a query corpus."""

    word: str
    total_cost: float = 0.0
    total_clicks: int = 0
    queries_count: int = 0
    example_queries: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WordStatistic":
        if not isinstance(payload, Mapping):
            raise ValueError("word statistic must be an object")
        word = str(payload.get("word") or "").strip()
        if not word:
            raise ValueError("word is required")
        examples = _first_present(payload, "exampleQueries", "example_queries") or []
        if isinstance(examples, str):
            examples = [examples]
        return cls(
            word=word,
            total_cost=_coerce_number(
                _first_present(payload, "totalCost", "total_cost"), field_name="totalCost"
            ),
            total_clicks=_coerce_count(
                _first_present(payload, "totalClicks", "total_clicks"), field_name="totalClicks"
            ),
            queries_count=_coerce_count(
                _first_present(payload, "queriesCount", "queries_count"), field_name="queriesCount"
            ),
            example_queries=tuple(str(item) for item in examples if str(item).strip()),
        )


@dataclass(frozen=True, slots=True)
class WordMinusCandidate:
    word: str
    reason: str
    confidence: Confidence
    operator: MinusWordOperator = MinusWordOperator.NONE

    def to_payload(self) -> dict[str, object]:
        return {
            "word": self.word,
            "reason": self.reason,
            "confidence": self.confidence.value,
            "operator": self.operator.value,
        }


@dataclass(frozen=True, slots=True)
class ReviewResolution:
    """Outcome of re-classifying a review query into target or trash."""

    query: str
    category: QueryCategory
    reason: str
    minus_word: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "query": self.query,
            "category": self.category.value,
            "reason": self.reason,
        }
        if self.minus_word:
            payload["minusWord"] = self.minus_word
        return payload


__all__ = [
    "AnalysisResult",
    "AnalysisSummary",
    "AnalyzedQuery",
    "Confidence",
    "MinusWordOperator",
    "MinusWordSuggestion",
    "QueryCategory",
    "QueryCluster",
    "QueryMetricRecord",
    "ReviewResolution",
    "WordMinusCandidate",
    "WordStatistic",
    "money_sum",
]
