"""Analysis pipeline: validate, rank, classify, reconcile, cluster."""

from __future__ import annotations

from contextlib import nullcontext
from dataclasses import dataclass, field
import logging
import time
from typing import Any, Mapping, Sequence

from .aggregation import assemble_result, reconcile
from .briefs import ProjectBriefStore
from .classifier import QueryClassifier
from .clustering import build_clusters
from .config import Settings
from .errors import AnalysisRequestError, LLMError, LLMUnavailableError
from .heuristics import HeuristicClassifier, HeuristicConfig
from .history import AnalysisHistoryStore
from .llm import JSONChatClient
from .models import (
    AnalysisResult,
    AnalyzedQuery,
    QueryMetricRecord,
    ReviewResolution,
    WordStatistic,
)
from .observability import MetricsRecorder
from .ranking import RankedSlice, rank_by_cost
from .word_filter import MinusWordFilter, WordFilterResult

logger = logging.getLogger(__name__)


def _parse_bool(payload: Mapping[str, Any], key: str, default: bool) -> bool:
    value = payload.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise AnalysisRequestError(key, f"{key} must be a boolean")
    return value


def parse_optional_number(payload: Mapping[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise AnalysisRequestError(key, f"{key} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise AnalysisRequestError(key, f"{key} must be a number") from exc
    return number if number > 0 else None


def _parse_text(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise AnalysisRequestError(key, f"{key} must be a string")
    return value.strip() or None


def parse_query_records(raw: object, field_name: str = "queries") -> tuple[QueryMetricRecord, ...]:
    """Validate a JSON array of query records."""

    if raw is None or not isinstance(raw, list) or not raw:
        raise AnalysisRequestError(field_name, f"{field_name} array is required")
    records: list[QueryMetricRecord] = []
    for index, item in enumerate(raw):
        try:
            records.append(QueryMetricRecord.from_payload(item))
        except ValueError as exc:
            raise AnalysisRequestError(field_name, f"{field_name}[{index}]: {exc}") from exc
    return tuple(records)


def parse_word_statistics(raw: object, field_name: str = "words") -> tuple[WordStatistic, ...]:
    if raw is None or not isinstance(raw, list) or not raw:
        raise AnalysisRequestError(field_name, f"{field_name} array is required")
    words: list[WordStatistic] = []
    for index, item in enumerate(raw):
        try:
            words.append(WordStatistic.from_payload(item))
        except ValueError as exc:
            raise AnalysisRequestError(field_name, f"{field_name}[{index}]: {exc}") from exc
    return tuple(words)


def parse_safe_words(raw: object) -> tuple[str, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, list):
        raise AnalysisRequestError("safeWords", "safeWords must be an array of strings")
    return tuple(str(item).strip() for item in raw if isinstance(item, str) and item.strip())


@dataclass(slots=True)
class AnalysisRequest:
    queries: tuple[QueryMetricRecord, ...]
    business_description: str | None = None
    target_cpl: float | None = None
    use_ai: bool = True
    fallback_to_heuristics: bool = False
    project_id: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AnalysisRequest":
        if not isinstance(payload, Mapping):
            raise AnalysisRequestError("body", "request body must be a JSON object")
        return cls(
            queries=parse_query_records(payload.get("queries")),
            business_description=_parse_text(payload, "businessDescription"),
            target_cpl=parse_optional_number(payload, "targetCpl"),
            use_ai=_parse_bool(payload, "useAi", True),
            fallback_to_heuristics=_parse_bool(payload, "fallbackToHeuristics", False),
            project_id=_parse_text(payload, "projectId"),
        )


@dataclass(frozen=True, slots=True)
class AnalysisResponse:
    """Successful analysis in the uniform response envelope."""

    result: AnalysisResult
    raw_queries_count: int
    filtered_count: int
    warning: str | None = None

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "success": True,
            "data": self.result.to_payload(),
            "rawQueriesCount": self.raw_queries_count,
            "filteredCount": self.filtered_count,
        }
        if self.warning:
            payload["warning"] = self.warning
        return payload


@dataclass(frozen=True, slots=True)
class ReviewResolutionResult:
    results: tuple[ReviewResolution, ...]
    analyzed_count: int
    excluded_count: int = 0

    def to_payload(self) -> dict[str, object]:
        return {
            "results": [item.to_payload() for item in self.results],
            "analyzedCount": self.analyzed_count,
            "excludedCount": self.excluded_count,
        }


def error_payload(message: str) -> dict[str, object]:
    return {"success": False, "error": message}


@dataclass(slots=True)
class TriageEngine:
    """Run query triage with injected collaborators.

    The chat client, briefs store, history store and metrics recorder are all
    passed in; nothing is read from the environment here.
    """

    settings: Settings
    llm_client: JSONChatClient | None = None
    briefs: ProjectBriefStore | None = None
    history: AnalysisHistoryStore | None = None
    metrics: MetricsRecorder | None = None
    classifier: QueryClassifier | None = field(default=None)
    word_filter: MinusWordFilter | None = field(default=None)

    def __post_init__(self) -> None:
        if self.llm_client is not None:
            if self.classifier is None:
                self.classifier = QueryClassifier(
                    self.llm_client,
                    join_by_id=self.settings.query_join_by_id,
                    safe_words_limit=self.settings.safe_words_prompt_limit,
                )
            if self.word_filter is None:
                self.word_filter = MinusWordFilter(
                    self.llm_client,
                    limit=self.settings.word_analysis_limit,
                    safe_words_limit=self.settings.safe_words_prompt_limit,
                )

    @property
    def ai_available(self) -> bool:
        if self.llm_client is not None:
            return self.llm_client.enabled
        return self.classifier is not None

    def _require_ai(self, component):
        if component is None or (self.llm_client is not None and not self.llm_client.enabled):
            raise LLMUnavailableError(f"AI analysis unavailable: {self._unavailable_reason()}")
        return component

    def _unavailable_reason(self) -> str:
        if self.llm_client is None:
            return "no chat client configured"
        return self.llm_client.disable_reason or "chat backend disabled"

    def _apply_brief(self, request: AnalysisRequest) -> None:
        brief = self.briefs.get(request.project_id) if self.briefs is not None else None
        if brief is None:
            return
        if request.business_description is None and brief.business_description:
            request.business_description = brief.business_description
        if request.target_cpl is None and brief.target_cpl:
            request.target_cpl = brief.target_cpl

    async def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        """Classify a query corpus and compute minus-words, clusters and totals.

        Validation happens before any call to the chat backend. An AI failure
        fails the request unless ``fallback_to_heuristics`` is set, in which
        case the heuristic result is returned with a warning.
        """

        if not request.queries:
            raise AnalysisRequestError("queries", "queries array is required")
        self._apply_brief(request)
        if request.use_ai and not request.business_description:
            raise AnalysisRequestError(
                "businessDescription", "businessDescription is required when useAi is true"
            )

        started = time.perf_counter()
        ranked = rank_by_cost(request.queries, self.settings.query_analysis_limit)
        logger.info(
            "triage.analyze.start queries=%s analyzed=%s excluded=%s use_ai=%s project=%s",
            ranked.total_count,
            ranked.analyzed_count,
            ranked.excluded_count,
            request.use_ai,
            request.project_id,
        )

        warning: str | None = None
        if request.use_ai:
            try:
                result = await self._analyze_with_ai(request, ranked)
            except LLMError as exc:
                self._increment("analyze.ai_failures", error=type(exc).__name__)
                if not request.fallback_to_heuristics:
                    raise
                logger.warning("triage.analyze.fallback reason=%s", exc)
                warning = f"AI analysis failed ({exc}); results use heuristic rules"
                result = self._analyze_with_heuristics(request.queries, ranked, request.target_cpl)
        else:
            result = self._analyze_with_heuristics(request.queries, ranked, request.target_cpl)

        if request.project_id and self.history is not None:
            self.history.append(request.project_id, result)

        elapsed = time.perf_counter() - started
        self._record_result(result, elapsed, fallback=warning is not None)
        logger.info(
            "triage.analyze.done source=%s target=%s trash=%s review=%s wasted=%s duration_ms=%.1f",
            result.source,
            len(result.target_queries),
            len(result.trash_queries),
            len(result.review_queries),
            result.summary.wasted_cost,
            elapsed * 1000.0,
        )
        return AnalysisResponse(
            result=result,
            raw_queries_count=ranked.total_count,
            filtered_count=ranked.analyzed_count,
            warning=warning,
        )

    def quick_analyze(
        self,
        records: Sequence[QueryMetricRecord],
        *,
        overrides: Mapping[str, object] | None = None,
        target_cpl: float | None = None,
    ) -> AnalysisResponse:
        """Heuristic-only analysis; never touches the chat backend."""

        if not records:
            raise AnalysisRequestError("queries", "queries array is required")
        ranked = rank_by_cost(records, self.settings.query_analysis_limit)
        started = time.perf_counter()
        result = self._analyze_with_heuristics(records, ranked, target_cpl, overrides=overrides)
        self._record_result(result, time.perf_counter() - started, fallback=False)
        return AnalysisResponse(
            result=result,
            raw_queries_count=ranked.total_count,
            filtered_count=ranked.analyzed_count,
        )

    async def analyze_words(
        self,
        words: Sequence[WordStatistic],
        business_description: str | None,
        safe_words: Sequence[str] = (),
    ) -> WordFilterResult:
        if not words:
            raise AnalysisRequestError("words", "words array is required")
        if not business_description:
            raise AnalysisRequestError("businessDescription", "businessDescription is required")
        word_filter = self._require_ai(self.word_filter)
        with self._timing("words.duration"):
            result = await word_filter.filter_words(words, business_description, safe_words)
        self._increment("words.suggested", value=len(result.minus_words))
        return result

    async def resolve_review(
        self,
        records: Sequence[QueryMetricRecord],
        business_description: str | None,
        safe_words: Sequence[str] = (),
    ) -> ReviewResolutionResult:
        if not records:
            raise AnalysisRequestError("queries", "queries array is required")
        if not business_description:
            raise AnalysisRequestError("businessDescription", "businessDescription is required")
        classifier = self._require_ai(self.classifier)
        ranked = rank_by_cost(records, self.settings.review_resolve_limit)
        with self._timing("review.duration"):
            results = await classifier.resolve_review_queries(
                ranked.records, business_description, safe_words
            )
        return ReviewResolutionResult(
            results=tuple(results),
            analyzed_count=ranked.analyzed_count,
            excluded_count=ranked.excluded_count,
        )

    async def _analyze_with_ai(
        self, request: AnalysisRequest, ranked: RankedSlice[QueryMetricRecord]
    ) -> AnalysisResult:
        classifier = self._require_ai(self.classifier)
        with self._timing("llm.duration"):
            classification = await classifier.classify(
                ranked.records,
                request.business_description or "",
                target_cpl=request.target_cpl,
            )
        reconciliation = reconcile(
            classification.queries,
            ranked.records,
            join_by_id=classifier.join_by_id,
        )
        suggestions = list(classification.suggested_minus_words)
        return assemble_result(
            corpus=request.queries,
            ranked=ranked,
            analyzed=reconciliation.analyzed,
            suggestions=suggestions,
            clusters=self._clusters(reconciliation.analyzed),
            source="ai",
            dropped_records=reconciliation.dropped_count,
        )

    def _analyze_with_heuristics(
        self,
        corpus: Sequence[QueryMetricRecord],
        ranked: RankedSlice[QueryMetricRecord],
        target_cpl: float | None,
        *,
        overrides: Mapping[str, object] | None = None,
    ) -> AnalysisResult:
        config = HeuristicConfig.from_settings(
            self.settings, target_cpl=target_cpl, overrides=overrides
        )
        classification = HeuristicClassifier(config).classify(ranked.records)
        return assemble_result(
            corpus=corpus,
            ranked=ranked,
            analyzed=classification.analyzed,
            suggestions=classification.suggestions,
            clusters=self._clusters(classification.analyzed),
            source="heuristic",
        )

    def _clusters(self, analyzed: Sequence[AnalyzedQuery]):
        return build_clusters(
            analyzed,
            min_queries=self.settings.cluster_min_queries,
            max_results=self.settings.cluster_max_results,
        )

    def _record_result(self, result: AnalysisResult, elapsed: float, *, fallback: bool) -> None:
        if self.metrics is None:
            return
        self.metrics.increment("analyze.requests", source=result.source, fallback=fallback)
        self.metrics.record_timing("analyze.duration", elapsed, source=result.source)
        self.metrics.set_gauge("analyze.wasted_cost", result.summary.wasted_cost)
        if result.dropped_records:
            self.metrics.increment("analyze.dropped_records", value=result.dropped_records)

    def _increment(self, metric: str, *, value: int = 1, **tags: Any) -> None:
        if self.metrics is not None:
            self.metrics.increment(metric, value=value, **tags)

    def _timing(self, metric: str):
        if self.metrics is None:
            return nullcontext()
        return self.metrics.track_timing(metric)


__all__ = [
    "AnalysisRequest",
    "AnalysisResponse",
    "ReviewResolutionResult",
    "TriageEngine",
    "error_payload",
    "parse_optional_number",
    "parse_query_records",
    "parse_safe_words",
    "parse_word_statistics",
]
