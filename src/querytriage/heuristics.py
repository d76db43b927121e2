"""Deterministic rule-based classifier used when AI analysis is off or unavailable."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable, Mapping, Sequence

from .aggregation import SuggestedWord
from .config import Settings
from .models import AnalyzedQuery, QueryCategory, QueryMetricRecord
from .tokens import tokenize

logger = logging.getLogger(__name__)

RULE_STOP_WORD = "stop_word"
RULE_HIGH_CPL = "high_cpl"
RULE_ZERO_CLICKS = "zero_clicks"

_STOP_WORD_REASON = "Стоп-слово из настроек анализа"
_LOW_PERFORMANCE_REASON = "Слово из нецелевого запроса, не встречается в запросах с конверсиями"


@dataclass(frozen=True, slots=True)
class HeuristicConfig:
    """Thresholds for the rule-based classifier."""

    max_cpl: float = 5000.0
    min_impressions: int = 100
    min_clicks: int = 5
    stop_words: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        target_cpl: float | None = None,
        overrides: Mapping[str, object] | None = None,
    ) -> "HeuristicConfig":
        """Build a config from settings, a target CPL and camelCase request overrides."""

        max_cpl = settings.heuristic_max_cpl
        if target_cpl is not None and target_cpl > 0:
            max_cpl = float(target_cpl)
        min_impressions = settings.heuristic_min_impressions
        min_clicks = settings.heuristic_min_clicks
        stop_words: Iterable[str] = settings.heuristic_stop_words

        if overrides:
            if overrides.get("maxCpl") is not None:
                max_cpl = float(overrides["maxCpl"])  # type: ignore[arg-type]
            if overrides.get("minImpressions") is not None:
                min_impressions = int(overrides["minImpressions"])  # type: ignore[arg-type]
            if overrides.get("minClicks") is not None:
                min_clicks = int(overrides["minClicks"])  # type: ignore[arg-type]
            custom = overrides.get("stopWords")
            if isinstance(custom, (list, tuple)):
                stop_words = [str(item) for item in custom]

        return cls(
            max_cpl=max_cpl,
            min_impressions=min_impressions,
            min_clicks=min_clicks,
            stop_words=tuple(
                word.strip().lower() for word in stop_words if word and word.strip()
            ),
        )


@dataclass(frozen=True, slots=True)
class HeuristicVerdict:
    category: QueryCategory
    reason: str
    rule: str | None = None
    minus_words: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class HeuristicClassification:
    """Classified queries plus the minus-word seeds the rules produced."""

    analyzed: tuple[AnalyzedQuery, ...]
    suggestions: tuple[SuggestedWord, ...]

    @property
    def minus_words(self) -> tuple[str, ...]:
        return tuple(item.word for item in self.suggestions)


class HeuristicClassifier:
    """Classify queries with three ordered threshold rules.

    A query is trash when it contains a stop word, when its CPL exceeds
    ``max_cpl``, or when it gathered ``min_impressions`` impressions without
    a single click. The first matching rule gives the reason; every matching
    rule contributes minus-word candidates. Everything else is target, so the
    review bucket stays empty.
    """

    def __init__(self, config: HeuristicConfig) -> None:
        self._config = config

    @property
    def config(self) -> HeuristicConfig:
        return self._config

    def classify(self, records: Sequence[QueryMetricRecord]) -> HeuristicClassification:
        safe_tokens = self._converting_tokens(records)
        analyzed: list[AnalyzedQuery] = []
        seeds: dict[str, SuggestedWord] = {}
        for record in records:
            verdict = self.classify_record(record, safe_tokens=safe_tokens)
            analyzed.append(
                AnalyzedQuery(
                    query=record.query,
                    category=verdict.category,
                    reason=verdict.reason,
                    metrics=record,
                    suggested_minus_words=verdict.minus_words,
                )
            )
            for word in verdict.minus_words:
                key = word.casefold()
                if key in seeds:
                    continue
                if word in self._config.stop_words:
                    seeds[key] = SuggestedWord(
                        word=word, reason=_STOP_WORD_REASON, category=RULE_STOP_WORD
                    )
                else:
                    seeds[key] = SuggestedWord(
                        word=word, reason=_LOW_PERFORMANCE_REASON, category="low_performance"
                    )

        trash = sum(1 for item in analyzed if item.category is QueryCategory.TRASH)
        logger.debug(
            "triage.heuristics.classified total=%s trash=%s candidates=%s",
            len(analyzed),
            trash,
            len(seeds),
        )
        return HeuristicClassification(analyzed=tuple(analyzed), suggestions=tuple(seeds.values()))

    def classify_record(
        self,
        record: QueryMetricRecord,
        *,
        safe_tokens: frozenset[str] = frozenset(),
    ) -> HeuristicVerdict:
        config = self._config
        lowered = record.query.lower()
        reasons: list[tuple[str, str]] = []
        candidates: list[str] = []

        matched = [word for word in config.stop_words if word in lowered]
        if matched:
            reasons.append((RULE_STOP_WORD, f"Содержит стоп-слова: {', '.join(matched)}"))
            candidates.extend(matched)

        if record.cpl is not None and record.cpl > config.max_cpl:
            reasons.append(
                (
                    RULE_HIGH_CPL,
                    f"CPL {record.cpl:.0f}₽ превышает допустимый {config.max_cpl:.0f}₽",
                )
            )
        if record.impressions >= config.min_impressions and record.clicks == 0:
            reasons.append(
                (RULE_ZERO_CLICKS, f"{record.impressions} показов без единого клика")
            )

        if reasons:
            if any(rule != RULE_STOP_WORD for rule, _ in reasons):
                for token in tokenize(record.query):
                    if token not in safe_tokens and token not in candidates:
                        candidates.append(token)
            rule, reason = reasons[0]
            return HeuristicVerdict(
                category=QueryCategory.TRASH,
                reason=reason,
                rule=rule,
                minus_words=tuple(candidates),
            )

        if record.conversions > 0 and record.cpl is not None:
            reason = f"Есть конверсии, CPL {record.cpl:.0f}₽ в пределах нормы"
        elif record.clicks < config.min_clicks:
            reason = "Недостаточно данных для оценки, оставлен как целевой"
        else:
            reason = "Признаков нецелевого трафика не найдено"
        return HeuristicVerdict(category=QueryCategory.TARGET, reason=reason)

    @staticmethod
    def _converting_tokens(records: Iterable[QueryMetricRecord]) -> frozenset[str]:
        tokens: set[str] = set()
        for record in records:
            if record.conversions > 0:
                tokens.update(tokenize(record.query, keep_stopwords=True))
        return frozenset(tokens)


__all__ = [
    "HeuristicClassification",
    "HeuristicClassifier",
    "HeuristicConfig",
    "HeuristicVerdict",
    "RULE_HIGH_CPL",
    "RULE_STOP_WORD",
    "RULE_ZERO_CLICKS",
]
