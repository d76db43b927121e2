"""Word-level minus-word filter with confidence tiers."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Sequence

from .errors import AIResponseParseError
from .llm import JSONChatClient
from .models import Confidence, MinusWordOperator, WordMinusCandidate, WordStatistic
from .prompts import build_word_filter_prompt
from .ranking import rank_by_cost

logger = logging.getLogger(__name__)


def _bare_word(word: str) -> str:
    return word.strip().lstrip("!+").strip('"').strip().casefold()


def _word_cost(word: WordStatistic) -> float:
    return word.total_cost


@dataclass(frozen=True, slots=True)
class WordFilterResult:
    """Accepted candidates plus the two confidence views used by callers."""

    minus_words: tuple[WordMinusCandidate, ...]
    analyzed_count: int = 0
    excluded_count: int = 0
    rejected_count: int = 0

    @property
    def auto_apply(self) -> tuple[WordMinusCandidate, ...]:
        return tuple(item for item in self.minus_words if item.confidence.auto_apply)

    @property
    def needs_review(self) -> tuple[WordMinusCandidate, ...]:
        return tuple(item for item in self.minus_words if not item.confidence.auto_apply)

    def to_payload(self) -> dict[str, object]:
        return {
            "minusWords": [item.to_payload() for item in self.minus_words],
            "autoApply": [item.word for item in self.auto_apply],
            "needsReview": [item.word for item in self.needs_review],
            "analyzedCount": self.analyzed_count,
            "excludedCount": self.excluded_count,
            "rejectedCount": self.rejected_count,
        }


class MinusWordFilter:
    """Ask the model which high-spend words are safe to block for a business.

    Words are ranked by total cost and the top ``limit`` are sent together
    with the words from converting queries. Answers that name a converting
    word or carry an unknown confidence are discarded.
    """

    def __init__(
        self,
        client: JSONChatClient,
        *,
        limit: int = 100,
        safe_words_limit: int = 50,
    ) -> None:
        self._client = client
        self._limit = limit
        self._safe_words_limit = safe_words_limit

    async def filter_words(
        self,
        words: Sequence[WordStatistic],
        business_description: str,
        safe_words: Sequence[str] = (),
    ) -> WordFilterResult:
        ranked = rank_by_cost(words, self._limit, key=_word_cost)
        prompt = build_word_filter_prompt(
            ranked.records,
            business_description,
            safe_words,
            safe_words_limit=self._safe_words_limit,
        )
        logger.info(
            "triage.words.request words=%s excluded=%s safe_words=%s",
            ranked.analyzed_count,
            ranked.excluded_count,
            len(safe_words),
        )
        payload = await self._client.complete_json(prompt)
        accepted, rejected = self._postprocess(payload, safe_words)
        result = WordFilterResult(
            minus_words=accepted,
            analyzed_count=ranked.analyzed_count,
            excluded_count=ranked.excluded_count,
            rejected_count=rejected,
        )
        logger.info(
            "triage.words.response accepted=%s auto_apply=%s needs_review=%s rejected=%s",
            len(result.minus_words),
            len(result.auto_apply),
            len(result.needs_review),
            rejected,
        )
        return result

    @staticmethod
    def _postprocess(
        payload: dict[str, Any], safe_words: Sequence[str]
    ) -> tuple[tuple[WordMinusCandidate, ...], int]:
        entries = payload.get("minusWords")
        if entries is None:
            return (), 0
        if not isinstance(entries, list):
            raise AIResponseParseError("AI response field 'minusWords' must be a list")

        safe = {_bare_word(word) for word in safe_words if word and word.strip()}
        accepted: dict[str, WordMinusCandidate] = {}
        rejected = 0
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("triage.words.malformed_entry entry=%r", entry)
                rejected += 1
                continue
            word = str(entry.get("word") or "").strip()
            if not word:
                rejected += 1
                continue
            confidence = Confidence.parse(entry.get("confidence"))
            if confidence is None:
                logger.warning(
                    "triage.words.unknown_confidence word=%r confidence=%r",
                    word,
                    entry.get("confidence"),
                )
                rejected += 1
                continue
            if _bare_word(word) in safe:
                logger.warning("triage.words.safe_word_rejected word=%r", word)
                rejected += 1
                continue
            operator = MinusWordOperator.parse(entry.get("operator"))
            accepted[_bare_word(word)] = WordMinusCandidate(
                word=operator.apply(word),
                reason=str(entry.get("reason") or ""),
                confidence=confidence,
                operator=operator,
            )
        return tuple(accepted.values()), rejected


__all__ = ["MinusWordFilter", "WordFilterResult"]
