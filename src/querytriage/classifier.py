"""AI classification adapter: prompt, call, and decode the model's verdicts."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Sequence

from .aggregation import ClassifiedQuery, SuggestedWord
from .errors import AIResponseParseError
from .llm import JSONChatClient
from .models import QueryCategory, QueryMetricRecord, ReviewResolution
from .prompts import build_query_analysis_prompt, build_review_prompt

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AIClassification:
    queries: tuple[ClassifiedQuery, ...]
    suggested_minus_words: tuple[SuggestedWord, ...]


def _list_field(payload: dict[str, Any], name: str) -> list[Any]:
    value = payload.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise AIResponseParseError(f"AI response field '{name}' must be a list")
    return value


def _string_list(value: object) -> tuple[str, ...]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return ()
    return tuple(str(item).strip() for item in value if isinstance(item, str) and item.strip())


def _optional_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def parse_classification(payload: dict[str, Any]) -> AIClassification:
    """Turn the decoded JSON object into typed, still unreconciled verdicts."""

    queries: list[ClassifiedQuery] = []
    for entry in _list_field(payload, "queries"):
        if not isinstance(entry, dict) or not isinstance(entry.get("query"), str):
            logger.warning("triage.classifier.malformed_entry entry=%r", entry)
            continue
        queries.append(
            ClassifiedQuery(
                query=entry["query"],
                category=entry.get("category"),
                reason=str(entry.get("reason") or ""),
                minus_words=_string_list(entry.get("minusWords")),
                record_id=_optional_int(entry.get("id")),
            )
        )

    suggestions: list[SuggestedWord] = []
    for entry in _list_field(payload, "suggestedMinusWords"):
        if isinstance(entry, str):
            entry = {"word": entry}
        if not isinstance(entry, dict) or not str(entry.get("word") or "").strip():
            logger.warning("triage.classifier.malformed_suggestion entry=%r", entry)
            continue
        suggestions.append(
            SuggestedWord(
                word=str(entry["word"]).strip(),
                reason=str(entry.get("reason") or ""),
                category=str(entry.get("category") or "other"),
            )
        )
    return AIClassification(queries=tuple(queries), suggested_minus_words=tuple(suggestions))


class QueryClassifier:
    """Query-level AI classification over an already ranked slice."""

    def __init__(
        self,
        client: JSONChatClient,
        *,
        join_by_id: bool = False,
        safe_words_limit: int = 50,
    ) -> None:
        self._client = client
        self._join_by_id = join_by_id
        self._safe_words_limit = safe_words_limit

    @property
    def join_by_id(self) -> bool:
        return self._join_by_id

    async def classify(
        self,
        records: Sequence[QueryMetricRecord],
        business_description: str,
        *,
        target_cpl: float | None = None,
    ) -> AIClassification:
        prompt = build_query_analysis_prompt(
            records,
            business_description,
            target_cpl=target_cpl,
            include_ids=self._join_by_id,
        )
        logger.info(
            "triage.classifier.request queries=%s join_by_id=%s", len(records), self._join_by_id
        )
        payload = await self._client.complete_json(prompt)
        result = parse_classification(payload)
        logger.info(
            "triage.classifier.response queries=%s suggestions=%s",
            len(result.queries),
            len(result.suggested_minus_words),
        )
        return result

    async def resolve_review_queries(
        self,
        records: Sequence[QueryMetricRecord],
        business_description: str,
        safe_words: Sequence[str],
    ) -> list[ReviewResolution]:
        """Settle ambiguous queries into target or trash.

        Only answers for queries that were sent and whose category is target
        or trash are kept; anything else is logged and dropped.
        """

        prompt = build_review_prompt(
            records,
            business_description,
            safe_words,
            safe_words_limit=self._safe_words_limit,
        )
        payload = await self._client.complete_json(prompt)
        known = {record.query for record in records}
        resolutions: list[ReviewResolution] = []
        for entry in _list_field(payload, "results"):
            if not isinstance(entry, dict):
                logger.warning("triage.review.malformed_entry entry=%r", entry)
                continue
            query = entry.get("query")
            category = QueryCategory.parse(entry.get("category"))
            if not isinstance(query, str) or query not in known:
                logger.warning("triage.review.unmatched query=%r", query)
                continue
            if category not in (QueryCategory.TARGET, QueryCategory.TRASH):
                logger.warning(
                    "triage.review.unknown_category query=%r category=%r",
                    query,
                    entry.get("category"),
                )
                continue
            minus_word = entry.get("minusWord")
            resolutions.append(
                ReviewResolution(
                    query=query,
                    category=category,
                    reason=str(entry.get("reason") or ""),
                    minus_word=(
                        str(minus_word).strip()
                        if category is QueryCategory.TRASH and minus_word
                        else None
                    ),
                )
            )
        trash = sum(1 for item in resolutions if item.category is QueryCategory.TRASH)
        logger.info(
            "triage.review.resolved total=%s trash=%s target=%s",
            len(resolutions),
            trash,
            len(resolutions) - trash,
        )
        return resolutions


__all__ = ["AIClassification", "QueryClassifier", "parse_classification"]
