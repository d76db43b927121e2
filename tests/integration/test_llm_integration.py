from __future__ import annotations

import httpx
import pytest

from querytriage.config import Settings
from querytriage.engine import AnalysisRequest, TriageEngine
from querytriage.llm import JSONChatClient
from querytriage.models import QueryMetricRecord


@pytest.mark.integration
@pytest.mark.asyncio
async def test_analyze_with_real_ollama() -> None:
    settings = Settings.from_env()

    if not settings.is_ollama_chat_backend:
        pytest.skip("CHAT_BACKEND is not set to Ollama")

    try:
        response = httpx.get(f"{settings.ollama_base_url}/api/tags", timeout=5.0)
        response.raise_for_status()
    except Exception as exc:  # pragma: no cover - network guard
        pytest.skip(f"Ollama server not reachable: {exc}")

    client = JSONChatClient(settings)
    if not client.enabled:
        pytest.skip(f"Chat client disabled: {client.disable_reason}")

    engine = TriageEngine(settings=settings, llm_client=client)
    queries = (
        QueryMetricRecord.build("автошкола уфа цена", impressions=900, clicks=60, cost=4200.0, conversions=3),
        QueryMetricRecord.build("пдд билеты онлайн бесплатно", impressions=700, clicks=35, cost=1400.0),
        QueryMetricRecord.build("вакансии инструктор по вождению", impressions=300, clicks=9, cost=600.0),
    )

    result = (
        await engine.analyze(
            AnalysisRequest(queries=queries, business_description="Автошкола в Уфе, категория B")
        )
    ).result

    assert result.source == "ai"
    classified = len(result.target_queries) + len(result.trash_queries) + len(result.review_queries)
    assert classified + result.dropped_records >= 1
    assert result.summary.total_cost == 6200.0
