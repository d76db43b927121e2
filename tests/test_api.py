from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from querytriage.app import create_app
from querytriage.config import Settings
from querytriage.engine import TriageEngine
from querytriage.errors import LLMRequestError
from querytriage.history import AnalysisHistoryStore
from querytriage.observability import MetricsRecorder

from conftest import FakeChatClient


QUERIES = [
    {"query": "автошкола уфа", "impressions": 900, "clicks": 50, "cost": 3000, "conversions": 3},
    {"query": "права бесплатно", "impressions": 400, "clicks": 4, "cost": 700},
    {"query": "пдд онлайн", "impressions": 200, "clicks": 3, "cost": 120},
]

AI_ANSWER = {
    "queries": [
        {"query": "автошкола уфа", "category": "target", "reason": "коммерческий", "minusWords": []},
        {"query": "права бесплатно", "category": "trash", "reason": "бесплатное", "minusWords": ["бесплатно"]},
        {"query": "пдд онлайн", "category": "review", "reason": "неясно", "minusWords": []},
    ],
    "suggestedMinusWords": [{"word": "бесплатно", "reason": "бесплатное", "category": "informational"}],
}


def _client(settings: Settings, chat: FakeChatClient, *, metrics: MetricsRecorder | None = None) -> TestClient:
    engine = TriageEngine(
        settings=settings,
        llm_client=chat,
        history=AnalysisHistoryStore(Path(settings.history_dir)),
        metrics=metrics,
    )
    return TestClient(create_app(settings=settings, engine=engine, metrics=metrics))


@pytest.fixture()
def chat() -> FakeChatClient:
    return FakeChatClient([AI_ANSWER])


def test_analyze_returns_envelope(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/analyze",
        json={"queries": QUERIES, "businessDescription": "Автошкола в Уфе", "projectId": "school"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["rawQueriesCount"] == 3
    assert body["filteredCount"] == 3
    assert "warning" not in body
    data = body["data"]
    assert [item["query"] for item in data["trashQueries"]] == ["права бесплатно"]
    assert data["summary"]["wastedCost"] == 700
    assert data["suggestedMinusWords"][0]["word"] == "бесплатно"

    history = client.get("/api/projects/school/history")
    assert history.status_code == 200
    (snapshot,) = history.json()["data"]
    assert snapshot["trashCount"] == 1


def test_analyze_rejects_empty_queries_without_calling_ai(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post("/api/queries/analyze", json={"queries": [], "businessDescription": "Автошкола"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "queries array is required"}
    assert chat.calls == 0


def test_analyze_rejects_non_finite_metrics(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/analyze",
        json={"queries": [{"query": "права бесплатно", "cost": "nan"}], "useAi": False},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("queries[0]")
    assert "finite" in body["error"]


def test_analyze_rejects_malformed_body(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/analyze",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_ai_failure_maps_to_bad_gateway(settings: Settings) -> None:
    chat = FakeChatClient(error=LLMRequestError("ollama returned HTTP 503: busy"))
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/analyze",
        json={"queries": QUERIES, "businessDescription": "Автошкола", "projectId": "school"},
    )

    assert response.status_code == 502
    assert response.json() == {"success": False, "error": "ollama returned HTTP 503: busy"}
    assert client.get("/api/projects/school/history").json()["data"] == []


def test_fallback_reports_warning(settings: Settings) -> None:
    chat = FakeChatClient(error=LLMRequestError("ollama returned HTTP 503: busy"))
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/analyze",
        json={"queries": QUERIES, "businessDescription": "Автошкола", "fallbackToHeuristics": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert "HTTP 503" in body["warning"]
    assert body["data"]["source"] == "heuristic"


def test_quick_analyze_uses_overrides(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/quick-analyze",
        json={"queries": QUERIES, "config": {"stopWords": ["онлайн"], "maxCpl": 500}},
    )

    assert response.status_code == 200
    trash = [item["query"] for item in response.json()["data"]["trashQueries"]]
    assert trash == ["автошкола уфа", "пдд онлайн"]
    assert chat.calls == 0


def test_quick_analyze_rejects_invalid_config(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post("/api/queries/quick-analyze", json={"queries": QUERIES, "config": ["x"]})

    assert response.status_code == 400


def test_analyze_words_endpoint(settings: Settings) -> None:
    chat = FakeChatClient(
        [{"minusWords": [{"word": "бесплатно", "reason": "бесплатное", "confidence": "high"}]}]
    )
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/analyze-words",
        json={
            "words": [{"word": "бесплатно", "totalCost": 900, "totalClicks": 30, "queriesCount": 12}],
            "businessDescription": "Автошкола",
            "safeWords": ["уфа"],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["minusWords"][0]["word"] == "бесплатно"


def test_classify_queries_endpoint(settings: Settings) -> None:
    chat = FakeChatClient(
        [{"results": [{"query": "пдд онлайн", "category": "trash", "reason": "инфо", "minusWord": "онлайн"}]}]
    )
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/classify-queries",
        json={"queries": QUERIES, "businessDescription": "Автошкола"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["results"] == [
        {"query": "пдд онлайн", "category": "trash", "reason": "инфо", "minusWord": "онлайн"}
    ]
    assert data["analyzedCount"] == 3


def test_export_minus_words_returns_attachment(settings: Settings, chat: FakeChatClient) -> None:
    client = _client(settings, chat)

    response = client.post(
        "/api/queries/export-minus-words",
        json={"words": ["бесплатно", {"word": "-скачать"}, "", 42]},
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "attachment" in response.headers["content-disposition"]
    assert response.text == "-бесплатно\n-скачать"


def test_history_disabled_returns_404(settings: Settings, chat: FakeChatClient) -> None:
    engine = TriageEngine(settings=settings, llm_client=chat)
    client = TestClient(create_app(settings=settings, engine=engine))

    assert client.get("/api/projects/school/history").status_code == 404


def test_metrics_endpoint_requires_prometheus(settings: Settings, chat: FakeChatClient) -> None:
    disabled = _client(settings, chat, metrics=MetricsRecorder(enabled=True))
    assert disabled.get("/metrics").status_code == 404

    recorder = MetricsRecorder(enabled=True, prometheus_enabled=True)
    client = _client(settings, FakeChatClient([AI_ANSWER]), metrics=recorder)
    client.post("/api/queries/analyze", json={"queries": QUERIES, "businessDescription": "Автошкола"})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "querytriage_analyze_requests" in response.text
