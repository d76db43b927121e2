from __future__ import annotations

from pathlib import Path

import pytest

from querytriage.config import Settings, normalize_vllm_base_url


def test_from_env_reads_limits_and_backends(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHAT_BACKEND", "Ollama")
    monkeypatch.setenv("OLLAMA_MODEL", "qwen2.5:7b")
    monkeypatch.setenv("LLM_TIMEOUT", "12.5")
    monkeypatch.setenv("QUERY_ANALYSIS_LIMIT", "0")
    monkeypatch.setenv("HEURISTIC_STOP_WORDS", "бесплатно, ,реферат")
    monkeypatch.setenv("QUERY_JOIN_BY_ID", "yes")

    settings = Settings.from_env()

    assert settings.is_ollama_chat_backend
    assert settings.ollama_model == "qwen2.5:7b"
    assert settings.llm_timeout == 12.5
    assert settings.query_analysis_limit == 1
    assert settings.heuristic_stop_words == ("бесплатно", "реферат")
    assert settings.query_join_by_id is True


def test_defaults_keep_prompt_limits(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("QUERY_ANALYSIS_LIMIT", "WORD_ANALYSIS_LIMIT", "REVIEW_RESOLVE_LIMIT"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert (settings.query_analysis_limit, settings.word_analysis_limit, settings.review_resolve_limit) == (
        200,
        100,
        50,
    )


def test_invalid_values_raise(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("QUERY_JOIN_BY_ID", "maybe")
    with pytest.raises(ValueError, match="QUERY_JOIN_BY_ID"):
        Settings.from_env()

    monkeypatch.delenv("QUERY_JOIN_BY_ID")
    monkeypatch.setenv("LLM_TIMEOUT", "soon")
    with pytest.raises(ValueError, match="LLM_TIMEOUT"):
        Settings.from_env()


def test_unknown_chat_backend_is_rejected() -> None:
    with pytest.raises(ValueError, match="CHAT_BACKEND"):
        Settings(chat_backend="anthropic").normalized_chat_backend


@pytest.mark.parametrize(
    "value",
    [
        "http://gpu:8000",
        "http://gpu:8000/",
        "http://gpu:8000/v1",
        "http://gpu:8000/v1/chat/completions",
    ],
)
def test_normalize_vllm_base_url(value: str) -> None:
    assert normalize_vllm_base_url(value) == "http://gpu:8000"


def test_history_path_prefers_explicit_dir(tmp_path: Path) -> None:
    assert Settings(data_dir=str(tmp_path)).history_path() == tmp_path.resolve() / "history"
    assert Settings(history_dir=str(tmp_path / "h")).history_path() == (tmp_path / "h").resolve()
