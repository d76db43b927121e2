"""Configuration helpers for the query triage service."""

from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import TYPE_CHECKING, Final

try:  # pragma: no cover - optional dependency loaded at runtime
    from dotenv import load_dotenv
except Exception:  # pragma: no cover
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv()

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from .observability import MetricsRecorder

_DEFAULT_CHAT_BACKEND: Final[str] = "openai"
_DEFAULT_OPENAI_CHAT_MODEL: Final[str] = "gpt-4o-mini"
_DEFAULT_OLLAMA_URL: Final[str] = "http://localhost:11434"
_DEFAULT_OLLAMA_MODEL: Final[str] = "llama3.1:8b"
_DEFAULT_VLLM_URL: Final[str] = "http://localhost:8000"
_DEFAULT_VLLM_MODEL: Final[str] = "meta-llama/Meta-Llama-3-8B-Instruct"
_DEFAULT_LLM_TIMEOUT: Final[float] = 60.0
_DEFAULT_LLM_TEMPERATURE: Final[float] = 0.3
_DEFAULT_QUERY_ANALYSIS_LIMIT: Final[int] = 200
_DEFAULT_WORD_ANALYSIS_LIMIT: Final[int] = 100
_DEFAULT_REVIEW_RESOLVE_LIMIT: Final[int] = 50
_DEFAULT_SAFE_WORDS_PROMPT_LIMIT: Final[int] = 50
_DEFAULT_HEURISTIC_MAX_CPL: Final[float] = 5000.0
_DEFAULT_HEURISTIC_MIN_IMPRESSIONS: Final[int] = 100
_DEFAULT_HEURISTIC_MIN_CLICKS: Final[int] = 5
_DEFAULT_HEURISTIC_STOP_WORDS: Final[tuple[str, ...]] = (
    "бесплатно",
    "скачать",
    "торрент",
    "своими руками",
    "отзывы",
    "что это",
    "как",
)
_DEFAULT_CLUSTER_MIN_QUERIES: Final[int] = 2
_DEFAULT_CLUSTER_MAX_RESULTS: Final[int] = 50
_DEFAULT_DATA_DIR: Final[str] = "data"
_DEFAULT_BRIEFS_PATH: Final[str] = "data/briefs.yaml"

_CHAT_BACKENDS: Final[frozenset[str]] = frozenset({"openai", "ollama", "vllm", "none"})


def _env_optional_bool(name: str) -> bool | None:
    """Read an optional boolean environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    msg = f"Environment variable {name} must be a boolean value (true/false)."
    raise ValueError(msg)


def _env_optional_int(name: str) -> int | None:
    """Read an optional integer environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_optional_float(name: str) -> float | None:
    """Read an optional float environment variable."""

    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a float") from exc


def _env_int(name: str, default: int) -> int:
    value = _env_optional_int(name)
    return default if value is None else value


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable with a fallback (preserving zero)."""

    value = _env_optional_float(name)
    return default if value is None else value


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment variable with a fallback."""

    value = _env_optional_bool(name)
    if value is None:
        return default
    return value


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Read a comma separated list, ignoring blank entries."""

    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def normalize_vllm_base_url(value: str) -> str:
    """Strip trailing API path segments so callers can append ``/v1/...``."""

    base_url = (value or "").strip().rstrip("/")
    for suffix in ("/v1/chat/completions", "/chat/completions", "/v1"):
        if base_url.endswith(suffix):
            base_url = base_url[: -len(suffix)]
            break
    return base_url.rstrip("/")


@dataclass(slots=True)
class Settings:
    """Triage service settings: chat backend, prompt limits, heuristic thresholds, storage."""

    chat_backend: str = _DEFAULT_CHAT_BACKEND
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_chat_model: str = _DEFAULT_OPENAI_CHAT_MODEL
    ollama_base_url: str = _DEFAULT_OLLAMA_URL
    ollama_model: str = _DEFAULT_OLLAMA_MODEL
    vllm_base_url: str = _DEFAULT_VLLM_URL
    vllm_model: str = _DEFAULT_VLLM_MODEL
    vllm_api_key: str | None = None
    llm_timeout: float = _DEFAULT_LLM_TIMEOUT
    llm_temperature: float = _DEFAULT_LLM_TEMPERATURE
    query_analysis_limit: int = _DEFAULT_QUERY_ANALYSIS_LIMIT
    word_analysis_limit: int = _DEFAULT_WORD_ANALYSIS_LIMIT
    review_resolve_limit: int = _DEFAULT_REVIEW_RESOLVE_LIMIT
    safe_words_prompt_limit: int = _DEFAULT_SAFE_WORDS_PROMPT_LIMIT
    heuristic_max_cpl: float = _DEFAULT_HEURISTIC_MAX_CPL
    heuristic_min_impressions: int = _DEFAULT_HEURISTIC_MIN_IMPRESSIONS
    heuristic_min_clicks: int = _DEFAULT_HEURISTIC_MIN_CLICKS
    heuristic_stop_words: tuple[str, ...] = field(default=_DEFAULT_HEURISTIC_STOP_WORDS)
    query_join_by_id: bool = False
    cluster_min_queries: int = _DEFAULT_CLUSTER_MIN_QUERIES
    cluster_max_results: int = _DEFAULT_CLUSTER_MAX_RESULTS
    data_dir: str = _DEFAULT_DATA_DIR
    briefs_path: str = _DEFAULT_BRIEFS_PATH
    history_dir: str | None = None
    history_enabled: bool = True
    observability_metrics_enabled: bool = True
    observability_namespace: str = "querytriage"
    observability_prometheus_enabled: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment (and `.env`, when python-dotenv is installed)."""

        return cls(
            chat_backend=os.getenv("CHAT_BACKEND", _DEFAULT_CHAT_BACKEND),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
            openai_chat_model=os.getenv("OPENAI_CHAT_MODEL", _DEFAULT_OPENAI_CHAT_MODEL),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", _DEFAULT_OLLAMA_URL),
            ollama_model=os.getenv("OLLAMA_MODEL", _DEFAULT_OLLAMA_MODEL),
            vllm_base_url=os.getenv("VLLM_BASE_URL", _DEFAULT_VLLM_URL),
            vllm_model=os.getenv("VLLM_MODEL", _DEFAULT_VLLM_MODEL),
            vllm_api_key=os.getenv("VLLM_API_KEY"),
            llm_timeout=_env_float("LLM_TIMEOUT", _DEFAULT_LLM_TIMEOUT),
            llm_temperature=_env_float("LLM_TEMPERATURE", _DEFAULT_LLM_TEMPERATURE),
            query_analysis_limit=max(
                1, _env_int("QUERY_ANALYSIS_LIMIT", _DEFAULT_QUERY_ANALYSIS_LIMIT)
            ),
            word_analysis_limit=max(
                1, _env_int("WORD_ANALYSIS_LIMIT", _DEFAULT_WORD_ANALYSIS_LIMIT)
            ),
            review_resolve_limit=max(
                1, _env_int("REVIEW_RESOLVE_LIMIT", _DEFAULT_REVIEW_RESOLVE_LIMIT)
            ),
            safe_words_prompt_limit=max(
                0, _env_int("SAFE_WORDS_PROMPT_LIMIT", _DEFAULT_SAFE_WORDS_PROMPT_LIMIT)
            ),
            heuristic_max_cpl=_env_float("HEURISTIC_MAX_CPL", _DEFAULT_HEURISTIC_MAX_CPL),
            heuristic_min_impressions=_env_int(
                "HEURISTIC_MIN_IMPRESSIONS", _DEFAULT_HEURISTIC_MIN_IMPRESSIONS
            ),
            heuristic_min_clicks=_env_int("HEURISTIC_MIN_CLICKS", _DEFAULT_HEURISTIC_MIN_CLICKS),
            heuristic_stop_words=_env_list("HEURISTIC_STOP_WORDS", _DEFAULT_HEURISTIC_STOP_WORDS),
            query_join_by_id=_env_bool("QUERY_JOIN_BY_ID", False),
            cluster_min_queries=max(
                1, _env_int("CLUSTER_MIN_QUERIES", _DEFAULT_CLUSTER_MIN_QUERIES)
            ),
            cluster_max_results=max(
                0, _env_int("CLUSTER_MAX_RESULTS", _DEFAULT_CLUSTER_MAX_RESULTS)
            ),
            data_dir=os.getenv("DATA_DIR", _DEFAULT_DATA_DIR),
            briefs_path=os.getenv("BRIEFS_PATH", _DEFAULT_BRIEFS_PATH),
            history_dir=os.getenv("HISTORY_DIR"),
            history_enabled=_env_bool("HISTORY_ENABLED", True),
            observability_metrics_enabled=_env_bool("OBSERVABILITY_METRICS_ENABLED", True),
            observability_namespace=os.getenv("OBSERVABILITY_NAMESPACE", "querytriage"),
            observability_prometheus_enabled=_env_bool("OBSERVABILITY_PROMETHEUS_ENABLED", False),
        )

    @property
    def normalized_chat_backend(self) -> str:
        value = (self.chat_backend or "").strip().lower()
        if value not in _CHAT_BACKENDS:
            msg = f"CHAT_BACKEND must be one of {sorted(_CHAT_BACKENDS)}, got '{self.chat_backend}'."
            raise ValueError(msg)
        return value

    @property
    def is_ollama_chat_backend(self) -> bool:
        """Return True when the chat backend is configured for an Ollama-hosted model."""

        return self.normalized_chat_backend == "ollama"

    def build_metrics_recorder(self) -> "MetricsRecorder":
        """Return a recorder honouring the OBSERVABILITY_* switches."""

        from .observability import MetricsRecorder

        return MetricsRecorder(
            enabled=self.observability_metrics_enabled,
            namespace=self.observability_namespace,
            prometheus_enabled=self.observability_prometheus_enabled,
        )

    def history_path(self) -> Path:
        """Return the directory where analysis snapshots are appended."""

        if self.history_dir:
            return Path(self.history_dir).expanduser().resolve()
        return Path(self.data_dir).resolve() / "history"


__all__ = ["Settings", "normalize_vllm_base_url"]
