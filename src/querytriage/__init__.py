"""Search query triage and minus-word extraction for paid-search accounts."""

from __future__ import annotations

from .config import Settings
from .engine import AnalysisRequest, AnalysisResponse, TriageEngine
from .errors import AnalysisRequestError, LLMError, TriageError
from .exporting import export_minus_words, parse_minus_words

__all__ = [
    "AnalysisRequest",
    "AnalysisRequestError",
    "AnalysisResponse",
    "LLMError",
    "Settings",
    "TriageEngine",
    "TriageError",
    "create_app",
    "export_minus_words",
    "parse_minus_words",
]


def __getattr__(name: str):  # pragma: no cover - small helper
    if name == "create_app":
        from .app import create_app

        return create_app
    raise AttributeError(f"module 'querytriage' has no attribute {name}")
