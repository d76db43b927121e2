"""Exception hierarchy for the triage engine."""

from __future__ import annotations


class TriageError(RuntimeError):
    """Base class for failures surfaced to callers as a single error string."""


class AnalysisRequestError(TriageError):
    """Raised when a request is rejected before any external call is made."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class LLMError(TriageError):
    """Base class for chat backend failures."""


class LLMUnavailableError(LLMError):
    """Raised when AI analysis is requested but no backend is configured."""


class LLMRequestError(LLMError):
    """Network, HTTP or SDK failure; carries the upstream message."""


class LLMTimeoutError(LLMError):
    pass


class EmptyAIResponseError(LLMError):
    def __init__(self, message: str = "empty AI response") -> None:
        super().__init__(message)


class AIResponseParseError(LLMError):
    """Raised when the completion is not the JSON object the prompt asked for."""


__all__ = [
    "AIResponseParseError",
    "AnalysisRequestError",
    "EmptyAIResponseError",
    "LLMError",
    "LLMRequestError",
    "LLMTimeoutError",
    "LLMUnavailableError",
    "TriageError",
]
