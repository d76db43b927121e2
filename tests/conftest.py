from __future__ import annotations

from typing import Any, Callable

import pytest

from querytriage.config import Settings
from querytriage.models import QueryMetricRecord


class FakeChatClient:
    """Stands in for ``JSONChatClient``: replays canned JSON and records prompts."""

    def __init__(
        self,
        responses: list[Any] | None = None,
        *,
        enabled: bool = True,
        error: Exception | None = None,
    ) -> None:
        self._responses = list(responses or [])
        self.enabled = enabled
        self.disable_reason = None if enabled else "chat-backend-disabled"
        self.error = error
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete_json(self, prompt: str, *, system: str | None = None) -> dict[str, Any]:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if not self._responses:
            return {}
        return self._responses.pop(0)


@pytest.fixture()
def make_record() -> Callable[..., QueryMetricRecord]:
    def _make(query: str, **metrics: Any) -> QueryMetricRecord:
        return QueryMetricRecord.build(query, **metrics)

    return _make


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        chat_backend="none",
        data_dir=str(tmp_path),
        briefs_path=str(tmp_path / "briefs.yaml"),
        history_dir=str(tmp_path / "history"),
    )
