"""Append-only store of completed analyses, one JSON line per snapshot."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
import json
import logging
from pathlib import Path
import re
from typing import List
from uuid import uuid4

from .models import AnalysisResult

logger = logging.getLogger(__name__)

_PROJECT_ID_RE = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(slots=True)
class AnalysisSnapshot:
    id: str
    project_id: str
    created_at: str
    source: str
    total_queries: int
    excluded_queries: int
    target_count: int
    trash_count: int
    review_count: int
    total_cost: float
    wasted_cost: float
    potential_savings: float
    minus_words: list[str] = field(default_factory=list)

    @classmethod
    def from_result(cls, project_id: str, result: AnalysisResult) -> "AnalysisSnapshot":
        return cls(
            id=uuid4().hex,
            project_id=project_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            source=result.source,
            total_queries=result.total_queries,
            excluded_queries=result.excluded_queries,
            target_count=len(result.target_queries),
            trash_count=len(result.trash_queries),
            review_count=len(result.review_queries),
            total_cost=result.summary.total_cost,
            wasted_cost=result.summary.wasted_cost,
            potential_savings=result.summary.potential_savings,
            minus_words=[item.word for item in result.suggested_minus_words],
        )

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "projectId": self.project_id,
            "createdAt": self.created_at,
            "source": self.source,
            "totalQueries": self.total_queries,
            "excludedQueries": self.excluded_queries,
            "targetCount": self.target_count,
            "trashCount": self.trash_count,
            "reviewCount": self.review_count,
            "totalCost": self.total_cost,
            "wastedCost": self.wasted_cost,
            "potentialSavings": self.potential_savings,
            "minusWords": list(self.minus_words),
        }


class AnalysisHistoryStore:
    """Per-project JSONL files under ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def _path(self, project_id: str) -> Path:
        safe_id = _PROJECT_ID_RE.sub("_", project_id).strip("._") or "default"
        return self._root / f"{safe_id}.jsonl"

    def append(self, project_id: str, result: AnalysisResult) -> AnalysisSnapshot:
        snapshot = AnalysisSnapshot.from_result(project_id, result)
        path = self._path(project_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(snapshot), ensure_ascii=False))
            handle.write("\n")
        logger.info(
            "history.snapshot.saved project=%s snapshot_id=%s trash=%s wasted=%s",
            project_id,
            snapshot.id,
            snapshot.trash_count,
            snapshot.wasted_cost,
        )
        return snapshot

    def list_recent(self, project_id: str, limit: int = 10) -> List[AnalysisSnapshot]:
        """Return up to ``limit`` snapshots, newest first."""

        path = self._path(project_id)
        if not path.exists() or limit <= 0:
            return []
        snapshots: list[AnalysisSnapshot] = []
        with path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    snapshots.append(AnalysisSnapshot(**json.loads(line)))
                except (json.JSONDecodeError, TypeError) as exc:
                    logger.warning(
                        "history.snapshot.corrupt path=%s line=%s error=%s", path, line_number, exc
                    )
        snapshots.reverse()
        return snapshots[:limit]


__all__ = ["AnalysisHistoryStore", "AnalysisSnapshot"]
