"""Project briefs: stored business descriptions and target CPLs."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Iterable, Mapping

try:  # pragma: no cover - optional dependency guard
    import yaml
except Exception as exc:  # pragma: no cover
    yaml = None
    YAML_IMPORT_ERROR = exc
else:  # pragma: no cover
    YAML_IMPORT_ERROR = None

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProjectBrief:
    project_id: str
    business_description: str | None = None
    target_cpl: float | None = None


class BriefLoadError(RuntimeError):
    """Raised when the briefs file exists but cannot be read."""


class ProjectBriefStore:
    """Read-only lookup of project briefs keyed by project id."""

    def __init__(self, briefs: Iterable[ProjectBrief] | None = None) -> None:
        self._briefs: dict[str, ProjectBrief] = {brief.project_id: brief for brief in briefs or []}

    def __len__(self) -> int:
        return len(self._briefs)

    def get(self, project_id: str | None) -> ProjectBrief | None:
        if not project_id:
            return None
        return self._briefs.get(str(project_id))

    @classmethod
    def from_file(cls, path: str | Path) -> "ProjectBriefStore":
        """Load briefs from YAML; a missing file yields an empty store.

        The file maps project ids to ``businessDescription`` and ``targetCpl``::

            autoschool-ufa:
              businessDescription: Автошкола в Уфе, обучение на категорию B
              targetCpl: 2000
        """

        briefs_path = Path(path)
        if not briefs_path.exists():
            return cls()

        if yaml is None:  # pragma: no cover - requires pyyaml
            raise BriefLoadError("pyyaml is required to load project briefs") from YAML_IMPORT_ERROR

        try:
            data = yaml.safe_load(briefs_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise BriefLoadError(f"Invalid briefs file {briefs_path}: {exc}") from exc
        if not isinstance(data, Mapping):
            raise BriefLoadError(f"Briefs file {briefs_path} must contain a mapping")

        briefs: list[ProjectBrief] = []
        for project_id, item in data.items():
            if not isinstance(item, Mapping):
                continue
            description = str(item.get("businessDescription") or "").strip() or None
            target_cpl = item.get("targetCpl")
            try:
                cpl_value = float(target_cpl) if target_cpl not in (None, "") else None
            except (TypeError, ValueError):
                logger.warning("briefs.invalid_target_cpl project=%s value=%r", project_id, target_cpl)
                cpl_value = None
            briefs.append(
                ProjectBrief(
                    project_id=str(project_id),
                    business_description=description,
                    target_cpl=cpl_value,
                )
            )
        logger.info("briefs.loaded path=%s count=%s", briefs_path, len(briefs))
        return cls(briefs)


__all__ = ["BriefLoadError", "ProjectBrief", "ProjectBriefStore"]
