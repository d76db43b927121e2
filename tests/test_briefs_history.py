from __future__ import annotations

from pathlib import Path

import pytest

from querytriage.aggregation import assemble_result
from querytriage.briefs import BriefLoadError, ProjectBriefStore
from querytriage.history import AnalysisHistoryStore
from querytriage.models import AnalyzedQuery, QueryCategory, QueryMetricRecord
from querytriage.ranking import rank_by_cost


def _result(source: str = "heuristic"):
    records = [
        QueryMetricRecord.build("автошкола уфа", impressions=100, clicks=10, cost=500.0, conversions=1),
        QueryMetricRecord.build("права бесплатно", impressions=100, clicks=5, cost=200.0),
    ]
    ranked = rank_by_cost(records, 10)
    analyzed = [
        AnalyzedQuery(records[0].query, QueryCategory.TARGET, "", records[0]),
        AnalyzedQuery(records[1].query, QueryCategory.TRASH, "", records[1]),
    ]
    return assemble_result(
        corpus=records,
        ranked=ranked,
        analyzed=analyzed,
        suggestions=[],
        clusters=None,
        source=source,
    )


def test_briefs_load_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "briefs.yaml"
    path.write_text(
        "autoschool-ufa:\n"
        "  businessDescription: Автошкола в Уфе\n"
        "  targetCpl: 2000\n"
        "no-cpl:\n"
        "  businessDescription: Юридическая фирма\n"
        "  targetCpl: unknown\n",
        encoding="utf-8",
    )

    store = ProjectBriefStore.from_file(path)

    assert len(store) == 2
    brief = store.get("autoschool-ufa")
    assert brief.business_description == "Автошкола в Уфе"
    assert brief.target_cpl == 2000.0
    assert store.get("no-cpl").target_cpl is None
    assert store.get(None) is None
    assert store.get("missing") is None


def test_missing_briefs_file_gives_empty_store(tmp_path: Path) -> None:
    store = ProjectBriefStore.from_file(tmp_path / "absent.yaml")

    assert len(store) == 0


def test_briefs_file_must_be_a_mapping(tmp_path: Path) -> None:
    path = tmp_path / "briefs.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(BriefLoadError):
        ProjectBriefStore.from_file(path)


def test_history_lists_newest_first_and_skips_corrupt_lines(tmp_path: Path) -> None:
    store = AnalysisHistoryStore(tmp_path)
    first = store.append("school", _result("heuristic"))
    second = store.append("school", _result("ai"))
    with (tmp_path / "school.jsonl").open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")

    snapshots = store.list_recent("school")

    assert [item.id for item in snapshots] == [second.id, first.id]
    assert snapshots[0].source == "ai"
    assert snapshots[0].wasted_cost == 200.0
    assert snapshots[0].to_payload()["trashCount"] == 1
    assert store.list_recent("school", limit=1)[0].id == second.id
    assert store.list_recent("other") == []


def test_history_sanitizes_project_ids(tmp_path: Path) -> None:
    store = AnalysisHistoryStore(tmp_path)

    store.append("../../etc/passwd", _result())

    files = list(tmp_path.iterdir())
    assert len(files) == 1
    assert files[0].parent == tmp_path
    assert store.list_recent("../../etc/passwd")
