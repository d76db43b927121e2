from __future__ import annotations

import pytest

from querytriage.models import QueryMetricRecord, WordStatistic
from querytriage.ranking import rank_by_cost


def _records(costs: list[float]) -> list[QueryMetricRecord]:
    return [QueryMetricRecord.build(f"query {index}", cost=cost) for index, cost in enumerate(costs)]


def test_rank_by_cost_keeps_top_n_and_reports_excluded() -> None:
    records = _records([float(cost) for cost in range(250)])

    ranked = rank_by_cost(records, 200)

    assert ranked.analyzed_count == 200
    assert ranked.total_count == 250
    assert ranked.excluded_count == 50
    assert ranked.records[0].cost == 249.0
    assert min(record.cost for record in ranked.records) == 50.0


def test_rank_by_cost_is_stable_for_ties() -> None:
    records = _records([10.0, 30.0, 10.0, 30.0])

    ranked = rank_by_cost(records, 3)

    assert [record.query for record in ranked.records] == ["query 1", "query 3", "query 0"]
    assert rank_by_cost(records, 3) == ranked


def test_rank_by_cost_with_fewer_records_than_limit() -> None:
    ranked = rank_by_cost(_records([5.0]), 200)

    assert ranked.analyzed_count == 1
    assert ranked.excluded_count == 0


def test_rank_by_cost_ranks_word_statistics_by_total_cost() -> None:
    words = [WordStatistic("a", total_cost=1.0), WordStatistic("b", total_cost=9.0)]

    ranked = rank_by_cost(words, 1, key=lambda word: word.total_cost)

    assert [word.word for word in ranked.records] == ["b"]


def test_rank_by_cost_rejects_negative_limit() -> None:
    with pytest.raises(ValueError):
        rank_by_cost(_records([1.0]), -1)
