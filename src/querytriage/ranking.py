"""Cost ranking and truncation applied before any classification step."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from .models import QueryMetricRecord

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RankedSlice(Generic[T]):
    """Top-N records by cost plus how many records were left out."""

    records: tuple[T, ...]
    total_count: int

    @property
    def analyzed_count(self) -> int:
        return len(self.records)

    @property
    def excluded_count(self) -> int:
        return self.total_count - len(self.records)


def _record_cost(record: QueryMetricRecord) -> float:
    return record.cost


def rank_by_cost(
    records: Sequence[T],
    limit: int,
    *,
    key: Callable[[T], float] = _record_cost,  # type: ignore[assignment]
) -> RankedSlice[T]:
    """Return the ``limit`` most expensive records, ties kept in input order.

    ``sorted`` is stable, so records with equal cost keep their original
    relative order and repeated calls over the same input give the same slice.
    """

    if limit < 0:
        raise ValueError("limit must be non-negative")
    ordered = sorted(records, key=key, reverse=True)
    return RankedSlice(records=tuple(ordered[:limit]), total_count=len(records))


__all__ = ["RankedSlice", "rank_by_cost"]
