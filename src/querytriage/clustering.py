"""Keyword and bigram rollups over classified queries."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Iterable

from .models import AnalyzedQuery, QueryCategory, QueryCluster, money_sum
from .tokens import tokenize

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _ClusterAccumulator:
    keyword: str
    is_bigram: bool
    members: list[AnalyzedQuery] = field(default_factory=list)

    def freeze(self) -> QueryCluster:
        impressions = sum(item.metrics.impressions for item in self.members)
        clicks = sum(item.metrics.clicks for item in self.members)
        conversions = sum(item.metrics.conversions for item in self.members)
        cost = money_sum(item.metrics.cost for item in self.members)
        counts = {category: 0 for category in QueryCategory}
        for item in self.members:
            counts[item.category] += 1
        return QueryCluster(
            keyword=self.keyword,
            is_bigram=self.is_bigram,
            queries=len(self.members),
            impressions=impressions,
            clicks=clicks,
            cost=cost,
            conversions=conversions,
            ctr=round(clicks / impressions * 100, 2) if impressions > 0 else 0.0,
            avg_cpc=round(cost / clicks, 2) if clicks > 0 else 0.0,
            cpl=round(cost / conversions, 2) if conversions > 0 else None,
            target_count=counts[QueryCategory.TARGET],
            trash_count=counts[QueryCategory.TRASH],
            review_count=counts[QueryCategory.REVIEW],
        )


def cluster_keys(query: str) -> list[tuple[str, bool]]:
    """Return the unigram and adjacent-bigram keys of a query, each once."""

    tokens = tokenize(query)
    keys: list[tuple[str, bool]] = []
    seen: set[str] = set()
    for token in tokens:
        if token not in seen:
            seen.add(token)
            keys.append((token, False))
    for left, right in zip(tokens, tokens[1:]):
        if left == right:
            continue
        bigram = f"{left} {right}"
        if bigram not in seen:
            seen.add(bigram)
            keys.append((bigram, True))
    return keys


def build_clusters(
    analyzed: Iterable[AnalyzedQuery],
    *,
    min_queries: int = 2,
    max_results: int = 50,
) -> tuple[QueryCluster, ...]:
    """Group queries by shared keywords and adjacent word pairs.

    Clusters backed by fewer than ``min_queries`` queries are discarded. The
    rest are ordered by cost (highest first, keyword as tie-breaker) and capped
    at ``max_results``.
    """

    accumulators: dict[str, _ClusterAccumulator] = {}
    for item in analyzed:
        for key, is_bigram in cluster_keys(item.query):
            accumulator = accumulators.get(key)
            if accumulator is None:
                accumulator = accumulators[key] = _ClusterAccumulator(key, is_bigram)
            accumulator.members.append(item)

    clusters = [
        accumulator.freeze()
        for accumulator in accumulators.values()
        if len(accumulator.members) >= min_queries
    ]
    clusters.sort(key=lambda cluster: (-cluster.cost, cluster.keyword))
    logger.debug(
        "triage.clustering.built keys=%s kept=%s max=%s", len(accumulators), len(clusters), max_results
    )
    return tuple(clusters[:max_results])


__all__ = ["build_clusters", "cluster_keys"]
