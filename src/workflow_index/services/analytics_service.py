"""Corpus-wide aggregates over the index store, memoized for a short window."""

from __future__ import annotations

from collections.abc import Callable, Mapping
import logging
import math
import time
from typing import Any

from workflow_index.domain.model import COMPLEXITY_LEVELS
from workflow_index.domain.search import (
    AnalyticsSnapshot,
    BulkAnalysis,
    BulkCriteria,
    IntegrationCount,
    IntegrationListing,
    IntegrationUsage,
)
from workflow_index.errors import ValidationError
from workflow_index.observability.metrics import SNAPSHOT_CACHE
from workflow_index.search.store import SearchPredicate, WorkflowIndexStore


logger = logging.getLogger(__name__)

BULK_COMMON_INTEGRATIONS = 10
INTEGRATION_SORT_KEYS = ("count", "name")


def half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for non-negative input."""
    return int(math.floor(value + 0.5))


def _ranked(frequencies: Mapping[str, int], limit: int | None = None) -> list[tuple[str, int]]:
    ranked = sorted(frequencies.items(), key=lambda item: (-item[1], item[0]))
    return ranked if limit is None else ranked[:limit]


class SnapshotCache:
    """Single-slot memo that expires a fixed time after it was filled.

    Concurrent writers simply overwrite each other; the last one wins.
    """

    def __init__(self, ttl_seconds: float = 5.0, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._slot: tuple[float, Any] | None = None

    def get(self) -> Any | None:
        slot = self._slot
        if slot is None:
            return None
        stored_at, value = slot
        if self._clock() - stored_at >= self.ttl_seconds:
            return None
        return value

    def set(self, value: Any) -> None:
        self._slot = (self._clock(), value)

    def expire(self) -> None:
        self._slot = None


class AnalyticsEngine:
    """Computes statistics snapshots and integration usage from the index store."""

    def __init__(
        self,
        store: WorkflowIndexStore,
        cache: SnapshotCache | None = None,
        *,
        top_n: int = 20,
    ) -> None:
        self.store = store
        self.cache = cache or SnapshotCache()
        self.top_n = top_n

    def snapshot(self) -> AnalyticsSnapshot:
        cached = self.cache.get()
        if cached is not None:
            SNAPSHOT_CACHE.labels(result="hit").inc()
            return cached

        SNAPSHOT_CACHE.labels(result="miss").inc()
        snapshot = self.compute_snapshot()
        self.cache.set(snapshot)
        return snapshot

    def compute_snapshot(self) -> AnalyticsSnapshot:
        """Aggregate straight from the store, bypassing the cache."""
        complexity = dict.fromkeys(COMPLEXITY_LEVELS, 0)
        with self.store.read_snapshot():
            total, active, total_nodes = self.store.totals()
            complexity.update(self.store.count_by("complexity"))
            triggers = self.store.count_by("trigger_type")
            frequencies = self.store.integration_frequencies()
            last_indexed = self.store.last_analyzed_at()

        snapshot = AnalyticsSnapshot(
            total=total,
            active=active,
            inactive=total - active,
            triggers=triggers,
            complexity=complexity,
            total_nodes=total_nodes,
            unique_integrations=len(frequencies),
            top_integrations=[
                IntegrationCount(name=name, count=count) for name, count in _ranked(frequencies, self.top_n)
            ],
            average_nodes_per_workflow=half_up(total_nodes / total) if total else 0,
            active_percentage=half_up(active / total * 100) if total else 0,
            last_indexed=last_indexed,
        )
        logger.debug("Computed analytics snapshot over %d workflows", total)
        return snapshot

    def list_integrations(self, sort_by: str = "count") -> IntegrationListing:
        """Every integration with its usage count and share of indexed workflows."""
        if sort_by not in INTEGRATION_SORT_KEYS:
            raise ValidationError("sort_by", f"must be one of {', '.join(INTEGRATION_SORT_KEYS)}")

        with self.store.read_snapshot():
            total = self.store.count()
            frequencies = self.store.integration_frequencies()
        ordered = _ranked(frequencies) if sort_by == "count" else sorted(frequencies.items())
        return IntegrationListing(
            total_integrations=len(frequencies),
            integrations=[
                IntegrationUsage(
                    name=name,
                    count=count,
                    percentage=half_up(count / total * 100) if total else 0,
                )
                for name, count in ordered
            ],
        )

    def bulk_analyze(self, criteria: BulkCriteria | Mapping[str, Any] | None = None) -> BulkAnalysis:
        """Pattern summary over the workflows matching ``criteria``."""
        if not isinstance(criteria, BulkCriteria):
            criteria = BulkCriteria.parse(dict(criteria or {}))
        if criteria.min_nodes is not None and criteria.max_nodes is not None and criteria.min_nodes > criteria.max_nodes:
            raise ValidationError("min_nodes", "must not exceed max_nodes")

        predicate = SearchPredicate(
            trigger_types=tuple(criteria.trigger_types),
            integrations=tuple(criteria.must_include_integrations),
            min_nodes=criteria.min_nodes,
            max_nodes=criteria.max_nodes,
        )
        with self.store.read_snapshot():
            total, _active, total_nodes = self.store.totals(predicate)
            frequencies = self.store.integration_frequencies(predicate)
            triggers = self.store.count_by("trigger_type", predicate)
            complexity = self.store.count_by("complexity", predicate)
        return BulkAnalysis(
            total_matching=total,
            common_integrations=dict(_ranked(frequencies, BULK_COMMON_INTEGRATIONS)),
            trigger_distribution=triggers,
            complexity_distribution=complexity,
            average_nodes=half_up(total_nodes / total) if total else 0,
        )
