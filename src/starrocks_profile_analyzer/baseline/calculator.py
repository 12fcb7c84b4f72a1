import math
from collections.abc import Callable, Hashable, Iterable, Mapping, Sequence
from typing import Any

from starrocks_profile_analyzer.baseline.models import (
    AuditLogRecord,
    BaselineStats,
    PerformanceBaseline,
    QueryComplexity,
)
from starrocks_profile_analyzer.domain import AdaptiveThresholds

SUCCESS_STATES = frozenset({"EOF", "OK"})

DEFAULT_SKEW_RATIO = 2.0
SKEW_DAMPING = 0.2

QUERY_TIME_FLOORS_MS: dict[QueryComplexity, float] = {
    QueryComplexity.SIMPLE: 5_000.0,
    QueryComplexity.MEDIUM: 10_000.0,
    QueryComplexity.COMPLEX: 30_000.0,
    QueryComplexity.VERY_COMPLEX: 60_000.0,
}
DEFAULT_QUERY_TIME_MS: dict[QueryComplexity, float] = {
    QueryComplexity.SIMPLE: 10_000.0,
    QueryComplexity.MEDIUM: 30_000.0,
    QueryComplexity.COMPLEX: 60_000.0,
    QueryComplexity.VERY_COMPLEX: 180_000.0,
}


def percentile(sorted_values: Sequence[float], quantile: float) -> float:
    """Nearest-rank percentile: the value at ``min(int(n * q), n - 1)``."""
    if not sorted_values:
        return 0.0
    index = min(int(len(sorted_values) * quantile), len(sorted_values) - 1)
    return sorted_values[index]


def compute_stats(times: Iterable[float]) -> BaselineStats:
    values = sorted(times)
    if not values:
        return BaselineStats()

    avg = sum(values) / len(values)
    variance = sum((value - avg) ** 2 for value in values) / len(values)
    return BaselineStats(
        avg_ms=avg,
        p50_ms=percentile(values, 0.50),
        p95_ms=percentile(values, 0.95),
        p99_ms=percentile(values, 0.99),
        max_ms=values[-1],
        std_dev_ms=math.sqrt(variance),
    )


class BaselineCalculator:
    """Computes execution-time baselines from audit-log records.

    Only successful queries (``EOF``/``OK``) are counted, and a group with
    fewer than ``min_sample_size`` of them yields no baseline.
    """

    def __init__(self, min_sample_size: int = 30, time_range_hours: int = 168) -> None:
        self.min_sample_size = min_sample_size
        self.time_range_hours = time_range_hours

    def calculate(
        self,
        records: Sequence[AuditLogRecord],
        table: str | None = None,
        user: str | None = None,
    ) -> PerformanceBaseline | None:
        if not records:
            return None

        successful = [r for r in records if r.state.upper() in SUCCESS_STATES]
        if len(successful) < self.min_sample_size:
            return None

        times = [float(r.query_time_ms) for r in successful]
        return PerformanceBaseline(
            complexity=QueryComplexity.from_sql(successful[0].stmt),
            stats=compute_stats(times),
            sample_size=len(times),
            time_range_hours=self.time_range_hours,
            table=table,
            user=user,
        )

    def calculate_by_complexity(
        self, records: Iterable[AuditLogRecord]
    ) -> dict[QueryComplexity, PerformanceBaseline]:
        return self._grouped(records, lambda r: QueryComplexity.from_sql(r.stmt))

    def calculate_for_table(
        self, records: Iterable[AuditLogRecord], table: str
    ) -> PerformanceBaseline | None:
        needle = table.upper()
        matching = [r for r in records if needle in r.stmt.upper()]
        return self.calculate(matching, table=table)

    def calculate_for_user(
        self, records: Iterable[AuditLogRecord], user: str
    ) -> PerformanceBaseline | None:
        matching = [r for r in records if r.user == user]
        return self.calculate(matching, user=user)

    def calculate_by_hour(self, records: Iterable[AuditLogRecord]) -> dict[int, PerformanceBaseline]:
        """Baselines per hour of day, for records that carry a timestamp."""
        timed = [r for r in records if r.timestamp is not None]
        return self._grouped(timed, lambda r: r.timestamp.hour)

    def _grouped(
        self,
        records: Iterable[AuditLogRecord],
        key: Callable[[AuditLogRecord], Hashable],
    ) -> dict[Any, PerformanceBaseline]:
        groups: dict[Hashable, list[AuditLogRecord]] = {}
        for record in records:
            groups.setdefault(key(record), []).append(record)

        baselines = {}
        for group_key, group in groups.items():
            baseline = self.calculate(group)
            if baseline is not None:
                baselines[group_key] = baseline
        return baselines


class AdaptiveThresholdCalculator:
    """Derives rule thresholds from observed baselines, with fixed fallbacks."""

    def __init__(self, baselines: Mapping[QueryComplexity, PerformanceBaseline] | None = None) -> None:
        self._baselines = dict(baselines or {})

    def query_time_threshold_ms(self, complexity: QueryComplexity) -> float:
        baseline = self._baselines.get(complexity)
        if baseline is None:
            return DEFAULT_QUERY_TIME_MS[complexity]
        threshold = baseline.stats.p95_ms + 2 * baseline.stats.std_dev_ms
        return max(threshold, QUERY_TIME_FLOORS_MS[complexity])

    def skew_threshold(self, complexity: QueryComplexity) -> float:
        baseline = self._baselines.get(complexity)
        if baseline is None:
            return DEFAULT_SKEW_RATIO
        stats = baseline.stats
        historical = stats.p99_ms / stats.p50_ms if stats.p50_ms > 0 else DEFAULT_SKEW_RATIO
        return DEFAULT_SKEW_RATIO + (historical - DEFAULT_SKEW_RATIO) * SKEW_DAMPING

    def thresholds_for(self, complexity: QueryComplexity) -> AdaptiveThresholds:
        return AdaptiveThresholds(
            query_time_ms=self.query_time_threshold_ms(complexity),
            skew_ratio=self.skew_threshold(complexity),
        )
