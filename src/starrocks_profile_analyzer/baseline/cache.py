import asyncio
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from starrocks_profile_analyzer.baseline.models import (
    BaselineKey,
    BaselineSource,
    BaselineStats,
    PerformanceBaseline,
    QueryComplexity,
)
from starrocks_profile_analyzer.core.logging import get_logger

logger = get_logger(__name__)

Refresher = Callable[[BaselineKey], Awaitable[PerformanceBaseline | None]]

# avg, p50, p95, p99, max, std_dev in milliseconds
_DEFAULT_STATS: dict[QueryComplexity, tuple[float, float, float, float, float, float]] = {
    QueryComplexity.SIMPLE: (2_000.0, 1_500.0, 4_000.0, 6_000.0, 10_000.0, 1_000.0),
    QueryComplexity.MEDIUM: (5_000.0, 4_000.0, 10_000.0, 15_000.0, 30_000.0, 3_000.0),
    QueryComplexity.COMPLEX: (15_000.0, 12_000.0, 30_000.0, 45_000.0, 90_000.0, 8_000.0),
    QueryComplexity.VERY_COMPLEX: (45_000.0, 35_000.0, 90_000.0, 120_000.0, 300_000.0, 20_000.0),
}


@dataclass(frozen=True, slots=True)
class CachedBaseline:
    baseline: PerformanceBaseline
    created_at: float
    ttl_seconds: float
    source: BaselineSource

    def is_valid(self, now: float) -> bool:
        return now - self.created_at < self.ttl_seconds


class BaselineCacheManager:
    """TTL cache of performance baselines that never blocks and never fails.

    ``get_baseline`` always answers immediately: a fresh entry is returned as
    is, a stale entry is returned while a background refresh runs, and a miss
    returns the built-in default. Refreshes are single-flight per key, and a
    refresh that fails or finds no data keeps whatever was cached before.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        refresher: Refresher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._refresher = refresher
        self._clock = clock
        self._entries: dict[BaselineKey, CachedBaseline] = {}
        self._inflight: dict[BaselineKey, asyncio.Task[PerformanceBaseline]] = {}

    def set_refresher(self, refresher: Refresher | None) -> None:
        self._refresher = refresher

    def get_baseline(self, key: BaselineKey | QueryComplexity) -> PerformanceBaseline:
        key = _as_key(key)
        entry = self._entries.get(key)
        if entry is not None and entry.is_valid(self._clock()):
            return entry.baseline

        self._schedule_refresh(key)
        if entry is not None:
            return entry.baseline
        return self.default_baseline(key.complexity)

    async def refresh(self, key: BaselineKey | QueryComplexity) -> PerformanceBaseline:
        """Refresh one key, joining a refresh that is already in flight."""
        key = _as_key(key)
        task = self._inflight.get(key)
        if task is None:
            task = self._start_refresh(key)
        return await asyncio.shield(task)

    def update(
        self,
        baselines: Mapping[BaselineKey | QueryComplexity, PerformanceBaseline],
        source: BaselineSource = BaselineSource.AUDIT_LOG,
    ) -> None:
        now = self._clock()
        for key, baseline in baselines.items():
            self._entries[_as_key(key)] = CachedBaseline(
                baseline=baseline,
                created_at=now,
                ttl_seconds=self.ttl_seconds,
                source=source,
            )

    def clear(self) -> None:
        self._entries.clear()

    def has_valid_cache(self, key: BaselineKey | QueryComplexity | None = None) -> bool:
        now = self._clock()
        if key is None:
            return any(entry.is_valid(now) for entry in self._entries.values())
        entry = self._entries.get(_as_key(key))
        return entry is not None and entry.is_valid(now)

    def get_source(self, key: BaselineKey | QueryComplexity | None = None) -> BaselineSource:
        if key is None:
            sources = {entry.source for entry in self._entries.values()}
            if BaselineSource.AUDIT_LOG in sources:
                return BaselineSource.AUDIT_LOG
            if BaselineSource.CONFIG in sources:
                return BaselineSource.CONFIG
            return BaselineSource.DEFAULT
        entry = self._entries.get(_as_key(key))
        return entry.source if entry is not None else BaselineSource.DEFAULT

    @property
    def refreshing(self) -> tuple[BaselineKey, ...]:
        return tuple(self._inflight)

    @staticmethod
    def default_baseline(complexity: QueryComplexity) -> PerformanceBaseline:
        avg, p50, p95, p99, maximum, std_dev = _DEFAULT_STATS[complexity]
        return PerformanceBaseline(
            complexity=complexity,
            stats=BaselineStats(
                avg_ms=avg,
                p50_ms=p50,
                p95_ms=p95,
                p99_ms=p99,
                max_ms=maximum,
                std_dev_ms=std_dev,
            ),
            sample_size=0,
            time_range_hours=0,
        )

    @classmethod
    def default_baselines(cls) -> dict[QueryComplexity, PerformanceBaseline]:
        return {complexity: cls.default_baseline(complexity) for complexity in QueryComplexity}

    def _schedule_refresh(self, key: BaselineKey) -> None:
        if self._refresher is None or key in self._inflight:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._start_refresh(key)

    def _start_refresh(self, key: BaselineKey) -> asyncio.Task[PerformanceBaseline]:
        task = asyncio.create_task(self._run_refresh(key))
        self._inflight[key] = task
        task.add_done_callback(lambda _: self._inflight.pop(key, None))
        return task

    async def _run_refresh(self, key: BaselineKey) -> PerformanceBaseline:
        previous = self._entries.get(key)
        fallback = previous.baseline if previous is not None else self.default_baseline(key.complexity)
        if self._refresher is None:
            return fallback

        try:
            baseline = await self._refresher(key)
        except Exception:
            logger.warning("Baseline refresh for %s failed, keeping previous value", key, exc_info=True)
            return fallback

        if baseline is None:
            logger.info("Baseline refresh for %s found no data, keeping previous value", key)
            return fallback

        self.update({key: baseline}, BaselineSource.AUDIT_LOG)
        return baseline


def _as_key(key: BaselineKey | QueryComplexity) -> BaselineKey:
    if isinstance(key, BaselineKey):
        return key
    return BaselineKey(complexity=key)
