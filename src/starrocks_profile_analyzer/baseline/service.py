import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from starrocks_profile_analyzer.baseline.cache import BaselineCacheManager
from starrocks_profile_analyzer.baseline.calculator import (
    AdaptiveThresholdCalculator,
    BaselineCalculator,
)
from starrocks_profile_analyzer.baseline.models import (
    AuditLogFilter,
    AuditLogRecord,
    BaselineKey,
    BaselineSource,
    PerformanceBaseline,
    QueryComplexity,
)
from starrocks_profile_analyzer.baseline.reader import AuditLogReader
from starrocks_profile_analyzer.core.config import config
from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.domain import AdaptiveThresholds

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class BaselineRefreshConfig:
    interval_seconds: float = config.BASELINE_REFRESH_INTERVAL_SECONDS
    audit_log_hours: int = config.BASELINE_AUDIT_LOG_HOURS
    min_sample_size: int = config.BASELINE_MIN_SAMPLE_SIZE


class BaselineService:
    """Keeps the baseline cache filled from the audit log.

    Reader failures never escape: they are logged and the cache keeps its
    previous values, falling back to the built-in defaults.
    """

    def __init__(
        self,
        reader: AuditLogReader,
        cache: BaselineCacheManager | None = None,
        refresh_config: BaselineRefreshConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._reader = reader
        self._clock = clock
        self._snapshot: list[AuditLogRecord] | None = None
        self._snapshot_at = 0.0
        self._config = refresh_config or BaselineRefreshConfig()
        self._calculator = BaselineCalculator(
            min_sample_size=self._config.min_sample_size,
            time_range_hours=self._config.audit_log_hours,
        )
        self._cache = cache or BaselineCacheManager(ttl_seconds=config.BASELINE_TTL_SECONDS)
        self._cache.set_refresher(self.refresh_key)

    @property
    def cache(self) -> BaselineCacheManager:
        return self._cache

    async def fetch_records(self) -> list[AuditLogRecord]:
        try:
            records = await self._reader.fetch_records(
                AuditLogFilter(hours_back=self._config.audit_log_hours)
            )
        except Exception:
            logger.error("Failed to read the audit log, using default baselines", exc_info=True)
            return []
        self._snapshot = records
        self._snapshot_at = self._clock()
        return records

    async def recent_records(self) -> list[AuditLogRecord]:
        """Records read within the last refresh interval, re-reading the audit log otherwise."""
        if self._snapshot is not None and self._clock() - self._snapshot_at < self._config.interval_seconds:
            return self._snapshot
        return await self.fetch_records()

    async def refresh_all(self) -> dict[QueryComplexity, PerformanceBaseline]:
        records = await self.fetch_records()
        baselines = self._calculator.calculate_by_complexity(records)
        if not baselines:
            logger.warning(
                "No complexity bucket reached %d samples out of %d records, keeping current baselines",
                self._calculator.min_sample_size,
                len(records),
            )
            return {}

        self._cache.update(baselines, BaselineSource.AUDIT_LOG)
        logger.info(
            "Refreshed %d baselines from %d audit records: %s",
            len(baselines),
            len(records),
            ", ".join(sorted(baselines)),
        )
        return baselines

    async def refresh_key(self, key: BaselineKey) -> PerformanceBaseline | None:
        records = await self.recent_records()
        matching = [record for record in records if key.matches(record)]
        return self._calculator.calculate(matching, table=key.table, user=key.user)

    async def run_periodic(self, stop_event: asyncio.Event) -> None:
        """Refresh every ``interval_seconds`` until ``stop_event`` is set."""
        while not stop_event.is_set():
            await self.refresh_all()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._config.interval_seconds)
            except TimeoutError:
                continue

    def thresholds_for_sql(self, sql: str) -> AdaptiveThresholds:
        """Adaptive thresholds for a statement, from cached observed data only."""
        complexity = QueryComplexity.from_sql(sql)
        baseline = self._cache.get_baseline(complexity)
        observed = {} if baseline.is_default else {complexity: baseline}
        return AdaptiveThresholdCalculator(observed).thresholds_for(complexity)
