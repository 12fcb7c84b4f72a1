"""Historical performance baselines feeding adaptive rule thresholds."""

from starrocks_profile_analyzer.baseline.cache import BaselineCacheManager, CachedBaseline
from starrocks_profile_analyzer.baseline.calculator import (
    AdaptiveThresholdCalculator,
    BaselineCalculator,
)
from starrocks_profile_analyzer.baseline.models import (
    AuditLogFilter,
    AuditLogRecord,
    BaselineKey,
    BaselineSource,
    BaselineStats,
    PerformanceBaseline,
    QueryComplexity,
)
from starrocks_profile_analyzer.baseline.reader import AuditLogReader, StarRocksAuditLogReader
from starrocks_profile_analyzer.baseline.service import BaselineRefreshConfig, BaselineService

__all__ = [
    "AdaptiveThresholdCalculator",
    "AuditLogFilter",
    "AuditLogReader",
    "AuditLogRecord",
    "BaselineCacheManager",
    "BaselineCalculator",
    "BaselineKey",
    "BaselineRefreshConfig",
    "BaselineService",
    "BaselineSource",
    "BaselineStats",
    "CachedBaseline",
    "PerformanceBaseline",
    "QueryComplexity",
    "StarRocksAuditLogReader",
]
