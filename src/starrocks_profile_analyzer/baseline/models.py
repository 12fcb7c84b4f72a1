import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

_WINDOW = re.compile(r"OVER\s?\(")


class QueryComplexity(StrEnum):
    SIMPLE = "Simple"
    MEDIUM = "Medium"
    COMPLEX = "Complex"
    VERY_COMPLEX = "VeryComplex"

    @classmethod
    def from_sql(cls, sql: str) -> "QueryComplexity":
        """Bucket a statement by a weighted count of its structural features."""
        upper = sql.upper()

        score = upper.count("JOIN") * 2
        if _WINDOW.search(upper):
            score += 3
        if "WITH" in upper and "AS (" in upper:
            score += 2
        if upper.count("SELECT") > 1:
            score += 1
        if "UNION" in upper:
            score += 2
        if "UDF" in upper or upper.count("(") > 5:
            score += 3

        if score <= 2:
            return cls.SIMPLE
        if score <= 7:
            return cls.MEDIUM
        if score <= 15:
            return cls.COMPLEX
        return cls.VERY_COMPLEX


class BaselineSource(StrEnum):
    AUDIT_LOG = "AuditLog"
    DEFAULT = "Default"
    CONFIG = "Config"


@dataclass(frozen=True, slots=True)
class BaselineStats:
    avg_ms: float = 0.0
    p50_ms: float = 0.0
    p95_ms: float = 0.0
    p99_ms: float = 0.0
    max_ms: float = 0.0
    std_dev_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class PerformanceBaseline:
    """Historical execution-time statistics for one group of queries.

    A ``sample_size`` of 0 marks a built-in default rather than observed data.
    """

    complexity: QueryComplexity
    stats: BaselineStats
    sample_size: int
    time_range_hours: int
    table: str | None = None
    user: str | None = None

    @property
    def is_default(self) -> bool:
        return self.sample_size == 0


@dataclass(frozen=True, slots=True)
class BaselineKey:
    complexity: QueryComplexity
    table: str | None = None
    user: str | None = None

    def matches(self, record: "AuditLogRecord") -> bool:
        if QueryComplexity.from_sql(record.stmt) is not self.complexity:
            return False
        if self.table is not None and self.table.upper() not in record.stmt.upper():
            return False
        if self.user is not None and record.user != self.user:
            return False
        return True


@dataclass(frozen=True, slots=True)
class AuditLogRecord:
    query_id: str
    user: str
    db: str
    stmt: str
    query_time_ms: int
    state: str
    query_type: str = "Query"
    timestamp: datetime | None = None


@dataclass(frozen=True, slots=True)
class AuditLogFilter:
    hours_back: int = 168
    limit: int = 10_000
    states: tuple[str, ...] = field(default=("EOF", "OK"))
