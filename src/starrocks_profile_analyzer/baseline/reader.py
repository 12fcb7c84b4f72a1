from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from starrocks_profile_analyzer.baseline.models import AuditLogFilter, AuditLogRecord
from starrocks_profile_analyzer.input.starrocks.client import StarRocksClient


@runtime_checkable
class AuditLogReader(Protocol):
    """Source of historical query records for baseline calculation."""

    async def fetch_records(self, audit_filter: AuditLogFilter) -> list[AuditLogRecord]:
        ...


class StarRocksAuditLogReader:
    """Reads the StarRocks audit-log table through the HTTP SQL API."""

    AUDIT_SQL = """
        SELECT
            queryId,
            COALESCE(`user`, '') AS user,
            COALESCE(`db`, '') AS db,
            stmt,
            COALESCE(queryType, 'Query') AS queryType,
            queryTime AS query_time_ms,
            COALESCE(`state`, '') AS state,
            `timestamp`
        FROM starrocks_audit_db__.starrocks_audit_tbl__
        WHERE
            isQuery = 1
            AND `timestamp` >= DATE_SUB(NOW(), INTERVAL {hours} HOUR)
            AND `state` IN ({states})
            AND queryTime > 0
        ORDER BY `timestamp` DESC
        LIMIT {limit}
    """

    def __init__(self, client: StarRocksClient) -> None:
        self._client = client

    def build_sql(self, audit_filter: AuditLogFilter) -> str:
        states = ", ".join(f"'{state}'" for state in audit_filter.states if state.isalpha())
        return self.AUDIT_SQL.format(
            hours=int(audit_filter.hours_back),
            states=states,
            limit=int(audit_filter.limit),
        )

    async def fetch_records(self, audit_filter: AuditLogFilter) -> list[AuditLogRecord]:
        result = await self._client.execute(self.build_sql(audit_filter))
        return [self._to_record(row) for row in result.records()]

    @staticmethod
    def _to_record(row: dict[str, Any]) -> AuditLogRecord:
        try:
            query_time_ms = int(float(row.get("query_time_ms") or 0))
        except (TypeError, ValueError):
            query_time_ms = 0

        return AuditLogRecord(
            query_id=str(row.get("queryId") or ""),
            user=str(row.get("user") or ""),
            db=str(row.get("db") or ""),
            stmt=str(row.get("stmt") or ""),
            query_type=str(row.get("queryType") or "Query"),
            query_time_ms=query_time_ms,
            state=str(row.get("state") or ""),
            timestamp=_parse_timestamp(row.get("timestamp")),
        )


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
