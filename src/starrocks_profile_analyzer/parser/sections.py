import json
import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, ClassVar

from starrocks_profile_analyzer.domain import ExecutionInfo, PlannerInfo, ProfileSummary
from starrocks_profile_analyzer.parser.exceptions import SectionNotFoundError
from starrocks_profile_analyzer.parser.metrics import indent_of
from starrocks_profile_analyzer.parser.values import try_parse_bytes, try_parse_duration_ms


class SectionParser:
    """Extracts the Summary, Planner and Execution sections of a profile."""

    SUMMARY_LINE: ClassVar[re.Pattern[str]] = re.compile(r"^\s*-\s+([^:]+):\s*(.*)$")
    FRAGMENT_HEADER: ClassVar[re.Pattern[str]] = re.compile(r"^\s*Fragment\s+\d+:\s*$")
    TOPOLOGY_MARKER: ClassVar[str] = "- Topology:"

    # Summary key -> ProfileSummary field
    _summary_fields: ClassVar[dict[str, str]] = {
        "Query ID": "query_id",
        "Start Time": "start_time",
        "End Time": "end_time",
        "Total": "total_time",
        "Query State": "query_state",
        "StarRocks Version": "starrocks_version",
        "Sql Statement": "sql_statement",
        "Query Type": "query_type",
        "User": "user",
        "Default Db": "default_db",
    }

    # Execution metric -> ProfileSummary field holding (raw, parsed ms)
    _timed_fields: ClassVar[dict[str, str]] = {
        "QueryCumulativeOperatorTime": "query_cumulative_operator_time",
        "QueryExecutionWallTime": "query_execution_wall_time",
        "QueryCumulativeCpuTime": "query_cumulative_cpu_time",
        "QueryCumulativeScanTime": "query_cumulative_scan_time",
        "QueryCumulativeNetworkTime": "query_cumulative_network_time",
        "QueryPeakScheduleTime": "query_peak_schedule_time",
        "ResultDeliverTime": "result_deliver_time",
    }

    _raw_fields: ClassVar[dict[str, str]] = {
        "QuerySumMemoryUsage": "query_sum_memory_usage",
        "QueryDeallocatedMemoryUsage": "query_deallocated_memory_usage",
        "QuerySpillBytes": "query_spill_bytes",
    }

    _byte_fields: ClassVar[dict[str, str]] = {
        "QueryAllocatedMemoryUsage": "query_allocated_memory",
        "QueryPeakMemoryUsagePerNode": "query_peak_memory",
    }

    @staticmethod
    def extract_block(text: str, marker: str) -> str:
        """Return the block opened by ``marker`` (e.g. ``"Summary:"``).

        The block ends at the first following line indented no deeper than the
        marker line that itself ends with ``:``.

        Raises:
            SectionNotFoundError: If no line consists of the marker.
        """
        lines = text.splitlines()
        for position, line in enumerate(lines):
            if line.strip() != marker:
                continue
            marker_indent = indent_of(line)
            block: list[str] = []
            for following in lines[position + 1 :]:
                stripped = following.strip()
                if stripped and indent_of(following) <= marker_indent and stripped.endswith(":"):
                    break
                block.append(following)
            return "\n".join(block)
        raise SectionNotFoundError(marker.rstrip(":"))

    @classmethod
    def parse_key_values(cls, block: str) -> dict[str, str]:
        values: dict[str, str] = {}
        for line in block.splitlines():
            match = cls.SUMMARY_LINE.match(line)
            if match is None:
                continue
            key = match.group(1).strip()
            if key not in values:
                values[key] = match.group(2).strip()
        return values

    @classmethod
    def parse_summary(cls, text: str) -> ProfileSummary:
        values = cls.parse_key_values(cls.extract_block(text, "Summary:"))

        fields: dict[str, Any] = {}
        for key, field_name in cls._summary_fields.items():
            if key in values:
                fields[field_name] = values[key]

        summary = ProfileSummary(
            **fields,
            total_time_ms=try_parse_duration_ms(values.get("Total")),
            variables=cls._parse_variables(values.get("Variables", "")),
            non_default_variables=cls._parse_non_default_variables(
                values.get("NonDefaultSessionVariables", "")
            ),
        )
        timed = {
            key: values[key]
            for key in ("QueryCumulativeOperatorTime", "QueryExecutionWallTime")
            if key in values
        }
        return cls.apply_execution_metrics(summary, timed)

    @classmethod
    def parse_planner(cls, text: str) -> PlannerInfo:
        try:
            block = cls.extract_block(text, "Planner:")
        except SectionNotFoundError:
            return PlannerInfo()
        return PlannerInfo(details=cls.parse_key_values(block))

    @classmethod
    def parse_execution(cls, text: str) -> ExecutionInfo:
        block = cls.extract_block(text, "Execution:")
        return ExecutionInfo(
            topology=cls.extract_topology(block),
            metrics=cls.extract_execution_metrics(block),
        )

    @classmethod
    def extract_execution_metrics(cls, block: str) -> dict[str, str]:
        metrics: dict[str, str] = {}
        for line in block.splitlines():
            if cls.FRAGMENT_HEADER.match(line):
                break
            match = cls.SUMMARY_LINE.match(line)
            if match is None:
                continue
            key = match.group(1).strip()
            value = match.group(2).strip()
            if not key or not value or key == "Topology" or key in metrics:
                continue
            metrics[key] = value
        return metrics

    @classmethod
    def extract_topology(cls, block: str) -> str:
        """Return the balanced ``{...}`` JSON following ``- Topology:``, or ``""``."""
        marker = block.find(cls.TOPOLOGY_MARKER)
        if marker < 0:
            return ""
        start = block.find("{", marker)
        if start < 0:
            return ""

        depth = 0
        in_string = False
        escaped = False
        for position in range(start, len(block)):
            char = block[position]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return block[start : position + 1]
        return ""

    @classmethod
    def apply_execution_metrics(
        cls, summary: ProfileSummary, metrics: Mapping[str, str]
    ) -> ProfileSummary:
        """Fill summary fields from Execution-level metrics.

        Fields already set on the summary are kept.
        """
        updates: dict[str, Any] = {}

        for key, field_name in cls._timed_fields.items():
            raw = metrics.get(key)
            if raw is None or getattr(summary, field_name) is not None:
                continue
            updates[field_name] = raw
            updates[f"{field_name}_ms"] = try_parse_duration_ms(raw)

        for key, field_name in cls._raw_fields.items():
            if key in metrics and getattr(summary, field_name) is None:
                updates[field_name] = metrics[key]

        for key, field_name in cls._byte_fields.items():
            if key in metrics and getattr(summary, field_name) is None:
                updates[field_name] = try_parse_bytes(metrics[key])

        if not updates:
            return summary
        return replace(summary, **updates)

    @staticmethod
    def _parse_variables(raw: str) -> dict[str, str]:
        variables: dict[str, str] = {}
        for item in raw.split(","):
            name, separator, value = item.partition("=")
            if separator and name.strip():
                variables[name.strip()] = value.strip()
        return variables

    @staticmethod
    def _parse_non_default_variables(raw: str) -> dict[str, str]:
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if not isinstance(data, dict):
            return {}

        variables: dict[str, str] = {}
        for name, entry in data.items():
            value = entry.get("actualValue") if isinstance(entry, dict) else entry
            if isinstance(value, bool):
                variables[name] = "true" if value else "false"
            elif value is not None:
                variables[name] = str(value)
        return variables
