import re
from collections.abc import Mapping
from typing import ClassVar

from starrocks_profile_analyzer.domain import OperatorMetrics
from starrocks_profile_analyzer.parser.values import (
    try_parse_bytes,
    try_parse_duration,
    try_parse_number,
)


def indent_of(line: str) -> int:
    return len(line) - len(line.lstrip())


class MetricsParser:
    """Extracts ``CommonMetrics``/``UniqueMetrics`` key-value blocks."""

    METRIC_LINE: ClassVar[re.Pattern[str]] = re.compile(r"^\s*-\s+([^:]+):\s*(.*)$")

    MEMORY_KEYS: ClassVar[tuple[str, ...]] = (
        "OperatorPeakMemoryUsage",
        "PeakMemoryUsage",
        "OperatorMemoryUsage",
        "MemoryUsage",
    )

    @staticmethod
    def extract_block(text: str, header: str) -> str:
        """Return the lines nested under ``header`` (e.g. ``CommonMetrics:``)."""
        lines = text.splitlines()
        for position, line in enumerate(lines):
            if line.strip() != header:
                continue
            header_indent = indent_of(line)
            block: list[str] = []
            for nested in lines[position + 1 :]:
                if nested.strip() and indent_of(nested) <= header_indent:
                    break
                block.append(nested)
            return "\n".join(block)
        return ""

    @classmethod
    def extract_common_metrics_block(cls, text: str) -> str:
        return cls.extract_block(text, "CommonMetrics:")

    @classmethod
    def extract_unique_metrics_block(cls, text: str) -> str:
        return cls.extract_block(text, "UniqueMetrics:")

    @classmethod
    def parse_metric_lines(cls, text: str) -> dict[str, str]:
        metrics: dict[str, str] = {}
        for line in text.splitlines():
            match = cls.METRIC_LINE.match(line)
            if match is None:
                continue
            key = match.group(1).strip()
            if key and key not in metrics:
                metrics[key] = match.group(2).strip()
        return metrics

    @classmethod
    def parse_common_metrics(cls, text: str) -> OperatorMetrics:
        return cls.metrics_from_map(cls.parse_metric_lines(text))

    @classmethod
    def metrics_from_map(cls, metrics: Mapping[str, str]) -> OperatorMetrics:
        memory_usage = None
        for key in cls.MEMORY_KEYS:
            memory_usage = try_parse_bytes(metrics.get(key))
            if memory_usage is not None:
                break

        return OperatorMetrics(
            operator_total_time=try_parse_duration(metrics.get("OperatorTotalTime")),
            operator_total_time_raw=metrics.get("OperatorTotalTime"),
            operator_total_time_min=try_parse_duration(metrics.get("__MIN_OF_OperatorTotalTime")),
            operator_total_time_max=try_parse_duration(metrics.get("__MAX_OF_OperatorTotalTime")),
            push_chunk_num=try_parse_number(metrics.get("PushChunkNum")),
            push_row_num=try_parse_number(metrics.get("PushRowNum")),
            pull_chunk_num=try_parse_number(metrics.get("PullChunkNum")),
            pull_row_num=try_parse_number(metrics.get("PullRowNum")),
            push_total_time=try_parse_duration(metrics.get("PushTotalTime")),
            push_total_time_min=try_parse_duration(metrics.get("__MIN_OF_PushTotalTime")),
            push_total_time_max=try_parse_duration(metrics.get("__MAX_OF_PushTotalTime")),
            pull_total_time=try_parse_duration(metrics.get("PullTotalTime")),
            pull_total_time_min=try_parse_duration(metrics.get("__MIN_OF_PullTotalTime")),
            pull_total_time_max=try_parse_duration(metrics.get("__MAX_OF_PullTotalTime")),
            memory_usage=memory_usage,
            output_chunk_bytes=try_parse_bytes(metrics.get("OutputChunkBytes")),
        )
