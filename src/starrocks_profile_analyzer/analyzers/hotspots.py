from dataclasses import dataclass

from starrocks_profile_analyzer.analyzers.rules.base import GIB
from starrocks_profile_analyzer.analyzers.rules.common import operator_suggestions
from starrocks_profile_analyzer.domain import (
    ExecutionTreeNode,
    Fragment,
    HotSeverity,
    HotSpot,
    Locale,
    Profile,
)
from starrocks_profile_analyzer.parser.values import format_bytes, try_parse_duration_ms


@dataclass(frozen=True, slots=True)
class HotSpotThresholds:
    long_running_seconds: float = 3600.0
    severe_node_percentage: float = 50.0
    moderate_node_percentage: float = 30.0
    node_memory_bytes: int = GIB
    fallback_operator_seconds: float = 300.0


class HotSpotDetector:
    """Coarse threshold checks, independent from the rule catalog."""

    def __init__(self, thresholds: HotSpotThresholds | None = None) -> None:
        self._thresholds = thresholds or HotSpotThresholds()

    def analyze(self, profile: Profile, locale: Locale = Locale.EN) -> list[HotSpot]:
        hotspots: list[HotSpot] = []

        total_ms = profile.summary.total_time_ms
        if total_ms is None:
            total_ms = try_parse_duration_ms(profile.summary.total_time)
        if total_ms is not None and total_ms / 1000 > self._thresholds.long_running_seconds:
            hotspots.append(self._long_running(total_ms / 1000, locale))

        tree = profile.execution_tree
        if tree is not None and not tree.is_empty:
            for node in tree.nodes:
                hotspots.extend(self._analyze_node(node, locale))
        else:
            for fragment in profile.fragments:
                hotspots.extend(self._analyze_fragment(fragment, locale))

        hotspots.sort(key=lambda hotspot: hotspot.severity, reverse=True)
        return hotspots

    @staticmethod
    def _long_running(seconds: float, locale: Locale) -> HotSpot:
        return HotSpot(
            node_path="Query",
            severity=HotSeverity.SEVERE,
            issue_type="LongRunning",
            description=locale.pick(
                f"Total query execution time is too long: {seconds:.1f}s",
                f"查询总执行时间过长: {seconds:.1f}s",
            ),
            suggestions=(
                locale.pick("Check for data skew", "检查是否存在数据倾斜"),
                locale.pick("Consider optimizing the query plan", "考虑优化查询计划"),
                locale.pick("Check for hardware bottlenecks", "查看是否存在硬件瓶颈"),
            ),
        )

    def _analyze_node(self, node: ExecutionTreeNode, locale: Locale) -> list[HotSpot]:
        thresholds = self._thresholds
        hotspots: list[HotSpot] = []

        percentage = node.time_percentage
        if percentage is not None and percentage > thresholds.moderate_node_percentage:
            severity = (
                HotSeverity.SEVERE
                if percentage > thresholds.severe_node_percentage
                else HotSeverity.MODERATE
            )
            hotspots.append(
                HotSpot(
                    node_path=node.node_path,
                    severity=severity,
                    issue_type="HighTimeCost",
                    description=locale.pick(
                        f"Operator {node.operator_name} takes {percentage:.1f}% of the execution time",
                        f"算子 {node.operator_name} 占用 {percentage:.1f}% 的执行时间",
                    ),
                    suggestions=operator_suggestions(node.operator_name, locale),
                )
            )

        memory = node.metrics.memory_usage
        if memory is not None and memory > thresholds.node_memory_bytes:
            hotspots.append(
                HotSpot(
                    node_path=node.node_path,
                    severity=HotSeverity.MODERATE,
                    issue_type="HighMemoryUsage",
                    description=locale.pick(
                        f"Operator {node.operator_name} uses too much memory: {format_bytes(memory)}",
                        f"算子 {node.operator_name} 内存使用过高: {format_bytes(memory)}",
                    ),
                    suggestions=(
                        locale.pick("Check for memory leaks", "检查是否内存泄漏"),
                        locale.pick("Consider tuning the memory settings", "考虑调整内存配置参数"),
                        locale.pick("Optimize the data structures in use", "优化数据结构使用"),
                    ),
                )
            )
        return hotspots

    def _analyze_fragment(self, fragment: Fragment, locale: Locale) -> list[HotSpot]:
        hotspots: list[HotSpot] = []
        for pipeline, operator in fragment.operators():
            time_ns = operator.metrics.operator_total_time
            if time_ns is None:
                continue
            seconds = time_ns / 1_000_000_000
            if seconds <= self._thresholds.fallback_operator_seconds:
                continue
            hotspots.append(
                HotSpot(
                    node_path=f"Fragment{fragment.id}.Pipeline{pipeline.id}.{operator.name}",
                    severity=HotSeverity.SEVERE,
                    issue_type="HighTimeCost",
                    description=locale.pick(
                        f"Operator {operator.name} takes too long: {seconds:.1f}s",
                        f"算子 {operator.name} 耗时过高: {seconds:.1f}s",
                    ),
                    suggestions=operator_suggestions(operator.name, locale),
                )
            )
        return hotspots
