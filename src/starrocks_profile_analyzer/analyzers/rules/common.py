"""Rules that apply to every operator (G001-G003)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    NodeCatalogRule,
    RuleContext,
    RuleText,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.values import format_bytes

_FAMILY_SUGGESTIONS: dict[str, dict[Locale, tuple[str, ...]]] = {
    "SCAN": {
        Locale.EN: (
            "Add filter conditions to reduce the scanned data",
            "Consider an index or a materialized view",
            "Check that partition pruning takes effect",
            "Run ANALYZE TABLE to refresh statistics",
        ),
        Locale.ZH: (
            "检查是否可以添加过滤条件减少扫描数据量",
            "考虑添加索引或物化视图",
            "检查分区裁剪是否生效",
            "执行 ANALYZE TABLE 更新统计信息",
        ),
    },
    "JOIN": {
        Locale.EN: (
            "Check that the join order is optimal",
            "Consider using runtime filters",
            "Check for data skew",
            "Run ANALYZE TABLE to refresh statistics",
        ),
        Locale.ZH: (
            "检查 JOIN 顺序是否最优",
            "考虑使用 Runtime Filter",
            "检查是否存在数据倾斜",
            "执行 ANALYZE TABLE 更新统计信息",
        ),
    },
    "AGG": {
        Locale.EN: (
            "Check that the aggregation mode fits the data",
            "Consider pre-aggregation or a materialized view",
            "Review the GROUP BY keys",
        ),
        Locale.ZH: (
            "检查聚合模式是否合适",
            "考虑使用预聚合或物化视图",
            "检查 GROUP BY 键的选择",
        ),
    },
    "EXCHANGE": {
        Locale.EN: (
            "Check that data is evenly distributed",
            "Consider adjusting the parallelism",
            "Check that network bandwidth is sufficient",
        ),
        Locale.ZH: (
            "检查数据分布是否均匀",
            "考虑调整并行度",
            "检查网络带宽是否充足",
        ),
    },
    "SORT": {
        Locale.EN: (
            "Add a LIMIT to bound the result size",
            "Check whether a Top-N optimization applies",
            "Consider a pre-sorted materialized view",
        ),
        Locale.ZH: (
            "添加 LIMIT 限制结果集大小",
            "检查是否可以使用 Top-N 优化",
            "考虑使用物化视图预排序",
        ),
    },
}

_GENERIC_SUGGESTIONS: dict[Locale, tuple[str, ...]] = {
    Locale.EN: (
        "Check whether the operator processes too much data",
        "Consider optimizing the query plan",
    ),
    Locale.ZH: ("检查该算子是否处理数据量过大", "考虑优化查询计划"),
}


def operator_suggestions(operator_name: str, locale: Locale) -> tuple[str, ...]:
    """Generic tuning hints for an operator family."""
    name = operator_name.upper()
    for keyword, texts in _FAMILY_SUGGESTIONS.items():
        if keyword in name:
            return texts[locale]
    return _GENERIC_SUGGESTIONS[locale]


def recommended_mem_limit(memory: int) -> int:
    """Smallest power-of-two GiB that holds twice the observed memory."""
    gib = max(1, -(-(memory * 2) // GIB))
    return (1 << (gib - 1).bit_length()) * GIB


class MostConsumingRule(NodeCatalogRule):
    rule_id = "G001"
    texts = {
        Locale.EN: RuleText(
            name="Operator time share too high",
            message="Operator {operator} takes {percentage:.1f}% of the execution time (most consuming node)",
            reason="The operator dominates the query time and is its main bottleneck. Optimizing it gives the largest gain.",
        ),
        Locale.ZH: RuleText(
            name="算子时间占比过高",
            message="算子 {operator} 占用 {percentage:.1f}% 的执行时间（最耗时节点）",
            reason="算子执行时间占整体查询时间比例过高，是查询的主要瓶颈。优化该算子可获得最大收益。",
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        percentage = ctx.time_percentage
        if percentage is None or percentage <= 30.0:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.ERROR,
            {"operator": ctx.operator_name, "percentage": percentage},
            suggestions=operator_suggestions(ctx.operator_name, ctx.locale),
        )


class SecondConsumingRule(NodeCatalogRule):
    rule_id = "G001b"
    texts = {
        Locale.EN: RuleText(
            name="Operator time share high",
            message="Operator {operator} takes {percentage:.1f}% of the execution time (second most consuming node)",
            reason="The operator takes a large share of the query time. Optimizing it gives a noticeable gain.",
        ),
        Locale.ZH: RuleText(
            name="算子时间占比较高",
            message="算子 {operator} 占用 {percentage:.1f}% 的执行时间（次耗时节点）",
            reason="算子执行时间占整体查询时间比例较高，优化该算子可获得明显收益。",
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        percentage = ctx.time_percentage
        if percentage is None or not 15.0 < percentage <= 30.0:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"operator": ctx.operator_name, "percentage": percentage},
            suggestions=operator_suggestions(ctx.operator_name, ctx.locale),
        )


class HighMemoryRule(NodeCatalogRule):
    rule_id = "G002"
    texts = {
        Locale.EN: RuleText(
            name="Operator memory too high",
            message="Operator {operator} uses too much memory: {memory}",
            reason="High operator memory can fail the query or trigger spilling. Check for data expansion or large intermediate results.",
            suggestions=(
                "Check for data expansion",
                "Consider processing in batches",
                "Check whether a hash table or intermediate result is too large",
            ),
        ),
        Locale.ZH: RuleText(
            name="算子内存使用过高",
            message="算子 {operator} 内存使用过高: {memory}",
            reason="算子内存使用过高，可能导致查询失败或触发 Spill。检查是否存在数据膨胀或中间结果过大。",
            suggestions=(
                "检查是否存在数据膨胀",
                "考虑分批处理",
                "检查 HashTable 或中间结果是否过大",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = ctx.memory_usage
        if memory is None or memory <= GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"operator": ctx.operator_name, "memory": format_bytes(memory)},
            parameters=[
                ctx.suggest_parameter("query_mem_limit", str(recommended_mem_limit(memory))),
            ],
        )


class ExecutionSkewRule(NodeCatalogRule):
    rule_id = "G003"
    texts = {
        Locale.EN: RuleText(
            name="Operator execution time skew",
            message="Operator {operator} shows execution time skew, max/avg ratio {ratio:.2f}",
            reason="Execution time differs widely between instances so a few instances become the bottleneck. Uneven data distribution is the usual cause.",
            suggestions=(
                "Check that data is evenly distributed",
                "Check that the bucket key is well chosen",
                "Consider increasing the parallelism",
            ),
        ),
        Locale.ZH: RuleText(
            name="算子执行时间倾斜",
            message="算子 {operator} 存在执行时间倾斜，max/avg 比率为 {ratio:.2f}",
            reason="算子在多个实例间执行时间差异大，部分实例成为瓶颈。通常是数据分布不均匀导致。",
            suggestions=(
                "检查数据分布是否均匀",
                "检查分桶键选择是否合理",
                "考虑增加并行度",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        metrics = ctx.node.metrics
        skew = ratio(metrics.operator_total_time_max, metrics.operator_total_time)
        if skew is None or skew <= ctx.skew_threshold():
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"operator": ctx.operator_name, "ratio": skew},
            parameters=[ctx.suggest_parameter("pipeline_dop", "0")],
        )


RULES = (MostConsumingRule, SecondConsumingRule, HighMemoryRule, ExecutionSkewRule)
