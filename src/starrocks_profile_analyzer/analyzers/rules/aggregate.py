"""Aggregation rules (A001-A005)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    NodeCatalogRule,
    RuleContext,
    RuleText,
    instance_skew,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.values import format_bytes


class AggregateRule(NodeCatalogRule):
    keywords = ("AGG",)


class AggregateTimeSkewRule(AggregateRule):
    rule_id = "A001"
    texts = {
        Locale.EN: RuleText(
            name="Aggregation time skew",
            message="Aggregation time is skewed across instances, max/avg ratio {ratio:.2f}",
            reason="Some aggregation instances receive far more groups or rows than others.",
            suggestions=(
                "Check for hot values in the GROUP BY keys",
                "Consider adding a pre-aggregation stage",
            ),
        ),
        Locale.ZH: RuleText(
            name="聚合数据倾斜",
            message="聚合执行时间存在倾斜，max/avg 比率为 {ratio:.2f}",
            reason="部分聚合实例接收到的分组或数据远多于其他实例。",
            suggestions=("检查 GROUP BY 键中的热点值", "考虑增加预聚合阶段"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        metrics = ctx.node.metrics
        skew = ratio(metrics.operator_total_time_max, metrics.operator_total_time)
        if skew is None or skew <= ctx.skew_threshold():
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"ratio": skew})


class AggregateMemoryRule(AggregateRule):
    rule_id = "A002"
    texts = {
        Locale.EN: RuleText(
            name="Aggregation hash table too large",
            message="Aggregation uses {memory}",
            reason="A high number of groups makes the aggregation hash table large.",
            suggestions=(
                "Check whether the GROUP BY keys can be reduced",
                "Filter rows before aggregating",
            ),
        ),
        Locale.ZH: RuleText(
            name="聚合 HashTable 过大",
            message="聚合内存使用 {memory}",
            reason="分组数量多导致聚合哈希表过大。",
            suggestions=("检查是否可以减少 GROUP BY 键", "在聚合之前过滤数据"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = ctx.memory_usage
        if memory is None or memory <= GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"memory": format_bytes(memory)},
            parameters=[
                ctx.suggest_parameter("enable_spill", "true"),
                ctx.suggest_parameter("streaming_preaggregation_mode", "auto"),
            ],
        )


class AggregateInputSkewRule(NodeCatalogRule):
    rule_id = "A003"
    keywords = ("AGGREGATE",)
    texts = {
        Locale.EN: RuleText(
            name="Aggregation input skew",
            message="Aggregation input rows are skewed across instances, max/min ratio {ratio:.2f}",
            reason="Rows are shuffled unevenly to the aggregation instances.",
            suggestions=(
                "Check for hot values in the GROUP BY keys",
                "Consider adding a pre-aggregation stage",
            ),
        ),
        Locale.ZH: RuleText(
            name="聚合输入倾斜",
            message="聚合存在数据倾斜，max/min 比率为 {ratio:.2f}",
            reason="数据被不均匀地分发到各个聚合实例。",
            suggestions=("检查 GROUP BY 键中的热点值", "考虑增加预聚合阶段"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        skew = instance_skew(
            ctx.get_metric("__MAX_OF_InputRowCount"), ctx.get_metric("__MIN_OF_InputRowCount")
        )
        if skew is None or skew <= ctx.skew_threshold():
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"ratio": skew})


class HighCardinalityGroupByRule(AggregateRule):
    rule_id = "A004"
    texts = {
        Locale.EN: RuleText(
            name="High-cardinality GROUP BY",
            message="Aggregation hash table holds {size:,.0f} groups",
            reason="Very many distinct groups make hash aggregation expensive in memory and CPU.",
            suggestions=(
                "Check whether the GROUP BY keys are necessary",
                "Consider sort-based aggregation for sorted input",
            ),
        ),
        Locale.ZH: RuleText(
            name="高基数 GROUP BY",
            message="聚合哈希表包含 {size:,.0f} 个分组",
            reason="分组数量过多，哈希聚合的内存和 CPU 开销很高。",
            suggestions=("检查 GROUP BY 键是否都是必要的", "输入有序时考虑使用排序聚合"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        size = ctx.get_metric("HashTableSize")
        if size is None and ctx.node.metrics.pull_row_num is not None:
            size = float(ctx.node.metrics.pull_row_num)
        if size is None or size <= 10_000_000:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"size": size},
            parameters=[ctx.suggest_parameter("enable_sort_aggregate", "true")],
        )


class GroupByExpressionCostRule(NodeCatalogRule):
    rule_id = "A005"
    keywords = ("AGGREGATE",)
    texts = {
        Locale.EN: RuleText(
            name="Expensive GROUP BY key expressions",
            message="GROUP BY key expressions take {percentage:.1f}% of aggregate function time",
            reason="Computing the grouping keys costs more than the aggregation itself.",
            suggestions=(
                "Precompute the key expressions in a generated column",
                "Simplify the GROUP BY expressions",
            ),
        ),
        Locale.ZH: RuleText(
            name="GROUP BY 键表达式计算开销高",
            message="GROUP BY 键表达式计算占比过高 ({percentage:.1f}%)",
            reason="计算分组键的开销超过了聚合本身。",
            suggestions=("使用生成列预先计算键表达式", "简化 GROUP BY 表达式"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        expr_ms = ctx.get_metric("ExprComputeTime")
        share = ratio(expr_ms, ctx.get_metric("AggFuncComputeTime"))
        if share is None or share <= 0.5 or expr_ms <= 100:
            return None
        return self.diagnose(ctx, RuleSeverity.INFO, {"percentage": share * 100})


RULES = (
    AggregateTimeSkewRule,
    AggregateMemoryRule,
    AggregateInputSkewRule,
    HighCardinalityGroupByRule,
    GroupByExpressionCostRule,
)
