"""Project and local exchange rules (P001, L001)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    NodeCatalogRule,
    RuleContext,
    RuleText,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, ExecutionTreeNode, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.operators import OperatorParser
from starrocks_profile_analyzer.parser.values import format_bytes


class ProjectExpressionCostRule(NodeCatalogRule):
    rule_id = "P001"
    keywords = ("PROJECT",)
    texts = {
        Locale.EN: RuleText(
            name="Expensive project expressions",
            message="Project expressions take {percentage:.1f}% of the operator time",
            reason="Evaluating the projected expressions dominates the operator cost.",
            suggestions=(
                "Simplify the expressions in the SELECT list",
                "Precompute expensive expressions in a generated column",
            ),
        ),
        Locale.ZH: RuleText(
            name="Project 表达式计算耗时高",
            message="Project 表达式计算占比过高 ({percentage:.1f}%)",
            reason="计算投影表达式的开销占据了算子的主要时间。",
            suggestions=("简化 SELECT 列表中的表达式", "使用生成列预先计算复杂表达式"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        expr_ms = ctx.get_metric("ExprComputeTime")
        share = ratio(expr_ms, ctx.operator_time_ms)
        if share is None or share <= 0.5 or expr_ms <= 100:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": share * 100})


class LocalExchangeMemoryRule(NodeCatalogRule):
    """Local exchanges have no topology node, so this reads the metrics they folded into their node."""

    rule_id = "L001"
    texts = {
        Locale.EN: RuleText(
            name="Local exchange memory too high",
            message="Local exchange uses {memory}",
            reason="Chunks pile up in the local exchange buffer because consumers are slower than producers.",
            suggestions=("Check the operator that consumes this local exchange",),
        ),
        Locale.ZH: RuleText(
            name="LocalExchange 内存使用过高",
            message="LocalExchange 内存使用 {memory}",
            reason="下游消费速度慢于上游生产速度，数据堆积在 LocalExchange 缓冲区中。",
            suggestions=("检查消费该 LocalExchange 的算子",),
        ),
    }

    def applicable_to(self, node: ExecutionTreeNode) -> bool:
        names = (node.operator_name, *node.operator_names)
        return any(OperatorParser.is_local_exchange(name) for name in names)

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = ctx.get_metric("LocalExchangePeakMemoryUsage")
        if memory is None or memory <= GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"memory": format_bytes(memory)},
            parameters=[ctx.suggest_parameter("pipeline_dop", "0")],
        )


RULES = (ProjectExpressionCostRule, LocalExchangeMemoryRule)
