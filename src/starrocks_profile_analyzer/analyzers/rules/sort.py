"""Sort, merge and window rules (T001-T005, W001)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    MIB,
    NodeCatalogRule,
    RuleContext,
    RuleText,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, ExecutionTreeNode, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.values import format_bytes


class SortRule(NodeCatalogRule):
    keywords = ("SORT",)


class TooManySortedRowsRule(SortRule):
    rule_id = "T001"
    texts = {
        Locale.EN: RuleText(
            name="Too many rows to sort",
            message="Sort receives {rows:,.0f} input rows",
            reason="Sorting a very large input is CPU and memory intensive.",
            suggestions=(
                "Add a LIMIT so a Top-N sort can be used",
                "Filter rows before sorting",
            ),
        ),
        Locale.ZH: RuleText(
            name="排序行数过多",
            message="排序输入行数 {rows:,.0f}",
            reason="对大量数据排序会消耗大量 CPU 和内存。",
            suggestions=("添加 LIMIT 以使用 Top-N 排序", "在排序之前过滤数据"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        rows = ctx.node.metrics.push_row_num
        if rows is None or rows <= 10_000_000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"rows": rows})


class SortSpillRule(SortRule):
    rule_id = "T002"
    texts = {
        Locale.EN: RuleText(
            name="Sort spilled to disk",
            message="Sort spilled {bytes} to disk",
            reason="The sort buffer exceeded its memory budget and was written to disk.",
            suggestions=("Reduce the data to sort or raise the memory limit",),
        ),
        Locale.ZH: RuleText(
            name="排序发生落盘",
            message="排序落盘数据量 {bytes}",
            reason="排序缓冲区超出内存限制，数据被写入磁盘。",
            suggestions=("减少排序数据量或提高内存限制",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        spilled = ctx.first_metric("SpillBytes", "OperatorSpillBytes")
        if spilled is None or spilled <= 0:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"bytes": format_bytes(spilled)},
            parameters=[
                ctx.suggest_parameter("query_mem_limit", str(8 * GIB)),
                ctx.suggest_parameter("enable_spill", "true"),
            ],
        )


class SortMemoryRule(SortRule):
    rule_id = "T003"
    texts = {
        Locale.EN: RuleText(
            name="Sort memory too high",
            message="Sort peak memory is {memory}",
            reason="The whole sort input is buffered in memory.",
            suggestions=("Add a LIMIT or filter rows before sorting",),
        ),
        Locale.ZH: RuleText(
            name="排序内存过高",
            message="排序峰值内存 {memory}",
            reason="排序输入被完整缓存在内存中。",
            suggestions=("添加 LIMIT 或在排序之前过滤数据",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = ctx.get_metric("OperatorPeakMemoryUsage")
        if memory is None and ctx.memory_usage is not None:
            memory = float(ctx.memory_usage)
        if memory is None or memory <= GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"memory": format_bytes(memory)},
            parameters=[ctx.suggest_parameter("enable_spill", "true")],
        )


class SortMergingTimeRule(SortRule):
    rule_id = "T004"
    texts = {
        Locale.EN: RuleText(
            name="Long sort merge phase",
            message="Sort merging takes {percentage:.1f}% of the operator time",
            reason="Merging many sorted runs dominates the sort cost.",
        ),
        Locale.ZH: RuleText(
            name="Sort 合并时间过长",
            message="Sort 合并阶段占比过高 ({percentage:.1f}%)",
            reason="合并大量有序段的开销占据了排序的主要时间。",
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        share = ratio(ctx.get_metric("MergingTime"), ctx.operator_time_ms)
        if share is None or share <= 0.3:
            return None
        return self.diagnose(ctx, RuleSeverity.INFO, {"percentage": share * 100})


class MergeWaitRule(NodeCatalogRule):
    rule_id = "T005"
    keywords = ("MERGE",)
    texts = {
        Locale.EN: RuleText(
            name="Merge waits too long for upstream",
            message="Merge spends {percentage:.1f}% of its stage time waiting for upstream",
            reason="The merge stage is starved by slow upstream fragments.",
            suggestions=("Look at the upstream fragments feeding this merge",),
        ),
        Locale.ZH: RuleText(
            name="Merge 等待上游过长",
            message="Merge 等待上游时间占比 {percentage:.1f}%",
            reason="上游 Fragment 过慢，Merge 阶段长时间等待数据。",
            suggestions=("检查为该 Merge 提供数据的上游 Fragment",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        share = ratio(ctx.get_metric("6-PendingStageTime"), ctx.get_metric("OverallStageTime"))
        if share is None or share <= 0.3:
            return None
        return self.diagnose(ctx, RuleSeverity.INFO, {"percentage": share * 100})


class WindowMemoryRule(NodeCatalogRule):
    rule_id = "W001"
    texts = {
        Locale.EN: RuleText(
            name="Window function memory too high",
            message="Window function uses {memory}",
            reason="The analytic operator buffers whole partitions in memory.",
            suggestions=(
                "Check whether the PARTITION BY keys split the data finely enough",
                "Filter rows before the window function",
            ),
        ),
        Locale.ZH: RuleText(
            name="窗口函数内存过高",
            message="窗口函数内存使用 {memory}",
            reason="分析函数算子需要在内存中缓存整个分区。",
            suggestions=("检查 PARTITION BY 键是否足够细分数据", "在窗口函数之前过滤数据"),
        ),
    }

    def applicable_to(self, node: ExecutionTreeNode) -> bool:
        name = node.operator_name.upper()
        return "ANALYTIC" in name or "WINDOW" in name

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = ctx.memory_usage
        if memory is None or memory <= 500 * MIB:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"memory": format_bytes(memory)})


RULES = (
    TooManySortedRowsRule,
    SortSpillRule,
    SortMemoryRule,
    SortMergingTimeRule,
    MergeWaitRule,
    WindowMemoryRule,
)
