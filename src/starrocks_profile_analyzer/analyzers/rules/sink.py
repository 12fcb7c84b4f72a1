"""Table sink rules (I001-I003)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    NodeCatalogRule,
    RuleContext,
    RuleText,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, Locale, RuleSeverity


class TableSinkRule(NodeCatalogRule):
    keywords = ("TABLE_SINK",)


class SlowSinkRpcRule(TableSinkRule):
    rule_id = "I001"
    texts = {
        Locale.EN: RuleText(
            name="Slow table sink RPC",
            message="Client-side RPC takes {percentage:.1f}% of the sink time ({time_ms:.0f}ms)",
            reason="The sink waits on the storage backends to accept the written data.",
            suggestions=(
                "Check the load on the backends receiving the data",
                "Check the number of tablets written by the load",
            ),
        ),
        Locale.ZH: RuleText(
            name="写入 RPC 慢",
            message="客户端 RPC 占写入时间的 {percentage:.1f}% ({time_ms:.0f}ms)",
            reason="写入算子在等待存储节点接收数据。",
            suggestions=("检查接收数据的节点负载", "检查本次导入写入的 Tablet 数量"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        time_ms = ctx.operator_time_ms
        share = ratio(ctx.get_metric("RpcClientSideTime"), time_ms)
        if share is None or share <= 0.5 or time_ms <= 1000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": share * 100, "time_ms": time_ms})


class FilteredRowsRule(TableSinkRule):
    rule_id = "I002"
    texts = {
        Locale.EN: RuleText(
            name="Rows filtered during load",
            message="Table sink filtered {rows:,.0f} rows",
            reason="Some rows did not match the target schema or partitions and were dropped.",
            suggestions=(
                "Check the load error log for the rejected rows",
                "Check that the target partitions cover the data",
            ),
        ),
        Locale.ZH: RuleText(
            name="导入过滤了数据",
            message="写入过程中过滤了 {rows:,.0f} 行数据",
            reason="部分数据与目标表结构或分区不匹配而被丢弃。",
            suggestions=("查看导入错误日志中被拒绝的数据", "检查目标分区是否覆盖全部数据"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        filtered = ctx.get_metric("RowsFiltered")
        if filtered is None or filtered <= 0:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"rows": filtered})


class SlowSinkCloseRule(TableSinkRule):
    rule_id = "I003"
    texts = {
        Locale.EN: RuleText(
            name="Slow table sink close",
            message="Table sink waited {wait_ms:.0f}ms to close",
            reason="Closing the sink waits for every replica to finish writing.",
            suggestions=("Check for slow replicas or disks on the target backends",),
        ),
        Locale.ZH: RuleText(
            name="写入关闭等待过长",
            message="写入算子关闭等待 {wait_ms:.0f}ms",
            reason="关闭写入时需要等待所有副本完成写入。",
            suggestions=("检查目标节点上是否存在慢副本或慢盘",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        wait_ms = ctx.get_metric("CloseWaitTime")
        if wait_ms is None or wait_ms <= 5000:
            return None
        return self.diagnose(ctx, RuleSeverity.INFO, {"wait_ms": wait_ms})


RULES = (SlowSinkRpcRule, FilteredRowsRule, SlowSinkCloseRule)
