"""Query-scoped rules (Q001-Q009), evaluated once against the profile summary."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    CatalogRule,
    QueryRuleContext,
    RuleText,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.values import (
    format_bytes,
    format_duration_ms,
    try_parse_bytes,
    try_parse_duration_ms,
)

LONG_RUNNING_MS = 60_000.0


def total_time_ms(ctx: QueryRuleContext) -> float | None:
    summary = ctx.summary
    if summary.total_time_ms is not None:
        return summary.total_time_ms
    return try_parse_duration_ms(summary.total_time)


class LongRunningQueryRule(CatalogRule):
    rule_id = "Q001"
    texts = {
        Locale.EN: RuleText(
            name="Query runs too long",
            message="Query ran for {duration}, above the {threshold} threshold",
            reason="Long-running queries hold resources and are more likely to time out.",
            suggestions=(
                "Look at the most time-consuming operators first",
                "Check whether the query can be split or pre-aggregated",
            ),
        ),
        Locale.ZH: RuleText(
            name="查询执行时间过长",
            message="查询执行时间 {duration}，超过阈值 {threshold}",
            reason="长时间运行的查询占用资源，并且更容易超时。",
            suggestions=("优先检查最耗时的算子", "检查查询是否可以拆分或预聚合"),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        elapsed = total_time_ms(ctx)
        threshold = ctx.query_time_threshold_ms(LONG_RUNNING_MS)
        if elapsed is None or elapsed <= threshold:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"duration": format_duration_ms(elapsed), "threshold": format_duration_ms(threshold)},
            parameters=[
                ctx.suggest_parameter("query_timeout", "600"),
                ctx.suggest_parameter("query_mem_limit", str(8 * GIB)),
            ],
        )


class HighQueryMemoryRule(CatalogRule):
    rule_id = "Q002"
    texts = {
        Locale.EN: RuleText(
            name="Query memory too high",
            message="Query peak memory per node is {memory}",
            reason="The query holds a lot of memory and may fail under concurrency.",
            suggestions=("Look for large hash tables or sort buffers in the plan",),
        ),
        Locale.ZH: RuleText(
            name="查询内存使用过高",
            message="查询单节点峰值内存 {memory}",
            reason="查询占用大量内存，并发时可能失败。",
            suggestions=("检查计划中是否有过大的哈希表或排序缓冲区",),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        peak = ctx.summary.query_peak_memory
        if peak is None or peak <= 10 * GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"memory": format_bytes(peak)},
            parameters=[
                ctx.suggest_parameter("enable_spill", "true"),
                ctx.suggest_parameter("query_mem_limit", str(16 * GIB)),
            ],
        )


class QuerySpillRule(CatalogRule):
    rule_id = "Q003"
    texts = {
        Locale.EN: RuleText(
            name="Query spilled to disk",
            message="Query spilled {bytes} to disk",
            reason="Operators exceeded their memory budget and wrote intermediate data to disk.",
            suggestions=("Check which operators spilled and reduce their input",),
        ),
        Locale.ZH: RuleText(
            name="查询发生落盘",
            message="查询落盘数据量 {bytes}",
            reason="算子超出内存限制，中间数据被写入磁盘。",
            suggestions=("检查发生落盘的算子并减少其输入数据量",),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        spilled = try_parse_bytes(ctx.summary.query_spill_bytes)
        if spilled is None or spilled <= 0:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"bytes": format_bytes(spilled)},
            parameters=[ctx.suggest_parameter("query_mem_limit", str(8 * GIB))],
        )


class LowCpuUtilizationRule(CatalogRule):
    rule_id = "Q004"
    texts = {
        Locale.EN: RuleText(
            name="Low CPU utilization",
            message="Cumulative CPU time is only {percentage:.1f}% of the wall time",
            reason="The query mostly waits on IO, network or scheduling instead of computing.",
            suggestions=(
                "Check IO and network waits in the scan and exchange operators",
                "Consider increasing the parallelism",
            ),
        ),
        Locale.ZH: RuleText(
            name="CPU 利用率低",
            message="累计 CPU 时间仅占执行时间的 {percentage:.1f}%",
            reason="查询大部分时间在等待 IO、网络或调度，而不是在计算。",
            suggestions=("检查 Scan 和 Exchange 算子的 IO 与网络等待", "考虑提高并行度"),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        utilization = ratio(
            ctx.summary.query_cumulative_cpu_time_ms, ctx.summary.query_execution_wall_time_ms
        )
        if utilization is None or utilization >= 0.3:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"percentage": utilization * 100},
            parameters=[ctx.suggest_parameter("pipeline_dop", "0")],
        )


class ScanDominatesRule(CatalogRule):
    rule_id = "Q005"
    texts = {
        Locale.EN: RuleText(
            name="Scan time dominates",
            message="Scan takes {percentage:.1f}% of the total query time",
            reason="Reading data is the main cost of the query.",
            suggestions=(
                "Add filters so fewer partitions and tablets are scanned",
                "Consider a materialized view for repeated scans",
            ),
        ),
        Locale.ZH: RuleText(
            name="扫描时间占比过高",
            message="扫描时间占查询总时间的 {percentage:.1f}%",
            reason="读取数据是查询的主要开销。",
            suggestions=("添加过滤条件以减少扫描的分区和 Tablet", "对重复扫描考虑使用物化视图"),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        share = ratio(ctx.summary.query_cumulative_scan_time_ms, total_time_ms(ctx))
        if share is None or share <= 0.8:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"percentage": share * 100},
            parameters=[ctx.suggest_parameter("enable_scan_datacache", "true")],
        )


class NetworkDominatesRule(CatalogRule):
    rule_id = "Q006"
    texts = {
        Locale.EN: RuleText(
            name="Network time dominates",
            message="Network takes {percentage:.1f}% of the total query time",
            reason="Shuffling data between backends is the main cost of the query.",
            suggestions=(
                "Reduce the shuffled data by filtering or aggregating earlier",
                "Consider colocate joins for frequently joined tables",
            ),
        ),
        Locale.ZH: RuleText(
            name="网络时间占比过高",
            message="网络时间占查询总时间的 {percentage:.1f}%",
            reason="节点之间 Shuffle 数据是查询的主要开销。",
            suggestions=("通过提前过滤或聚合减少 Shuffle 数据量", "对经常关联的表考虑使用 Colocate Join"),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        share = ratio(ctx.summary.query_cumulative_network_time_ms, total_time_ms(ctx))
        if share is None or share <= 0.5:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": share * 100})


class SlowProfileCollectionRule(CatalogRule):
    rule_id = "Q007"
    texts = {
        Locale.EN: RuleText(
            name="Slow profile collection",
            message="Collecting the profile took {time_ms:.1f}ms",
            reason="A detailed profile level adds overhead to every query.",
            suggestions=("Lower pipeline_profile_level",),
        ),
        Locale.ZH: RuleText(
            name="Profile 收集慢",
            message="Profile 收集时间 {time_ms:.1f}ms",
            reason="较高的 Profile 级别会给每个查询增加额外开销。",
            suggestions=("降低 pipeline_profile_level",),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        time_ms = ctx.get_execution_metric("CollectProfileTime")
        if time_ms is None or time_ms <= 100:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"time_ms": time_ms},
            parameters=[ctx.suggest_parameter("pipeline_profile_level", "1")],
        )


class LongScheduleTimeRule(CatalogRule):
    rule_id = "Q008"
    texts = {
        Locale.EN: RuleText(
            name="Schedule time too long",
            message="Schedule time is {percentage:.1f}% of the wall time, pipeline scheduling may be a bottleneck",
            reason="Fragments wait a long time before being dispatched to backends.",
            suggestions=("Check for pipeline scheduling bottlenecks", "Increase the parallelism"),
        ),
        Locale.ZH: RuleText(
            name="调度时间过长",
            message="调度时间占比 {percentage:.1f}%，Pipeline 调度可能存在瓶颈",
            reason="Fragment 下发到 BE 之前等待时间过长。",
            suggestions=("检查 Pipeline 调度瓶颈", "增加并行度"),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        share = ratio(ctx.summary.query_peak_schedule_time_ms, ctx.summary.query_execution_wall_time_ms)
        if share is None or share <= 0.3:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": share * 100})


class SlowResultDeliveryRule(CatalogRule):
    rule_id = "Q009"
    texts = {
        Locale.EN: RuleText(
            name="Slow result delivery",
            message="Delivering results takes {percentage:.1f}% of the wall time",
            reason="The client reads results slowly or the result set is large.",
            suggestions=(
                "Reduce the size of the result set",
                "Check the network between the client and the frontend",
            ),
        ),
        Locale.ZH: RuleText(
            name="结果传输慢",
            message="结果传输占执行时间的 {percentage:.1f}%",
            reason="客户端读取结果较慢或结果集过大。",
            suggestions=("减小结果集大小", "检查客户端与 FE 之间的网络"),
        ),
    }

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        share = ratio(ctx.summary.result_deliver_time_ms, ctx.summary.query_execution_wall_time_ms)
        if share is None or share <= 0.2:
            return None
        return self.diagnose(ctx, RuleSeverity.INFO, {"percentage": share * 100})


RULES = (
    LongRunningQueryRule,
    HighQueryMemoryRule,
    QuerySpillRule,
    LowCpuUtilizationRule,
    ScanDominatesRule,
    NetworkDominatesRule,
    SlowProfileCollectionRule,
    LongScheduleTimeRule,
    SlowResultDeliveryRule,
)
