"""Fragment-scoped rules (F001-F003)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    CatalogRule,
    FragmentRuleContext,
    RuleText,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.values import format_bytes, parse_metric_value


class SlowPrepareRule(CatalogRule):
    rule_id = "F001"
    texts = {
        Locale.EN: RuleText(
            name="Slow fragment preparation",
            message="Fragment {fragment} took {time_ms:.0f}ms to prepare its instances",
            reason="Instance preparation (plan deserialization, tablet lookup) delays the start of execution.",
            suggestions=(
                "Check the number of tablets and partitions touched by the query",
                "Check the load on the frontend and backends",
            ),
        ),
        Locale.ZH: RuleText(
            name="Fragment 准备时间过长",
            message="Fragment {fragment} 实例准备耗时 {time_ms:.0f}ms",
            reason="实例准备（计划反序列化、Tablet 查找）推迟了执行开始时间。",
            suggestions=("检查查询涉及的 Tablet 和分区数量", "检查 FE 和 BE 的负载"),
        ),
    }

    def evaluate(self, ctx: FragmentRuleContext) -> Diagnostic | None:
        time_ms = ctx.get_metric("FragmentInstancePrepareTime")
        if time_ms is None or time_ms <= 1000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"fragment": ctx.fragment.id, "time_ms": time_ms})


class PipelineScheduleRule(CatalogRule):
    rule_id = "F002"
    texts = {
        Locale.EN: RuleText(
            name="Pipeline schedule overhead",
            message="Pipeline {pipeline} of fragment {fragment} spends {percentage:.1f}% of driver time waiting to be scheduled",
            reason="Pipeline drivers are ready but wait for an execution thread.",
            suggestions=("Check the CPU load and concurrency of the backends",),
        ),
        Locale.ZH: RuleText(
            name="Pipeline 调度开销高",
            message="Fragment {fragment} 的 Pipeline {pipeline} 有 {percentage:.1f}% 的 Driver 时间在等待调度",
            reason="Pipeline Driver 已就绪但在等待执行线程。",
            suggestions=("检查 BE 的 CPU 负载和并发度",),
        ),
    }

    def evaluate(self, ctx: FragmentRuleContext) -> Diagnostic | None:
        for pipeline in ctx.fragment.pipelines:
            driver_ms = parse_metric_value(pipeline.metrics.get("DriverTotalTime"))
            share = ratio(parse_metric_value(pipeline.metrics.get("ScheduleTime")), driver_ms)
            if share is not None and share > 0.5 and driver_ms > 1000:
                return self.diagnose(
                    ctx,
                    RuleSeverity.INFO,
                    {"fragment": ctx.fragment.id, "pipeline": pipeline.id, "percentage": share * 100},
                )
        return None


class InstanceMemoryRule(CatalogRule):
    rule_id = "F003"
    texts = {
        Locale.EN: RuleText(
            name="Fragment instance memory too high",
            message="Fragment {fragment} instances peak at {memory}",
            reason="A single fragment instance holds a large amount of memory.",
            suggestions=("Increase the parallelism so each instance handles less data",),
        ),
        Locale.ZH: RuleText(
            name="Fragment 实例内存过高",
            message="Fragment {fragment} 实例峰值内存 {memory}",
            reason="单个 Fragment 实例占用了大量内存。",
            suggestions=("提高并行度以减少每个实例处理的数据量",),
        ),
    }

    def evaluate(self, ctx: FragmentRuleContext) -> Diagnostic | None:
        memory = ctx.get_metric("InstancePeakMemoryUsage")
        if memory is None or memory <= 4 * GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"fragment": ctx.fragment.id, "memory": format_bytes(memory)},
            parameters=[ctx.suggest_parameter("enable_spill", "true")],
        )


RULES = (SlowPrepareRule, PipelineScheduleRule, InstanceMemoryRule)
