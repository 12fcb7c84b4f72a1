"""Join operator rules (J001-J010)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    MIB,
    NodeCatalogRule,
    RuleContext,
    RuleText,
    instance_skew,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, ExecutionTreeNode, Locale, RuleSeverity
from starrocks_profile_analyzer.parser.values import format_bytes


class JoinRule(NodeCatalogRule):
    keywords = ("JOIN",)


class HashJoinRule(NodeCatalogRule):
    keywords = ("HASH", "JOIN")


def _hash_table_memory(ctx: RuleContext) -> float | None:
    memory = ctx.get_metric("HashTableMemoryUsage")
    if memory is None and ctx.memory_usage is not None:
        memory = float(ctx.memory_usage)
    return memory


class JoinExplosionRule(JoinRule):
    rule_id = "J001"
    texts = {
        Locale.EN: RuleText(
            name="Join result explosion",
            message="Join outputs {output:,.0f} rows from {probe:,.0f} probe rows ({ratio:.1f}x)",
            reason="The join condition matches many build rows per probe row. The join keys are probably not unique or a condition is missing.",
            suggestions=(
                "Check that the join condition is complete",
                "Check the uniqueness of the join keys",
                "Filter or deduplicate the inputs before joining",
            ),
        ),
        Locale.ZH: RuleText(
            name="Join 结果膨胀",
            message="Join 输出 {output:,.0f} 行，探测行数 {probe:,.0f} ({ratio:.1f} 倍)",
            reason="每个探测行匹配到大量构建行，通常是连接键不唯一或缺少连接条件。",
            suggestions=(
                "检查 Join 条件是否完整",
                "检查连接键的唯一性",
                "在 Join 之前先过滤或去重",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        output = ctx.node.metrics.pull_row_num
        probe = ctx.get_metric("ProbeRows")
        expansion = ratio(output, probe)
        if expansion is None or expansion <= 10:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.ERROR,
            {"output": output, "probe": probe, "ratio": expansion},
        )


class BuildSideTooLargeRule(HashJoinRule):
    rule_id = "J002"
    texts = {
        Locale.EN: RuleText(
            name="Join build side too large",
            message="Build side has {build:,.0f} rows, more than the probe side ({probe:,.0f})",
            reason="The larger input was chosen as the build side, which wastes memory and hash table time.",
            suggestions=(
                "Run ANALYZE TABLE so the optimizer sees accurate row counts",
                "Check the join order and the join hints",
            ),
        ),
        Locale.ZH: RuleText(
            name="Join Build 端过大",
            message="Build 端 {build:,.0f} 行，大于 Probe 端 ({probe:,.0f} 行)",
            reason="较大的输入被选为 Build 端，浪费内存和构建哈希表的时间。",
            suggestions=("执行 ANALYZE TABLE 让优化器获得准确的行数", "检查 Join 顺序和 Join Hint"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        build = ctx.get_metric("BuildRows")
        probe = ctx.get_metric("ProbeRows")
        if build is None or probe is None or build <= probe or build <= 100_000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"build": build, "probe": probe})


class HashTableMemoryRule(HashJoinRule):
    rule_id = "J003"
    texts = {
        Locale.EN: RuleText(
            name="Hash table memory too large",
            message="Join hash table uses {memory}",
            reason="A large build side needs a large hash table, which risks exceeding the memory limit.",
            suggestions=(
                "Put the smaller table on the build side",
                "Filter the build side before the join",
            ),
        ),
        Locale.ZH: RuleText(
            name="HashTable 内存过大",
            message="Join HashTable 内存使用 {memory}",
            reason="Build 端数据量大导致哈希表过大，有超出内存限制的风险。",
            suggestions=("将小表放在 Build 端", "在 Join 之前过滤 Build 端数据"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = _hash_table_memory(ctx)
        if memory is None or memory <= GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"memory": format_bytes(memory)},
            parameters=[ctx.suggest_parameter("enable_spill", "true")],
        )


class MissingRuntimeFilterRule(JoinRule):
    rule_id = "J004"
    texts = {
        Locale.EN: RuleText(
            name="No runtime filter generated",
            message="Join built {build:,.0f} rows without generating any runtime filter",
            reason="Without runtime filters the probe side scans cannot skip non-matching rows early.",
            suggestions=("Check that the join keys allow runtime filters",),
        ),
        Locale.ZH: RuleText(
            name="未生成 Runtime Filter",
            message="Join 构建了 {build:,.0f} 行但没有生成 Runtime Filter",
            reason="没有 Runtime Filter，Probe 端的 Scan 无法提前跳过不匹配的行。",
            suggestions=("检查连接键是否支持生成 Runtime Filter",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        filters = ctx.get_metric("RuntimeFilterNum") or 0.0
        build = ctx.get_metric("BuildRows") or 0.0
        if filters != 0 or build <= 10_000:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"build": build},
            parameters=[
                ctx.suggest_parameter("enable_global_runtime_filter", "true"),
                ctx.suggest_parameter("runtime_join_filter_push_down_limit", "10000000"),
            ],
        )


class HashCollisionRule(JoinRule):
    rule_id = "J005"
    texts = {
        Locale.EN: RuleText(
            name="Severe hash collisions",
            message="Hash table is heavily collided, {keys:.1f} keys per bucket on average",
            reason="Many keys share a bucket, so each probe walks a long chain.",
            suggestions=("Check the distribution of the join keys",),
        ),
        Locale.ZH: RuleText(
            name="Hash 碰撞严重",
            message="Hash 表碰撞严重，平均每桶 {keys:.1f} 个键",
            reason="大量键落入同一个桶，每次探测都需要遍历较长的链表。",
            suggestions=("检查连接键的数据分布",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        keys = ctx.get_metric("BuildKeysPerBucket%")
        if keys is None or keys <= 10:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"keys": keys})


class JoinShuffleSkewRule(JoinRule):
    rule_id = "J006"
    texts = {
        Locale.EN: RuleText(
            name="Join shuffle skew",
            message="Join probe rows are skewed across instances, max/min ratio {ratio:.2f}",
            reason="Shuffle by the join key sends far more rows to some instances.",
            suggestions=(
                "Check for hot values in the join keys",
                "Consider a broadcast join when one side is small",
            ),
        ),
        Locale.ZH: RuleText(
            name="Join Shuffle 倾斜",
            message="Join 数据分布倾斜，max/min 比率为 {ratio:.2f}",
            reason="按连接键 Shuffle 后，部分实例收到的数据远多于其他实例。",
            suggestions=("检查连接键中的热点值", "一侧较小时考虑使用 Broadcast Join"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        skew = instance_skew(ctx.get_metric("__MAX_OF_ProbeRows"), ctx.get_metric("__MIN_OF_ProbeRows"))
        if skew is None or skew <= 3.0:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"ratio": skew})


class PartitionProbeOverheadRule(JoinRule):
    rule_id = "J007"
    texts = {
        Locale.EN: RuleText(
            name="High partitioned join probe overhead",
            message="Partition probe overhead is {percentage:.1f}% of hash table search time with {partitions:.0f} partitions",
            reason="The join was split into partitions and routing probe rows dominates the search cost.",
            suggestions=("Reduce the build side so the join needs fewer partitions",),
        ),
        Locale.ZH: RuleText(
            name="分区 Join 探测开销高",
            message="分区探测开销占比 {percentage:.1f}%，分区数为 {partitions:.0f}",
            reason="Join 被拆分为多个分区，探测行的分发开销超过了哈希查找本身。",
            suggestions=("减小 Build 端数据量以减少分区数",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        partitions = ctx.get_metric("PartitionNums")
        overhead = ratio(ctx.get_metric("PartitionProbeOverhead") or 0.0, ctx.get_metric("SearchHashTableTime"))
        if partitions is None or partitions <= 1 or overhead is None or overhead <= 0.5:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"percentage": overhead * 100, "partitions": partitions},
        )


class RuntimeFilterMemoryRule(JoinRule):
    rule_id = "J008"
    texts = {
        Locale.EN: RuleText(
            name="High runtime filter memory",
            message="Runtime filters use {memory}",
            reason="Membership filters built from a large build side take a lot of memory and network.",
        ),
        Locale.ZH: RuleText(
            name="Runtime Filter 内存占用高",
            message="Runtime Filter 内存占用 {memory}",
            reason="由较大的 Build 端生成的 Membership Filter 占用大量内存和网络。",
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        size = ctx.get_metric("PartialRuntimeMembershipFilterBytes")
        if size is None or size <= 100 * MIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"memory": format_bytes(size)},
            parameters=[ctx.suggest_parameter("global_runtime_filter_build_max_size", str(64 * MIB))],
        )


class NestedLoopJoinRule(NodeCatalogRule):
    rule_id = "J009"
    texts = {
        Locale.EN: RuleText(
            name="Non-equi join fallback",
            message="Nested loop join over {probe:,.0f} probe rows and {build:,.0f} build rows",
            reason="Without an equality condition the join compares every pair of rows.",
            suggestions=(
                "Add an equality join condition",
                "Rewrite range conditions so they can be evaluated after an equi-join",
            ),
        ),
        Locale.ZH: RuleText(
            name="非等式 Join 回退",
            message="Nested Loop Join 处理 {probe:,.0f} 行探测数据和 {build:,.0f} 行构建数据",
            reason="缺少等值条件时 Join 需要逐对比较所有行。",
            suggestions=("添加等值连接条件", "改写范围条件使其可以在等值 Join 之后计算"),
        ),
    }

    def applicable_to(self, node: ExecutionTreeNode) -> bool:
        name = node.operator_name.upper()
        return "CROSS" in name or "NEST" in name or "LOOP" in name

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        probe = ctx.get_metric("ProbeRows") or 0.0
        build = ctx.get_metric("BuildRows") or 0.0
        if probe <= 1000 and build <= 1000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"probe": probe, "build": build})


class CacheUnfriendlyProbeRule(HashJoinRule):
    rule_id = "J010"
    texts = {
        Locale.EN: RuleText(
            name="Cache-unfriendly probe",
            message="Probe side ({probe:,.0f} rows) is over 100x the build side against a {memory} hash table",
            reason="The hash table no longer fits in CPU cache, so every probe pays a memory access.",
        ),
        Locale.ZH: RuleText(
            name="探测缓存不友好",
            message="Probe 端 ({probe:,.0f} 行) 超过 Build 端的 100 倍，哈希表大小 {memory}",
            reason="哈希表超出 CPU 缓存，每次探测都需要访问内存。",
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        memory = _hash_table_memory(ctx)
        probe = ctx.get_metric("ProbeRows")
        build = ctx.get_metric("BuildRows")
        if memory is None or probe is None or build is None:
            return None
        if memory <= 50 * MIB or probe <= build * 100:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"probe": probe, "memory": format_bytes(memory)},
        )


RULES = (
    JoinExplosionRule,
    BuildSideTooLargeRule,
    HashTableMemoryRule,
    MissingRuntimeFilterRule,
    HashCollisionRule,
    JoinShuffleSkewRule,
    PartitionProbeOverheadRule,
    RuntimeFilterMemoryRule,
    NestedLoopJoinRule,
    CacheUnfriendlyProbeRule,
)
