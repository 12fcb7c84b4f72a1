"""Scan operator rules (S001-S011)."""

from starrocks_profile_analyzer.analyzers.rules.base import (
    GIB,
    NodeCatalogRule,
    RuleContext,
    RuleText,
    instance_skew,
    ratio,
)
from starrocks_profile_analyzer.domain import Diagnostic, Locale, ParameterType, RuleSeverity
from starrocks_profile_analyzer.parser.values import format_bytes


class ScanRule(NodeCatalogRule):
    keywords = ("SCAN",)


class ScanDataSkewRule(ScanRule):
    rule_id = "S001"
    texts = {
        Locale.EN: RuleText(
            name="Scan data skew",
            message="Scan rows read are skewed across instances, max/min ratio {ratio:.2f}",
            reason="Some scan instances read far more rows than others, so they finish last and hold up the query.",
            suggestions=(
                "Check that the bucket key is well chosen",
                "Consider re-bucketing to spread the data evenly",
                "Check for hot keys",
            ),
        ),
        Locale.ZH: RuleText(
            name="Scan 数据倾斜",
            message="Scan 存在数据倾斜，max/min 比率为 {ratio:.2f}",
            reason="部分 Scan 实例读取的行数远多于其他实例，成为查询的长尾。",
            suggestions=(
                "检查分桶键选择是否合理",
                "考虑重新分桶以均匀分布数据",
                "检查是否存在热点数据",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        maximum = ctx.first_metric("__MAX_OF_RowsRead", "RowsRead")
        skew = instance_skew(maximum, ctx.get_metric("__MIN_OF_RowsRead"))
        if skew is None or skew <= ctx.skew_threshold():
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"ratio": skew})


class ScanIoSkewRule(ScanRule):
    rule_id = "S002"
    texts = {
        Locale.EN: RuleText(
            name="Scan IO skew",
            message="Scan IO time is skewed across instances, max/avg ratio {ratio:.2f}",
            reason="Some instances spend much longer on IO, usually because of uneven data or a slow disk on one node.",
            suggestions=(
                "Check the disk health of the slow backends",
                "Check that tablets are evenly distributed",
            ),
        ),
        Locale.ZH: RuleText(
            name="Scan IO 倾斜",
            message="Scan IO 时间存在倾斜，max/avg 比率为 {ratio:.2f}",
            reason="部分实例 IO 耗时明显更长，通常由数据分布不均或个别节点磁盘慢导致。",
            suggestions=("检查慢节点的磁盘状况", "检查 Tablet 分布是否均匀"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        skew = ratio(ctx.get_metric("__MAX_OF_IOTime"), ctx.get_metric("IOTime"))
        if skew is None or skew <= ctx.skew_threshold():
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"ratio": skew})


class PoorFilterRule(ScanRule):
    rule_id = "S003"
    texts = {
        Locale.EN: RuleText(
            name="Poor filter effectiveness",
            message="Scan keeps {percentage:.1f}% of {raw:,.0f} raw rows after filtering",
            reason="Filters remove less than 20% of the rows read from storage, so most of the scanned data flows upstream.",
            suggestions=(
                "Add more selective filter conditions",
                "Check that partition and bucket pruning take effect",
                "Consider a sort key that matches the filter columns",
            ),
        ),
        Locale.ZH: RuleText(
            name="过滤效果差",
            message="Scan 过滤后仍保留 {raw:,.0f} 行原始数据中的 {percentage:.1f}%",
            reason="过滤条件仅过滤掉不到 20% 的数据，大部分扫描数据流向上游算子。",
            suggestions=(
                "添加选择性更强的过滤条件",
                "检查分区裁剪和分桶裁剪是否生效",
                "考虑使用与过滤列匹配的排序键",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        raw = ctx.get_metric("RawRowsRead")
        kept = ratio(ctx.get_metric("RowsRead"), raw)
        if kept is None or kept <= 0.8 or raw <= 100_000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": kept * 100, "raw": raw})


class PredicateNotPushedRule(ScanRule):
    rule_id = "S004"
    texts = {
        Locale.EN: RuleText(
            name="Predicate not pushed down",
            message="No predicate was pushed to storage, yet {percentage:.1f}% of raw rows were filtered after reading",
            reason="Filtering happens after rows are read instead of inside the storage layer.",
            suggestions=(
                "Avoid wrapping filter columns in functions or casts",
                "Check that the filter column types match the literals",
            ),
        ),
        Locale.ZH: RuleText(
            name="谓词未下推",
            message="没有谓词下推到存储层，但读取后仍过滤了 {percentage:.1f}% 的原始行",
            reason="过滤发生在读取之后，而不是在存储层完成。",
            suggestions=("避免对过滤列使用函数或类型转换", "检查过滤列类型与常量类型是否一致"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        pushdown = ctx.get_metric("PushdownPredicates") or 0.0
        raw = ctx.get_metric("RawRowsRead") or 0.0
        filtered = ratio(ctx.get_metric("PredFilterRows") or 0.0, raw)
        if pushdown != 0 or raw <= 10_000 or filtered is None or filtered <= 0.1:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": filtered * 100})


class IoThreadPoolSaturationRule(ScanRule):
    rule_id = "S005"
    texts = {
        Locale.EN: RuleText(
            name="IO thread pool saturated",
            message="IO tasks waited {wait_ms:.0f}ms with only {peak:.0f} concurrent IO tasks",
            reason="Scan IO tasks queue for the IO thread pool instead of running.",
            suggestions=(
                "Check the overall IO load of the cluster",
                "Increase the IO parallelism of scan operators",
            ),
        ),
        Locale.ZH: RuleText(
            name="IO 线程池饱和",
            message="IO 任务等待 {wait_ms:.0f}ms，峰值并发 IO 任务仅 {peak:.0f} 个",
            reason="Scan 的 IO 任务在线程池中排队而没有执行。",
            suggestions=("检查集群整体 IO 负载", "提高 Scan 算子的 IO 并行度"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        wait_ms = ctx.get_metric("IOTaskWaitTime") or 0.0
        peak = ctx.get_metric("PeakIOTasks")
        peak = 100.0 if peak is None else peak
        if wait_ms <= 1000 or peak >= 10:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"wait_ms": wait_ms, "peak": peak},
            parameters=[ctx.suggest_parameter("io_tasks_per_scan_operator", "8")],
        )


class RowsetFragmentationRule(ScanRule):
    rule_id = "S006"
    texts = {
        Locale.EN: RuleText(
            name="Rowset fragmentation",
            message="Scan read {rowsets:.0f} rowsets and spent {init_ms:.0f}ms initializing segments",
            reason="Many small rowsets make segment initialization expensive. Compaction is probably lagging behind ingestion.",
            suggestions=(
                "Check the compaction status of the table",
                "Reduce the frequency of small imports",
            ),
        ),
        Locale.ZH: RuleText(
            name="Rowset 碎片化",
            message="Scan 读取了 {rowsets:.0f} 个 Rowset，Segment 初始化耗时 {init_ms:.0f}ms",
            reason="大量小 Rowset 导致 Segment 初始化开销高，通常是 Compaction 跟不上导入速度。",
            suggestions=("检查表的 Compaction 状态", "降低小批量导入的频率"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        rowsets = ctx.get_metric("RowsetsReadCount") or 0.0
        init_ms = ctx.get_metric("SegmentInitTime") or 0.0
        if rowsets <= 100 or init_ms <= 500:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"rowsets": rowsets, "init_ms": init_ms})


class ColdStorageRule(ScanRule):
    rule_id = "S007"
    texts = {
        Locale.EN: RuleText(
            name="Cold storage access",
            message="IO takes {percentage:.1f}% of the scan time while reading {bytes}, storage may be the bottleneck",
            reason="Scan time is dominated by IO on a large amount of data that is not cached.",
            suggestions=(
                "Check storage performance and consider SSDs",
                "Enlarge the page cache",
                "Check network bandwidth when storage is remote",
            ),
        ),
        Locale.ZH: RuleText(
            name="冷存储访问",
            message="IO 时间占比 {percentage:.1f}%，读取数据量 {bytes}，可能存在存储瓶颈",
            reason="Scan 时间主要消耗在大量未缓存数据的 IO 上。",
            suggestions=(
                "检查存储性能，考虑使用 SSD",
                "增大 PageCache 缓存",
                "检查网络带宽（如果是远程存储）",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        io_ms = ctx.first_metric("IOTime", "IOTaskExecTime")
        scan_ms = ctx.get_metric("ScanTime")
        if scan_ms is None:
            scan_ms = ctx.operator_time_ms
        share = ratio(io_ms, scan_ms)
        bytes_read = ctx.get_metric("BytesRead") or 0.0
        if share is None or share <= 0.8 or bytes_read <= GIB:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.WARNING,
            {"percentage": share * 100, "bytes": format_bytes(bytes_read)},
            parameters=[
                ctx.suggest_parameter("storage_page_cache_limit", "30%", ParameterType.BE),
                ctx.suggest_parameter("io_tasks_per_scan_operator", "8"),
            ],
        )


class ZoneMapIneffectiveRule(ScanRule):
    rule_id = "S008"
    texts = {
        Locale.EN: RuleText(
            name="ZoneMap index not effective",
            message="ZoneMap index filtered no rows out of {raw:,.0f} raw rows",
            reason="The filter columns do not line up with the data layout, so min/max pruning cannot skip pages.",
            suggestions=(
                "Use filter columns that are part of the sort key",
                "Check that filter literals match the column type",
            ),
        ),
        Locale.ZH: RuleText(
            name="ZoneMap 索引未生效",
            message="ZoneMap 索引在 {raw:,.0f} 行原始数据中未过滤任何行",
            reason="过滤列与数据排列方式不匹配，min/max 裁剪无法跳过数据页。",
            suggestions=("使用排序键中的列作为过滤条件", "检查过滤常量类型与列类型是否一致"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        zonemap = ctx.get_metric("ZoneMapIndexFilterRows") or 0.0
        raw = ctx.get_metric("RawRowsRead") or 0.0
        if zonemap != 0 or raw <= 100_000:
            return None
        return self.diagnose(ctx, RuleSeverity.INFO, {"raw": raw})


class LowCacheHitRule(ScanRule):
    rule_id = "S009"
    texts = {
        Locale.EN: RuleText(
            name="Low cache hit rate",
            message="Cache hit rate is only {percentage:.1f}% ({cached:.0f}/{read:.0f} pages)",
            reason="Most pages are read from disk instead of the page cache.",
            suggestions=(
                "Enlarge the page cache",
                "Check whether other queries compete for the cache",
                "Consider enabling the data cache",
            ),
        ),
        Locale.ZH: RuleText(
            name="缓存命中率低",
            message="缓存命中率仅 {percentage:.1f}% ({cached:.0f}/{read:.0f} pages)",
            reason="大部分数据页从磁盘读取而不是命中 PageCache。",
            suggestions=(
                "增大 PageCache 容量",
                "检查是否有其他查询竞争缓存",
                "考虑启用数据缓存",
            ),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        cached = ctx.get_metric("CachedPagesNum")
        read = ctx.get_metric("ReadPagesNum")
        hit_rate = ratio(cached, read)
        if hit_rate is None or hit_rate >= 0.3 or read <= 1000:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"percentage": hit_rate * 100, "cached": cached, "read": read},
            parameters=[ctx.suggest_parameter("enable_scan_datacache", "true")],
        )


class RuntimeFilterIneffectiveRule(ScanRule):
    rule_id = "S010"
    texts = {
        Locale.EN: RuleText(
            name="Runtime filter not effective on scan",
            message="Runtime filters removed no rows out of {raw:,.0f} raw rows",
            reason="No runtime filter reached this scan, or the filters it received were not selective.",
            suggestions=(
                "Check that the join produces runtime filters",
                "Check that the runtime filter is pushed down to this scan",
            ),
        ),
        Locale.ZH: RuleText(
            name="Scan Runtime Filter 未生效",
            message="Runtime Filter 在 {raw:,.0f} 行原始数据中未过滤任何行",
            reason="该 Scan 没有收到 Runtime Filter，或收到的过滤器选择性不足。",
            suggestions=("检查 Join 是否生成了 Runtime Filter", "检查 Runtime Filter 是否下推到该 Scan"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        filtered = ctx.get_metric("RuntimeFilterRows") or 0.0
        raw = ctx.get_metric("RawRowsRead") or 0.0
        if filtered != 0 or raw <= 100_000:
            return None
        return self.diagnose(
            ctx,
            RuleSeverity.INFO,
            {"raw": raw},
            parameters=[ctx.suggest_parameter("enable_global_runtime_filter", "true")],
        )


class SoftDeletesRule(ScanRule):
    rule_id = "S011"
    texts = {
        Locale.EN: RuleText(
            name="Too many accumulated soft deletes",
            message="Delete vectors filtered {percentage:.1f}% of raw rows",
            reason="Deleted rows are still stored and must be read then discarded until compaction removes them.",
            suggestions=(
                "Trigger a manual compaction on the table",
                "Review the update and delete frequency of the table",
            ),
        ),
        Locale.ZH: RuleText(
            name="累积软删除过多",
            message="删除向量过滤了 {percentage:.1f}% 的原始行",
            reason="已删除的行仍然存储在磁盘上，在 Compaction 清理之前需要读取后再丢弃。",
            suggestions=("对该表手动触发 Compaction", "评估该表的更新和删除频率"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        deleted = ratio(ctx.get_metric("DelVecFilterRows"), ctx.get_metric("RawRowsRead"))
        if deleted is None or deleted <= 0.3:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": deleted * 100})


RULES = (
    ScanDataSkewRule,
    ScanIoSkewRule,
    PoorFilterRule,
    PredicateNotPushedRule,
    IoThreadPoolSaturationRule,
    RowsetFragmentationRule,
    ColdStorageRule,
    ZoneMapIneffectiveRule,
    LowCacheHitRule,
    RuntimeFilterIneffectiveRule,
    SoftDeletesRule,
)
