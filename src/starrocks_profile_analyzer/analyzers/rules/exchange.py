"""Exchange rules (E001-E003)."""

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


class ExchangeRule(NodeCatalogRule):
    keywords = ("EXCHANGE",)


class NetworkBoundExchangeRule(ExchangeRule):
    rule_id = "E001"
    texts = {
        Locale.EN: RuleText(
            name="Exchange dominated by network time",
            message="Network transfer takes {percentage:.1f}% of the exchange time ({time_ms:.0f}ms)",
            reason="The exchange spends most of its time moving data between backends.",
            suggestions=(
                "Check the network bandwidth between backends",
                "Reduce the data shuffled by filtering or pre-aggregating earlier",
            ),
        ),
        Locale.ZH: RuleText(
            name="Exchange 网络耗时高",
            message="网络传输占 Exchange 时间的 {percentage:.1f}% ({time_ms:.0f}ms)",
            reason="Exchange 大部分时间用于在节点之间传输数据。",
            suggestions=("检查节点之间的网络带宽", "通过提前过滤或预聚合减少 Shuffle 数据量"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        time_ms = ctx.operator_time_ms
        share = ratio(ctx.get_metric("NetworkTime"), time_ms)
        if share is None or share <= 0.5 or time_ms <= 1000:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"percentage": share * 100, "time_ms": time_ms})


class LargeExchangeVolumeRule(ExchangeRule):
    rule_id = "E002"
    texts = {
        Locale.EN: RuleText(
            name="Large exchange volume",
            message="Exchange sent {bytes} over the network",
            reason="A large amount of data is shuffled between fragments.",
            suggestions=(
                "Filter or aggregate before the shuffle",
                "Consider a colocate or bucket shuffle join",
            ),
        ),
        Locale.ZH: RuleText(
            name="Exchange 数据量过大",
            message="Exchange 通过网络发送了 {bytes}",
            reason="Fragment 之间 Shuffle 的数据量过大。",
            suggestions=("在 Shuffle 之前过滤或聚合", "考虑使用 Colocate 或 Bucket Shuffle Join"),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        sent = ctx.get_metric("BytesSent")
        if sent is None or sent <= GIB:
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"bytes": format_bytes(sent)})


class ExchangeReceiveSkewRule(ExchangeRule):
    rule_id = "E003"
    texts = {
        Locale.EN: RuleText(
            name="Exchange receive skew",
            message="Received bytes are skewed across instances, max/min ratio {ratio:.2f}",
            reason="The shuffle sends far more data to some receivers than to others.",
            suggestions=("Check the distribution of the shuffle keys",),
        ),
        Locale.ZH: RuleText(
            name="Exchange 接收倾斜",
            message="接收数据量存在倾斜，max/min 比率为 {ratio:.2f}",
            reason="Shuffle 发送给部分接收端的数据远多于其他接收端。",
            suggestions=("检查 Shuffle 键的数据分布",),
        ),
    }

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        skew = instance_skew(
            ctx.get_metric("__MAX_OF_BytesReceived"), ctx.get_metric("__MIN_OF_BytesReceived")
        )
        if skew is None or skew <= ctx.skew_threshold():
            return None
        return self.diagnose(ctx, RuleSeverity.WARNING, {"ratio": skew})


RULES = (NetworkBoundExchangeRule, LargeExchangeVolumeRule, ExchangeReceiveSkewRule)
