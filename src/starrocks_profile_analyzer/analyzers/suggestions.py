from collections.abc import Sequence

from starrocks_profile_analyzer.analyzers.engine import format_seconds, total_time_seconds
from starrocks_profile_analyzer.domain import HotSeverity, HotSpot, Locale, Profile

SEVERITY_PENALTIES: dict[HotSeverity, float] = {
    HotSeverity.CRITICAL: 25.0,
    HotSeverity.SEVERE: 15.0,
    HotSeverity.HIGH: 12.0,
    HotSeverity.MODERATE: 8.0,
    HotSeverity.MILD: 3.0,
    HotSeverity.NORMAL: 0.0,
}

# (seconds, penalty), checked from the longest down
DURATION_PENALTIES: tuple[tuple[float, float], ...] = ((3600.0, 20.0), (1800.0, 10.0), (300.0, 5.0))

GENERAL_SUGGESTIONS: dict[Locale, tuple[str, ...]] = {
    Locale.EN: (
        "Consider enabling the query cache to speed up repeated queries",
        "Check that hardware resources (CPU, memory, storage) are sufficient",
        "Keep table statistics up to date so the optimizer picks good plans",
    ),
    Locale.ZH: (
        "考虑启用查询缓存以提高重复查询的性能",
        "检查硬件资源（CPU、内存、存储）是否充足",
        "定期维护表统计信息以优化查询计划",
    ),
}


class SuggestionEngine:
    """Turns hotspots into a conclusion, a suggestion list and a 0-100 score."""

    @staticmethod
    def generate_conclusion(
        hotspots: Sequence[HotSpot],
        profile: Profile,
        locale: Locale = Locale.EN,
    ) -> str:
        if not hotspots:
            return locale.pick(
                "The query executes well, no significant performance issues found.",
                "查询执行良好，未发现明显性能问题。",
            )

        severe = sum(1 for h in hotspots if h.severity >= HotSeverity.SEVERE)
        moderate = sum(1 for h in hotspots if h.severity is HotSeverity.MODERATE)
        seconds = total_time_seconds(profile)
        duration = format_seconds(seconds, locale)

        if severe:
            main = hotspots[0].issue_type
            return locale.pick(
                f"The query has {severe} severe performance issue(s), execution time {duration}. "
                f"The main issue is {main}. Address the severe issues first.",
                f"查询存在{severe}个严重性能问题，执行时间较长（{duration}）。主要问题是{main}。建议优先解决严重问题。",
            )
        if moderate > 2:
            return locale.pick(
                f"The query has {moderate} moderate performance issues and needs optimization. "
                f"Execution time {duration}.",
                f"查询存在{moderate}个中等程度性能问题，整体性能需优化。执行时间{duration}。",
            )
        if seconds > 300:
            return locale.pick(
                f"The query runs long ({duration}), review the performance hotspots.",
                f"查询执行时间较长（{duration}），建议关注性能热点。",
            )
        return locale.pick(
            f"Found {len(hotspots)} minor issue(s), overall performance is acceptable.",
            f"查询发现{len(hotspots)}个小问题，整体性能可接受。",
        )

    @staticmethod
    def generate_suggestions(hotspots: Sequence[HotSpot], locale: Locale = Locale.EN) -> list[str]:
        suggestions = [s for hotspot in hotspots for s in hotspot.suggestions]
        suggestions.extend(GENERAL_SUGGESTIONS[locale])
        return list(dict.fromkeys(suggestions))

    @staticmethod
    def calculate_performance_score(hotspots: Sequence[HotSpot], profile: Profile) -> float:
        score = 100.0
        for hotspot in hotspots:
            score -= SEVERITY_PENALTIES[hotspot.severity]

        seconds = total_time_seconds(profile)
        for limit, penalty in DURATION_PENALTIES:
            if seconds > limit:
                score -= penalty
                break

        return max(score, 0.0)
