from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace

from starrocks_profile_analyzer.analyzers.registry import RuleRegistry
from starrocks_profile_analyzer.analyzers.rules import (
    FragmentRuleContext,
    QueryRuleContext,
    RuleContext,
    RuleSettings,
)
from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.domain import (
    AggregatedDiagnostic,
    Diagnostic,
    Locale,
    Profile,
    RuleSeverity,
)
from starrocks_profile_analyzer.parser.values import try_parse_duration_ms

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class RuleEngineConfig:
    max_suggestions: int = 100
    include_parameters: bool = True
    min_severity: RuleSeverity = RuleSeverity.INFO


def total_time_seconds(profile: Profile) -> float:
    summary = profile.summary
    millis = summary.total_time_ms
    if millis is None:
        millis = try_parse_duration_ms(summary.total_time)
    return (millis or 0.0) / 1000


def format_seconds(seconds: float, locale: Locale) -> str:
    if seconds >= 3600:
        return locale.pick(f"{seconds / 3600:.1f} h", f"{seconds / 3600:.1f}小时")
    if seconds >= 60:
        return locale.pick(f"{seconds / 60:.0f} min", f"{seconds / 60:.0f}分钟")
    return locale.pick(f"{seconds:.1f} s", f"{seconds:.1f}秒")


class RuleEngine:
    """Evaluates the rule catalog against a composed profile.

    Query rules run first, then fragment rules, then every applicable node
    rule for each tree node. A rule that raises is logged and skipped.
    """

    def __init__(
        self,
        config: RuleEngineConfig | None = None,
        registry: RuleRegistry | None = None,
    ) -> None:
        self._config = config or RuleEngineConfig()
        self._registry = registry or RuleRegistry.default()

    @property
    def config(self) -> RuleEngineConfig:
        return self._config

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    def analyze(
        self,
        profile: Profile,
        settings: RuleSettings | None = None,
    ) -> list[Diagnostic]:
        settings = settings or RuleSettings()
        candidates = [
            *self._evaluate_query_rules(profile, settings),
            *self._evaluate_fragment_rules(profile, settings),
            *self._evaluate_node_rules(profile, settings),
        ]

        diagnostics = self.finalize(candidates)
        logger.debug("Rule engine produced %d diagnostics", len(diagnostics))
        return diagnostics

    def finalize(self, candidates: Iterable[Diagnostic]) -> list[Diagnostic]:
        """Filter by severity, order by severity, deduplicate and cap."""
        config = self._config
        kept = [d for d in candidates if d.severity >= config.min_severity]
        if not config.include_parameters:
            kept = [replace(d, parameter_suggestions=()) for d in kept]
        kept.sort(key=lambda d: d.severity, reverse=True)

        seen: set[tuple[str, str]] = set()
        unique: list[Diagnostic] = []
        for diagnostic in kept:
            if diagnostic.dedup_key in seen:
                continue
            seen.add(diagnostic.dedup_key)
            unique.append(diagnostic)
        return unique[: config.max_suggestions]

    def _evaluate_query_rules(self, profile: Profile, settings: RuleSettings) -> list[Diagnostic]:
        ctx = QueryRuleContext(profile=profile, settings=settings)
        results = []
        for rule in self._registry.query_rules:
            diagnostic = self._run(rule.rule_id, rule.evaluate, ctx)
            if diagnostic is not None:
                results.append(diagnostic)
        return results

    def _evaluate_fragment_rules(self, profile: Profile, settings: RuleSettings) -> list[Diagnostic]:
        results = []
        for fragment in profile.fragments:
            ctx = FragmentRuleContext(profile=profile, settings=settings, fragment=fragment)
            for rule in self._registry.fragment_rules:
                diagnostic = self._run(rule.rule_id, rule.evaluate, ctx)
                if diagnostic is not None:
                    results.append(diagnostic)
        return results

    def _evaluate_node_rules(self, profile: Profile, settings: RuleSettings) -> list[Diagnostic]:
        tree = profile.execution_tree
        if tree is None:
            return []
        results = []
        for node in tree.nodes:
            ctx = RuleContext(profile=profile, settings=settings, node=node, tree=tree)
            for rule in self._registry.node_rules:
                if not rule.applicable_to(node):
                    continue
                diagnostic = self._run(rule.rule_id, rule.evaluate, ctx)
                if diagnostic is not None:
                    results.append(diagnostic)
        return results

    @staticmethod
    def _run(
        rule_id: str,
        evaluate: Callable[..., Diagnostic | None],
        ctx: RuleContext | QueryRuleContext | FragmentRuleContext,
    ) -> Diagnostic | None:
        try:
            return evaluate(ctx)
        except Exception:
            logger.warning("Rule %s failed on %s, skipping", rule_id, ctx.node_path, exc_info=True)
            return None

    @staticmethod
    def generate_conclusion(
        diagnostics: Sequence[Diagnostic],
        profile: Profile,
        locale: Locale = Locale.EN,
    ) -> str:
        if not diagnostics:
            return locale.pick(
                "The query executes well, no significant performance issues found.",
                "查询执行良好，未发现明显性能问题。",
            )

        errors = sum(1 for d in diagnostics if d.severity is RuleSeverity.ERROR)
        warnings = sum(1 for d in diagnostics if d.severity is RuleSeverity.WARNING)
        seconds = total_time_seconds(profile)
        duration = format_seconds(seconds, locale)

        if errors:
            main = diagnostics[0].rule_name
            return locale.pick(
                f"The query has {errors} severe performance issue(s), execution time {duration}. "
                f"The main issue is {main}. Address the severe issues first.",
                f"查询存在{errors}个严重性能问题，执行时间较长（{duration}）。主要问题是{main}。建议优先解决严重问题。",
            )
        if warnings > 2:
            return locale.pick(
                f"The query has {warnings} moderate performance issues and needs optimization. "
                f"Execution time {duration}.",
                f"查询存在{warnings}个中等程度性能问题，整体性能需优化。执行时间{duration}。",
            )
        if seconds > 300:
            return locale.pick(
                f"The query runs long ({duration}), review the performance hotspots.",
                f"查询执行时间较长（{duration}），建议关注性能热点。",
            )
        return locale.pick(
            f"Found {len(diagnostics)} minor issue(s), overall performance is acceptable.",
            f"查询发现{len(diagnostics)}个小问题，整体性能可接受。",
        )

    @staticmethod
    def aggregate_diagnostics(
        diagnostics: Sequence[Diagnostic],
        locale: Locale = Locale.EN,
    ) -> list[AggregatedDiagnostic]:
        """Fold diagnostics of the same rule across nodes."""
        groups: dict[str, list[Diagnostic]] = {}
        for diagnostic in diagnostics:
            groups.setdefault(diagnostic.rule_id, []).append(diagnostic)

        aggregated = []
        for rule_id, group in groups.items():
            first = group[0]
            suggestions = list(dict.fromkeys(s for d in group for s in d.suggestions))
            parameters = next((d.parameter_suggestions for d in group if d.parameter_suggestions), ())
            count = len(group)
            message = first.message
            if count > 1:
                message = locale.pick(f"{count} nodes have this issue", f"{count} 个节点存在此问题")
            aggregated.append(
                AggregatedDiagnostic(
                    rule_id=rule_id,
                    rule_name=first.rule_name,
                    severity=max(d.severity for d in group),
                    message=message,
                    reason=first.reason,
                    affected_nodes=tuple(d.node_path for d in group),
                    node_count=count,
                    suggestions=tuple(suggestions),
                    parameter_suggestions=parameters,
                )
            )

        aggregated.sort(key=lambda a: (a.severity, a.node_count), reverse=True)
        return aggregated


def node_diagnostics(diagnostics: Iterable[Diagnostic]) -> dict[int, tuple[Diagnostic, ...]]:
    """Group node-scoped diagnostics by plan node id."""
    grouped: dict[int, list[Diagnostic]] = {}
    for diagnostic in diagnostics:
        if diagnostic.plan_node_id is not None:
            grouped.setdefault(diagnostic.plan_node_id, []).append(diagnostic)
    return {plan_node_id: tuple(items) for plan_node_id, items in grouped.items()}

