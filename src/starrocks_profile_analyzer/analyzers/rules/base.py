"""Rule protocols, evaluation contexts and the shared diagnostic builder."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, runtime_checkable

from starrocks_profile_analyzer.domain import (
    AdaptiveThresholds,
    Diagnostic,
    ExecutionTree,
    ExecutionTreeNode,
    Fragment,
    Locale,
    ParameterSuggestion,
    ParameterType,
    Profile,
    ProfileSummary,
    RuleSeverity,
)
from starrocks_profile_analyzer.parser.values import parse_metric_value

GIB = 1024**3
MIB = 1024**2

DEFAULT_SKEW_RATIO = 2.0


@dataclass(frozen=True, slots=True)
class RuleSettings:
    """Per-analysis inputs shared by every rule context."""

    locale: Locale = Locale.EN
    cluster_variables: Mapping[str, str] | None = None
    thresholds: AdaptiveThresholds | None = None


@dataclass(frozen=True, slots=True)
class RuleText:
    name: str
    message: str
    reason: str = ""
    suggestions: tuple[str, ...] = ()


def ratio(numerator: float | None, denominator: float | None) -> float | None:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def instance_skew(maximum: float | None, minimum: float | None) -> float | None:
    """max/min across instances. None when either side is missing or min is 0."""
    if maximum is None or not minimum:
        return None
    return maximum / minimum


def parameter_command(name: str, value: str, param_type: ParameterType) -> str:
    if param_type is ParameterType.BE:
        return f"# be.conf: {name} = {value}"
    if param_type is ParameterType.FE:
        return f'ADMIN SET FRONTEND CONFIG ("{name}" = "{value}");'
    return f"SET {name} = {value};"


def _normalize(value: str) -> str:
    return value.strip().strip("'\"").lower()


@dataclass(frozen=True, slots=True)
class _ContextBase:
    profile: Profile
    settings: RuleSettings = field(default_factory=RuleSettings)

    @property
    def locale(self) -> Locale:
        return self.settings.locale

    @property
    def summary(self) -> ProfileSummary:
        return self.profile.summary

    def skew_threshold(self, default: float = DEFAULT_SKEW_RATIO) -> float:
        thresholds = self.settings.thresholds
        if thresholds is None or thresholds.skew_ratio is None:
            return default
        return thresholds.skew_ratio

    def current_value(self, name: str) -> str | None:
        """Live cluster value of a variable, only when cluster variables were supplied."""
        if self.settings.cluster_variables is None:
            return None
        return self.settings.cluster_variables.get(name)

    def suggest_parameter(
        self,
        name: str,
        recommended: str,
        param_type: ParameterType = ParameterType.SESSION,
        command: str | None = None,
    ) -> ParameterSuggestion | None:
        """Build a parameter suggestion unless the effective value already matches.

        The effective value is the live cluster value when supplied, otherwise
        the non-default session variable recorded in the profile.
        """
        current = self.current_value(name)
        effective = current
        if effective is None:
            effective = self.summary.non_default_variables.get(name)
        if effective is not None and _normalize(effective) == _normalize(recommended):
            return None

        return ParameterSuggestion(
            name=name,
            param_type=param_type,
            recommended=recommended,
            command=command or parameter_command(name, recommended, param_type),
            current=current,
        )


@dataclass(frozen=True, slots=True)
class RuleContext(_ContextBase):
    """Evaluation context for a rule scoped to one execution tree node."""

    node: ExecutionTreeNode = field(kw_only=True)
    tree: ExecutionTree | None = None

    @property
    def node_path(self) -> str:
        return self.node.node_path

    @property
    def plan_node_id(self) -> int | None:
        return self.node.plan_node_id

    @property
    def operator_name(self) -> str:
        return self.node.operator_name

    def get_metric(self, name: str) -> float | None:
        return parse_metric_value(self.node.unique_metrics.get(name))

    def first_metric(self, *names: str) -> float | None:
        for name in names:
            value = self.get_metric(name)
            if value is not None:
                return value
        return None

    @property
    def operator_time_ms(self) -> float | None:
        return self.node.metrics.operator_total_time_ms

    @property
    def time_percentage(self) -> float | None:
        return self.node.time_percentage

    @property
    def memory_usage(self) -> int | None:
        return self.node.metrics.memory_usage


@dataclass(frozen=True, slots=True)
class QueryRuleContext(_ContextBase):
    """Evaluation context for a rule scoped to the whole query."""

    node_path: ClassVar[str] = "Query"
    plan_node_id: ClassVar[None] = None

    def query_time_threshold_ms(self, default: float) -> float:
        thresholds = self.settings.thresholds
        if thresholds is None or thresholds.query_time_ms is None:
            return default
        return thresholds.query_time_ms

    def get_execution_metric(self, name: str) -> float | None:
        return parse_metric_value(self.profile.execution.metrics.get(name))


@dataclass(frozen=True, slots=True)
class FragmentRuleContext(_ContextBase):
    """Evaluation context for a rule scoped to one plan fragment."""

    fragment: Fragment = field(kw_only=True)

    plan_node_id: ClassVar[None] = None

    @property
    def node_path(self) -> str:
        return f"Fragment {self.fragment.id}"

    def get_metric(self, name: str) -> float | None:
        return parse_metric_value(self.fragment.metrics.get(name))


@runtime_checkable
class NodeRule(Protocol):
    """Protocol for rules evaluated against each applicable tree node."""

    rule_id: str

    def name(self, locale: Locale = Locale.EN) -> str:
        ...

    def applicable_to(self, node: ExecutionTreeNode) -> bool:
        ...

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        ...


@runtime_checkable
class QueryRule(Protocol):
    """Protocol for rules evaluated once against the whole profile."""

    rule_id: str

    def name(self, locale: Locale = Locale.EN) -> str:
        ...

    def evaluate(self, ctx: QueryRuleContext) -> Diagnostic | None:
        ...


@runtime_checkable
class FragmentRule(Protocol):
    """Protocol for rules evaluated once per plan fragment."""

    rule_id: str

    def name(self, locale: Locale = Locale.EN) -> str:
        ...

    def evaluate(self, ctx: FragmentRuleContext) -> Diagnostic | None:
        ...


class CatalogRule:
    """Shared text lookup and diagnostic construction for catalog rules.

    Subclasses set ``rule_id`` and ``texts``. Message, reason and suggestion
    templates are formatted with the ``params`` passed to ``diagnose``.
    """

    rule_id: ClassVar[str]
    texts: ClassVar[dict[Locale, RuleText]]

    def text(self, locale: Locale) -> RuleText:
        return self.texts.get(locale) or self.texts[Locale.EN]

    def name(self, locale: Locale = Locale.EN) -> str:
        return self.text(locale).name

    def diagnose(
        self,
        ctx: RuleContext | QueryRuleContext | FragmentRuleContext,
        severity: RuleSeverity,
        params: Mapping[str, Any] | None = None,
        parameters: Iterable[ParameterSuggestion | None] = (),
        suggestions: Iterable[str] | None = None,
    ) -> Diagnostic:
        text = self.text(ctx.locale)
        values = dict(params or {})
        templates = text.suggestions if suggestions is None else tuple(suggestions)
        return Diagnostic(
            rule_id=self.rule_id,
            rule_name=text.name,
            severity=severity,
            node_path=ctx.node_path,
            plan_node_id=ctx.plan_node_id,
            message=text.message.format(**values),
            reason=text.reason.format(**values),
            suggestions=tuple(template.format(**values) for template in templates),
            parameter_suggestions=tuple(param for param in parameters if param is not None),
        )


class NodeCatalogRule(CatalogRule):
    """Node rule applicable when the operator name contains every keyword."""

    keywords: ClassVar[tuple[str, ...]] = ()

    def applicable_to(self, node: ExecutionTreeNode) -> bool:
        return all(keyword in node.operator_name for keyword in self.keywords)

    def evaluate(self, ctx: RuleContext) -> Diagnostic | None:
        raise NotImplementedError
