"""Findings produced by the rule engine, hotspot detector and root-cause analysis."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum, StrEnum

from starrocks_profile_analyzer.domain.locale import Locale
from starrocks_profile_analyzer.domain.models import ExecutionTree, ProfileDocument, ProfileSummary


class HotSeverity(IntEnum):
    """Coarse hotspot severity, ordered for comparison."""

    NORMAL = 0
    MILD = 1
    MODERATE = 2
    HIGH = 3
    SEVERE = 4
    CRITICAL = 5


class RuleSeverity(IntEnum):
    """Severity of a rule-engine diagnostic (higher value = more severe)."""

    INFO = 0
    WARNING = 1
    ERROR = 2

    def to_hot_severity(self) -> HotSeverity:
        if self is RuleSeverity.ERROR:
            return HotSeverity.SEVERE
        if self is RuleSeverity.WARNING:
            return HotSeverity.MODERATE
        return HotSeverity.MILD

    @classmethod
    def parse(cls, value: str) -> "RuleSeverity":
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown rule severity: {value!r}") from None


class ParameterType(StrEnum):
    SESSION = "Session"
    BE = "BE"
    FE = "FE"


@dataclass(frozen=True, slots=True)
class AdaptiveThresholds:
    """Baseline-derived overrides for rule thresholds. None keeps the default."""

    query_time_ms: float | None = None
    skew_ratio: float | None = None


@dataclass(frozen=True, slots=True)
class ParameterSuggestion:
    """A tuning parameter recommendation with a ready-to-run command."""

    name: str
    param_type: ParameterType
    recommended: str
    command: str
    current: str | None = None


@dataclass(frozen=True, slots=True)
class HotSpot:
    node_path: str
    severity: HotSeverity
    issue_type: str
    description: str
    suggestions: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A rule-catalog finding attached to a node or to the whole query."""

    rule_id: str
    rule_name: str
    severity: RuleSeverity
    node_path: str
    message: str
    reason: str = ""
    plan_node_id: int | None = None
    suggestions: tuple[str, ...] = field(default_factory=tuple)
    parameter_suggestions: tuple[ParameterSuggestion, ...] = field(default_factory=tuple)

    @property
    def dedup_key(self) -> tuple[str, str]:
        return self.rule_id, self.node_path

    def to_hotspot(self, locale: Locale = Locale.EN) -> HotSpot:
        suggestions = list(self.suggestions)
        for param in self.parameter_suggestions:
            suggestions.append(
                locale.pick(
                    f"Adjust parameter: {param.name} → {param.recommended} (command: {param.command})",
                    f"调整参数: {param.name} → {param.recommended} (命令: {param.command})",
                )
            )
        return HotSpot(
            node_path=self.node_path,
            severity=self.severity.to_hot_severity(),
            issue_type=self.rule_id,
            description=self.message,
            suggestions=tuple(suggestions),
        )


@dataclass(frozen=True, slots=True)
class AggregatedDiagnostic:
    """All diagnostics of one rule folded together across nodes."""

    rule_id: str
    rule_name: str
    severity: RuleSeverity
    message: str
    reason: str
    affected_nodes: tuple[str, ...]
    node_count: int
    suggestions: tuple[str, ...] = field(default_factory=tuple)
    parameter_suggestions: tuple[ParameterSuggestion, ...] = field(default_factory=tuple)


class PropagationMode(StrEnum):
    """How a problem on one node propagates to another."""

    DATA_VOLUME = "DataVolume"
    SKEW = "Skew"
    MEMORY = "Memory"
    IO_WAIT = "IoWait"
    CO_OCCURRENCE = "CoOccurrence"


@dataclass(frozen=True, slots=True)
class RootCause:
    id: str
    rule_id: str
    rule_name: str
    node_path: str
    description: str
    impact_score: float
    confidence: float
    symptoms: tuple[str, ...] = field(default_factory=tuple)
    suggestions: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class CausalChain:
    root_cause_id: str
    chain: tuple[str, ...]
    explanation: str


@dataclass(frozen=True, slots=True)
class RootCauseAnalysis:
    root_causes: tuple[RootCause, ...] = field(default_factory=tuple)
    causal_chains: tuple[CausalChain, ...] = field(default_factory=tuple)
    summary: str = ""
    total_diagnostics: int = 0


@dataclass(frozen=True, slots=True)
class IoStatistics:
    """Scan and sink IO totals aggregated over the execution tree."""

    raw_rows_read: int = 0
    bytes_read: int = 0
    pages_from_memory: int = 0
    pages_from_local_disk: int = 0
    pages_from_remote: int = 0
    io_seek_time_ms: float = 0.0
    io_time_local_disk_ms: float = 0.0
    io_time_remote_ms: float = 0.0
    rows_returned: int = 0
    bytes_sent: int = 0


@dataclass(frozen=True, slots=True)
class ProfileAnalysisResult:
    """Everything produced by a single profile analysis."""

    hotspots: tuple[HotSpot, ...]
    conclusion: str
    suggestions: tuple[str, ...]
    performance_score: float
    execution_tree: ExecutionTree | None = None
    summary: ProfileSummary | None = None
    diagnostics: tuple[Diagnostic, ...] = field(default_factory=tuple)
    aggregated_diagnostics: tuple[AggregatedDiagnostic, ...] = field(default_factory=tuple)
    node_diagnostics: dict[int, tuple[Diagnostic, ...]] = field(default_factory=dict)
    diagnostic_conclusion: str = ""
    root_cause_analysis: RootCauseAnalysis | None = None
    io_statistics: IoStatistics | None = None


@dataclass(frozen=True, slots=True)
class AnalysisReport:
    """One analyzed profile document, as handed to outputs."""

    document: ProfileDocument
    result: ProfileAnalysisResult
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def query_id(self) -> str:
        if self.result.summary is not None and self.result.summary.query_id:
            return self.result.summary.query_id
        return self.document.query_id or ""

    @property
    def max_severity(self) -> RuleSeverity | None:
        if not self.result.diagnostics:
            return None
        return max(d.severity for d in self.result.diagnostics)
