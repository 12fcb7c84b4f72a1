"""Single-profile analysis: compose, diagnose, score and explain."""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum

from starrocks_profile_analyzer.analyzers.engine import (
    RuleEngine,
    RuleEngineConfig,
    node_diagnostics,
)
from starrocks_profile_analyzer.analyzers.hotspots import HotSpotDetector
from starrocks_profile_analyzer.analyzers.root_cause import RootCauseEngine
from starrocks_profile_analyzer.analyzers.rules import RuleSettings
from starrocks_profile_analyzer.analyzers.suggestions import SuggestionEngine
from starrocks_profile_analyzer.core.config import config
from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.domain import (
    AdaptiveThresholds,
    Diagnostic,
    ExecutionTree,
    IoStatistics,
    Locale,
    Profile,
    ProfileAnalysisResult,
    ProfileSummary,
    RuleSeverity,
)
from starrocks_profile_analyzer.parser.composer import ProfileComposer
from starrocks_profile_analyzer.parser.exceptions import EmptyProfileError, ProfileParseError
from starrocks_profile_analyzer.parser.values import (
    format_bytes,
    try_parse_bytes,
    try_parse_duration_ms,
    try_parse_number,
)

logger = get_logger(__name__)

_BYTE_METRIC = r"^\s*-\s*{name}:\s*([0-9.]+\s*(?:B|KB|MB|GB|TB))"
_DATACACHE_METRICS = (
    "CompressedBytesReadLocalDisk",
    "CompressedBytesReadRemote",
    "DataCacheReadDiskBytes",
    "DataCacheReadMemBytes",
    "DataCacheSkipReadBytes",
    "FSIOBytesRead",
)
_DATACACHE_PATTERNS = {
    name: re.compile(_BYTE_METRIC.format(name=name), re.MULTILINE) for name in _DATACACHE_METRICS
}


class AnalysisErrorKind(StrEnum):
    EMPTY_INPUT = "EmptyInput"
    MALFORMED = "Malformed"
    INTERNAL = "Internal"


class ProfileAnalysisError(Exception):
    def __init__(self, message: str, kind: AnalysisErrorKind) -> None:
        super().__init__(message)
        self.kind = kind


def _default_locale() -> Locale:
    return Locale.parse(config.ANALYZER_LOCALE)


@dataclass(frozen=True, slots=True)
class AnalysisContext:
    """Caller-supplied inputs for one analysis."""

    locale: Locale = field(default_factory=_default_locale)
    cluster_variables: Mapping[str, str] | None = None
    thresholds: AdaptiveThresholds | None = None


def default_rule_engine_config() -> RuleEngineConfig:
    return RuleEngineConfig(
        max_suggestions=config.RULE_MAX_SUGGESTIONS,
        min_severity=RuleSeverity.parse(config.RULE_MIN_SEVERITY),
    )


class ProfileAnalyzer:
    """Turns one profile text into a ``ProfileAnalysisResult``.

    Parsing failures raise ``ProfileAnalysisError``. Once the profile is
    composed, every later stage is best-effort and does not raise.
    """

    def __init__(
        self,
        composer: ProfileComposer | None = None,
        rule_engine: RuleEngine | None = None,
        hotspot_detector: HotSpotDetector | None = None,
    ) -> None:
        self._composer = composer or ProfileComposer()
        self._rule_engine = rule_engine or RuleEngine(default_rule_engine_config())
        self._hotspot_detector = hotspot_detector or HotSpotDetector()

    def analyze(self, text: str, context: AnalysisContext | None = None) -> ProfileAnalysisResult:
        context = context or AnalysisContext()
        locale = context.locale

        profile = self._compose(text)
        summary = apply_datacache_statistics(profile.summary, text)
        profile = replace(profile, summary=summary)
        tree = profile.execution_tree or ExecutionTree()
        io_statistics = aggregate_io_statistics(tree)

        settings = RuleSettings(
            locale=locale,
            cluster_variables=context.cluster_variables,
            thresholds=context.thresholds,
        )
        diagnostics = self._rule_engine.analyze(profile, settings)
        by_node = node_diagnostics(diagnostics)
        marked_tree = mark_diagnostics(tree, by_node)

        hotspots = self._hotspot_detector.analyze(profile, locale)
        root_causes = RootCauseEngine(locale).analyze(diagnostics, tree)

        return ProfileAnalysisResult(
            hotspots=tuple(hotspots),
            conclusion=SuggestionEngine.generate_conclusion(hotspots, profile, locale),
            suggestions=tuple(SuggestionEngine.generate_suggestions(hotspots, locale)),
            performance_score=SuggestionEngine.calculate_performance_score(hotspots, profile),
            execution_tree=marked_tree,
            summary=summary,
            diagnostics=tuple(diagnostics),
            aggregated_diagnostics=tuple(RuleEngine.aggregate_diagnostics(diagnostics, locale)),
            node_diagnostics=by_node,
            diagnostic_conclusion=RuleEngine.generate_conclusion(diagnostics, profile, locale),
            root_cause_analysis=root_causes,
            io_statistics=io_statistics,
        )

    def _compose(self, text: str) -> Profile:
        try:
            return self._composer.parse(text)
        except EmptyProfileError as exc:
            raise ProfileAnalysisError(
                f"profile parsing failed: {exc}", AnalysisErrorKind.EMPTY_INPUT
            ) from exc
        except ProfileParseError as exc:
            raise ProfileAnalysisError(
                f"profile parsing failed: {exc}", AnalysisErrorKind.MALFORMED
            ) from exc
        except Exception as exc:
            logger.exception("Unexpected error while composing profile")
            raise ProfileAnalysisError(
                f"profile parsing failed: {exc}", AnalysisErrorKind.INTERNAL
            ) from exc


def _sum_metric(text: str, name: str) -> tuple[int, bool]:
    total = 0
    found = False
    for match in _DATACACHE_PATTERNS[name].finditer(text):
        total += try_parse_bytes(match.group(1)) or 0
        found = True
    return total, found


def extract_datacache_bytes(text: str) -> tuple[int, int]:
    """Local and remote bytes read by scans, summed over the whole profile."""
    local, _ = _sum_metric(text, "CompressedBytesReadLocalDisk")
    remote, _ = _sum_metric(text, "CompressedBytesReadRemote")
    disk, has_disk = _sum_metric(text, "DataCacheReadDiskBytes")
    memory, has_memory = _sum_metric(text, "DataCacheReadMemBytes")
    skipped, _ = _sum_metric(text, "DataCacheSkipReadBytes")
    fsio, _ = _sum_metric(text, "FSIOBytesRead")

    local += disk + memory
    if has_disk or has_memory:
        remote += max(fsio, skipped)
    else:
        remote += skipped
    return local, remote


def apply_datacache_statistics(summary: ProfileSummary, text: str) -> ProfileSummary:
    local, remote = extract_datacache_bytes(text)
    if local + remote == 0:
        return summary
    return replace(
        summary,
        datacache_hit_rate=local / (local + remote),
        datacache_bytes_local=local,
        datacache_bytes_remote=remote,
        datacache_bytes_local_display=format_bytes(local),
        datacache_bytes_remote_display=format_bytes(remote),
    )


def aggregate_io_statistics(tree: ExecutionTree) -> IoStatistics:
    raw_rows = bytes_read = pages_memory = pages_local = pages_remote = 0
    seek_ms = local_ms = remote_ms = 0.0
    rows_returned = bytes_sent = 0

    for node in tree.nodes:
        name = node.operator_name.upper()
        metrics = node.unique_metrics
        if "SCAN" in name:
            raw_rows += try_parse_number(metrics.get("RawRowsRead")) or 0
            bytes_read += try_parse_bytes(metrics.get("BytesRead")) or 0
            pages_memory += try_parse_number(metrics.get("PagesCountMemory")) or 0
            pages_local += try_parse_number(metrics.get("PagesCountLocalDisk")) or 0
            pages_remote += try_parse_number(metrics.get("PagesCountRemote")) or 0
            seek_ms += try_parse_duration_ms(metrics.get("IoSeekTime")) or 0.0
            local_ms += try_parse_duration_ms(metrics.get("IOTimeLocalDisk")) or 0.0
            remote_ms += try_parse_duration_ms(metrics.get("IOTimeRemote")) or 0.0
        if "SINK" in name:
            rows = metrics.get("RowsReturned") or metrics.get("NumSentRows")
            rows_returned += try_parse_number(rows) or 0
            bytes_sent += try_parse_bytes(metrics.get("BytesSent")) or 0

    return IoStatistics(
        raw_rows_read=raw_rows,
        bytes_read=bytes_read,
        pages_from_memory=pages_memory,
        pages_from_local_disk=pages_local,
        pages_from_remote=pages_remote,
        io_seek_time_ms=seek_ms,
        io_time_local_disk_ms=local_ms,
        io_time_remote_ms=remote_ms,
        rows_returned=rows_returned,
        bytes_sent=bytes_sent,
    )


def mark_diagnostics(
    tree: ExecutionTree, by_node: Mapping[int, tuple[Diagnostic, ...]]
) -> ExecutionTree:
    if not by_node:
        return tree
    nodes = []
    for node in tree.nodes:
        found = by_node.get(node.plan_node_id) if node.plan_node_id is not None else None
        if found:
            node = replace(
                node,
                has_diagnostic=True,
                diagnostic_ids=tuple(dict.fromkeys(d.rule_id for d in found)),
            )
        nodes.append(node)
    return replace(tree, nodes=tuple(nodes))
