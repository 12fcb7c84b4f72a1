from pathlib import Path
from unittest.mock import MagicMock

import pytest

from starrocks_profile_analyzer.core.analyzer import (
    AnalysisContext,
    AnalysisErrorKind,
    ProfileAnalysisError,
    ProfileAnalyzer,
    aggregate_io_statistics,
    apply_datacache_statistics,
    extract_datacache_bytes,
    mark_diagnostics,
)
from starrocks_profile_analyzer.domain import (
    AdaptiveThresholds,
    Diagnostic,
    ExecutionTree,
    ExecutionTreeNode,
    Locale,
    NodeType,
    ProfileSummary,
    RuleSeverity,
)
from starrocks_profile_analyzer.parser import ProfileComposer

FIXTURES = Path(__file__).parent.parent / "fixtures" / "profiles"
MIB = 1024**2

DATACACHE_SNIPPET = """
        CONNECTOR_SCAN (plan_node_id=0):
          UniqueMetrics:
             - DataCacheReadDiskBytes: 2.000 MB
             - DataCacheReadMemBytes: 1.000 MB
             - DataCacheSkipReadBytes: 0.000 B
             - FSIOBytesRead: 1.000 MB
"""


def load(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


@pytest.fixture
def analyzer() -> ProfileAnalyzer:
    return ProfileAnalyzer()


class TestProfileAnalyzer:
    def test_scan_profile(self, analyzer: ProfileAnalyzer) -> None:
        result = analyzer.analyze(load("scan_dominant.txt"), AnalysisContext(locale=Locale.EN))

        assert result.performance_score == 85.0
        assert {d.rule_id for d in result.diagnostics} == {"G001", "S003", "S008", "S010", "Q005"}
        assert result.conclusion.startswith("The query has 1 severe performance issue(s)")
        assert result.summary.query_id == "1a2b3c4d-0000-4000-8000-000000000001"
        assert result.root_cause_analysis.total_diagnostics == 5
        assert set(result.node_diagnostics) == {0}
        assert result.suggestions[-1] == "Keep table statistics up to date so the optimizer picks good plans"

    def test_scan_profile_marks_tree(self, analyzer: ProfileAnalyzer) -> None:
        result = analyzer.analyze(load("scan_dominant.txt"), AnalysisContext(locale=Locale.EN))

        scan = result.execution_tree.find_by_plan_node_id(0)
        sink = result.execution_tree.find_by_plan_node_id(-1)
        assert scan.has_diagnostic
        assert set(scan.diagnostic_ids) == {"G001", "S003", "S008", "S010"}
        assert not sink.has_diagnostic

    def test_scan_profile_io_statistics(self, analyzer: ProfileAnalyzer) -> None:
        io = analyzer.analyze(load("scan_dominant.txt"), AnalysisContext(locale=Locale.EN)).io_statistics

        assert io.raw_rows_read == 1_000_000
        assert io.bytes_read == 12 * MIB
        assert io.pages_from_memory == 10
        assert io.pages_from_local_disk == 90
        assert io.rows_returned == 1

    def test_chinese_output(self, analyzer: ProfileAnalyzer) -> None:
        result = analyzer.analyze(load("scan_dominant.txt"), AnalysisContext(locale=Locale.ZH))

        assert result.conclusion.startswith("查询存在1个严重性能问题")
        assert result.suggestions[-1] == "定期维护表统计信息以优化查询计划"

    def test_adaptive_query_time_threshold(self, analyzer: ProfileAnalyzer) -> None:
        context = AnalysisContext(locale=Locale.EN, thresholds=AdaptiveThresholds(query_time_ms=1_000.0))

        result = analyzer.analyze(load("scan_dominant.txt"), context)

        assert "Q001" in {d.rule_id for d in result.diagnostics}

    def test_cluster_variables_suppress_satisfied_parameters(self, analyzer: ProfileAnalyzer) -> None:
        plain = analyzer.analyze(load("scan_dominant.txt"), AnalysisContext(locale=Locale.EN))
        tuned = analyzer.analyze(
            load("scan_dominant.txt"),
            AnalysisContext(locale=Locale.EN, cluster_variables={"enable_scan_datacache": "true"}),
        )

        def q005_params(result) -> tuple[str, ...]:
            (q005,) = [d for d in result.diagnostics if d.rule_id == "Q005"]
            return tuple(p.name for p in q005.parameter_suggestions)

        assert "enable_scan_datacache" in q005_params(plain)
        assert "enable_scan_datacache" not in q005_params(tuned)

    def test_invalid_topology_still_analyzes(self, analyzer: ProfileAnalyzer) -> None:
        result = analyzer.analyze(load("invalid_topology.txt"), AnalysisContext(locale=Locale.EN))

        assert result.execution_tree.is_empty
        assert result.hotspots[0].node_path == "Fragment0.Pipeline0.OLAP_SCAN"
        assert result.performance_score == 80.0

    @pytest.mark.parametrize("text", ["", "  \n"])
    def test_empty_input(self, analyzer: ProfileAnalyzer, text: str) -> None:
        with pytest.raises(ProfileAnalysisError) as exc_info:
            analyzer.analyze(text)
        assert exc_info.value.kind is AnalysisErrorKind.EMPTY_INPUT

    def test_missing_execution_is_malformed(self, analyzer: ProfileAnalyzer) -> None:
        with pytest.raises(ProfileAnalysisError, match="profile parsing failed") as exc_info:
            analyzer.analyze(load("missing_execution.txt"))
        assert exc_info.value.kind is AnalysisErrorKind.MALFORMED

    def test_unexpected_composer_failure_is_internal(self) -> None:
        composer = MagicMock(spec=ProfileComposer)
        composer.parse.side_effect = KeyError("boom")

        with pytest.raises(ProfileAnalysisError) as exc_info:
            ProfileAnalyzer(composer=composer).analyze("Query:\n")

        assert exc_info.value.kind is AnalysisErrorKind.INTERNAL
        assert isinstance(exc_info.value.__cause__, KeyError)


class TestDatacacheStatistics:
    def test_extract_bytes(self) -> None:
        assert extract_datacache_bytes(DATACACHE_SNIPPET) == (3 * MIB, 1 * MIB)

    def test_local_disk_and_remote_counters(self) -> None:
        text = "  - CompressedBytesReadLocalDisk: 1.000 MB\n  - CompressedBytesReadRemote: 3.000 MB\n"
        assert extract_datacache_bytes(text) == (1 * MIB, 3 * MIB)

    def test_applies_hit_rate(self) -> None:
        summary = apply_datacache_statistics(ProfileSummary(), DATACACHE_SNIPPET)

        assert summary.datacache_hit_rate == 0.75
        assert summary.datacache_bytes_local == 3 * MIB
        assert summary.datacache_bytes_local_display == "3.00 MB"
        assert summary.datacache_bytes_remote_display == "1.00 MB"

    def test_no_datacache_metrics(self) -> None:
        summary = ProfileSummary(query_id="q")
        assert apply_datacache_statistics(summary, load("scan_dominant.txt")) is summary


class TestTreeHelpers:
    def test_io_statistics_of_empty_tree(self) -> None:
        io = aggregate_io_statistics(ExecutionTree())
        assert io.raw_rows_read == 0
        assert io.io_time_remote_ms == 0.0

    def test_io_statistics_sums_scans(self) -> None:
        nodes = tuple(
            ExecutionTreeNode(
                index=i,
                id=f"node_{i}",
                operator_name="CONNECTOR_SCAN",
                node_type=NodeType.CONNECTOR_SCAN,
                plan_node_id=i,
                unique_metrics={"RawRowsRead": "1,000", "IOTimeRemote": "1s500ms", "PagesCountRemote": "4"},
            )
            for i in range(2)
        )

        io = aggregate_io_statistics(ExecutionTree(root=0, nodes=nodes))

        assert io.raw_rows_read == 2_000
        assert io.io_time_remote_ms == 3_000.0
        assert io.pages_from_remote == 8

    def test_mark_diagnostics_without_findings_keeps_tree(self) -> None:
        tree = ExecutionTree()
        assert mark_diagnostics(tree, {}) is tree

    def test_mark_diagnostics_deduplicates_ids(self) -> None:
        tree = ExecutionTree(
            root=0,
            nodes=(
                ExecutionTreeNode(
                    index=0, id="node_3", operator_name="AGGREGATE", node_type=NodeType.AGGREGATE, plan_node_id=3
                ),
            ),
        )
        found = tuple(
            Diagnostic(rule_id=rule_id, rule_name="", severity=RuleSeverity.WARNING, node_path=path, message="")
            for rule_id, path in (("A002", "a"), ("A002", "b"), ("G001", "a"))
        )

        marked = mark_diagnostics(tree, {3: found})

        assert marked.nodes[0].diagnostic_ids == ("A002", "G001")
        assert marked.nodes[0].has_diagnostic
