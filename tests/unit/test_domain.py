from dataclasses import FrozenInstanceError

import pytest

from starrocks_profile_analyzer.domain import (
    AnalysisReport,
    Diagnostic,
    ExecutionTree,
    ExecutionTreeNode,
    HotSeverity,
    Locale,
    NodeType,
    OperatorMetrics,
    ParameterSuggestion,
    ParameterType,
    ProfileAnalysisResult,
    ProfileDocument,
    ProfileSummary,
    RuleSeverity,
    TopologyGraph,
    TopologyNode,
)


def node(index: int, name: str, plan_node_id: int, parent: int | None = None, children: tuple[int, ...] = ()) -> ExecutionTreeNode:
    return ExecutionTreeNode(
        index=index,
        id=f"node_{plan_node_id}",
        operator_name=name,
        node_type=NodeType.UNKNOWN,
        plan_node_id=plan_node_id,
        parent=parent,
        children=children,
    )


def result(*diagnostics: Diagnostic, summary: ProfileSummary | None = None) -> ProfileAnalysisResult:
    return ProfileAnalysisResult(
        hotspots=(),
        conclusion="",
        suggestions=(),
        performance_score=100.0,
        summary=summary,
        diagnostics=diagnostics,
    )


class TestLocale:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, Locale.EN), ("", Locale.EN), ("en", Locale.EN), ("zh", Locale.ZH), ("zh_CN", Locale.ZH), ("fr", Locale.EN)],
    )
    def test_parse(self, value: str | None, expected: Locale) -> None:
        assert Locale.parse(value) is expected

    def test_pick(self) -> None:
        assert Locale.EN.pick("hello", "你好") == "hello"
        assert Locale.ZH.pick("hello", "你好") == "你好"


class TestSeverity:
    def test_rule_severity_ordering(self) -> None:
        assert RuleSeverity.ERROR > RuleSeverity.WARNING > RuleSeverity.INFO

    def test_to_hot_severity(self) -> None:
        assert RuleSeverity.ERROR.to_hot_severity() is HotSeverity.SEVERE
        assert RuleSeverity.WARNING.to_hot_severity() is HotSeverity.MODERATE
        assert RuleSeverity.INFO.to_hot_severity() is HotSeverity.MILD

    def test_parse(self) -> None:
        assert RuleSeverity.parse(" warning ") is RuleSeverity.WARNING

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown rule severity"):
            RuleSeverity.parse("fatal")


class TestDiagnostic:
    def test_is_immutable(self) -> None:
        diagnostic = Diagnostic(
            rule_id="S003", rule_name="Poor filter", severity=RuleSeverity.WARNING, node_path="Query", message="m"
        )
        with pytest.raises(FrozenInstanceError):
            diagnostic.message = "changed"

    def test_to_hotspot(self) -> None:
        diagnostic = Diagnostic(
            rule_id="J003",
            rule_name="Hash table memory",
            severity=RuleSeverity.ERROR,
            node_path="HASH_JOIN (plan_node_id=4)",
            message="Hash table uses 1.50 GB",
            suggestions=("Enable spilling",),
            parameter_suggestions=(
                ParameterSuggestion(
                    name="enable_spill",
                    param_type=ParameterType.SESSION,
                    recommended="true",
                    command="SET enable_spill = true;",
                ),
            ),
        )

        hotspot = diagnostic.to_hotspot()

        assert diagnostic.dedup_key == ("J003", "HASH_JOIN (plan_node_id=4)")
        assert hotspot.severity is HotSeverity.SEVERE
        assert hotspot.issue_type == "J003"
        assert hotspot.suggestions == (
            "Enable spilling",
            "Adjust parameter: enable_spill → true (command: SET enable_spill = true;)",
        )


class TestExecutionTree:
    @pytest.fixture
    def tree(self) -> ExecutionTree:
        return ExecutionTree(
            root=0,
            nodes=(
                node(0, "RESULT_SINK", -1, children=(1,)),
                node(1, "HASH_JOIN", 2, parent=0, children=(2, 3)),
                node(2, "OLAP_SCAN", 0, parent=1),
                node(3, "EXCHANGE_SOURCE", 1, parent=1),
            ),
        )

    def test_navigation(self, tree: ExecutionTree) -> None:
        join = tree.find_by_plan_node_id(2)

        assert tree.root_node.operator_name == "RESULT_SINK"
        assert [child.operator_name for child in tree.children_of(join)] == ["OLAP_SCAN", "EXCHANGE_SOURCE"]
        assert tree.parent_of(join) is tree.root_node
        assert tree.parent_of(tree.root_node) is None
        assert tree.find_by_plan_node_id(99) is None

    def test_find_by_path(self, tree: ExecutionTree) -> None:
        assert tree.find_by_path("OLAP_SCAN (plan_node_id=0)").index == 2
        assert tree.find_by_path("Query") is None

    def test_is_descendant(self, tree: ExecutionTree) -> None:
        scan, join, sink = tree.nodes[2], tree.nodes[1], tree.nodes[0]

        assert tree.is_descendant(scan, join)
        assert tree.is_descendant(scan, sink)
        assert not tree.is_descendant(join, scan)
        assert not tree.is_descendant(scan, scan)

    def test_empty_tree(self) -> None:
        tree = ExecutionTree()
        assert tree.is_empty
        assert tree.root_node is None
        assert len(tree) == 0

    def test_node_path_without_plan_node_id(self) -> None:
        orphan = ExecutionTreeNode(index=0, id="x", operator_name="MERGE_EXCHANGE", node_type=NodeType.UNKNOWN)
        assert orphan.node_path == "MERGE_EXCHANGE (plan_node_id=-1)"


class TestModels:
    def test_operator_time_in_ms(self) -> None:
        assert OperatorMetrics(operator_total_time=1_500_000).operator_total_time_ms == 1.5
        assert OperatorMetrics().operator_total_time_ms is None

    def test_topology_effective_root(self) -> None:
        graph = TopologyGraph(root_id=3, nodes=(TopologyNode(id=3, name="HASH_JOIN"),))
        assert graph.effective_root_id == 3
        assert graph.get(3).name == "HASH_JOIN"
        assert graph.get(7) is None

        with_sink = TopologyGraph(root_id=3, nodes=graph.nodes, sink_id=-1)
        assert with_sink.effective_root_id == -1


class TestAnalysisReport:
    def test_query_id_prefers_profile_summary(self) -> None:
        report = AnalysisReport(
            document=ProfileDocument(text="", query_id="from-file"),
            result=result(summary=ProfileSummary(query_id="from-profile")),
        )
        assert report.query_id == "from-profile"

    def test_query_id_falls_back_to_document(self) -> None:
        report = AnalysisReport(document=ProfileDocument(text="", query_id="from-file"), result=result())
        assert report.query_id == "from-file"
        assert report.timestamp.tzinfo is not None

    def test_max_severity(self) -> None:
        info = Diagnostic(rule_id="S008", rule_name="", severity=RuleSeverity.INFO, node_path="a", message="")
        error = Diagnostic(rule_id="G001", rule_name="", severity=RuleSeverity.ERROR, node_path="b", message="")

        assert AnalysisReport(document=ProfileDocument(text=""), result=result()).max_severity is None
        assert AnalysisReport(document=ProfileDocument(text=""), result=result(info, error)).max_severity is RuleSeverity.ERROR
