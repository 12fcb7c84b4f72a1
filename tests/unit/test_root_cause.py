from pathlib import Path

import pytest

from starrocks_profile_analyzer.analyzers import RootCauseEngine, RuleEngine
from starrocks_profile_analyzer.domain import (
    Diagnostic,
    ExecutionTree,
    ExecutionTreeNode,
    Locale,
    NodeType,
    RuleSeverity,
)
from starrocks_profile_analyzer.parser import ProfileComposer

FIXTURES = Path(__file__).parent.parent / "fixtures" / "profiles"

SCAN = "OLAP_SCAN (plan_node_id=0)"
JOIN = "HASH_JOIN (plan_node_id=1)"
AGG = "AGGREGATE (plan_node_id=2)"


def diag(
    rule_id: str,
    node_path: str,
    severity: RuleSeverity = RuleSeverity.WARNING,
) -> Diagnostic:
    return Diagnostic(
        rule_id=rule_id,
        rule_name=f"Rule {rule_id}",
        severity=severity,
        node_path=node_path,
        message=f"{rule_id} on {node_path}",
    )


@pytest.fixture
def pipeline_tree() -> ExecutionTree:
    """AGGREGATE(2) <- HASH_JOIN(1) <- OLAP_SCAN(0)."""
    return ExecutionTree(
        root=0,
        nodes=(
            ExecutionTreeNode(
                index=0, id="node_2", operator_name="AGGREGATE", node_type=NodeType.AGGREGATE,
                plan_node_id=2, children=(1,),
            ),
            ExecutionTreeNode(
                index=1, id="node_1", operator_name="HASH_JOIN", node_type=NodeType.HASH_JOIN,
                plan_node_id=1, children=(2,), parent=0, depth=1,
            ),
            ExecutionTreeNode(
                index=2, id="node_0", operator_name="OLAP_SCAN", node_type=NodeType.OLAP_SCAN,
                plan_node_id=0, parent=1, depth=2,
            ),
        ),
    )


def analyze_fixture(name: str):
    profile = ProfileComposer().parse((FIXTURES / name).read_text(encoding="utf-8"))
    diagnostics = RuleEngine().analyze(profile)
    return RootCauseEngine().analyze(diagnostics, profile.execution_tree)


class TestRootCauseEngine:
    def test_no_diagnostics(self) -> None:
        analysis = RootCauseEngine().analyze([])

        assert analysis.root_causes == ()
        assert analysis.total_diagnostics == 0
        assert analysis.summary == "No clear root cause was found"

    def test_no_diagnostics_chinese(self) -> None:
        assert RootCauseEngine(Locale.ZH).analyze([]).summary == "未发现明显的性能问题根因"

    def test_single_root_without_symptoms(self) -> None:
        analysis = RootCauseEngine().analyze([diag("Q001", "Query")])

        (root,) = analysis.root_causes
        assert root.id == "RC001"
        assert root.impact_score == 25.0
        assert root.symptoms == ()
        assert analysis.summary == "Found 1 root cause: Q001 on Query"
        assert analysis.causal_chains == ()

    def test_intra_node_cause(self) -> None:
        diagnostics = [diag("G001", SCAN, RuleSeverity.ERROR), diag("S003", SCAN)]

        analysis = RootCauseEngine().analyze(diagnostics)

        (root,) = analysis.root_causes
        assert root.rule_id == "S003"
        assert root.symptoms == ("G001",)
        assert root.impact_score == 35.0
        assert analysis.summary == (
            f"Found 1 root cause: S003 on {SCAN}, which leads to 1 downstream issue(s)"
        )
        (chain,) = analysis.causal_chains
        assert chain.chain == ("S003", "G001")
        assert chain.explanation == "The node is the most time-consuming because of this problem"

    def test_intra_node_causes_need_same_node(self) -> None:
        diagnostics = [diag("G001", JOIN, RuleSeverity.ERROR), diag("S003", SCAN)]
        analysis = RootCauseEngine().analyze(diagnostics)
        assert len(analysis.root_causes) == 2

    def test_propagates_from_descendant(self, pipeline_tree: ExecutionTree) -> None:
        diagnostics = [diag("J001", JOIN, RuleSeverity.ERROR), diag("S003", SCAN)]

        analysis = RootCauseEngine().analyze(diagnostics, pipeline_tree)

        (root,) = analysis.root_causes
        assert root.rule_id == "S003"
        (chain,) = analysis.causal_chains
        assert chain.chain == ("S003", "J001")
        assert chain.explanation == "Rule S003 sends too much data to Rule J001"

    def test_no_propagation_from_ancestor(self, pipeline_tree: ExecutionTree) -> None:
        diagnostics = [diag("J001", SCAN, RuleSeverity.ERROR), diag("S003", JOIN)]
        analysis = RootCauseEngine().analyze(diagnostics, pipeline_tree)
        assert {root.rule_id for root in analysis.root_causes} == {"J001", "S003"}

    def test_node_propagation_needs_tree(self) -> None:
        diagnostics = [diag("J001", JOIN, RuleSeverity.ERROR), diag("S003", SCAN)]
        analysis = RootCauseEngine().analyze(diagnostics)
        assert len(analysis.root_causes) == 2

    def test_query_level_effect_needs_no_tree(self) -> None:
        diagnostics = [diag("Q002", "Query"), diag("J003", JOIN)]

        analysis = RootCauseEngine().analyze(diagnostics)

        (root,) = analysis.root_causes
        assert root.rule_id == "J003"
        assert analysis.causal_chains[0].explanation == "Rule J003 drives memory pressure behind Rule Q002"

    def test_roots_ranked_by_impact(self) -> None:
        diagnostics = [
            diag("S008", SCAN, RuleSeverity.INFO),
            diag("Q001", "Query"),
            diag("J009", JOIN, RuleSeverity.ERROR),
        ]

        analysis = RootCauseEngine().analyze(diagnostics)

        assert [root.rule_id for root in analysis.root_causes] == ["J009", "Q001", "S008"]
        assert [root.id for root in analysis.root_causes] == ["RC001", "RC002", "RC003"]
        assert analysis.summary == (
            "Found 3 independent root causes, mainly J009, Q001, S008. Address them in priority order"
        )

    def test_chains_are_bounded(self, pipeline_tree: ExecutionTree) -> None:
        diagnostics = [
            diag("S008", SCAN, RuleSeverity.INFO),
            diag("S003", SCAN),
            diag("J001", JOIN, RuleSeverity.ERROR),
            diag("A002", AGG),
            diag("Q003", "Query", RuleSeverity.INFO),
        ]

        analysis = RootCauseEngine().analyze(diagnostics, pipeline_tree)

        (root,) = analysis.root_causes
        assert root.rule_id == "S008"
        assert root.symptoms == ("S003",)
        chains = {chain.chain for chain in analysis.causal_chains}
        assert ("S008", "S003", "J001", "A002") in chains
        assert all(len(chain) <= 4 for chain in chains)

    def test_scan_fixture(self) -> None:
        analysis = analyze_fixture("scan_dominant.txt")

        assert [root.rule_id for root in analysis.root_causes] == ["Q005", "S008", "S010"]
        assert all(root.impact_score == 25.0 for root in analysis.root_causes)
        assert {chain.chain for chain in analysis.causal_chains} == {
            ("S008", "S003", "G001"),
            ("S010", "S003", "G001"),
        }
        assert analysis.total_diagnostics == 5

    def test_join_fixture(self) -> None:
        analysis = analyze_fixture("join_memory.txt")

        first = analysis.root_causes[0]
        assert first.rule_id == "J003"
        assert first.impact_score == 35.0
        assert first.symptoms == ("G001",)
        assert analysis.summary == (
            "Found 5 independent root causes, mainly J003, G002, G001b. Address them in priority order"
        )
