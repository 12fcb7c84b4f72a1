from pathlib import Path

import pytest

from starrocks_profile_analyzer.analyzers import (
    RuleEngine,
    RuleEngineConfig,
    RuleRegistry,
    node_diagnostics,
)
from starrocks_profile_analyzer.analyzers.rules.common import MostConsumingRule
from starrocks_profile_analyzer.domain import (
    Diagnostic,
    ExecutionTree,
    ExecutionTreeNode,
    Locale,
    NodeType,
    ParameterSuggestion,
    ParameterType,
    Profile,
    ProfileSummary,
    RuleSeverity,
)
from starrocks_profile_analyzer.parser import ProfileComposer

FIXTURES = Path(__file__).parent.parent / "fixtures" / "profiles"


def make_diagnostic(
    rule_id: str,
    severity: RuleSeverity = RuleSeverity.WARNING,
    node_path: str = "OLAP_SCAN (plan_node_id=0)",
    plan_node_id: int | None = 0,
    rule_name: str | None = None,
    message: str | None = None,
    **kwargs,
) -> Diagnostic:
    return Diagnostic(
        rule_id=rule_id,
        rule_name=rule_name or f"Rule {rule_id}",
        severity=severity,
        node_path=node_path,
        plan_node_id=plan_node_id,
        message=message or f"{rule_id} fired",
        **kwargs,
    )


def spill_parameter() -> ParameterSuggestion:
    return ParameterSuggestion(
        name="enable_spill",
        param_type=ParameterType.SESSION,
        recommended="true",
        command="SET enable_spill = true;",
    )


class ExplodingRule:
    rule_id = "X001"

    def name(self, locale: Locale = Locale.EN) -> str:
        return "Exploding"

    def applicable_to(self, node: ExecutionTreeNode) -> bool:
        return True

    def evaluate(self, ctx) -> Diagnostic | None:
        raise RuntimeError("boom")


def single_node_profile(time_percentage: float) -> Profile:
    node = ExecutionTreeNode(
        index=0,
        id="node_0",
        operator_name="OLAP_SCAN",
        node_type=NodeType.OLAP_SCAN,
        plan_node_id=0,
        time_percentage=time_percentage,
    )
    return Profile(summary=ProfileSummary(), execution_tree=ExecutionTree(root=0, nodes=(node,)))


class TestRuleRegistry:
    def test_default_catalog(self) -> None:
        registry = RuleRegistry.default()

        assert "G001" in registry
        assert "Q001" in registry
        assert "F001" in registry
        assert "Z999" not in registry
        assert len(registry) == len(registry.node_rules) + len(registry.query_rules) + len(
            registry.fragment_rules
        )
        assert registry.node_rules[0].rule_id == "G001"
        assert registry.query_rules[0].rule_id == "Q001"

    def test_rule_ids_are_unique(self) -> None:
        registry = RuleRegistry()
        registry.register(MostConsumingRule())

        with pytest.raises(ValueError, match="G001"):
            registry.register(MostConsumingRule())

    def test_get(self) -> None:
        registry = RuleRegistry.default()
        assert registry.get("J003").rule_id == "J003"
        assert registry.get("nope") is None
        assert 42 not in registry


class TestFinalize:
    def test_orders_by_severity(self) -> None:
        engine = RuleEngine()
        result = engine.finalize(
            [
                make_diagnostic("S008", RuleSeverity.INFO),
                make_diagnostic("G001", RuleSeverity.ERROR),
                make_diagnostic("S003", RuleSeverity.WARNING),
            ]
        )
        assert [d.rule_id for d in result] == ["G001", "S003", "S008"]

    def test_min_severity(self) -> None:
        engine = RuleEngine(RuleEngineConfig(min_severity=RuleSeverity.WARNING))
        result = engine.finalize(
            [make_diagnostic("S008", RuleSeverity.INFO), make_diagnostic("S003")]
        )
        assert [d.rule_id for d in result] == ["S003"]

    def test_deduplicates_by_rule_and_node(self) -> None:
        engine = RuleEngine()
        result = engine.finalize(
            [
                make_diagnostic("S003", message="first"),
                make_diagnostic("S003", message="second"),
                make_diagnostic("S003", node_path="OLAP_SCAN (plan_node_id=1)", plan_node_id=1),
            ]
        )
        assert len(result) == 2
        assert result[0].message == "first"

    def test_caps_result_count(self) -> None:
        engine = RuleEngine(RuleEngineConfig(max_suggestions=2))
        candidates = [make_diagnostic("S003", node_path=f"node {i}") for i in range(5)]
        assert len(engine.finalize(candidates)) == 2

    def test_can_strip_parameter_suggestions(self) -> None:
        engine = RuleEngine(RuleEngineConfig(include_parameters=False))
        diagnostic = make_diagnostic("J003", parameter_suggestions=(spill_parameter(),))

        (result,) = engine.finalize([diagnostic])

        assert result.parameter_suggestions == ()


class TestAnalyze:
    def test_failing_rule_is_skipped(self) -> None:
        registry = RuleRegistry()
        registry.register(ExplodingRule())
        registry.register(MostConsumingRule())

        diagnostics = RuleEngine(registry=registry).analyze(single_node_profile(90.0))

        assert [d.rule_id for d in diagnostics] == ["G001"]

    def test_profile_without_tree(self) -> None:
        registry = RuleRegistry()
        registry.register(MostConsumingRule())
        profile = Profile(summary=ProfileSummary())

        assert RuleEngine(registry=registry).analyze(profile) == []

    def test_join_profile(self) -> None:
        text = (FIXTURES / "join_memory.txt").read_text(encoding="utf-8")
        profile = ProfileComposer().parse(text)

        diagnostics = RuleEngine().analyze(profile)

        assert [d.rule_id for d in diagnostics] == ["G001", "G002", "J003", "G001b", "G001b", "J004"]
        assert diagnostics[0].plan_node_id == 4
        assert diagnostics[1].parameter_suggestions[0].recommended == str(4 * 1024**3)


class TestAggregateDiagnostics:
    def test_groups_by_rule(self) -> None:
        diagnostics = [
            make_diagnostic("G001b", node_path="OLAP_SCAN (plan_node_id=1)", suggestions=("a", "b")),
            make_diagnostic("G001", RuleSeverity.ERROR),
            make_diagnostic("G001b", node_path="OLAP_SCAN (plan_node_id=2)", suggestions=("b", "c")),
        ]

        aggregated = RuleEngine.aggregate_diagnostics(diagnostics)

        assert [a.rule_id for a in aggregated] == ["G001", "G001b"]
        folded = aggregated[1]
        assert folded.node_count == 2
        assert folded.message == "2 nodes have this issue"
        assert folded.affected_nodes == ("OLAP_SCAN (plan_node_id=1)", "OLAP_SCAN (plan_node_id=2)")
        assert folded.suggestions == ("a", "b", "c")

    def test_single_node_keeps_message(self) -> None:
        (aggregated,) = RuleEngine.aggregate_diagnostics([make_diagnostic("S003", message="kept")])
        assert aggregated.message == "kept"

    def test_first_parameter_suggestions_win(self) -> None:
        diagnostics = [
            make_diagnostic("J003", node_path="a"),
            make_diagnostic("J003", node_path="b", parameter_suggestions=(spill_parameter(),)),
        ]
        (aggregated,) = RuleEngine.aggregate_diagnostics(diagnostics)
        assert aggregated.parameter_suggestions[0].name == "enable_spill"

    def test_chinese_count_message(self) -> None:
        diagnostics = [make_diagnostic("S003", node_path="a"), make_diagnostic("S003", node_path="b")]
        (aggregated,) = RuleEngine.aggregate_diagnostics(diagnostics, Locale.ZH)
        assert aggregated.message == "2 个节点存在此问题"


class TestGenerateConclusion:
    def test_no_diagnostics(self) -> None:
        profile = Profile(summary=ProfileSummary())
        assert RuleEngine.generate_conclusion([], profile) == (
            "The query executes well, no significant performance issues found."
        )

    def test_severe_issues(self) -> None:
        profile = Profile(summary=ProfileSummary(total_time_ms=8100.0))
        diagnostics = [make_diagnostic("G001", RuleSeverity.ERROR, rule_name="Operator time share too high")]

        conclusion = RuleEngine.generate_conclusion(diagnostics, profile)

        assert conclusion == (
            "The query has 1 severe performance issue(s), execution time 8.1 s. "
            "The main issue is Operator time share too high. Address the severe issues first."
        )

    def test_many_warnings(self) -> None:
        profile = Profile(summary=ProfileSummary(total_time="2m"))
        diagnostics = [make_diagnostic(f"S00{i}") for i in range(3)]

        conclusion = RuleEngine.generate_conclusion(diagnostics, profile)

        assert conclusion == (
            "The query has 3 moderate performance issues and needs optimization. Execution time 2 min."
        )

    def test_long_running(self) -> None:
        profile = Profile(summary=ProfileSummary(total_time_ms=600_000.0))
        conclusion = RuleEngine.generate_conclusion([make_diagnostic("Q001")], profile)
        assert conclusion == "The query runs long (10 min), review the performance hotspots."

    def test_minor_issues(self) -> None:
        profile = Profile(summary=ProfileSummary(total_time_ms=1000.0))
        conclusion = RuleEngine.generate_conclusion([make_diagnostic("S008", RuleSeverity.INFO)], profile)
        assert conclusion == "Found 1 minor issue(s), overall performance is acceptable."

    def test_chinese(self) -> None:
        profile = Profile(summary=ProfileSummary(total_time_ms=1000.0))
        conclusion = RuleEngine.generate_conclusion([make_diagnostic("S008")], profile, Locale.ZH)
        assert conclusion == "查询发现1个小问题，整体性能可接受。"


class TestNodeDiagnostics:
    def test_groups_by_plan_node(self) -> None:
        diagnostics = [
            make_diagnostic("G001", plan_node_id=4),
            make_diagnostic("Q001", node_path="Query", plan_node_id=None),
            make_diagnostic("J003", plan_node_id=4),
            make_diagnostic("S003", plan_node_id=1),
        ]

        grouped = node_diagnostics(diagnostics)

        assert set(grouped) == {4, 1}
        assert [d.rule_id for d in grouped[4]] == ["G001", "J003"]
