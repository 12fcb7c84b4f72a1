"""Root-cause analysis over rule-engine diagnostics.

Diagnostics become vertices of a causal graph. Edges come from two fixed
tables: causes that explain an effect on the same node, and problems that
propagate from an upstream node to a downstream consumer. Diagnostics with
no incoming edge are reported as root causes.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from starrocks_profile_analyzer.domain import (
    CausalChain,
    Diagnostic,
    ExecutionTree,
    Locale,
    PropagationMode,
    RootCause,
    RootCauseAnalysis,
    RuleSeverity,
)

QUERY_PATH = "Query"
MAX_CHAIN_DEPTH = 3
FALLBACK_ROOT_COUNT = 3

BASE_IMPACT: dict[RuleSeverity, float] = {
    RuleSeverity.ERROR: 40.0,
    RuleSeverity.WARNING: 25.0,
    RuleSeverity.INFO: 15.0,
}
SYMPTOM_BONUS = 10.0


@dataclass(frozen=True, slots=True)
class IntraNodeCause:
    causes: tuple[str, ...]
    effect: str
    en: str
    zh: str


@dataclass(frozen=True, slots=True)
class PropagationRule:
    upstream: tuple[str, ...]
    downstream: tuple[str, ...]
    mode: PropagationMode


INTRA_NODE_CAUSES: tuple[IntraNodeCause, ...] = (
    IntraNodeCause(("S006",), "S007", "Rowset fragmentation causes an IO bottleneck", "Rowset 碎片化导致 IO 瓶颈"),
    IntraNodeCause(("S009",), "S007", "A low cache hit rate causes an IO bottleneck", "缓存命中率低导致 IO 瓶颈"),
    IntraNodeCause(
        ("S008", "S010", "S004"),
        "S003",
        "Indexes and filters that do not take effect cause poor filtering",
        "索引或过滤条件未生效导致过滤效果差",
    ),
    IntraNodeCause(("S001",), "G003", "Data skew causes execution time skew", "数据倾斜导致执行时间倾斜"),
    IntraNodeCause(("J002",), "J001", "A suboptimal join order inflates the join output", "Join 顺序不优导致结果膨胀"),
    IntraNodeCause(("J002",), "J003", "A suboptimal join order makes the hash table too large", "Join 顺序不优导致 Hash 表过大"),
    IntraNodeCause(("A003", "A004"), "A002", "Skewed or high-cardinality grouping makes the hash table too large", "分组倾斜或分组过多导致 Hash 表过大"),
    IntraNodeCause(("T001",), "T003", "Sorting too many rows drives the sort memory up", "排序行数过多导致排序内存过高"),
    IntraNodeCause(("T003",), "T002", "High sort memory forces a spill to disk", "排序内存过高导致落盘"),
    IntraNodeCause(
        ("S003", "S007", "J001", "J003", "A002", "A004", "T001", "E001"),
        "G001",
        "The node is the most time-consuming because of this problem",
        "该问题导致此节点成为最耗时节点",
    ),
)

PROPAGATION_RULES: tuple[PropagationRule, ...] = (
    PropagationRule(("S001",), ("G003", "J006", "A001", "A003"), PropagationMode.SKEW),
    PropagationRule(("S003",), ("J001", "A002", "J003", "A004", "T001"), PropagationMode.DATA_VOLUME),
    PropagationRule(("J001",), ("A002", "T001"), PropagationMode.DATA_VOLUME),
    PropagationRule(("J001", "A002", "J003"), ("Q003",), PropagationMode.MEMORY),
    PropagationRule(("J003", "A002", "T003"), ("Q002",), PropagationMode.MEMORY),
    PropagationRule(("S007", "S009"), ("Q005",), PropagationMode.IO_WAIT),
    PropagationRule(("E002",), ("Q006",), PropagationMode.DATA_VOLUME),
)

_MODE_TEXT: dict[PropagationMode, tuple[str, str]] = {
    PropagationMode.DATA_VOLUME: (
        "{cause} sends too much data to {effect}",
        "{cause} 产生的数据量过大，导致 {effect}",
    ),
    PropagationMode.SKEW: (
        "{cause} propagates skew to {effect}",
        "{cause} 的数据倾斜传导到 {effect}",
    ),
    PropagationMode.MEMORY: (
        "{cause} drives memory pressure behind {effect}",
        "{cause} 的内存占用导致 {effect}",
    ),
    PropagationMode.IO_WAIT: (
        "{cause} makes the query wait on IO ({effect})",
        "{cause} 导致查询等待 IO（{effect}）",
    ),
}


@dataclass(frozen=True, slots=True)
class CausalEdge:
    cause: int
    effect: int
    explanation: str


class RootCauseEngine:
    """Builds the causal graph between diagnostics and ranks its roots."""

    def __init__(self, locale: Locale = Locale.EN) -> None:
        self._locale = locale

    def analyze(
        self,
        diagnostics: Sequence[Diagnostic],
        tree: ExecutionTree | None = None,
    ) -> RootCauseAnalysis:
        if not diagnostics:
            return RootCauseAnalysis(summary=self._summary([]))

        edges = [*self._intra_node_edges(diagnostics), *self._propagation_edges(diagnostics, tree)]
        roots = self._root_causes(diagnostics, edges)
        chains = self._causal_chains(diagnostics, roots, edges)

        return RootCauseAnalysis(
            root_causes=tuple(cause for cause, _ in roots),
            causal_chains=tuple(chains),
            summary=self._summary([cause for cause, _ in roots]),
            total_diagnostics=len(diagnostics),
        )

    def _intra_node_edges(self, diagnostics: Sequence[Diagnostic]) -> list[CausalEdge]:
        by_node: dict[str, dict[str, int]] = {}
        for index, diagnostic in enumerate(diagnostics):
            by_node.setdefault(diagnostic.node_path, {}).setdefault(diagnostic.rule_id, index)

        edges = []
        for rules in by_node.values():
            for entry in INTRA_NODE_CAUSES:
                effect = rules.get(entry.effect)
                if effect is None:
                    continue
                for cause_id in entry.causes:
                    cause = rules.get(cause_id)
                    if cause is not None:
                        edges.append(CausalEdge(cause, effect, self._locale.pick(entry.en, entry.zh)))
        return edges

    def _propagation_edges(
        self, diagnostics: Sequence[Diagnostic], tree: ExecutionTree | None
    ) -> list[CausalEdge]:
        edges = []
        for rule in PROPAGATION_RULES:
            for effect, downstream in enumerate(diagnostics):
                if downstream.rule_id not in rule.downstream:
                    continue
                for cause, upstream in enumerate(diagnostics):
                    if upstream.rule_id not in rule.upstream:
                        continue
                    if not self._feeds(upstream, downstream, tree):
                        continue
                    en, zh = _MODE_TEXT[rule.mode]
                    template = self._locale.pick(en, zh)
                    edges.append(
                        CausalEdge(
                            cause,
                            effect,
                            template.format(cause=upstream.rule_name, effect=downstream.rule_name),
                        )
                    )
        return edges

    @staticmethod
    def _feeds(upstream: Diagnostic, downstream: Diagnostic, tree: ExecutionTree | None) -> bool:
        """True when the upstream diagnostic's node produces data for the downstream one."""
        if downstream.node_path == QUERY_PATH:
            return upstream.node_path != QUERY_PATH
        if tree is None:
            return False
        upstream_node = tree.find_by_path(upstream.node_path)
        downstream_node = tree.find_by_path(downstream.node_path)
        if upstream_node is None or downstream_node is None:
            return False
        return tree.is_descendant(upstream_node, downstream_node)

    @staticmethod
    def _root_causes(
        diagnostics: Sequence[Diagnostic], edges: list[CausalEdge]
    ) -> list[tuple[RootCause, int]]:
        explained = {edge.effect for edge in edges}
        roots = [index for index in range(len(diagnostics)) if index not in explained]
        if not roots:
            roots = list(range(min(FALLBACK_ROOT_COUNT, len(diagnostics))))

        ranked = []
        for index in roots:
            diagnostic = diagnostics[index]
            symptoms = list(
                dict.fromkeys(diagnostics[e.effect].rule_id for e in edges if e.cause == index)
            )
            impact = min(BASE_IMPACT[diagnostic.severity] + SYMPTOM_BONUS * len(symptoms), 100.0)
            ranked.append((index, impact, tuple(symptoms)))
        ranked.sort(key=lambda item: item[1], reverse=True)

        causes = []
        for position, (index, impact, symptoms) in enumerate(ranked, start=1):
            diagnostic = diagnostics[index]
            causes.append(
                (
                    RootCause(
                        id=f"RC{position:03d}",
                        rule_id=diagnostic.rule_id,
                        rule_name=diagnostic.rule_name,
                        node_path=diagnostic.node_path,
                        description=diagnostic.message,
                        impact_score=impact,
                        confidence=1.0,
                        symptoms=symptoms,
                        suggestions=diagnostic.suggestions,
                    ),
                    index,
                )
            )
        return causes

    @staticmethod
    def _causal_chains(
        diagnostics: Sequence[Diagnostic],
        roots: list[tuple[RootCause, int]],
        edges: list[CausalEdge],
    ) -> list[CausalChain]:
        outgoing: dict[int, list[CausalEdge]] = {}
        for edge in edges:
            outgoing.setdefault(edge.cause, []).append(edge)

        chains = []
        for cause, index in roots:
            for path in _paths_from(index, outgoing):
                chains.append(
                    CausalChain(
                        root_cause_id=cause.id,
                        chain=tuple(diagnostics[edge.cause].rule_id for edge in path)
                        + (diagnostics[path[-1].effect].rule_id,),
                        explanation="; ".join(dict.fromkeys(edge.explanation for edge in path)),
                    )
                )
        return chains

    def _summary(self, roots: list[RootCause]) -> str:
        locale = self._locale
        if not roots:
            return locale.pick("No clear root cause was found", "未发现明显的性能问题根因")
        if len(roots) == 1:
            root = roots[0]
            if not root.symptoms:
                return locale.pick(f"Found 1 root cause: {root.description}", f"发现 1 个根因: {root.description}")
            return locale.pick(
                f"Found 1 root cause: {root.description}, which leads to {len(root.symptoms)} downstream issue(s)",
                f"发现 1 个根因: {root.description}，导致了 {len(root.symptoms)} 个下游问题",
            )
        top = ", ".join(root.rule_id for root in roots[:3])
        return locale.pick(
            f"Found {len(roots)} independent root causes, mainly {top}. Address them in priority order",
            f"发现 {len(roots)} 个独立根因，主要包括: {top}。建议按优先级依次解决",
        )


def _paths_from(start: int, outgoing: dict[int, list[CausalEdge]]) -> list[list[CausalEdge]]:
    """All maximal edge paths from ``start``, at most ``MAX_CHAIN_DEPTH`` edges long."""
    paths: list[list[CausalEdge]] = []

    def walk(current: int, path: list[CausalEdge], visited: set[int]) -> None:
        candidates = [edge for edge in outgoing.get(current, ()) if edge.effect not in visited]
        if not candidates or len(path) >= MAX_CHAIN_DEPTH:
            if path:
                paths.append(list(path))
            return
        for edge in candidates:
            path.append(edge)
            visited.add(edge.effect)
            walk(edge.effect, path, visited)
            visited.discard(edge.effect)
            path.pop()

    walk(start, [], {start})
    return paths
