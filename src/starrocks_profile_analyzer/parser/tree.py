from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import ClassVar

from starrocks_profile_analyzer.domain import (
    ExecutionTree,
    ExecutionTreeNode,
    Fragment,
    Operator,
    OperatorMetrics,
    ProfileSummary,
    TopNode,
    TopologyGraph,
    TopologyNode,
)
from starrocks_profile_analyzer.parser.operators import OperatorParser
from starrocks_profile_analyzer.parser.values import format_duration_ms, try_parse_duration


@dataclass(frozen=True, slots=True)
class _PlacedOperator:
    fragment_id: str
    pipeline_id: str
    operator: Operator


class TreeBuilder:
    """Merges the topology graph with per-operator metrics into an arena tree."""

    TOP_NODES_LIMIT: ClassVar[int] = 3

    def __init__(
        self,
        graph: TopologyGraph,
        fragments: Sequence[Fragment],
        summary: ProfileSummary,
    ) -> None:
        self._graph = graph
        self._fragments = tuple(fragments)
        self._summary = summary

    def build(self) -> ExecutionTree:
        graph = self._graph
        if not graph.nodes:
            return ExecutionTree()

        placements = [self._operators_for(node) for node in graph.nodes]
        times = [self._node_time(placed) for placed in placements]
        query_time_ns = self._query_time_ns(times)

        index_of = {node.id: index for index, node in enumerate(graph.nodes)}
        parents: dict[int, int] = {}
        for index, node in enumerate(graph.nodes):
            for child_id in node.children:
                parents.setdefault(index_of[child_id], index)

        root = index_of.get(graph.effective_root_id)
        depths = self._depths(graph, index_of, root)

        nodes: list[ExecutionTreeNode] = []
        for index, node in enumerate(graph.nodes):
            parent = parents.get(index)
            nodes.append(
                self._make_node(
                    index=index,
                    node=node,
                    placed=placements[index],
                    time_ns=times[index],
                    query_time_ns=query_time_ns,
                    children=tuple(index_of[child_id] for child_id in node.children),
                    parent=parent,
                    parent_plan_node_id=graph.nodes[parent].id if parent is not None else None,
                    depth=depths.get(index, 0),
                )
            )

        return ExecutionTree(root=root, nodes=tuple(self._flag_most_consuming(nodes)))

    @classmethod
    def top_time_consuming_nodes(
        cls, tree: ExecutionTree, limit: int | None = None
    ) -> tuple[TopNode, ...]:
        limit = cls.TOP_NODES_LIMIT if limit is None else limit
        timed = [node for node in tree.nodes if node.time_percentage is not None]
        ranked = sorted(timed, key=lambda node: node.time_percentage, reverse=True)[:limit]
        return tuple(
            TopNode(
                rank=rank,
                operator_name=node.operator_name,
                plan_node_id=node.plan_node_id,
                total_time=format_duration_ms((node.total_time_ns or 0) / 1_000_000),
                time_percentage=node.time_percentage or 0.0,
                is_most_consuming=node.is_most_consuming,
                is_second_most_consuming=node.is_second_most_consuming,
            )
            for rank, node in enumerate(ranked, start=1)
        )

    def _operators_for(self, node: TopologyNode) -> list[_PlacedOperator]:
        topology_ids = {candidate.id for candidate in self._graph.nodes}
        matched: list[_PlacedOperator] = []
        orphans: list[_PlacedOperator] = []
        for fragment in self._fragments:
            for pipeline, operator in fragment.operators():
                placed = _PlacedOperator(fragment.id, pipeline.id, operator)
                if operator.plan_node_id == node.id:
                    matched.append(placed)
                elif operator.plan_node_id is None or operator.plan_node_id not in topology_ids:
                    orphans.append(placed)
        if matched:
            return matched

        canonical = OperatorParser.canonical_topology_name(node.name)
        return [
            placed
            for placed in orphans
            if OperatorParser.canonical_topology_name(placed.operator.name) == canonical
        ]

    @staticmethod
    def _node_time(placed: list[_PlacedOperator]) -> int | None:
        total: int | None = None
        for item in placed:
            operator = item.operator
            if OperatorParser.is_local_exchange(operator.name):
                continue
            if operator.metrics.operator_total_time is not None:
                total = (total or 0) + operator.metrics.operator_total_time
            if OperatorParser.is_scan(operator.name):
                scan_time = try_parse_duration(operator.unique_metrics.get("ScanTime"))
                if scan_time is not None:
                    total = (total or 0) + scan_time
        return total

    def _query_time_ns(self, times: list[int | None]) -> float:
        known_total = sum(time for time in times if time is not None)
        cumulative_ms = self._summary.query_cumulative_operator_time_ms or 0.0
        query_time = max(cumulative_ms * 1_000_000, float(known_total))
        if query_time <= 0:
            query_time = (self._summary.total_time_ms or 0.0) * 1_000_000
        return query_time

    @staticmethod
    def _depths(
        graph: TopologyGraph, index_of: dict[int, int], root: int | None
    ) -> dict[int, int]:
        if root is None:
            return {}
        depths = {root: 0}
        queue = deque([root])
        while queue:
            index = queue.popleft()
            for child_id in graph.nodes[index].children:
                child = index_of[child_id]
                if child not in depths:
                    depths[child] = depths[index] + 1
                    queue.append(child)
        return depths

    @staticmethod
    def _merge_metrics(placed: list[_PlacedOperator]) -> tuple[OperatorMetrics, _PlacedOperator | None]:
        working = [item for item in placed if not OperatorParser.is_local_exchange(item.operator.name)]
        if not working:
            return OperatorMetrics(), None

        primary = next(
            (item for item in working if OperatorParser.is_primary_operator(item.operator.name)),
            working[0],
        )
        if len(working) == 1:
            return primary.operator.metrics, primary

        totals = [item.operator.metrics for item in working]
        timed = [metrics for metrics in totals if metrics.operator_total_time is not None]
        memory = [metrics.memory_usage for metrics in totals if metrics.memory_usage is not None]

        def first_present(attribute: str) -> int | None:
            value = getattr(primary.operator.metrics, attribute)
            if value is not None:
                return value
            for metrics in totals:
                if getattr(metrics, attribute) is not None:
                    return getattr(metrics, attribute)
            return None

        merged = replace(
            primary.operator.metrics,
            push_chunk_num=first_present("push_chunk_num"),
            push_row_num=first_present("push_row_num"),
            pull_chunk_num=first_present("pull_chunk_num"),
            pull_row_num=first_present("pull_row_num"),
            operator_total_time=sum(m.operator_total_time for m in timed) if timed else None,
            operator_total_time_raw=None,
            operator_total_time_min=(
                sum(m.operator_total_time_min or m.operator_total_time for m in timed)
                if timed
                else None
            ),
            operator_total_time_max=(
                sum(m.operator_total_time_max or m.operator_total_time for m in timed)
                if timed
                else None
            ),
            memory_usage=max(memory) if memory else None,
        )
        return merged, primary

    def _make_node(
        self,
        *,
        index: int,
        node: TopologyNode,
        placed: list[_PlacedOperator],
        time_ns: int | None,
        query_time_ns: float,
        children: tuple[int, ...],
        parent: int | None,
        parent_plan_node_id: int | None,
        depth: int,
    ) -> ExecutionTreeNode:
        metrics, primary = self._merge_metrics(placed)

        unique_metrics: dict[str, str] = {}
        ordered = ([primary] if primary is not None else []) + [p for p in placed if p is not primary]
        for item in ordered:
            for key, value in item.operator.unique_metrics.items():
                unique_metrics.setdefault(key, value)

        time_percentage: float | None = None
        if time_ns is not None:
            time_percentage = min(time_ns / query_time_ns * 100, 100.0) if query_time_ns > 0 else 0.0

        return ExecutionTreeNode(
            index=index,
            id=f"node_{node.id}",
            operator_name=node.name,
            node_type=node.node_class,
            plan_node_id=node.id,
            parent_plan_node_id=parent_plan_node_id,
            metrics=metrics,
            children=children,
            parent=parent,
            depth=depth,
            fragment_id=primary.fragment_id if primary is not None else None,
            pipeline_id=primary.pipeline_id if primary is not None else None,
            total_time_ns=time_ns,
            time_percentage=time_percentage,
            rows=metrics.pull_row_num,
            unique_metrics=unique_metrics,
            operator_names=tuple(item.operator.name for item in placed),
        )

    @staticmethod
    def _flag_most_consuming(nodes: list[ExecutionTreeNode]) -> list[ExecutionTreeNode]:
        def pick(exclude: int | None) -> int | None:
            best: int | None = None
            for node in nodes:
                if node.time_percentage is None or node.index == exclude:
                    continue
                if best is None or node.time_percentage > nodes[best].time_percentage:
                    best = node.index
            return best

        most = pick(None)
        if most is None:
            return nodes
        second = pick(most)

        nodes[most] = replace(nodes[most], is_most_consuming=True)
        if second is not None:
            nodes[second] = replace(nodes[second], is_second_most_consuming=True)
        return nodes
