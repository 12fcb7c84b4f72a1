import json
from collections.abc import Sequence
from typing import Any, ClassVar

from starrocks_profile_analyzer.domain import Fragment, TopologyGraph, TopologyNode
from starrocks_profile_analyzer.parser.exceptions import TopologyError
from starrocks_profile_analyzer.parser.operators import OperatorParser


class TopologyParser:
    """Parses the topology JSON embedded in the Execution section."""

    # Lower is preferred when picking the terminal sink to synthesize
    _sink_priorities: ClassVar[tuple[tuple[str, int], ...]] = (
        ("TABLE_SINK", 3),
        ("LOCAL_EXCHANGE_SINK", 5),
        ("EXCHANGE_SINK", 4),
    )
    _exact_sink_priorities: ClassVar[dict[str, int]] = {
        "RESULT_SINK": 1,
        "OLAP_TABLE_SINK": 2,
    }
    _default_sink_priority: ClassVar[int] = 6

    @classmethod
    def parse(cls, json_str: str, fragments: Sequence[Fragment] = ()) -> TopologyGraph:
        """Parse topology JSON and synthesize a terminal sink found in ``fragments``.

        Raises:
            TopologyError: On invalid JSON or a malformed graph description.
        """
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as exc:
            raise TopologyError(f"Invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise TopologyError("Topology must be a JSON object")

        root_id = data.get("rootId")
        if not cls._is_int(root_id):
            raise TopologyError("Missing rootId")
        raw_nodes = data.get("nodes")
        if not isinstance(raw_nodes, list):
            raise TopologyError("Missing nodes array")

        nodes = [cls._parse_node(raw) for raw in raw_nodes]
        seen: set[int] = set()
        for node in nodes:
            if node.id in seen:
                raise TopologyError(f"Duplicate node id {node.id}")
            seen.add(node.id)

        sink = cls._synthesize_sink(nodes, fragments, root_id)
        if sink is None:
            return TopologyGraph(root_id=root_id, nodes=tuple(nodes))
        return TopologyGraph(root_id=root_id, nodes=(*nodes, sink), sink_id=sink.id)

    @classmethod
    def parse_without_profile(cls, json_str: str) -> TopologyGraph:
        return cls.parse(json_str, ())

    @classmethod
    def _parse_node(cls, raw: Any) -> TopologyNode:
        if not isinstance(raw, dict):
            raise TopologyError("Node must be a JSON object")

        node_id = raw.get("id")
        if not cls._is_int(node_id):
            raise TopologyError("Node is missing an integer id")
        name = raw.get("name")
        if not isinstance(name, str):
            raise TopologyError(f"Node {node_id} is missing a name")

        properties = raw.get("properties") or {}
        if not isinstance(properties, dict):
            raise TopologyError(f"Node {node_id} has invalid properties")

        children = raw.get("children") or []
        if not isinstance(children, list) or not all(cls._is_int(child) for child in children):
            raise TopologyError(f"Node {node_id} has invalid children")

        return TopologyNode(
            id=node_id,
            name=name,
            node_class=OperatorParser.determine_node_type(name),
            properties=properties,
            children=tuple(children),
        )

    @staticmethod
    def _is_int(value: Any) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)

    @classmethod
    def _synthesize_sink(
        cls, nodes: list[TopologyNode], fragments: Sequence[Fragment], root_id: int
    ) -> TopologyNode | None:
        sink_name = cls.select_sink_name(fragments)
        if sink_name is None:
            return None

        sink_id = cls._find_sink_plan_node_id(fragments, sink_name)
        if any(node.id == sink_id for node in nodes):
            return None

        return TopologyNode(
            id=sink_id,
            name=sink_name,
            node_class=OperatorParser.determine_node_type(sink_name),
            children=(root_id,),
            synthetic=True,
        )

    @classmethod
    def select_sink_name(cls, fragments: Sequence[Fragment]) -> str | None:
        candidates: list[tuple[str, bool, int]] = []
        for fragment in fragments:
            for _, operator in fragment.operators():
                name = OperatorParser.strip_plan_node_id(operator.name)
                if name.endswith("_SINK"):
                    candidates.append((name, cls.is_final_sink(name), cls.sink_priority(name)))
        if not candidates:
            return None
        candidates.sort(key=lambda candidate: (not candidate[1], candidate[2]))
        return candidates[0][0]

    @staticmethod
    def is_final_sink(name: str) -> bool:
        return "EXCHANGE_SINK" not in name and "MULTI_CAST" not in name

    @classmethod
    def sink_priority(cls, name: str) -> int:
        if name in cls._exact_sink_priorities:
            return cls._exact_sink_priorities[name]
        for pattern, priority in cls._sink_priorities:
            if pattern in name:
                return priority
        return cls._default_sink_priority

    @staticmethod
    def _find_sink_plan_node_id(fragments: Sequence[Fragment], sink_name: str) -> int:
        for fragment in fragments:
            for _, operator in fragment.operators():
                if operator.name == sink_name and operator.plan_node_id is not None:
                    return operator.plan_node_id
        return -1

    @staticmethod
    def build_relationships(graph: TopologyGraph) -> dict[int, tuple[int, ...]]:
        return {node.id: node.children for node in graph.nodes}

    @staticmethod
    def get_leaf_nodes(graph: TopologyGraph) -> list[int]:
        return [node.id for node in graph.nodes if not node.children]

    @staticmethod
    def validate(graph: TopologyGraph) -> None:
        """Check root presence, child references and acyclicity.

        Raises:
            TopologyError: On the first violation found.
        """
        node_ids = {node.id for node in graph.nodes}
        if graph.root_id not in node_ids:
            raise TopologyError(f"Root node {graph.root_id} not found")

        for node in graph.nodes:
            for child_id in node.children:
                if child_id not in node_ids:
                    raise TopologyError(f"Child node {child_id} referenced but not found")

        children = {node.id: node.children for node in graph.nodes}
        visited: set[int] = set()
        on_stack: set[int] = set()

        for start in children:
            if start in visited:
                continue
            stack: list[tuple[int, int]] = [(start, 0)]
            visited.add(start)
            on_stack.add(start)
            while stack:
                node_id, position = stack[-1]
                if position < len(children[node_id]):
                    stack[-1] = (node_id, position + 1)
                    child_id = children[node_id][position]
                    if child_id in on_stack:
                        raise TopologyError("Cycle detected in topology graph")
                    if child_id not in visited:
                        visited.add(child_id)
                        on_stack.add(child_id)
                        stack.append((child_id, 0))
                else:
                    stack.pop()
                    on_stack.discard(node_id)
