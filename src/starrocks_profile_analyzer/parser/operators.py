import re
from typing import ClassVar, NamedTuple

from starrocks_profile_analyzer.domain import NodeType


class OperatorHeader(NamedTuple):
    name: str
    plan_node_id: int
    operator_id: str | None = None
    pseudo: bool = False


class OperatorParser:
    """Recognises operator headers and classifies operator names."""

    HEADER: ClassVar[re.Pattern[str]] = re.compile(
        r"^([A-Z][A-Z0-9_]*)\s+\((pseudo_)?plan_node_id=(-?\d+)\)(?:\s*\(operator id=(\d+)\))?:$"
    )

    # Pipeline-half suffixes that do not exist in the topology
    _half_suffixes: ClassVar[tuple[str, ...]] = (
        "_BLOCKING_SINK",
        "_BLOCKING_SOURCE",
        "_STREAMING_SINK",
        "_STREAMING_SOURCE",
        "_BLOCKING",
        "_STREAMING",
        "_BUILD",
        "_PROBE",
        "_SINK",
        "_SOURCE",
    )

    _terminal_sinks: ClassVar[tuple[str, ...]] = ("RESULT_SINK", "TABLE_SINK")

    # Checked in order, first match wins
    _node_type_rules: ClassVar[tuple[tuple[str, NodeType], ...]] = (
        ("OLAP_TABLE_SINK", NodeType.OLAP_TABLE_SINK),
        ("RESULT_SINK", NodeType.RESULT_SINK),
        ("EXCHANGE_SINK", NodeType.EXCHANGE_SINK),
        ("EXCHANGE_SOURCE", NodeType.EXCHANGE_SOURCE),
        ("EXCHANGE", NodeType.EXCHANGE_SOURCE),
        ("OLAP_SCAN", NodeType.OLAP_SCAN),
        ("CONNECTOR_SCAN", NodeType.CONNECTOR_SCAN),
        ("HDFS_SCAN", NodeType.CONNECTOR_SCAN),
        ("HASH_JOIN", NodeType.HASH_JOIN),
        ("AGGREGAT", NodeType.AGGREGATE),
        ("LIMIT", NodeType.LIMIT),
        ("CHUNK_ACCUMULATE", NodeType.CHUNK_ACCUMULATE),
        ("SORT", NodeType.SORT),
        ("PROJECT", NodeType.PROJECT),
        ("TABLE_FUNCTION", NodeType.TABLE_FUNCTION),
    )

    @classmethod
    def is_operator_header(cls, line: str) -> bool:
        return cls.HEADER.match(line.strip()) is not None

    @classmethod
    def parse_header(cls, line: str) -> OperatorHeader | None:
        """Parse an operator header line, or return None for non-headers.

        Local exchanges carry a ``pseudo_plan_node_id`` that names no plan node.
        """
        match = cls.HEADER.match(line.strip())
        if match is None:
            return None
        return OperatorHeader(
            name=match.group(1),
            plan_node_id=int(match.group(3)),
            operator_id=match.group(4),
            pseudo=match.group(2) is not None,
        )

    @staticmethod
    def strip_plan_node_id(name: str) -> str:
        for marker in (" (plan_node_id=", " (pseudo_plan_node_id="):
            position = name.find(marker)
            if position >= 0:
                return name[:position]
        return name

    @classmethod
    def canonical_topology_name(cls, name: str) -> str:
        """Map a pipeline operator name onto the plan node name it belongs to."""
        pure = cls.strip_plan_node_id(name).strip()
        if any(pure.endswith(sink) for sink in cls._terminal_sinks):
            return pure
        for suffix in cls._half_suffixes:
            if pure.endswith(suffix) and len(pure) > len(suffix):
                return pure[: -len(suffix)]
        return pure

    @classmethod
    def determine_node_type(cls, name: str) -> NodeType:
        upper = name.upper()
        for pattern, node_type in cls._node_type_rules:
            if pattern in upper:
                return node_type
        return NodeType.UNKNOWN

    @classmethod
    def is_primary_operator(cls, name: str) -> bool:
        """True for the operator half that produces a node's output rows."""
        pure = cls.strip_plan_node_id(name)
        if any(pure.endswith(sink) for sink in cls._terminal_sinks):
            return True
        return not pure.endswith(("_BUILD", "_SINK", "_BLOCKING"))

    @staticmethod
    def is_local_exchange(name: str) -> bool:
        return name.startswith("LOCAL_EXCHANGE")

    @staticmethod
    def is_scan(name: str) -> bool:
        return "SCAN" in name
