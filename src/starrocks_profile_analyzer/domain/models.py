"""Core domain models for a parsed query profile and its execution tree."""

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class NodeType(StrEnum):
    """Operator family of a topology or execution tree node."""

    OLAP_SCAN = "OlapScan"
    CONNECTOR_SCAN = "ConnectorScan"
    HASH_JOIN = "HashJoin"
    AGGREGATE = "Aggregate"
    LIMIT = "Limit"
    EXCHANGE_SINK = "ExchangeSink"
    EXCHANGE_SOURCE = "ExchangeSource"
    RESULT_SINK = "ResultSink"
    CHUNK_ACCUMULATE = "ChunkAccumulate"
    SORT = "Sort"
    PROJECT = "Project"
    TABLE_FUNCTION = "TableFunction"
    OLAP_TABLE_SINK = "OlapTableSink"
    UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class OperatorMetrics:
    """Typed common metrics of an operator. Times are in nanoseconds."""

    operator_total_time: int | None = None
    operator_total_time_raw: str | None = None
    operator_total_time_min: int | None = None
    operator_total_time_max: int | None = None
    push_chunk_num: int | None = None
    push_row_num: int | None = None
    pull_chunk_num: int | None = None
    pull_row_num: int | None = None
    push_total_time: int | None = None
    push_total_time_min: int | None = None
    push_total_time_max: int | None = None
    pull_total_time: int | None = None
    pull_total_time_min: int | None = None
    pull_total_time_max: int | None = None
    memory_usage: int | None = None
    output_chunk_bytes: int | None = None

    @property
    def operator_total_time_ms(self) -> float | None:
        if self.operator_total_time is None:
            return None
        return self.operator_total_time / 1_000_000


@dataclass(frozen=True, slots=True)
class Operator:
    """A single operator block inside a pipeline."""

    name: str
    plan_node_id: int | None = None
    operator_id: str | None = None
    pseudo_plan_node_id: int | None = None
    common_metrics: dict[str, str] = field(default_factory=dict)
    unique_metrics: dict[str, str] = field(default_factory=dict)
    metrics: OperatorMetrics = field(default_factory=OperatorMetrics)


@dataclass(frozen=True, slots=True)
class Pipeline:
    id: str
    metrics: dict[str, str] = field(default_factory=dict)
    operators: tuple[Operator, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Fragment:
    id: str
    backend_addresses: tuple[str, ...] = field(default_factory=tuple)
    instance_ids: tuple[str, ...] = field(default_factory=tuple)
    metrics: dict[str, str] = field(default_factory=dict)
    pipelines: tuple[Pipeline, ...] = field(default_factory=tuple)

    def operators(self) -> Iterator[tuple[Pipeline, Operator]]:
        for pipeline in self.pipelines:
            for operator in pipeline.operators:
                yield pipeline, operator


@dataclass(frozen=True, slots=True)
class TopologyNode:
    id: int
    name: str
    node_class: NodeType = NodeType.UNKNOWN
    properties: dict[str, Any] = field(default_factory=dict)
    children: tuple[int, ...] = field(default_factory=tuple)
    synthetic: bool = False


@dataclass(frozen=True, slots=True)
class TopologyGraph:
    """Plan node graph declared by the profile, plus an optional synthesized sink."""

    root_id: int
    nodes: tuple[TopologyNode, ...] = field(default_factory=tuple)
    sink_id: int | None = None

    @property
    def effective_root_id(self) -> int:
        return self.sink_id if self.sink_id is not None else self.root_id

    def get(self, node_id: int) -> TopologyNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


@dataclass(frozen=True, slots=True)
class ExecutionTreeNode:
    """Analysis-ready node merging topology structure with operator metrics.

    ``children`` and ``parent`` are indices into ``ExecutionTree.nodes``.
    """

    index: int
    id: str
    operator_name: str
    node_type: NodeType
    plan_node_id: int | None = None
    parent_plan_node_id: int | None = None
    metrics: OperatorMetrics = field(default_factory=OperatorMetrics)
    children: tuple[int, ...] = field(default_factory=tuple)
    parent: int | None = None
    depth: int = 0
    fragment_id: str | None = None
    pipeline_id: str | None = None
    total_time_ns: int | None = None
    time_percentage: float | None = None
    rows: int | None = None
    is_most_consuming: bool = False
    is_second_most_consuming: bool = False
    unique_metrics: dict[str, str] = field(default_factory=dict)
    operator_names: tuple[str, ...] = field(default_factory=tuple)
    has_diagnostic: bool = False
    diagnostic_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def node_path(self) -> str:
        plan_node_id = self.plan_node_id if self.plan_node_id is not None else -1
        return f"{self.operator_name} (plan_node_id={plan_node_id})"


@dataclass(frozen=True, slots=True)
class ExecutionTree:
    """Arena of execution tree nodes. ``root`` is an index or None when empty."""

    root: int | None = None
    nodes: tuple[ExecutionTreeNode, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[ExecutionTreeNode]:
        return iter(self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    @property
    def root_node(self) -> ExecutionTreeNode | None:
        if self.root is None:
            return None
        return self.nodes[self.root]

    def children_of(self, node: ExecutionTreeNode) -> list[ExecutionTreeNode]:
        return [self.nodes[index] for index in node.children]

    def parent_of(self, node: ExecutionTreeNode) -> ExecutionTreeNode | None:
        if node.parent is None:
            return None
        return self.nodes[node.parent]

    def find_by_plan_node_id(self, plan_node_id: int) -> ExecutionTreeNode | None:
        for node in self.nodes:
            if node.plan_node_id == plan_node_id:
                return node
        return None

    def find_by_path(self, node_path: str) -> ExecutionTreeNode | None:
        for node in self.nodes:
            if node.node_path == node_path:
                return node
        return None

    def is_descendant(self, node: ExecutionTreeNode, ancestor: ExecutionTreeNode) -> bool:
        """Return True if ``node`` lies strictly below ``ancestor``."""
        seen: set[int] = set()
        current = node.parent
        while current is not None and current not in seen:
            if current == ancestor.index:
                return True
            seen.add(current)
            current = self.nodes[current].parent
        return False


@dataclass(frozen=True, slots=True)
class TopNode:
    rank: int
    operator_name: str
    plan_node_id: int | None
    total_time: str
    time_percentage: float
    is_most_consuming: bool = False
    is_second_most_consuming: bool = False


@dataclass(frozen=True, slots=True)
class ProfileSummary:
    """Query-level summary merged from the Summary and Execution sections."""

    query_id: str = ""
    start_time: str = ""
    end_time: str = ""
    total_time: str = ""
    total_time_ms: float | None = None
    query_state: str = ""
    starrocks_version: str = ""
    sql_statement: str = ""
    query_type: str | None = None
    user: str | None = None
    default_db: str | None = None
    variables: dict[str, str] = field(default_factory=dict)
    non_default_variables: dict[str, str] = field(default_factory=dict)
    query_allocated_memory: int | None = None
    query_peak_memory: int | None = None
    query_sum_memory_usage: str | None = None
    query_deallocated_memory_usage: str | None = None
    query_cumulative_operator_time: str | None = None
    query_cumulative_operator_time_ms: float | None = None
    query_execution_wall_time: str | None = None
    query_execution_wall_time_ms: float | None = None
    query_cumulative_cpu_time: str | None = None
    query_cumulative_cpu_time_ms: float | None = None
    query_cumulative_scan_time: str | None = None
    query_cumulative_scan_time_ms: float | None = None
    query_cumulative_network_time: str | None = None
    query_cumulative_network_time_ms: float | None = None
    query_peak_schedule_time: str | None = None
    query_peak_schedule_time_ms: float | None = None
    result_deliver_time: str | None = None
    result_deliver_time_ms: float | None = None
    query_spill_bytes: str | None = None
    datacache_hit_rate: float | None = None
    datacache_bytes_local: int | None = None
    datacache_bytes_remote: int | None = None
    datacache_bytes_local_display: str | None = None
    datacache_bytes_remote_display: str | None = None
    top_time_consuming_nodes: tuple[TopNode, ...] | None = None


@dataclass(frozen=True, slots=True)
class PlannerInfo:
    details: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExecutionInfo:
    topology: str = ""
    metrics: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Profile:
    """A fully composed query profile."""

    summary: ProfileSummary
    planner: PlannerInfo = field(default_factory=PlannerInfo)
    execution: ExecutionInfo = field(default_factory=ExecutionInfo)
    fragments: tuple[Fragment, ...] = field(default_factory=tuple)
    execution_tree: ExecutionTree | None = None

    def all_operators(self) -> Iterator[tuple[Fragment, Pipeline, Operator]]:
        for fragment in self.fragments:
            for pipeline, operator in fragment.operators():
                yield fragment, pipeline, operator


@dataclass(frozen=True, slots=True)
class ProfileDocument:
    """Raw profile text together with where it came from."""

    text: str
    source: str = "manual"
    query_id: str | None = None
