from dataclasses import replace

from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.domain import ExecutionTree, Fragment, Profile, ProfileSummary
from starrocks_profile_analyzer.parser.exceptions import EmptyProfileError, TopologyError
from starrocks_profile_analyzer.parser.fragments import FragmentParser
from starrocks_profile_analyzer.parser.sections import SectionParser
from starrocks_profile_analyzer.parser.topology import TopologyParser
from starrocks_profile_analyzer.parser.tree import TreeBuilder

logger = get_logger(__name__)


class ProfileComposer:
    """Parses raw profile text into a composed ``Profile``.

    Missing Summary or Execution sections are fatal. An empty topology yields
    an empty tree. An invalid topology is fatal only when ``strict_topology``
    is set; otherwise it is logged and the tree is left empty.
    """

    def __init__(self, strict_topology: bool = False) -> None:
        self._strict_topology = strict_topology

    def parse(self, text: str) -> Profile:
        """Compose a profile from its text.

        Raises:
            EmptyProfileError: If the text is empty or whitespace.
            SectionNotFoundError: If the Summary or Execution section is missing.
            TopologyError: If the topology is invalid and ``strict_topology`` is set.
        """
        if not text or not text.strip():
            raise EmptyProfileError()

        summary = SectionParser.parse_summary(text)
        planner = SectionParser.parse_planner(text)
        execution = SectionParser.parse_execution(text)
        summary = SectionParser.apply_execution_metrics(summary, execution.metrics)
        fragments = FragmentParser.extract_all_fragments(text)

        tree = self._build_tree(execution.topology, fragments, summary)
        summary = replace(
            summary, top_time_consuming_nodes=TreeBuilder.top_time_consuming_nodes(tree)
        )

        return Profile(
            summary=summary,
            planner=planner,
            execution=execution,
            fragments=tuple(fragments),
            execution_tree=tree,
        )

    def _build_tree(
        self, topology_json: str, fragments: list[Fragment], summary: ProfileSummary
    ) -> ExecutionTree:
        if not topology_json.strip():
            return ExecutionTree()

        try:
            graph = TopologyParser.parse(topology_json, fragments)
            TopologyParser.validate(graph)
        except TopologyError as exc:
            if self._strict_topology:
                raise
            logger.warning(
                "Query %s: %s; continuing with an empty execution tree",
                summary.query_id or "<unknown>",
                exc,
            )
            return ExecutionTree()

        return TreeBuilder(graph, fragments, summary).build()
