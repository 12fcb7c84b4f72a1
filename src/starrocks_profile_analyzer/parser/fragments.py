import re
from collections.abc import Callable, Sequence
from dataclasses import replace
from typing import ClassVar

from starrocks_profile_analyzer.domain import Fragment, Operator, Pipeline
from starrocks_profile_analyzer.parser.metrics import MetricsParser, indent_of
from starrocks_profile_analyzer.parser.operators import OperatorHeader, OperatorParser

_Block = tuple[str, list[str]]


def split_blocks(lines: list[str], is_header: Callable[[str], bool]) -> tuple[list[str], list[_Block]]:
    """Split ``lines`` into a preamble and ``(header, body)`` blocks.

    A block extends while lines are blank or indented deeper than its header.
    """
    preamble: list[str] = []
    blocks: list[_Block] = []
    current: list[str] | None = None
    header_indent = 0

    for line in lines:
        stripped = line.strip()
        if stripped and is_header(stripped):
            current = []
            header_indent = indent_of(line)
            blocks.append((stripped, current))
            continue
        if current is not None:
            if not stripped or indent_of(line) > header_indent:
                current.append(line)
                continue
            current = None
        if not blocks:
            preamble.append(line)
    return preamble, blocks


class FragmentParser:
    """Walks ``Fragment N`` -> ``Pipeline N`` -> operator blocks."""

    FRAGMENT_HEADER: ClassVar[re.Pattern[str]] = re.compile(r"^Fragment\s+(\d+):$")
    PIPELINE_HEADER: ClassVar[re.Pattern[str]] = re.compile(
        r"^Pipeline\s+(?:\(id=(\d+)\)|(\d+)):$"
    )

    @classmethod
    def extract_all_fragments(cls, text: str) -> list[Fragment]:
        fragments: list[Fragment] = []
        _, blocks = cls._headed_blocks(text.splitlines(), cls.FRAGMENT_HEADER)
        for header, body in blocks:
            fragments.append(cls._parse_fragment(header.group(1), body))
        return fragments

    @staticmethod
    def _headed_blocks(
        lines: list[str], pattern: re.Pattern[str]
    ) -> tuple[list[str], list[tuple[re.Match[str], list[str]]]]:
        preamble, blocks = split_blocks(lines, lambda line: pattern.match(line) is not None)
        headed: list[tuple[re.Match[str], list[str]]] = []
        for header, body in blocks:
            match = pattern.match(header)
            if match is not None:
                headed.append((match, body))
        return preamble, headed

    @classmethod
    def _parse_fragment(cls, fragment_id: str, lines: list[str]) -> Fragment:
        preamble, blocks = cls._headed_blocks(lines, cls.PIPELINE_HEADER)
        metrics = MetricsParser.parse_metric_lines("\n".join(preamble))

        pipelines: list[Pipeline] = []
        for header, body in blocks:
            pipeline_id = header.group(1) or header.group(2)
            pipelines.append(cls._parse_pipeline(pipeline_id, body))

        return Fragment(
            id=fragment_id,
            backend_addresses=cls._split_list(metrics.get("BackendAddresses", "")),
            instance_ids=cls._split_list(metrics.get("InstanceIds", "")),
            metrics=metrics,
            pipelines=tuple(pipelines),
        )

    @classmethod
    def _parse_pipeline(cls, pipeline_id: str, lines: list[str]) -> Pipeline:
        preamble, blocks = split_blocks(lines, OperatorParser.is_operator_header)

        operators: list[Operator] = []
        for header, body in blocks:
            parsed = OperatorParser.parse_header(header)
            if parsed is None:
                continue
            operators.append(cls.parse_operator(parsed, "\n".join(body)))

        return Pipeline(
            id=pipeline_id,
            metrics=MetricsParser.parse_metric_lines("\n".join(preamble)),
            operators=cls.attach_pseudo_operators(operators),
        )

    @staticmethod
    def parse_operator(header: OperatorHeader, body: str) -> Operator:
        common = MetricsParser.parse_metric_lines(MetricsParser.extract_common_metrics_block(body))
        unique = MetricsParser.parse_metric_lines(MetricsParser.extract_unique_metrics_block(body))
        return Operator(
            name=header.name,
            plan_node_id=None if header.pseudo else header.plan_node_id,
            operator_id=header.operator_id,
            pseudo_plan_node_id=header.plan_node_id if header.pseudo else None,
            common_metrics=common,
            unique_metrics=unique,
            metrics=MetricsParser.metrics_from_map(common),
        )

    @staticmethod
    def attach_pseudo_operators(operators: Sequence[Operator]) -> tuple[Operator, ...]:
        """Give pseudo operators the plan node of the nearest real operator in their pipeline.

        Operators listed above are preferred. A pipeline of pseudo operators
        only leaves them without a plan node.
        """
        real_ids = [op.plan_node_id if op.pseudo_plan_node_id is None else None for op in operators]
        attached: list[Operator] = []
        for index, operator in enumerate(operators):
            if operator.pseudo_plan_node_id is None:
                attached.append(operator)
                continue
            above = (plan_id for plan_id in reversed(real_ids[:index]) if plan_id is not None)
            below = (plan_id for plan_id in real_ids[index + 1 :] if plan_id is not None)
            owner = next(above, None)
            if owner is None:
                owner = next(below, None)
            attached.append(replace(operator, plan_node_id=owner))
        return tuple(attached)

    @staticmethod
    def _split_list(raw: str) -> tuple[str, ...]:
        return tuple(item.strip() for item in raw.split(",") if item.strip())
