"""Text-to-model parsing stack for query profiles."""

from starrocks_profile_analyzer.parser.composer import ProfileComposer
from starrocks_profile_analyzer.parser.exceptions import (
    EmptyProfileError,
    ProfileParseError,
    SectionNotFoundError,
    TopologyError,
    ValueParseError,
)
from starrocks_profile_analyzer.parser.fragments import FragmentParser
from starrocks_profile_analyzer.parser.metrics import MetricsParser
from starrocks_profile_analyzer.parser.operators import OperatorParser
from starrocks_profile_analyzer.parser.sections import SectionParser
from starrocks_profile_analyzer.parser.topology import TopologyParser
from starrocks_profile_analyzer.parser.tree import TreeBuilder

__all__ = [
    "EmptyProfileError",
    "FragmentParser",
    "MetricsParser",
    "OperatorParser",
    "ProfileComposer",
    "ProfileParseError",
    "SectionNotFoundError",
    "SectionParser",
    "TopologyError",
    "TopologyParser",
    "TreeBuilder",
    "ValueParseError",
]
