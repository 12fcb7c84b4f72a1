"""Domain models for query profile analysis."""

from starrocks_profile_analyzer.domain.diagnostics import (
    AdaptiveThresholds,
    AggregatedDiagnostic,
    AnalysisReport,
    CausalChain,
    Diagnostic,
    HotSeverity,
    HotSpot,
    IoStatistics,
    ParameterSuggestion,
    ParameterType,
    ProfileAnalysisResult,
    PropagationMode,
    RootCause,
    RootCauseAnalysis,
    RuleSeverity,
)
from starrocks_profile_analyzer.domain.locale import Locale
from starrocks_profile_analyzer.domain.models import (
    ExecutionInfo,
    ExecutionTree,
    ExecutionTreeNode,
    Fragment,
    NodeType,
    Operator,
    OperatorMetrics,
    Pipeline,
    PlannerInfo,
    Profile,
    ProfileDocument,
    ProfileSummary,
    TopNode,
    TopologyGraph,
    TopologyNode,
)

__all__ = [
    "AdaptiveThresholds",
    "AggregatedDiagnostic",
    "AnalysisReport",
    "CausalChain",
    "Diagnostic",
    "ExecutionInfo",
    "ExecutionTree",
    "ExecutionTreeNode",
    "Fragment",
    "HotSeverity",
    "HotSpot",
    "IoStatistics",
    "Locale",
    "NodeType",
    "Operator",
    "OperatorMetrics",
    "ParameterSuggestion",
    "ParameterType",
    "Pipeline",
    "PlannerInfo",
    "Profile",
    "ProfileAnalysisResult",
    "ProfileDocument",
    "ProfileSummary",
    "PropagationMode",
    "RootCause",
    "RootCauseAnalysis",
    "RuleSeverity",
    "TopNode",
    "TopologyGraph",
    "TopologyNode",
]
