from starrocks_profile_analyzer.analyzers.engine import (
    RuleEngine,
    RuleEngineConfig,
    node_diagnostics,
)
from starrocks_profile_analyzer.analyzers.hotspots import HotSpotDetector, HotSpotThresholds
from starrocks_profile_analyzer.analyzers.registry import RuleRegistry
from starrocks_profile_analyzer.analyzers.root_cause import RootCauseEngine
from starrocks_profile_analyzer.analyzers.rules import RuleSettings
from starrocks_profile_analyzer.analyzers.suggestions import SuggestionEngine

__all__ = [
    "RuleEngine",
    "RuleEngineConfig",
    "RuleRegistry",
    "RuleSettings",
    "HotSpotDetector",
    "HotSpotThresholds",
    "SuggestionEngine",
    "RootCauseEngine",
    "node_diagnostics",
]
