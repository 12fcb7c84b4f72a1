__version__ = "0.1.0"

from starrocks_profile_analyzer.analyzers import (
    HotSpotDetector,
    RootCauseEngine,
    RuleEngine,
    RuleEngineConfig,
    RuleRegistry,
    SuggestionEngine,
)
from starrocks_profile_analyzer.baseline import (
    BaselineCacheManager,
    BaselineService,
    QueryComplexity,
)
from starrocks_profile_analyzer.core.analyzer import (
    AnalysisContext,
    AnalysisErrorKind,
    ProfileAnalysisError,
    ProfileAnalyzer,
)
from starrocks_profile_analyzer.core.pipeline import AnalysisPipeline
from starrocks_profile_analyzer.domain import (
    AnalysisReport,
    Diagnostic,
    HotSpot,
    Locale,
    Profile,
    ProfileAnalysisResult,
    ProfileDocument,
    RuleSeverity,
)
from starrocks_profile_analyzer.input import ManualInput, ProfileFileInput, ProfileInput
from starrocks_profile_analyzer.output import AnalysisOutput, ConsoleAnalysisOutput
from starrocks_profile_analyzer.parser import ProfileComposer

__all__ = [
    "__version__",
    "ProfileAnalyzer",
    "AnalysisContext",
    "AnalysisErrorKind",
    "ProfileAnalysisError",
    "AnalysisPipeline",
    "ProfileComposer",
    "Profile",
    "ProfileDocument",
    "ProfileAnalysisResult",
    "AnalysisReport",
    "Diagnostic",
    "HotSpot",
    "Locale",
    "RuleSeverity",
    "RuleEngine",
    "RuleEngineConfig",
    "RuleRegistry",
    "HotSpotDetector",
    "SuggestionEngine",
    "RootCauseEngine",
    "BaselineCacheManager",
    "BaselineService",
    "QueryComplexity",
    "ProfileInput",
    "ManualInput",
    "ProfileFileInput",
    "AnalysisOutput",
    "ConsoleAnalysisOutput",
]
