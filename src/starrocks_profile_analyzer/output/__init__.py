from starrocks_profile_analyzer.output.base import AnalysisOutput
from starrocks_profile_analyzer.output.console import ConsoleAnalysisOutput
from starrocks_profile_analyzer.output.sqs import SqsAnalysisOutput

__all__ = ["AnalysisOutput", "ConsoleAnalysisOutput", "SqsAnalysisOutput"]
