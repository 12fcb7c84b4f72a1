from typing import Protocol, runtime_checkable

from starrocks_profile_analyzer.domain import AnalysisReport


@runtime_checkable
class AnalysisOutput(Protocol):
    """Protocol for analysis report destinations."""

    @property
    def name(self) -> str:
        ...

    async def send(self, report: AnalysisReport) -> None:
        ...
