from collections.abc import Sequence

from starrocks_profile_analyzer.core.analyzer import (
    AnalysisContext,
    ProfileAnalysisError,
    ProfileAnalyzer,
)
from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.domain import AnalysisReport
from starrocks_profile_analyzer.input import ProfileInput
from starrocks_profile_analyzer.output import AnalysisOutput

logger = get_logger(__name__)


class AnalysisPipeline:
    """Analyzes every document from an input and fans reports out to outputs."""

    def __init__(
        self,
        input_source: ProfileInput,
        analyzer: ProfileAnalyzer,
        outputs: Sequence[AnalysisOutput],
        context: AnalysisContext | None = None,
    ) -> None:
        self._input = input_source
        self._analyzer = analyzer
        self._outputs = tuple(outputs)
        self._context = context or AnalysisContext()

    async def run(self) -> list[AnalysisReport]:
        reports: list[AnalysisReport] = []
        async for document in self._input:
            try:
                result = self._analyzer.analyze(document.text, self._context)
            except ProfileAnalysisError as exc:
                logger.error(
                    "Skipping %s (%s): %s", document.query_id or document.source, exc.kind, exc
                )
                continue

            report = AnalysisReport(document=document, result=result)
            for output in self._outputs:
                await output.send(report)
            reports.append(report)
        return reports
