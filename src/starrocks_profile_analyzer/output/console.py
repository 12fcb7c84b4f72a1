from starrocks_profile_analyzer.domain import AnalysisReport


class ConsoleAnalysisOutput:
    """Console output adapter for analysis reports."""

    def __init__(self, prefix: str = "[PROFILE]", max_diagnostics: int = 10) -> None:
        self._prefix = prefix
        self._max_diagnostics = max_diagnostics

    @property
    def name(self) -> str:
        return "console"

    async def send(self, report: AnalysisReport) -> None:
        result = report.result
        query_id = report.query_id or "<unknown>"
        print(f"{self._prefix} {query_id} score={result.performance_score:.0f} - {result.conclusion}")

        for diagnostic in result.diagnostics[: self._max_diagnostics]:
            print(
                f"  - [{diagnostic.severity.name}] {diagnostic.rule_id} "
                f"{diagnostic.node_path}: {diagnostic.message}"
            )
        hidden = len(result.diagnostics) - self._max_diagnostics
        if hidden > 0:
            print(f"  ... {hidden} more diagnostic(s)")

        if result.root_cause_analysis is not None and result.root_cause_analysis.summary:
            print(f"  root cause: {result.root_cause_analysis.summary}")
