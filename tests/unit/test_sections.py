from pathlib import Path

import pytest

from starrocks_profile_analyzer.parser import SectionNotFoundError, SectionParser

FIXTURES = Path(__file__).parent.parent / "fixtures" / "profiles"


@pytest.fixture
def scan_profile() -> str:
    return (FIXTURES / "scan_dominant.txt").read_text(encoding="utf-8")


class TestExtractBlock:
    def test_block_stops_at_sibling_header(self) -> None:
        text = "Query:\n  Summary:\n     - Total: 1s\n  Planner:\n     - -- Total[1] 1ms\n"
        block = SectionParser.extract_block(text, "Summary:")
        assert "Total: 1s" in block
        assert "Planner" not in block

    def test_missing_marker_raises(self) -> None:
        with pytest.raises(SectionNotFoundError) as exc_info:
            SectionParser.extract_block("Query:\n  Summary:\n", "Execution:")
        assert exc_info.value.section == "Execution"


class TestParseSummary:
    def test_summary_fields(self, scan_profile: str) -> None:
        summary = SectionParser.parse_summary(scan_profile)

        assert summary.query_id == "1a2b3c4d-0000-4000-8000-000000000001"
        assert summary.total_time == "2s10ms"
        assert summary.total_time_ms == 2010.0
        assert summary.query_state == "Finished"
        assert summary.user == "root"
        assert summary.default_db == "tpch"
        assert summary.sql_statement.startswith("select count(*) from lineitem")

    def test_variables(self, scan_profile: str) -> None:
        summary = SectionParser.parse_summary(scan_profile)
        assert summary.variables == {
            "parallel_fragment_exec_instance_num": "1",
            "pipeline_dop": "0",
        }

    def test_non_default_variables_use_actual_value(self, scan_profile: str) -> None:
        summary = SectionParser.parse_summary(scan_profile)
        assert summary.non_default_variables == {"enable_spill": "true"}

    def test_invalid_non_default_json_is_ignored(self) -> None:
        text = "Query:\n  Summary:\n     - NonDefaultSessionVariables: {broken\n"
        assert SectionParser.parse_summary(text).non_default_variables == {}


class TestParseExecution:
    def test_execution_metrics_stop_before_fragments(self, scan_profile: str) -> None:
        execution = SectionParser.parse_execution(scan_profile)

        assert execution.metrics["QueryCumulativeOperatorTime"] == "2s"
        assert execution.metrics["QueryPeakMemoryUsagePerNode"] == "8.000 MB"
        assert "Topology" not in execution.metrics
        assert "BackendAddresses" not in execution.metrics

    def test_topology_json_is_extracted(self, scan_profile: str) -> None:
        execution = SectionParser.parse_execution(scan_profile)
        assert execution.topology.startswith('{"rootId":0')
        assert execution.topology.endswith("}")

    def test_topology_braces_inside_strings(self) -> None:
        block = '   - Topology: {"a":"}{","b":{"c":1}} trailing'
        assert SectionParser.extract_topology(block) == '{"a":"}{","b":{"c":1}}'

    def test_missing_topology(self) -> None:
        assert SectionParser.extract_topology("   - QueryExecutionWallTime: 1s") == ""

    def test_planner_is_optional(self) -> None:
        text = "Query:\n  Summary:\n     - Total: 1s\n  Execution:\n     - Topology: {}\n"
        assert SectionParser.parse_planner(text).details == {}


class TestApplyExecutionMetrics:
    def test_fills_typed_summary_fields(self, scan_profile: str) -> None:
        summary = SectionParser.parse_summary(scan_profile)
        metrics = SectionParser.parse_execution(scan_profile).metrics

        merged = SectionParser.apply_execution_metrics(summary, metrics)

        assert merged.query_cumulative_operator_time_ms == 2000.0
        assert merged.query_cumulative_cpu_time_ms == 1500.0
        assert merged.query_execution_wall_time_ms == 2005.0
        assert merged.query_peak_memory == 8 * 1024**2
        assert merged.query_sum_memory_usage == "8.000 MB"

    def test_existing_fields_are_kept(self, scan_profile: str) -> None:
        summary = SectionParser.parse_summary(scan_profile)
        first = SectionParser.apply_execution_metrics(summary, {"QueryCumulativeCpuTime": "1s"})
        second = SectionParser.apply_execution_metrics(first, {"QueryCumulativeCpuTime": "9s"})
        assert second.query_cumulative_cpu_time_ms == 1000.0
