import json
from datetime import datetime, timezone
from pathlib import Path

from aiobotocore.session import get_session
from aiomoto import mock_aws

from starrocks_profile_analyzer.core.analyzer import AnalysisContext, ProfileAnalyzer
from starrocks_profile_analyzer.domain import AnalysisReport, Locale, ProfileDocument
from starrocks_profile_analyzer.output import AnalysisOutput
from starrocks_profile_analyzer.output.sqs import SqsAnalysisOutput

FIXTURES = Path(__file__).parent.parent / "fixtures" / "profiles"


def make_report() -> AnalysisReport:
    text = (FIXTURES / "join_memory.txt").read_text(encoding="utf-8")
    result = ProfileAnalyzer().analyze(text, AnalysisContext(locale=Locale.EN))
    return AnalysisReport(
        document=ProfileDocument(text=text, source="file:join_memory.txt", query_id="join_memory"),
        result=result,
        timestamp=datetime(2026, 1, 14, 12, 0, 0, tzinfo=timezone.utc),
    )


def test_sqs_output_implements_protocol():
    output = SqsAnalysisOutput(queue_url="https://sqs.us-east-1.amazonaws.com/123456789/test")
    assert isinstance(output, AnalysisOutput)


def test_sqs_output_name_property():
    output = SqsAnalysisOutput(queue_url="https://sqs.us-east-1.amazonaws.com/123456789/test")
    assert output.name == "sqs"


@mock_aws
async def test_sqs_output_send_to_queue():
    session = get_session()
    async with session.create_client("sqs", region_name="us-east-1") as client:
        response = await client.create_queue(QueueName="profile-reports")
        queue_url = response["QueueUrl"]

        output = SqsAnalysisOutput(queue_url=queue_url, region="us-east-1")
        report = make_report()

        await output.send(report)

        messages = await client.receive_message(QueueUrl=queue_url)
        assert "Messages" in messages
        assert len(messages["Messages"]) == 1

        body = json.loads(messages["Messages"][0]["Body"])
        assert body["query_id"] == report.query_id
        assert body["source"] == "file:join_memory.txt"
        assert body["timestamp"] == "2026-01-14T12:00:00+00:00"
        assert body["result"]["performance_score"] == 84.0
        assert body["result"]["diagnostics"][0]["rule_id"] == "G001"
        assert body["result"]["diagnostics"][0]["severity"] == 2


@mock_aws
async def test_sqs_output_omits_profile_text_and_tree():
    session = get_session()
    async with session.create_client("sqs", region_name="us-east-1") as client:
        response = await client.create_queue(QueueName="profile-reports")
        queue_url = response["QueueUrl"]

        await SqsAnalysisOutput(queue_url=queue_url, region="us-east-1").send(make_report())

        messages = await client.receive_message(QueueUrl=queue_url)
        body = json.loads(messages["Messages"][0]["Body"])

        assert "execution_tree" not in body["result"]
        assert "text" not in body
        assert "document" not in body


def test_serialized_report_can_include_tree():
    output = SqsAnalysisOutput(queue_url="https://sqs.us-east-1.amazonaws.com/123456789/test", include_tree=True)

    body = json.loads(output._serialize_report(make_report()))

    nodes = body["result"]["execution_tree"]["nodes"]
    assert any(node["operator_name"] == "HASH_JOIN" for node in nodes)
    assert body["result"]["node_diagnostics"]
