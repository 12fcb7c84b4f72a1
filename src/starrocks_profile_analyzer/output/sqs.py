import json
from dataclasses import asdict
from datetime import datetime
from enum import IntEnum
from typing import Any

from aiobotocore.session import get_session

from starrocks_profile_analyzer.domain import AnalysisReport


class SqsAnalysisOutput:
    """Publishes analysis reports to an SQS queue as JSON.

    The raw profile text and the execution tree are left out of the message
    unless ``include_tree`` is set, to stay under the SQS size limit.
    """

    def __init__(self, queue_url: str, region: str = "us-east-1", include_tree: bool = False) -> None:
        self._queue_url = queue_url
        self._region = region
        self._include_tree = include_tree
        self._session = get_session()

    @property
    def name(self) -> str:
        return "sqs"

    async def send(self, report: AnalysisReport) -> None:
        async with self._session.create_client("sqs", region_name=self._region) as client:
            await client.send_message(
                QueueUrl=self._queue_url,
                MessageBody=self._serialize_report(report),
            )

    def _serialize_report(self, report: AnalysisReport) -> str:
        result = asdict(report.result)
        if not self._include_tree:
            result.pop("execution_tree", None)

        payload = {
            "query_id": report.query_id,
            "source": report.document.source,
            "timestamp": report.timestamp,
            "result": result,
        }
        return json.dumps(payload, default=self._json_default, ensure_ascii=False)

    @staticmethod
    def _json_default(obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, IntEnum):
            return int(obj)
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
