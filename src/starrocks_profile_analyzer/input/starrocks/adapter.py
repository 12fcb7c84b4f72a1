from collections.abc import Sequence

from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.domain import ProfileDocument
from starrocks_profile_analyzer.input.starrocks.client import StarRocksClient
from starrocks_profile_analyzer.input.starrocks.exceptions import NotFoundError

logger = get_logger(__name__)


class StarRocksProfileInput:
    """ProfileInput adapter that fetches stored profiles from a StarRocks FE.

    Usage:
        async with StarRocksClient(base_url="http://fe:8030", user="root") as client:
            async for document in StarRocksProfileInput(client, query_ids):
                ...

    Queries whose profile is missing are logged and skipped.
    """

    def __init__(self, client: StarRocksClient, query_ids: Sequence[str]) -> None:
        self._client = client
        self._query_ids: tuple[str, ...] = tuple(query_ids)
        self._index: int = 0

    def __aiter__(self) -> "StarRocksProfileInput":
        return self

    async def __anext__(self) -> ProfileDocument:
        while self._index < len(self._query_ids):
            query_id = self._query_ids[self._index]
            self._index += 1
            try:
                text = await self._client.get_query_profile(query_id)
            except NotFoundError:
                logger.warning("No profile stored for query %s, skipping", query_id)
                continue
            return ProfileDocument(text=text, source=f"starrocks:{self._client.base_url}", query_id=query_id)
        raise StopAsyncIteration

    def reset(self) -> None:
        """Reset iterator to the first query id."""
        self._index = 0
