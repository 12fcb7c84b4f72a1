import asyncio
import json
import random
import re
from dataclasses import dataclass, field
from typing import Any

import httpx

from starrocks_profile_analyzer.core.logging import get_logger
from starrocks_profile_analyzer.input.starrocks.exceptions import (
    AuthenticationError,
    NotFoundError,
    QueryExecutionError,
    ServiceUnavailableError,
)

logger = get_logger(__name__)

_QUERY_ID = re.compile(r"^[0-9a-fA-F-]+$")


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows returned by the HTTP SQL API, with column names from ``meta``."""

    columns: tuple[str, ...] = ()
    rows: tuple[tuple[Any, ...], ...] = ()
    statistics: dict[str, Any] = field(default_factory=dict)

    def records(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def scalar(self) -> Any:
        if not self.rows or not self.rows[0]:
            return None
        return self.rows[0][0]


class StarRocksClient:
    """Client for the StarRocks FE HTTP SQL API.

    Statements are sent to:
    POST /api/v1/catalogs/{catalog}/databases/{database}/sql
    (or /api/v1/catalogs/{catalog}/sql without a database)

    The response body is newline-delimited JSON: a ``connectionId`` line, a
    ``meta`` line with column descriptions, one ``data`` line per row and a
    final ``statistics`` line. Failed statements return a single JSON object
    with ``status`` set to ``FAILED``.
    """

    MAX_RETRIES = 3
    BASE_BACKOFF = 1.0
    MAX_JITTER = 0.5
    RETRYABLE_STATUS = frozenset({429, 503})

    def __init__(
        self,
        base_url: str,
        user: str,
        password: str = "",
        catalog: str = "default_catalog",
        database: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user = user
        self.password = password
        self.catalog = catalog
        self.database = database
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "StarRocksClient":
        self._client = httpx.AsyncClient(timeout=self.timeout)
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _endpoint(self, database: str | None) -> str:
        database = database or self.database
        if database:
            return f"/api/v1/catalogs/{self.catalog}/databases/{database}/sql"
        return f"/api/v1/catalogs/{self.catalog}/sql"

    async def execute(self, sql: str, database: str | None = None) -> QueryResult:
        """Run one statement and return its rows.

        Raises:
            AuthenticationError: On 401/403.
            NotFoundError: On 404.
            ServiceUnavailableError: When 429/503 persists after retries.
            QueryExecutionError: When StarRocks rejects the statement.
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        url = f"{self.base_url}{self._endpoint(database)}"

        retries = 0
        while True:
            response = await self._client.post(
                url,
                json={"query": sql},
                auth=(self.user, self.password),
                headers={"Content-Type": "application/json"},
            )

            if response.status_code in self.RETRYABLE_STATUS:
                if retries >= self.MAX_RETRIES:
                    retry_after = response.headers.get("Retry-After")
                    raise ServiceUnavailableError(
                        f"StarRocks returned {response.status_code} after max retries",
                        retry_after=float(retry_after) if retry_after else None,
                    )

                delay = self.BASE_BACKOFF * (2**retries) + random.uniform(0, self.MAX_JITTER)
                logger.warning(
                    "StarRocks returned %d, retrying in %.2fs (attempt %d/%d)",
                    response.status_code,
                    delay,
                    retries + 1,
                    self.MAX_RETRIES,
                )
                await asyncio.sleep(delay)
                retries += 1
                continue

            if response.status_code in (401, 403):
                raise AuthenticationError("Invalid StarRocks credentials")

            if response.status_code == 404:
                raise NotFoundError("SQL endpoint not found")

            response.raise_for_status()
            return self._parse_result(response.text, sql)

    @staticmethod
    def _parse_result(body: str, sql: str) -> QueryResult:
        columns: tuple[str, ...] = ()
        rows: list[tuple[Any, ...]] = []
        statistics: dict[str, Any] = {}

        for line in body.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as exc:
                raise QueryExecutionError(f"Malformed response line: {line[:100]}", sql) from exc
            if not isinstance(payload, dict):
                continue

            if payload.get("status") == "FAILED":
                raise QueryExecutionError(payload.get("msg") or payload.get("message") or "Query failed", sql)
            if "meta" in payload:
                columns = tuple(column["name"] for column in payload["meta"])
            elif "data" in payload:
                rows.append(tuple(payload["data"]))
            elif "statistics" in payload:
                statistics = payload["statistics"]

        return QueryResult(columns=columns, rows=tuple(rows), statistics=statistics)

    async def get_query_profile(self, query_id: str) -> str:
        """Fetch the text profile of a finished query.

        Raises:
            ValueError: If ``query_id`` is not a StarRocks query id.
            NotFoundError: If no profile is stored for the query.
        """
        if not _QUERY_ID.match(query_id):
            raise ValueError(f"Invalid query id: {query_id!r}")

        result = await self.execute(f"SELECT get_query_profile('{query_id}')")
        profile = result.scalar()
        if not profile:
            raise NotFoundError(f"No profile found for query {query_id}")
        return str(profile)

    async def fetch_session_variables(self) -> dict[str, str]:
        """Current session variables, used to override profile defaults."""
        result = await self.execute("SHOW VARIABLES")
        variables: dict[str, str] = {}
        for row in result.rows:
            if len(row) >= 2:
                variables[str(row[0])] = "" if row[1] is None else str(row[1])
        return variables
