from starrocks_profile_analyzer.input.starrocks.adapter import StarRocksProfileInput
from starrocks_profile_analyzer.input.starrocks.client import QueryResult, StarRocksClient
from starrocks_profile_analyzer.input.starrocks.exceptions import (
    AuthenticationError,
    NotFoundError,
    QueryExecutionError,
    ServiceUnavailableError,
    StarRocksAPIError,
)

__all__ = [
    "StarRocksProfileInput",
    "StarRocksClient",
    "QueryResult",
    "StarRocksAPIError",
    "AuthenticationError",
    "NotFoundError",
    "ServiceUnavailableError",
    "QueryExecutionError",
]
