class StarRocksAPIError(Exception):
    pass


class AuthenticationError(StarRocksAPIError):
    pass


class NotFoundError(StarRocksAPIError):
    pass


class ServiceUnavailableError(StarRocksAPIError):
    def __init__(
        self, message: str = "Service unavailable", retry_after: float | None = None
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class QueryExecutionError(StarRocksAPIError):
    def __init__(self, message: str, sql: str | None = None) -> None:
        super().__init__(message)
        self.sql = sql
