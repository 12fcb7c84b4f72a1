from typing import Protocol, Self, runtime_checkable

from starrocks_profile_analyzer.domain import ProfileDocument


@runtime_checkable
class ProfileInput(Protocol):
    """Protocol for async sources of raw profile documents."""

    def __aiter__(self) -> Self:
        ...

    async def __anext__(self) -> ProfileDocument:
        ...
