from typing import Sequence

from starrocks_profile_analyzer.domain import ProfileDocument


class ManualInput:
    """Manual input source for programmatically feeding profiles."""

    def __init__(self, documents: Sequence[ProfileDocument | str]) -> None:
        self._documents: tuple[ProfileDocument, ...] = tuple(
            doc if isinstance(doc, ProfileDocument) else ProfileDocument(text=doc)
            for doc in documents
        )
        self._index: int = 0

    def __aiter__(self) -> "ManualInput":
        return self

    async def __anext__(self) -> ProfileDocument:
        if self._index >= len(self._documents):
            raise StopAsyncIteration
        document = self._documents[self._index]
        self._index += 1
        return document
