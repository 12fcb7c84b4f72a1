from collections.abc import Iterable
from pathlib import Path

from starrocks_profile_analyzer.domain import ProfileDocument


class ProfileFileInput:
    """Input adapter that reads one profile per text file.

    A directory is expanded to its ``*.txt`` files in name order. The query
    id is taken from the file stem.
    """

    def __init__(self, paths: Iterable[str | Path], pattern: str = "*.txt") -> None:
        self._paths: list[Path] = []
        for path in map(Path, paths):
            if path.is_dir():
                self._paths.extend(sorted(path.glob(pattern)))
            else:
                self._paths.append(path)
        self._texts: list[tuple[str, str]] | None = None
        self._index: int = 0

    @classmethod
    def from_texts(cls, texts: dict[str, str]) -> "ProfileFileInput":
        """Create adapter from in-memory ``name -> text`` pairs (for testing)."""
        instance = cls.__new__(cls)
        instance._paths = []
        instance._texts = list(texts.items())
        instance._index = 0
        return instance

    def __aiter__(self) -> "ProfileFileInput":
        return self

    async def __anext__(self) -> ProfileDocument:
        if self._texts is not None:
            if self._index >= len(self._texts):
                raise StopAsyncIteration
            name, text = self._texts[self._index]
            self._index += 1
            return ProfileDocument(text=text, source=f"file:{name}", query_id=Path(name).stem)

        if self._index >= len(self._paths):
            raise StopAsyncIteration
        path = self._paths[self._index]
        self._index += 1
        if not path.exists():
            raise FileNotFoundError(f"Profile file not found: {path}")
        return ProfileDocument(
            text=path.read_text(encoding="utf-8"),
            source=f"file:{path}",
            query_id=path.stem,
        )

    @property
    def file_count(self) -> int:
        return len(self._texts) if self._texts is not None else len(self._paths)
