from enum import StrEnum


class Locale(StrEnum):
    """Language used for diagnostic messages, conclusions and suggestions."""

    EN = "en"
    ZH = "zh"

    @classmethod
    def parse(cls, value: str | None) -> "Locale":
        if not value:
            return cls.EN
        normalized = value.strip().lower().replace("_", "-")
        if normalized.startswith("zh"):
            return cls.ZH
        return cls.EN

    def pick(self, en: str, zh: str) -> str:
        return zh if self is Locale.ZH else en
