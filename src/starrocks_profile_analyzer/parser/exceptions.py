class ProfileParseError(Exception):
    pass


class EmptyProfileError(ProfileParseError):
    def __init__(self, message: str = "Profile text is empty") -> None:
        super().__init__(message)


class SectionNotFoundError(ProfileParseError):
    def __init__(self, section: str) -> None:
        super().__init__(f"{section} section not found")
        self.section = section


class TopologyError(ProfileParseError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Invalid topology: {reason}")
        self.reason = reason


class ValueParseError(ProfileParseError):
    """A numeric, duration or byte literal did not match any known grammar.

    ``kind`` is one of ``"empty"``, ``"unitless"`` or ``"invalid"``.
    """

    def __init__(self, value: str, kind: str, expected: str) -> None:
        super().__init__(f"Cannot parse {value!r} as {expected} ({kind})")
        self.value = value
        self.kind = kind
        self.expected = expected
