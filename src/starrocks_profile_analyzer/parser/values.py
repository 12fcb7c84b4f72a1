"""Parsers for the numeric literals that appear in query profiles.

Durations look like ``9m41s``, ``1s727ms`` or ``538.833us``. Byte sizes look
like ``558.156 GB`` or ``1.026K (1026)``. Counters may carry thousands
separators or a parenthetical exact value.
"""

import re

from starrocks_profile_analyzer.parser.exceptions import ValueParseError

_DURATION_TOKEN = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|us|μs|µs|ns|h|m|s)")
_DURATION_NS: dict[str, float] = {
    "h": 3_600_000_000_000,
    "m": 60_000_000_000,
    "s": 1_000_000_000,
    "ms": 1_000_000,
    "us": 1_000,
    "μs": 1_000,
    "µs": 1_000,
    "ns": 1,
}

_BYTES = re.compile(
    r"^(-?\d+(?:\.\d+)?)\s*([KMGT]?B|[KMGT])(?:\s*\((\d[\d,]*)\))?$",
    re.IGNORECASE,
)
_BYTE_MULTIPLIERS: dict[str, int] = {
    "B": 1,
    "K": 1024,
    "KB": 1024,
    "M": 1024**2,
    "MB": 1024**2,
    "G": 1024**3,
    "GB": 1024**3,
    "T": 1024**4,
    "TB": 1024**4,
}

_PLAIN_NUMBER = re.compile(r"^-?\d+(?:\.\d+)?$")
_PARENTHETICAL = re.compile(r"\((-?\d[\d,]*)\)\s*$")
_SCALED_COUNT = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMB])$")
_COUNT_MULTIPLIERS: dict[str, int] = {"K": 1_000, "M": 1_000_000, "B": 1_000_000_000}
_NUMERIC_PREFIX = re.compile(r"^-?\d+(?:\.\d+)?")

_BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def parse_duration(value: str) -> int:
    """Parse a duration literal into integer nanoseconds.

    Raises:
        ValueParseError: If the text is empty, unitless or not a duration.
    """
    text = value.strip()
    if not text:
        raise ValueParseError(value, "empty", "duration")

    total = 0.0
    position = 0
    matched = False
    for match in _DURATION_TOKEN.finditer(text):
        if text[position : match.start()].strip():
            raise ValueParseError(value, "invalid", "duration")
        total += float(match.group(1)) * _DURATION_NS[match.group(2)]
        position = match.end()
        matched = True

    if not matched:
        kind = "unitless" if _PLAIN_NUMBER.match(text) else "invalid"
        raise ValueParseError(value, kind, "duration")
    if text[position:].strip():
        raise ValueParseError(value, "invalid", "duration")
    return round(total)


def parse_duration_ms(value: str) -> float:
    return parse_duration(value) / 1_000_000


def parse_bytes(value: str) -> int:
    """Parse a base-1024 byte size. A trailing ``(N)`` exact value wins."""
    text = value.strip()
    if not text:
        raise ValueParseError(value, "empty", "bytes")

    match = _BYTES.match(text)
    if match is None:
        kind = "unitless" if _PLAIN_NUMBER.match(text) else "invalid"
        raise ValueParseError(value, kind, "bytes")

    number, unit, exact = match.groups()
    if exact is not None:
        return int(exact.replace(",", ""))
    return int(float(number) * _BYTE_MULTIPLIERS[unit.upper()])


def parse_number(value: str) -> int:
    """Parse an integer counter, ignoring thousands separators."""
    text = value.strip()
    if not text:
        raise ValueParseError(value, "empty", "integer")

    exact = _PARENTHETICAL.search(text)
    if exact is not None:
        return int(exact.group(1).replace(",", ""))

    cleaned = text.replace(",", "")
    try:
        return int(cleaned)
    except ValueError:
        pass

    scaled = _SCALED_COUNT.match(cleaned)
    if scaled is not None:
        return int(float(scaled.group(1)) * _COUNT_MULTIPLIERS[scaled.group(2)])
    raise ValueParseError(value, "invalid", "integer")


def try_parse_duration(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return parse_duration(value)
    except ValueParseError:
        return None


def try_parse_duration_ms(value: str | None) -> float | None:
    nanos = try_parse_duration(value)
    return None if nanos is None else nanos / 1_000_000


def try_parse_bytes(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return parse_bytes(value)
    except ValueParseError:
        return None


def try_parse_number(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return parse_number(value)
    except ValueParseError:
        return None


def parse_metric_value(value: str | None) -> float | None:
    """Best-effort numeric reading of an untyped metric string.

    Tries, in order: percentage, byte size, duration (as milliseconds) and
    finally the leading numeric prefix.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None

    if text.endswith("%"):
        try:
            return float(text[:-1].strip())
        except ValueError:
            return None

    if " " in text:
        size = try_parse_bytes(text)
        if size is not None:
            return float(size)

    millis = try_parse_duration_ms(text)
    if millis is not None:
        return millis

    prefix = _NUMERIC_PREFIX.match(text.replace(",", ""))
    if prefix is None:
        return None
    return float(prefix.group(0))


def format_bytes(size: int | float) -> str:
    value = float(size)
    unit_index = 0
    while value >= 1024.0 and unit_index < len(_BYTE_UNITS) - 1:
        value /= 1024.0
        unit_index += 1
    return f"{value:.2f} {_BYTE_UNITS[unit_index]}"


def format_duration_ms(ms: float) -> str:
    if ms < 1.0:
        return f"{ms * 1000:.2f}μs"
    if ms < 1000.0:
        return f"{ms:.2f}ms"
    if ms < 60_000.0:
        return f"{ms / 1000:.2f}s"
    if ms < 3_600_000.0:
        return f"{ms / 60_000:.1f}m"
    return f"{ms / 3_600_000:.1f}h"
