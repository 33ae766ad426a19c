"""
Human-readable size and duration parsing.

Sizes always use binary multiples: "1GB" and "1GiB" are both 1024**3 bytes.
Durations default to hours when no unit is given.
"""
import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation


class InvalidFormatError(ValueError):
    """Raised when a size or duration string cannot be parsed."""


_NUMBER_UNIT_RE = re.compile(r"^\s*(\d[\d.]*)\s*([a-z]*)\s*$", re.IGNORECASE)

SIZE_UNITS = {
    "": 1,
    "b": 1,
    "byte": 1,
    "bytes": 1,
    "k": 1024,
    "kb": 1024,
    "kib": 1024,
    "m": 1024 ** 2,
    "mb": 1024 ** 2,
    "mib": 1024 ** 2,
    "g": 1024 ** 3,
    "gb": 1024 ** 3,
    "gib": 1024 ** 3,
    "t": 1024 ** 4,
    "tb": 1024 ** 4,
    "tib": 1024 ** 4,
}

_MINUTE = 60
_HOUR = 60 * _MINUTE
_DAY = 24 * _HOUR

# Months and years are approximations (30 and 365 days).
DURATION_UNITS = {
    "": _HOUR,
    "m": _MINUTE,
    "min": _MINUTE,
    "mins": _MINUTE,
    "minute": _MINUTE,
    "minutes": _MINUTE,
    "h": _HOUR,
    "hr": _HOUR,
    "hrs": _HOUR,
    "hour": _HOUR,
    "hours": _HOUR,
    "d": _DAY,
    "day": _DAY,
    "days": _DAY,
    "w": 7 * _DAY,
    "wk": 7 * _DAY,
    "week": 7 * _DAY,
    "weeks": 7 * _DAY,
    "mo": 30 * _DAY,
    "month": 30 * _DAY,
    "months": 30 * _DAY,
    "y": 365 * _DAY,
    "yr": 365 * _DAY,
    "year": 365 * _DAY,
    "years": 365 * _DAY,
}

_BYTE_LABELS = ["Bytes", "KB", "MB", "GB", "TB"]


def _split_number_unit(text: str, units: dict, kind: str) -> tuple[Decimal, int]:
    if not isinstance(text, str):
        raise InvalidFormatError(f"Invalid {kind} format: {text!r}")

    match = _NUMBER_UNIT_RE.match(text)
    if not match:
        raise InvalidFormatError(f"Invalid {kind} format: {text!r}")

    raw_number, raw_unit = match.groups()
    unit = raw_unit.lower()
    if unit not in units:
        raise InvalidFormatError(f"Unknown {kind} unit {raw_unit!r} in {text!r}")

    try:
        number = Decimal(raw_number)
    except InvalidOperation as e:
        raise InvalidFormatError(f"Invalid number {raw_number!r} in {text!r}") from e

    return number, units[unit]


def parse_size(text: str) -> int:
    """
    Parse a human size string into an exact byte count.

    Args:
        text: Size such as "512", "100MiB", "2.5GB" (case-insensitive)

    Returns:
        Number of bytes (fractions of a byte are truncated)

    Raises:
        InvalidFormatError: If the string has no leading digits, an unknown
            unit, or a malformed number
    """
    number, multiplier = _split_number_unit(text, SIZE_UNITS, "size")
    return int(number * multiplier)


def parse_duration(text: str) -> timedelta:
    """
    Parse a human duration string into a timedelta.

    A bare number is interpreted as hours ("72" == 3 days).

    Raises:
        InvalidFormatError: If the string cannot be parsed
    """
    number, seconds = _split_number_unit(text, DURATION_UNITS, "duration")
    return timedelta(seconds=float(number * seconds))


def format_bytes(size: int) -> str:
    """Format a byte count with 1024-based units, e.g. 1536 -> "1.50 KB"."""
    if size <= 0:
        return "0 Bytes"

    value = float(size)
    index = 0
    while value >= 1024 and index < len(_BYTE_LABELS) - 1:
        value /= 1024
        index += 1

    return f"{value:.2f} {_BYTE_LABELS[index]}"


def format_duration(duration: timedelta) -> str:
    """Render a duration as the largest whole unit, e.g. "3 days"."""
    seconds = int(duration.total_seconds())
    for label, unit in (("day", _DAY), ("hour", _HOUR), ("minute", _MINUTE)):
        if seconds >= unit and seconds % unit == 0:
            count = seconds // unit
            return f"{count} {label}{'s' if count != 1 else ''}"
    return f"{seconds} seconds"
