"""Conversion of exiftool tag values into typed EXIF values."""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta, timezone
from typing import TypeVar

from moviemeta.exiftool_output import TagInfo, full_key_name
from moviemeta.makernotes import ExifData

T = TypeVar("T")

_UINT = re.compile(r"\s*\+?(\d+)\s*")
_TIME = re.compile(
    r"\s*(\d{4})[-:/](\d{1,2})[-:/](\d{1,2})"
    r"(?:[ T](\d{1,2}):(\d{2})(?::(\d{2})(?:\.(\d+))?)?)?"
    r"\s*(Z|[+-]\d{2}(?::?\d{2})?)?\s*",
    re.IGNORECASE,
)
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def first_valid(tags: Mapping[str, TagInfo], keys: Iterable[str]) -> tuple[str, TagInfo] | None:
    """Return the first of ``keys`` present in ``tags`` with a non-empty value."""
    for key in keys:
        tag = tags.get(key)
        if tag is not None and tag.value_len > 0:
            return key, tag
    return None


def parse_uint(text: str, bits: int) -> int:
    """Parse a decimal unsigned integer that must fit in ``bits`` bits."""
    match = _UINT.fullmatch(text)
    if match is None:
        raise ValueError(f"not an unsigned integer: {text!r}")
    value = int(match.group(1))
    if value >= 1 << bits:
        raise ValueError(f"{value} does not fit in {bits} bits")
    return value


def _parse_double(text: str) -> float:
    return float(text)


def exif_string(tag: TagInfo | None) -> ExifData[str] | None:
    """Return the tag's value as a string."""
    if tag is None:
        return None
    return ExifData(full_key_name(tag), tag.value)


def exif_component(convert: Callable[[str], T], tag: TagInfo | None, n: int = 0) -> ExifData[T] | None:
    """Convert the n-th space-separated component of the tag's value.

    Returns None if there is no tag, no such component or it cannot be converted.
    """
    if tag is None or tag.value is None:
        return None
    parts = tag.value.split(" ")
    if n >= len(parts):
        return None
    try:
        return ExifData(full_key_name(tag), convert(parts[n]))
    except ValueError:
        return None


def exif_long(tag: TagInfo | None, n: int = 0) -> ExifData[int] | None:
    """Return the n-th component as an unsigned 32-bit integer."""
    return exif_component(lambda s: parse_uint(s, 32), tag, n)


def exif_short(tag: TagInfo | None, n: int = 0) -> ExifData[int] | None:
    """Return the n-th component as an unsigned 16-bit integer."""
    return exif_component(lambda s: parse_uint(s, 16), tag, n)


def exif_byte(tag: TagInfo | None, n: int = 0) -> ExifData[int] | None:
    """Return the n-th component as an unsigned 8-bit integer."""
    return exif_component(lambda s: parse_uint(s, 8), tag, n)


def exif_rational(tag: TagInfo | None, n: int = 0) -> ExifData[float] | None:
    """Return the n-th component as a floating-point number."""
    return exif_component(_parse_double, tag, n)


def decimal_to_dms(decimal: float, n: int) -> float:
    """Split a decimal degree value; n=0 gives degrees, 1 minutes, 2 seconds."""
    degrees = math.floor(decimal)
    if n == 0:
        return float(degrees)
    minutes = math.floor((decimal - degrees) * 60)
    if n == 1:
        return float(minutes)
    return (decimal - degrees - minutes / 60) * 3600


def _offset(text: str | None) -> timedelta:
    if not text or text.upper() == "Z":
        return timedelta(0)
    sign = -1 if text[0] == "-" else 1
    digits = text[1:].replace(":", "")
    hours = int(digits[:2])
    minutes = int(digits[2:4]) if len(digits) > 2 else 0
    return sign * timedelta(hours=hours, minutes=minutes)


def parse_time(text: str) -> float:
    """Parse a date and time into seconds since the Unix epoch.

    Accepts ``YYYY-MM-DD HH:MM:SS[.fff][zone]`` with '-', ':' or '/' as date
    separators, where the zone is ``Z``, ``+HH``, ``+HHMM`` or ``+HH:MM``. Times
    without a zone are taken as UTC. Raises ValueError on anything else.
    """
    match = _TIME.fullmatch(text)
    if match is None:
        raise ValueError(f"cannot parse time: {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    moment = datetime(
        int(year), int(month), int(day),
        int(hour or 0), int(minute or 0), int(second or 0),
        tzinfo=timezone.utc,
    ) - _offset(zone)
    whole = (moment - _EPOCH) // timedelta(seconds=1)
    nanoseconds = int(fraction[:9].ljust(9, "0")) if fraction else 0
    return whole + nanoseconds / 1e9