"""Parsing of the ``-php -l -G:0:1:2:4 -D`` output of exiftool into tag records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_BACKSLASH = ord("\\")
_SIMPLE_ESCAPES = {ord("t"): ord("\t"), ord("n"): ord("\n"), ord("r"): ord("\r")}
_ATOI = re.compile(rb"\s*([+-]?\d+)")
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


@dataclass
class TagInfo:
    """One tag reported by exiftool."""

    name: str
    group: tuple[str | None, str | None, str | None] = (None, None, None)
    desc: str | None = None
    tag_id: str | None = None
    value: str | None = None
    num: str | None = None
    copy_num: int = 0

    @property
    def value_len(self) -> int:
        """Length of the converted value in bytes."""
        return 0 if self.value is None else len(self.value.encode(_ENCODING, _ERRORS))

    @property
    def num_len(self) -> int:
        """Length of the numerical value in bytes."""
        return 0 if self.num is None else len(self.num.encode(_ENCODING, _ERRORS))


def full_key_name(tag: TagInfo) -> str:
    """Return the group names and the tag name joined by dots."""
    return ".".join([g for g in tag.group if g is not None] + [tag.name])


def _hex_digit(ch: int) -> int | None:
    if 0x30 <= ch <= 0x39:
        return ch - 0x30
    if 0x41 <= ch <= 0x46:
        return ch - 0x41 + 10
    if 0x61 <= ch <= 0x66:
        return ch - 0x61 + 10
    return None


def unescape(data: bytes) -> bytes:
    """Undo the C-style escapes (``\\xNN``, ``\\t``, ``\\n``, ``\\r``) of exiftool output.

    Any other escaped character stands for itself; a trailing backslash is dropped.
    """
    data = bytes(data)
    if _BACKSLASH not in data:
        return data
    out = bytearray()
    pos = 0
    end = len(data)
    while pos < end:
        ch = data[pos]
        pos += 1
        if ch != _BACKSLASH:
            out.append(ch)
            continue
        if pos >= end:
            break
        ch = data[pos]
        pos += 1
        if ch == ord("x"):
            value = 0
            for _ in range(2):
                nibble = _hex_digit(data[pos]) if pos < end else None
                pos += 1
                if nibble is None:
                    value = 0
                    break
                value = (value << 4) + nibble
            out.append(value)
        else:
            out.append(_SIMPLE_ESCAPES.get(ch, ch))
    return bytes(out)


def _decode(raw: bytes) -> str:
    return raw.decode(_ENCODING, _ERRORS)


def _atoi(raw: bytes) -> int:
    match = _ATOI.match(raw)
    return int(match.group(1)) if match else 0


def _parse_tag_header(line: bytes, start: int) -> tuple[TagInfo, int] | None:
    closing = line.find(b'"', start)
    if closing < 0:
        return None
    *groups, name = line[start:closing].split(b":")
    group: list[str | None] = [None, None, None]
    copy_num = 0
    for index, raw in enumerate(groups):
        if index <= 2:
            group[index] = _decode(raw)
        elif raw.startswith(b"Copy"):
            copy_num = _atoi(raw[4:])
    tag = TagInfo(name=_decode(name), group=(group[0], group[1], group[2]), copy_num=copy_num)
    return tag, closing


def _source_file_value(line: bytes, closing: int) -> str | None:
    last = len(line) - 1
    if last >= 0 and line[last] == ord("\r"):
        last -= 1
    if last >= 0 and line[last] == ord(","):
        last -= 1
    if last < 0 or line[last] != ord('"'):
        return None
    if last - closing - 6 < 0:
        return None
    return _decode(line[closing + 6:last])


def _parse_property(line: bytes, start: int) -> tuple[str, str] | None:
    closing = line.find(b'"', start)
    if closing < 0:
        return None
    prop = _decode(line[start:closing])
    value_start = closing + 5
    if value_start > len(line):
        return None
    if value_start < len(line) and line[value_start] == ord('"'):
        value_start += 1
    value_end = len(line)
    for trailing in (b"\r", b",", b'"'):
        if value_end > 0 and line[value_end - 1] == trailing[0]:
            value_end -= 1
    if value_end < value_start:
        return None
    return prop, _decode(unescape(line[value_start:value_end]))


def parse_php_output(text: str | bytes) -> list[TagInfo]:
    """Parse exiftool ``-php`` output into a list of tags in output order.

    Only complete (newline-terminated) lines are considered; parsing stops at the
    first malformed property line, returning the tags read so far.
    """
    data = text.encode(_ENCODING, _ERRORS) if isinstance(text, str) else bytes(text)
    tags: list[TagInfo] = []
    current: TagInfo | None = None
    in_properties = False

    for line in data.split(b"\n")[:-1]:
        quote = line.find(b'"')
        if quote < 0:
            # End of a tag block: make sure value and num are filled in.
            if current is not None:
                if current.value is None:
                    current.value = ""
                if current.num is None:
                    current.num = current.value
            in_properties = False
            continue
        start = quote + 1

        if not in_properties:
            parsed = _parse_tag_header(line, start)
            if parsed is None:
                continue
            tag, closing = parsed
            if tag.name == "SourceFile":
                value = _source_file_value(line, closing)
                if value is None:
                    continue
                tag.value = tag.num = value
            else:
                in_properties = True
            tags.append(tag)
            current = tag
            continue

        prop = _parse_property(line, start)
        if prop is None:
            break
        name, value = prop
        assert current is not None
        if name == "desc":
            current.desc = value
        elif name == "id":
            current.tag_id = value
        elif name == "num":
            current.num = value
        elif name == "val":
            current.value = value

    return tags