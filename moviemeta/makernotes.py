"""Decoding of maker notes that generic EXIF readers do not understand."""

from __future__ import annotations

import abc
import enum
import logging
import struct
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ExifData(Generic[T]):
    """A value read from EXIF together with the key it came from."""

    key: str
    value: T


class ByteOrder(enum.Enum):
    LITTLE = "<"
    BIG = ">"


class ExifType(enum.IntEnum):
    """TIFF/EXIF value types."""

    UNSIGNED_BYTE = 1
    ASCII = 2
    UNSIGNED_SHORT = 3
    UNSIGNED_LONG = 4
    UNSIGNED_RATIONAL = 5
    SIGNED_BYTE = 6
    UNDEFINED = 7
    SIGNED_SHORT = 8
    SIGNED_LONG = 9
    SIGNED_RATIONAL = 10
    FLOAT = 11
    DOUBLE = 12
    IFD = 13


_TYPE_SIZES = {
    ExifType.UNSIGNED_BYTE: 1,
    ExifType.ASCII: 1,
    ExifType.UNSIGNED_SHORT: 2,
    ExifType.UNSIGNED_LONG: 4,
    ExifType.UNSIGNED_RATIONAL: 8,
    ExifType.SIGNED_BYTE: 1,
    ExifType.UNDEFINED: 1,
    ExifType.SIGNED_SHORT: 2,
    ExifType.SIGNED_LONG: 4,
    ExifType.SIGNED_RATIONAL: 8,
    ExifType.FLOAT: 4,
    ExifType.DOUBLE: 8,
    ExifType.IFD: 4,
}

_STRUCT_CODES = {
    ExifType.UNSIGNED_BYTE: "B",
    ExifType.UNSIGNED_SHORT: "H",
    ExifType.UNSIGNED_LONG: "I",
    ExifType.UNSIGNED_RATIONAL: "I",
    ExifType.SIGNED_BYTE: "b",
    ExifType.UNDEFINED: "B",
    ExifType.SIGNED_SHORT: "h",
    ExifType.SIGNED_LONG: "i",
    ExifType.SIGNED_RATIONAL: "i",
    ExifType.FLOAT: "f",
    ExifType.DOUBLE: "d",
    ExifType.IFD: "I",
}

_RATIONALS = (ExifType.UNSIGNED_RATIONAL, ExifType.SIGNED_RATIONAL)


def type_size(exif_type: int) -> int:
    """Size in bytes of one component of the given type; 0 for unknown types."""
    return _TYPE_SIZES.get(exif_type, 0)


def _decode_values(exif_type: ExifType, raw: bytes, order: ByteOrder) -> tuple[Any, ...]:
    if exif_type == ExifType.ASCII:
        return (raw.split(b"\0", 1)[0].decode("utf-8", errors="replace"),)
    code = _STRUCT_CODES[exif_type]
    count = len(raw) // type_size(exif_type)
    if exif_type in _RATIONALS:
        parts = struct.unpack(f"{order.value}{2 * count}{code}", raw)
        return tuple(0.0 if den == 0 else num / den for num, den in zip(parts[::2], parts[1::2]))
    return struct.unpack(f"{order.value}{count}{code}", raw)


class MakerNoteHeader(abc.ABC):
    """Header that precedes the IFD of a custom maker note."""

    @abc.abstractmethod
    def read(self, data: bytes) -> bool:
        """Return whether the data starts with this header."""

    @property
    @abc.abstractmethod
    def byte_order(self) -> ByteOrder: ...

    @property
    @abc.abstractmethod
    def size(self) -> int: ...


class AppleIosMakerNoteHeader(MakerNoteHeader):
    """Header of the maker notes written by Apple iOS devices."""

    SIGNATURE = b"Apple iOS\x00\x00\x01MM"

    def read(self, data: bytes) -> bool:
        return bytes(data[: len(self.SIGNATURE)]) == self.SIGNATURE

    @property
    def byte_order(self) -> ByteOrder:
        return ByteOrder.BIG

    @property
    def size(self) -> int:
        return len(self.SIGNATURE)


@dataclass(frozen=True)
class MakerNoteTag:
    """Description of one maker note tag."""

    tag_id: int
    name: str
    title: str
    description: str
    type: ExifType
    count: int

    @property
    def key(self) -> str:
        return f"Exif.MakerNote.{self.name}"


@dataclass(frozen=True)
class MakerNoteEntry:
    """One decoded maker note value."""

    tag: MakerNoteTag
    type: ExifType
    values: tuple[Any, ...]

    @property
    def key(self) -> str:
        return self.tag.key


_APPLE_TAGS = (
    MakerNoteTag(0x0001, "AppleIosMakerNoteVersion", "Maker Note Version", "Maker Note Version",
                 ExifType.SIGNED_LONG, 1),
    MakerNoteTag(0x0004, "AppleIosAEStable", "AE Stable?", "Was auto exposure stable?",
                 ExifType.SIGNED_LONG, 1),
    MakerNoteTag(0x0007, "AppleIosAFStable", "AF Stable?", "Was auto focus stable?",
                 ExifType.SIGNED_LONG, 1),
    MakerNoteTag(0x0008, "AppleIosAccelerationVector", "Acceleration Vector",
                 "XYZ coordinates of the acceleration vector in units of g. As viewed from the front of the "
                 "phone, positive X is toward the left side, positive Y is toward the bottom, and positive Z "
                 "points into the face of the phone.",
                 ExifType.SIGNED_RATIONAL, 3),
    MakerNoteTag(0x002E, "AppleIosCameraType", "Camera Type",
                 "Camera type (0=Back Wide, 1=Back Normal, 6=Front)", ExifType.SIGNED_LONG, 1),
)


class CustomMakernotes:
    """Registry of the known custom maker notes, indexed by camera make."""

    def __init__(self) -> None:
        self.headers: dict[str, MakerNoteHeader] = {}
        self.tags_by_id: dict[str, dict[int, MakerNoteTag]] = {}
        self.tags_by_name: dict[str, dict[str, MakerNoteTag]] = {}
        self.keys: dict[str, str] = {}

        for make, header, tags in (("Apple", AppleIosMakerNoteHeader(), _APPLE_TAGS),):
            self.headers[make] = header
            by_id = self.tags_by_id.setdefault(make, {})
            by_name = self.tags_by_name.setdefault(make, {})
            for tag in tags:
                by_id.setdefault(tag.tag_id, tag)
                by_name.setdefault(tag.name, tag)
                self.keys.setdefault(tag.name, tag.key)

    def decode(self, make: str, data: bytes) -> list[MakerNoteEntry]:
        """Decode the known tags of a raw maker note of the given camera make.

        Returns an empty list if the make is unknown or the header does not match.
        Raises ValueError if the maker note is truncated.
        """
        header = self.headers.get(make)
        tags = self.tags_by_id.get(make)
        if header is None or tags is None:
            return []

        buf = bytes(data)
        if not header.read(buf):
            return []

        order = header.byte_order
        start = header.size
        entries: list[MakerNoteEntry] = []
        try:
            (num_entries,) = struct.unpack_from(order.value + "H", buf, start)
            pos = start + 2
            for _ in range(num_entries):
                tag_id, type_id, count, offset = struct.unpack_from(order.value + "HHII", buf, pos)
                pos += 12

                try:
                    exif_type = ExifType(type_id)
                except ValueError:
                    logger.warning("Maker note tag 0x%04x has unknown type %u.", tag_id, type_id)
                    continue

                num_bytes = type_size(exif_type) * count
                if num_bytes <= 4:
                    value_start = pos - num_bytes if order is ByteOrder.LITTLE else pos - 4
                else:
                    value_start = start + offset
                raw = buf[value_start:value_start + num_bytes]
                if len(raw) != num_bytes:
                    raise ValueError(f"maker note value of tag 0x{tag_id:04x} is truncated")

                tag = tags.get(tag_id)
                if tag is None:
                    continue
                if tag.type != exif_type:
                    logger.warning("Tag %s was expected to have type %u but the provided one has type %u.",
                                   tag.name, tag.type, exif_type)

                entry = MakerNoteEntry(tag, exif_type, _decode_values(exif_type, raw, order))
                logger.debug("Decoded custom makernote: %s=%s", entry.key, entry.values)
                entries.append(entry)
        except struct.error as exc:
            raise ValueError("maker note is truncated") from exc

        return entries