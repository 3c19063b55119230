import struct

import pytest

from moviemeta.makernotes import (
    AppleIosMakerNoteHeader,
    ByteOrder,
    CustomMakernotes,
    ExifType,
    MakerNoteHeader,
    MakerNoteTag,
    type_size,
)

SIGNATURE = AppleIosMakerNoteHeader.SIGNATURE


def build_note(entries, extra=b"", order=">", prefix=SIGNATURE):
    body = struct.pack(order + "H", len(entries))
    for tag_id, type_id, count, field in entries:
        body += struct.pack(order + "HHI", tag_id, type_id, count) + field
    return prefix + body + extra


def test_apple_header_signature():
    header = AppleIosMakerNoteHeader()
    assert SIGNATURE == b"Apple iOS\x00\x00\x01MM"
    assert header.size == 14
    assert header.byte_order is ByteOrder.BIG
    assert header.read(SIGNATURE + b"\x00\x01")
    assert not header.read(b"Apple iOS\x00\x00\x02MM")
    assert not header.read(SIGNATURE[:5])


@pytest.mark.parametrize(
    "exif_type,size",
    [(ExifType.ASCII, 1), (ExifType.SIGNED_SHORT, 2), (ExifType.SIGNED_LONG, 4), (ExifType.SIGNED_RATIONAL, 8)],
)
def test_type_size(exif_type, size):
    assert type_size(exif_type) == size


def test_type_size_unknown():
    assert type_size(99) == 0


def test_registry_contents():
    notes = CustomMakernotes()
    assert isinstance(notes.headers["Apple"], AppleIosMakerNoteHeader)
    accel = notes.tags_by_name["Apple"]["AppleIosAccelerationVector"]
    assert accel.tag_id == 0x0008
    assert accel.type is ExifType.SIGNED_RATIONAL
    assert accel.count == 3
    assert notes.tags_by_id["Apple"][0x002E].name == "AppleIosCameraType"
    assert notes.keys["AppleIosAccelerationVector"] == accel.key


def test_decode_inline_and_offset_values():
    notes = CustomMakernotes()
    rationals = struct.pack(">6i", -1, 2, 3, 1, 5, 4)
    offset = 2 + 12 * 2
    data = build_note(
        [
            (0x0001, ExifType.SIGNED_LONG, 1, struct.pack(">i", 14)),
            (0x0008, ExifType.SIGNED_RATIONAL, 3, struct.pack(">I", offset)),
        ],
        extra=rationals,
    )
    entries = notes.decode("Apple", data)
    assert [e.tag.name for e in entries] == ["AppleIosMakerNoteVersion", "AppleIosAccelerationVector"]
    assert entries[0].values == (14,)
    assert entries[0].key == notes.keys["AppleIosMakerNoteVersion"]
    assert entries[1].values == pytest.approx((-1 / 2, 3 / 1, 5 / 4))


def test_decode_skips_unknown_tags():
    notes = CustomMakernotes()
    data = build_note(
        [
            (0x0099, ExifType.SIGNED_LONG, 1, struct.pack(">i", 3)),
            (0x002E, ExifType.SIGNED_LONG, 1, struct.pack(">i", 6)),
        ]
    )
    entries = notes.decode("Apple", data)
    assert len(entries) == 1
    assert entries[0].tag.tag_id == 0x002E
    assert entries[0].values == (6,)


def test_decode_keeps_provided_type_on_mismatch():
    notes = CustomMakernotes()
    data = build_note([(0x0004, ExifType.SIGNED_SHORT, 1, b"\x00\x05\x00\x00")])
    (entry,) = notes.decode("Apple", data)
    assert entry.type is ExifType.SIGNED_SHORT
    assert entry.tag.type is ExifType.SIGNED_LONG
    assert entry.values == (5,)


def test_decode_unknown_make_or_bad_header():
    notes = CustomMakernotes()
    data = build_note([(0x0001, ExifType.SIGNED_LONG, 1, struct.pack(">i", 1))])
    assert notes.decode("Nikon", data) == []
    assert notes.decode("Apple", b"Bogus" + data[5:]) == []


def test_decode_truncated_raises():
    notes = CustomMakernotes()
    data = build_note([(0x0001, ExifType.SIGNED_LONG, 1, struct.pack(">i", 1))])
    truncated = data[:-6]
    with pytest.raises(ValueError):
        notes.decode("Apple", truncated)


def test_decode_offset_out_of_range_raises():
    notes = CustomMakernotes()
    data = build_note([(0x0008, ExifType.SIGNED_RATIONAL, 3, struct.pack(">I", 1000))])
    with pytest.raises(ValueError):
        notes.decode("Apple", data)


class LittleHeader(MakerNoteHeader):
    PREFIX = b"LE"

    def read(self, data):
        return data[:2] == self.PREFIX

    @property
    def byte_order(self):
        return ByteOrder.LITTLE

    @property
    def size(self):
        return 2


def test_decode_little_endian_header():
    notes = CustomMakernotes()
    tag = MakerNoteTag(0x0010, "TestShort", "Short", "A short value", ExifType.SIGNED_SHORT, 1)
    notes.headers["Test"] = LittleHeader()
    notes.tags_by_id["Test"] = {tag.tag_id: tag}
    data = build_note([(0x0010, ExifType.SIGNED_SHORT, 1, b"\x00\x00\x07\x00")], order="<", prefix=b"LE")
    (entry,) = notes.decode("Test", data)
    assert entry.values == (7,)
    assert entry.key == tag.key