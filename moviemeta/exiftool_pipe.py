"""Splitting of the output stream of an exiftool ``-stay_open`` session into responses.

Every response of exiftool ends with a line ``{readyNNNNN}`` (``-echo4`` of the
framed command), where ``NNNNN`` is the five-digit command number. The line may
end with LF or CR+LF.
"""

from __future__ import annotations

_MARKER = b"{ready"
_MARKER_LEN = 13  # "{ready#####}\n"
_DIGITS = frozenset(b"0123456789")
_LF = ord("\n")
_CR = ord("\r")
_CLOSE = ord("}")


def _marker_number(buf: bytearray, pos: int) -> int | None:
    """Return the command number of a complete, valid marker at ``pos``, or None."""
    remaining = len(buf) - pos
    if remaining < _MARKER_LEN or buf[pos + 11] != _CLOSE:
        return None
    terminator = buf[pos + 12]
    if terminator == _CR:
        if remaining < _MARKER_LEN + 1 or buf[pos + 13] != _LF:
            return None
    elif terminator != _LF:
        return None
    digits = buf[pos + 6:pos + 11]
    if not all(d in _DIGITS for d in digits):
        return None
    number = int(digits)
    return number or None


class ResponseBuffer:
    """Accumulates bytes read from exiftool and hands out complete responses."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        """Append newly read bytes."""
        self._buffer += data

    def next_response(self) -> tuple[int, bytes] | None:
        """Remove and return the next complete response as (command number, text).

        The text excludes the ready marker. Returns None if no complete response
        has arrived yet; the incomplete data stays buffered.
        """
        buf = self._buffer
        pos = buf.find(_MARKER)
        while pos >= 0:
            number = _marker_number(buf, pos)
            if number is not None:
                end = pos + _MARKER_LEN + (1 if buf[pos + 12] == _CR else 0)
                response = bytes(buf[:pos])
                del buf[:end]
                return number, response
            pos = buf.find(_MARKER, pos + len(_MARKER))
        return None

    def clear(self) -> None:
        """Drop all buffered data."""
        self._buffer.clear()