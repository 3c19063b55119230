"""A long-running exiftool process driven through its ``-stay_open`` argument file mode."""

from __future__ import annotations

import contextlib
import subprocess
import threading
import time
from collections import deque
from typing import BinaryIO

from moviemeta.exiftool_commands import (
    build_extract_args,
    build_write_args,
    find_summary,
    frame_command,
    next_command_number,
)
from moviemeta.exiftool_output import TagInfo, parse_php_output
from moviemeta.exiftool_pipe import ResponseBuffer

DEFAULT_EXECUTABLE = "exiftool"

_READ_SIZE = 65536
_ERROR_WAIT = 1.0
_CLOSE_WAIT = 10.0
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class ExifToolError(RuntimeError):
    """The exiftool process could not be started or talked to."""


class _StreamReader:
    """Reads one output stream of exiftool in a background thread and splits it into responses."""

    def __init__(self, stream: BinaryIO, condition: threading.Condition) -> None:
        self._stream = stream
        self._condition = condition
        self._buffer = ResponseBuffer()
        self.responses: deque[tuple[int, bytes]] = deque()
        self.eof = False
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            try:
                chunk = self._stream.read1(_READ_SIZE)
            except (OSError, ValueError):
                chunk = b""
            with self._condition:
                if not chunk:
                    self.eof = True
                    self._condition.notify_all()
                    return
                self._buffer.feed(chunk)
                while (response := self._buffer.next_response()) is not None:
                    self.responses.append(response)
                if self.responses:
                    self._condition.notify_all()

    def join(self, timeout: float | None = None) -> None:
        self._thread.join(timeout)


def _remaining(deadline: float | None) -> float | None:
    return None if deadline is None else deadline - time.monotonic()


class ExifTool:
    """Talks to one exiftool process that stays open between commands.

    Commands are numbered 1..99999 (wrapping around); every command's standard
    output and error are collected separately and matched by number.
    """

    def __init__(self, executable: str | None = None, first_arg: str | None = None) -> None:
        program = executable or DEFAULT_EXECUTABLE
        args = [program] + ([first_arg] if first_arg else []) + ["-stay_open", "true", "-@", "-"]
        try:
            self._process = subprocess.Popen(
                args, stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE
            )
        except OSError as exc:
            raise ExifToolError(f"cannot start {program}: {exc}") from exc

        self._condition = threading.Condition()
        self._stdout = _StreamReader(self._process.stdout, self._condition)
        self._stderr = _StreamReader(self._process.stderr, self._condition)
        self._command_number = 0
        self._last_complete = 0
        self._last_output = b""
        self._last_error = b""
        self._write_tags: list[TagInfo] = []
        self._closed = False

    def __enter__(self) -> ExifTool:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def last_complete(self) -> int:
        """Number of the last completed command, 0 if none or after a timeout."""
        return self._last_complete

    @property
    def last_command(self) -> int:
        """Number of the last command sent."""
        return self._command_number

    def is_running(self) -> bool:
        """Return whether the exiftool process is still alive."""
        return self._process.poll() is None

    def command(self, cmd: str) -> int:
        """Send newline-separated arguments as one command and return its number."""
        if not self.is_running():
            raise ExifToolError("exiftool is not running")
        number = next_command_number(self._command_number)
        data = frame_command(cmd, number).encode(_ENCODING, _ERRORS)
        try:
            self._process.stdin.write(data)
            self._process.stdin.flush()
        except (OSError, ValueError) as exc:
            raise ExifToolError(f"cannot send command to exiftool: {exc}") from exc
        self._command_number = number
        return number

    def complete(self, timeout: float | None = None) -> int | None:
        """Wait for the next command to complete and return its number.

        Returns None if nothing completed within ``timeout`` seconds (None waits
        forever). Raises ExifToolError if exiftool stopped or its errors never came.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._condition:
            self._last_complete = 0
            while not self._stdout.responses:
                if self._stdout.eof:
                    raise ExifToolError("exiftool is not running")
                remaining = _remaining(deadline)
                if remaining is not None and remaining <= 0:
                    return None
                self._condition.wait(remaining)
            number, output = self._stdout.responses.popleft()

            error_deadline = time.monotonic() + _ERROR_WAIT
            while True:
                while not self._stderr.responses:
                    if self._stderr.eof:
                        raise ExifToolError("exiftool is not running")
                    remaining = _remaining(error_deadline)
                    if remaining <= 0:
                        raise ExifToolError(f"timed out reading errors of command {number}")
                    self._condition.wait(remaining)
                error_number, error = self._stderr.responses.popleft()
                if error_number == number:
                    break

            self._last_output = output
            self._last_error = error
            self._last_complete = number
        return number

    def extract_info(self, file: str, opts: str | None = None) -> int:
        """Send a command extracting all tags of the file(s); return its number."""
        return self.command(build_extract_args(file, opts))

    def get_info(self, command_number: int = 0, timeout: float | None = None) -> list[TagInfo]:
        """Wait for a command and parse its output into tags.

        ``command_number`` 0 takes the next completed command, a positive number
        waits for that command, and -1 parses the previously completed one.
        Raises TimeoutError if the command does not complete in time.
        """
        if command_number >= 0:
            while True:
                number = self.complete(timeout)
                if number is None:
                    raise TimeoutError("exiftool command did not complete in time")
                if command_number == 0 or number == command_number:
                    break
        elif self._last_complete <= 0:
            raise ExifToolError("no exiftool command has completed")
        return parse_php_output(self._last_output)

    def image_info(self, file: str, opts: str | None = None, timeout: float | None = None) -> list[TagInfo]:
        """Extract and return all tags of the file(s)."""
        return self.get_info(self.extract_info(file, opts), timeout)

    def set_new_value(self, tag: str | None = None, value: str | None = None) -> int:
        """Queue a new tag value for write_info() and return the number of queued tags.

        A None or empty value deletes the tag; a None tag clears the queue.
        """
        if tag is None:
            self._write_tags.clear()
            return 0
        self._write_tags.append(TagInfo(name=tag, value=value or None))
        return len(self._write_tags)

    def write_info(self, file: str, opts: str | None = None, tags: list[TagInfo] | None = None) -> int:
        """Send a command writing the given (or queued) tags to the file(s); return its number."""
        return self.command(build_write_args(file, self._write_tags if tags is None else tags, opts))

    def output(self) -> str | None:
        """Standard output of the last completed command, or None if empty."""
        if self._last_complete <= 0 or not self._last_output:
            return None
        return self._last_output.decode(_ENCODING, _ERRORS)

    def error(self) -> str | None:
        """Error output of the last completed command, or None if empty."""
        if self._last_complete <= 0 or not self._last_error:
            return None
        return self._last_error.decode(_ENCODING, _ERRORS)

    def get_summary(self, message: str) -> int | None:
        """Return the count of a summary message of the last command, or None if absent."""
        for text in (self.error(), self.output()):
            count = find_summary(text, message)
            if count is not None:
                return count
        return None

    def close(self) -> None:
        """Ask exiftool to exit and wait for it, killing it if it does not."""
        if self._closed:
            return
        self._closed = True
        if self.is_running():
            with contextlib.suppress(ExifToolError):
                self.command("-stay_open\nfalse\n")
        with contextlib.suppress(OSError, ValueError):
            self._process.stdin.close()
        try:
            self._process.wait(timeout=_CLOSE_WAIT)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        self._stdout.join(_CLOSE_WAIT)
        self._stderr.join(_CLOSE_WAIT)
        for stream in (self._process.stdout, self._process.stderr):
            with contextlib.suppress(OSError, ValueError):
                stream.close()