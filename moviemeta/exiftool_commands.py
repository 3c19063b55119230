"""Composition of exiftool ``-stay_open`` command arguments and reading of summaries."""

from __future__ import annotations

from collections.abc import Iterable

from moviemeta.exiftool_output import TagInfo

MAX_COMMAND_NUMBER = 99999

SUMMARY_DIRECTORIES_SCANNED = "directories scanned"
SUMMARY_DIRECTORIES_CREATED = "directories created"
SUMMARY_FILES_FAILED_CONDITION = "files failed condition"
SUMMARY_IMAGE_FILES_CREATED = "image files created"
SUMMARY_IMAGE_FILES_UPDATED = "image files updated"
SUMMARY_IMAGE_FILES_UNCHANGED = "image files unchanged"
SUMMARY_IMAGE_FILES_MOVED = "image files moved"
SUMMARY_IMAGE_FILES_COPIED = "image files copied"
SUMMARY_FILE_UPDATE_ERRORS = "files weren't updated due to errors"
SUMMARY_FILE_CREATE_ERRORS = "files weren't created due to errors"
SUMMARY_IMAGE_FILES_READ = "image files read"
SUMMARY_IMAGE_FILE_ERRORS = "files could not be read"
SUMMARY_OUTPUT_FILES_CREATED = "output files created"
SUMMARY_OUTPUT_FILES_APPENDED = "output files appended"
SUMMARY_HARD_LINKS_CREATED = "hard links created"
SUMMARY_HARD_LINK_ERRORS = "hard links could not be created"
SUMMARY_SYMBOLIC_LINKS_CREATED = "symbolic links created"
SUMMARY_SYMBOLIC_LINK_ERRORS = "symbolic links could not be created"

_EXTRACT_OPTIONS = "\n-php\n-l\n-G:0:1:2:4\n-D\n-sep\n, \n"
_SEPARATOR_OPTIONS = "-sep\n, \n"
_UNESCAPE_OPTION = "-ex\n"
_MAX_NAME_LEN = 100
_VALUE_ESCAPES = {"\n": "&#10;", "\0": "&#00;", "&": "&amp;"}


def next_command_number(current: int) -> int:
    """Return the command number following ``current``, wrapping after 99999 to 1."""
    following = current + 1
    return 1 if following > MAX_COMMAND_NUMBER else following


def frame_command(cmd: str, command_number: int) -> str:
    """Append the echo of the ready marker and the numbered execute to a command."""
    if not 1 <= command_number <= MAX_COMMAND_NUMBER:
        raise ValueError(f"command number must be in 1..{MAX_COMMAND_NUMBER}, got {command_number}")
    return f"{cmd}\n-echo4\n{{ready{command_number:05d}}}\n-execute{command_number:05d}\n"


def build_extract_args(file: str, opts: str | None = None) -> str:
    """Compose the arguments that extract all tags of the file(s) in ``-php`` form."""
    args = file + _EXTRACT_OPTIONS
    if opts:
        args += opts + "\n"
    return args


def _escape_value(value: str) -> tuple[str, bool]:
    if not any(ch in _VALUE_ESCAPES for ch in value):
        return value, False
    return "".join(_VALUE_ESCAPES.get(ch, ch) for ch in value), True


def _tag_argument(tag: TagInfo) -> tuple[str, bool] | None:
    if not tag.name or len(tag.name) > _MAX_NAME_LEN or tag.name == "SourceFile":
        return None
    prefix = "".join(
        f"{family}{group}:"
        for family, group in enumerate(tag.group)
        if group is not None and len(group) < _MAX_NAME_LEN
    )
    name = prefix + tag.name
    value = tag.value
    if value is None:
        value = tag.num
        if value is not None:
            name += "#"
    escaped_value, escaped = _escape_value(value or "")
    return f"-{name}={escaped_value}\n", escaped


def build_write_args(file: str, tags: Iterable[TagInfo], opts: str | None = None) -> str:
    """Compose the arguments that write the given tags to the file(s).

    A tag with neither value nor numerical value deletes the tag. Tags named
    SourceFile or with names longer than 100 characters are skipped.
    """
    parts = [file + "\n"]
    any_escaped = False
    for tag in tags:
        argument = _tag_argument(tag)
        if argument is None:
            continue
        text, escaped = argument
        parts.append(text)
        any_escaped = any_escaped or escaped
    if any_escaped:
        parts.append(_UNESCAPE_OPTION)
    parts.append(_SEPARATOR_OPTIONS)
    if opts:
        parts.append(opts + "\n")
    return "".join(parts)


def find_summary(text: str | None, message: str) -> int | None:
    """Return the count exiftool printed before a summary message, or None.

    The message must be preceded by a number and a space and followed by a line
    end. Only the first occurrence of the message is considered.
    """
    if not text:
        return None
    pos = text.find(message)
    if pos < 2 or text[pos - 1] != " " or not text[pos - 2].isdigit():
        return None
    after = pos + len(message)
    if after >= len(text) or text[after] not in "\r\n":
        return None
    start = pos - 2
    while start > 0 and text[start - 1].isdigit():
        start -= 1
    return int(text[start:pos - 1])