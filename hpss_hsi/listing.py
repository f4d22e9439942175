"""
Parser for ``hsi ls`` output.

hsi prints several incompatible human-oriented layouts depending on the
flags given to ``ls``. This module turns a bounded block of output lines
(exactly one command's worth, as delivered by the framer) into ``Entry``
records. The full-date flag (``-D``) is assumed for every layout.

Plain listing (``ls -alD``), one line per entry::

    -rw-r--r--   1 alice  grp   5  100   1024 Jan 01 2024 12:00:00 foo.txt

Extended listing (``ls -alDX``) adds columns (including the class of service
for non-directories) and may follow each entry with a storage block::

    Storage   VV    Stripe
     Level   Count   Width   Bytes at Level
    -----------------------------------------
      0 (disk)   1     1     1024
      1 (tape)   1     1     1024
         Object ID: ...
         ServerDep: ...
         Pos: 3+1024  PV List: VOL001

Directory sections in a multi-directory listing are introduced by a
``/some/dir:`` line.
"""

import logging
import re
from typing import List, Optional, Sequence

from hpss_hsi.errors import ParseFailure
from hpss_hsi.stat import (
    Entry,
    EntryType,
    Medium,
    StorageLevel,
    mode_string_to_int,
    mode_string_to_type,
    parse_listing_time,
)

logger = logging.getLogger(__name__)

PARENT_RE = re.compile(r"^\S.*:$")
STORAGE_HEADER_RE = re.compile(r"^Storage\s+VV.+")
MODE_RE = re.compile(r"^[-dlbcps][-rwxsStT]{9}")

# Number of whitespace separated fields in front of the name.
PLAIN_FIELDS = 11
EXTENDED_DIR_FIELDS = 12
EXTENDED_FILE_FIELDS = 14

# Column of the class of service in extended non-directory lines.
COS_FIELD = 4

STORAGE_HEADER_LINES = 3


class _Cursor:
    """Forward cursor with one line of lookahead over an immutable sequence."""
    def __init__(self, lines: Sequence[str]) -> None:
        self._lines = lines
        self._index = 0

    @property
    def exhausted(self) -> bool:
        return self._index >= len(self._lines)

    def peek(self) -> Optional[str]:
        if self.exhausted:
            return None
        return self._lines[self._index]

    def take(self) -> Optional[str]:
        line = self.peek()
        if line is not None:
            self._index += 1
        return line


def field_count(extended_storage: bool, is_directory: bool) -> int:
    """
    Number of fixed fields before the name for the given layout.

    Directories never carry a class of service, so their extended layout is
    shorter than that of files.
    """
    if not extended_storage:
        return PLAIN_FIELDS
    return EXTENDED_DIR_FIELDS if is_directory else EXTENDED_FILE_FIELDS


def parse_listing(lines: Sequence[str], extended_storage: bool = False) -> List[Entry]:
    """
    Parse the output of an ``hsi ls -D`` command.

    Parsing stops at the first line starting with ``***`` and returns the
    entries collected so far.

    Args:
        lines (Sequence[str]): Output lines of exactly one ls command.
        extended_storage (bool): True if ``-X`` was given to ls.

    Returns:
        List[Entry]: Entries in the order they were listed.

    Raises:
        ParseFailure: If a data line does not match the expected layout.
    """
    entries = []
    parent = None
    cursor = _Cursor(lines)
    while not cursor.exhausted:
        line = cursor.take()
        if line.strip() == "":
            continue
        if PARENT_RE.match(line) and not MODE_RE.match(line):
            parent = line[:-1]
            continue
        if line.startswith("***"):
            logger.debug(f"Stopping listing parse at error line: {line}")
            break

        entry = parse_entry_line(line, extended_storage, parent)
        entries.append(entry)

        if extended_storage:
            next_line = cursor.peek()
            if next_line is not None and STORAGE_HEADER_RE.match(next_line):
                entry.levels = _parse_storage_block(cursor, entry.size)
    return entries


def parse_entry_line(line: str, extended_storage: bool, parent: Optional[str] = None) -> Entry:
    """
    Parse a single entry line into an ``Entry``.

    Raises:
        ParseFailure: If the line does not fit the layout for the active mode.
    """
    if not MODE_RE.match(line):
        raise ParseFailure("Unrecognized permission string", line)
    is_directory = line.startswith("d")
    count = field_count(extended_storage, is_directory)
    parts = line.split(None, count)
    if len(parts) != count + 1:
        raise ParseFailure(f"Expected {count} fields and a name", line)

    size_index = count - 5
    try:
        nlink = int(parts[1])
        size = int(parts[size_index])
        cos = int(parts[COS_FIELD]) if extended_storage and not is_directory else -1
    except ValueError:
        raise ParseFailure("Non-numeric field in listing line", line)
    try:
        mtime = parse_listing_time(parts[size_index + 1:count])
    except (ValueError, OverflowError):
        raise ParseFailure("Unparseable date in listing line", line)

    return Entry(
        type=mode_string_to_type(parts[0]),
        mode=mode_string_to_int(parts[0]),
        nlink=nlink,
        owner=parts[2],
        group=parts[3],
        size=size,
        mtime=mtime,
        name=parts[count],
        parent=parent,
        cos=cos,
    )


def _parse_storage_block(cursor: _Cursor, object_size: int) -> List[StorageLevel]:
    for _ in range(STORAGE_HEADER_LINES):
        cursor.take()

    levels = []
    while not cursor.exhausted:
        row = cursor.take()
        if row.strip() == "":
            break
        level = _parse_storage_row(row, object_size)
        levels.append(level)
        _parse_volume_placement(cursor, level)
    return levels


def _parse_storage_row(row: str, object_size: int) -> StorageLevel:
    tokens = row.split()
    if len(tokens) < 2:
        raise ParseFailure("Short storage level row", row)
    try:
        level = int(tokens[0])
        # Rows without data at a level omit the byte count column.
        count = int(tokens[4]) if len(tokens) == 5 else 0
    except ValueError:
        raise ParseFailure("Non-numeric field in storage level row", row)
    return StorageLevel(
        level=level,
        medium=Medium.from_text(tokens[1]),
        bytes=count,
        object_size=object_size,
    )


def _parse_volume_placement(cursor: _Cursor, level: StorageLevel) -> None:
    """
    Consume an optional Object ID / ServerDep / Pos block following a row.

    Lines are only consumed while they match, so a row that is not followed by
    a placement block leaves the cursor on the next row.
    """
    for marker in ("Object ID:", "ServerDep:"):
        line = cursor.peek()
        if line is None or marker not in line:
            return
        cursor.take()

    line = cursor.peek()
    if line is None or "Pos:" not in line:
        return
    cursor.take()
    tokens = line.split()
    if len(tokens) < 5:
        raise ParseFailure("Short volume position line", line)
    try:
        if "+" in tokens[1]:
            section, offset = tokens[1].split("+", 1)
            level.section = int(section)
            level.offset = int(offset)
        else:
            level.section = int(tokens[1])
            level.offset = 0
    except ValueError:
        raise ParseFailure("Non-numeric volume position", line)
    level.volume = tokens[4]
