"""
Metadata model for entries returned by ``hsi ls``.

An ``Entry`` describes one file or directory. When the listing was requested
with extended storage information (``ls -X``) it also carries one
``StorageLevel`` per level of the HPSS hierarchy, ordered from the level
closest to the user (0, usually disk cache) down to tape.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from dateutil import parser as date_parser

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class EntryType(Enum):
    FILE = "file"
    DIRECTORY = "directory"


class Medium(Enum):
    """
    Storage medium of a hierarchy level.
    """
    DISK = "disk"
    TAPE = "tape"
    UNKNOWN = "unknown"

    @classmethod
    def from_text(cls, text: str) -> "Medium":
        """
        Convert the medium keyword from a storage row, e.g. ``(disk)``.

        Anything that is not ``(disk)`` or ``(tape)`` is ``UNKNOWN``; this is
        never an error.
        """
        if text == "(disk)":
            return cls.DISK
        if text == "(tape)":
            return cls.TAPE
        return cls.UNKNOWN


@dataclass
class StorageLevel:
    """
    Placement of an object at one level of the storage hierarchy.

    Attributes:
        level (int): Level number. Lower numbers are closer to the user.
        medium (Medium): Disk, tape or unknown.
        bytes (int): Number of bytes of the object held at this level.
        object_size (int): Size of the owning entry, used to derive ``complete``.
        volume (Optional[str]): Volume (tape) id, only when placement was listed.
        section (Optional[int]): Section on the volume.
        offset (Optional[int]): Byte offset inside the section.
    """
    level: int
    medium: Medium
    bytes: int
    object_size: int = field(repr=False)
    volume: Optional[str] = None
    section: Optional[int] = None
    offset: Optional[int] = None

    @property
    def complete(self) -> bool:
        """True if this level holds every byte of the object."""
        return self.bytes == self.object_size


@dataclass
class Entry:
    """
    One file or directory as reported by ``hsi ls``.

    ``cos`` is -1 when unknown, which is always the case for directories and
    for listings made without extended storage information. ``name`` may be
    bare, relative or absolute depending on how the entry was produced.
    """
    type: EntryType
    mode: int
    nlink: int
    owner: str
    group: str
    size: int
    mtime: Optional[datetime]
    name: str
    parent: Optional[str] = None
    cos: int = -1
    levels: List[StorageLevel] = field(default_factory=list)

    @property
    def is_directory(self) -> bool:
        return self.type is EntryType.DIRECTORY

    @property
    def extended(self) -> bool:
        """True if storage level information was parsed for this entry."""
        return bool(self.levels)


def mode_string_to_type(mode: str) -> EntryType:
    return EntryType.DIRECTORY if mode.startswith("d") else EntryType.FILE


def mode_string_to_int(mode: str) -> int:
    """
    Convert a ``drwxr-xr-x`` style string to its numeric permission bits.

    Each of characters 1-9 contributes one bit, set unless the character is
    ``-``. Strings shorter than 10 characters yield 0.
    """
    result = 0
    if len(mode) < 10:
        return result
    for char in mode[1:10]:
        result = (result << 1) | (char != "-")
    return result


def parse_listing_time(tokens: List[str]) -> datetime:
    """
    Convert the four date/time tokens of a full-date listing to a datetime.

    Accepted orders are ``Mon DD YYYY HH:MM:SS`` and ``Mon DD HH:MM:SS YYYY``.
    The result is naive and expressed in the HPSS server's local time.

    Raises:
        ValueError: If the tokens are not a recognizable date group.
    """
    if len(tokens) != 4 or tokens[0] not in MONTHS:
        raise ValueError(f"Not a date group: {tokens}")
    if not any(":" in token for token in tokens[2:]):
        raise ValueError(f"Date group has no time of day: {tokens}")
    return date_parser.parse(" ".join(tokens))
