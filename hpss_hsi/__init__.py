from hpss_hsi.client import HsiClient, Naming
from hpss_hsi.errors import (
    CommandCancelled,
    CommandFailure,
    CommandTimeout,
    HsiError,
    InvalidArgument,
    ParseFailure,
    ProcessDied,
    StartupFailure,
)
from hpss_hsi.listing import parse_listing
from hpss_hsi.session import Session, SessionManager
from hpss_hsi.stat import Entry, EntryType, Medium, StorageLevel

__all__ = [
    "HsiClient",
    "Naming",
    "HsiError",
    "StartupFailure",
    "ProcessDied",
    "CommandFailure",
    "ParseFailure",
    "CommandCancelled",
    "CommandTimeout",
    "InvalidArgument",
    "parse_listing",
    "Session",
    "SessionManager",
    "Entry",
    "EntryType",
    "Medium",
    "StorageLevel",
]
