"""
HsiClient - typed operations on HPSS through a persistent hsi process.

Each operation builds one hsi command line, runs it through the session's
framer and, where hsi prints something useful, parses the result. Paths are
relative to the client's ``HPSSEndpoint`` root (``init_dir`` in the config).
"""

from enum import Enum
import logging
import os
from pathlib import Path
import posixpath
import re
import tempfile
from typing import List, Optional, Sequence, Union

from hpss_hsi.config import HsiConfig
from hpss_hsi.endpoints import HPSSEndpoint, clean_path
from hpss_hsi.errors import CommandFailure, HsiError, InvalidArgument, ParseFailure
from hpss_hsi.listing import parse_listing
from hpss_hsi.session import SessionManager
from hpss_hsi.stat import Entry, EntryType, Medium

logger = logging.getLogger(__name__)

# One chmod clause, e.g. "u+x", "go-w", "a=rX" or "g=u". Clauses are joined by commas.
CHMOD_CLAUSE_RE = re.compile(r"^[ugoa]*(?:[-+=](?:[rwxXst]*|[ugo]))+$")
MD5_RE = re.compile(r"\b[0-9a-fA-F]{32}\b")

MAX_ANNOTATION_LENGTH = 250
# Above this many paths, stage requests are fed to hsi from a file.
STAGE_INLINE_LIMIT = 50


class Naming(Enum):
    """
    How entry names are reported by the listing operations.
    """
    NAME = "name"            # bare name inside its directory
    RELATIVE = "relative"    # path relative to the endpoint root
    ABSOLUTE = "absolute"    # absolute HPSS path


def _quote(argument: str) -> str:
    if any(char.isspace() for char in argument):
        return f'"{argument}"'
    return argument


def validate_chmod_mode(mode: str) -> None:
    """
    Check a symbolic chmod mode such as ``u+x`` or ``a=rX,u+w``.

    Raises:
        InvalidArgument: If any clause is malformed.
    """
    if not mode or not all(CHMOD_CLAUSE_RE.match(clause) for clause in mode.split(",")):
        raise InvalidArgument(f"Invalid mode string: {mode}")


class HsiClient:
    """
    Client for one HPSS account.

    One client owns exactly one hsi session. Methods may be called from
    several threads; commands are serialized on the session.

    Args:
        config (HsiConfig): Resolved connection settings.
        endpoint (Optional[HPSSEndpoint]): Namespace root; defaults to
            ``config.init_dir``.
    """
    def __init__(self, config: HsiConfig, endpoint: Optional[HPSSEndpoint] = None) -> None:
        self.config = config
        self.endpoint = endpoint or HPSSEndpoint(config.init_dir)
        self.sessions = SessionManager(config)

    def __enter__(self) -> "HsiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.sessions.close()

    def run(self, *args: str, timeout: Optional[float] = None) -> List[str]:
        """
        Run an hsi command built from ``args``; empty arguments are dropped.

        Returns:
            List[str]: Output lines of the command.
        """
        command = " ".join(arg for arg in args if arg)
        return self.sessions.run(command, timeout=timeout)

    @property
    def cwd(self) -> Optional[str]:
        """The hsi working directory on HPSS."""
        return self.sessions.ensure().cwd

    @property
    def hpss_version(self) -> Optional[str]:
        """The HPSS server version, e.g. "H743.0.2"."""
        return self.sessions.ensure().hpss_version

    def _path(self, path: str) -> str:
        return _quote(self.endpoint.full_path(path))

    def abs_path(self, path: str) -> str:
        return self.endpoint.abs_path(path, self.cwd)

    def rel_path(self, path: str) -> str:
        return self.endpoint.rel_path(path, self.cwd)

    def _apply_naming(self, entry: Entry, directory: str, naming: Naming) -> None:
        if naming is Naming.RELATIVE:
            entry.name = clean_path(f"{directory}/{entry.name}")
        elif naming is Naming.ABSOLUTE:
            entry.name = self.abs_path(f"{directory}/{entry.name}")

    # ---------------------------------
    # Metadata
    # ---------------------------------

    def stat(self, path: str, use_mtime: bool = False, tape_info: bool = False) -> Entry:
        """
        Get information about a single file or directory.

        Args:
            path (str): The path to stat.
            use_mtime (bool): Report the modification time rather than the last write time.
            tape_info (bool): Include storage level and volume information.

        Returns:
            Entry: The entry, with ``levels`` filled in when ``tape_info`` is set.
        """
        lines = self.run(
            "ls", "-aldD",
            "-Tm" if use_mtime else "",
            "-X" if tape_info else "",
            self._path(path),
        )
        entries = parse_listing(lines, extended_storage=tape_info)
        if not entries:
            raise ParseFailure(f"No entry listed for {path}")
        return entries[0]

    def list_entries(
        self,
        path: str,
        pattern: Optional[str] = None,
        recursive: bool = False,
        naming: Naming = Naming.NAME,
        use_mtime: bool = False,
        tape_info: bool = False
    ) -> List[Entry]:
        """
        Stat every entry in a directory, optionally recursing.

        If ``path`` is not a directory the result is a list holding its own entry.

        Args:
            path (str): Directory to list.
            pattern (Optional[str]): Regular expression that names must match in full.
            recursive (bool): Descend into matching subdirectories.
            naming (Naming): Form of the names in the result.
            use_mtime (bool): Report modification rather than last write times.
            tape_info (bool): Include storage level information.

        Returns:
            List[Entry]: Matching entries; a directory is followed by its contents.
        """
        path = clean_path(path)
        regex = re.compile(pattern or ".+")
        root = self.stat(path, use_mtime=use_mtime, tape_info=tape_info)
        if not root.is_directory:
            directory = posixpath.dirname(path)
            root.name = posixpath.basename(root.name.rstrip("/"))
            root.parent = directory
            self._apply_naming(root, directory, naming)
            return [root]

        lines = self.run(
            "ls", "-alD",
            "-X" if tape_info else "",
            "-Tm" if use_mtime else "",
            self._path(path),
        )
        results = []
        for entry in parse_listing(lines, extended_storage=tape_info):
            name = entry.name
            if name in (".", "..") or not regex.fullmatch(name):
                continue
            if entry.parent is None:
                entry.parent = path
            self._apply_naming(entry, path, naming)
            results.append(entry)
            if recursive and entry.is_directory:
                results.extend(self.list_entries(
                    f"{path}/{name}", pattern, recursive, naming, use_mtime, tape_info
                ))
        return results

    def list_dir(
        self,
        path: str,
        pattern: Optional[str] = None,
        recursive: bool = False,
        naming: Naming = Naming.NAME
    ) -> List[Entry]:
        """
        A fast listing of a directory.

        The entries only carry ``type``, ``name`` and ``parent``; everything
        else is left at its zero value.
        """
        path = clean_path(path)
        regex = re.compile(pattern or ".+")
        results = []
        for line in self.run("ls", "-1", self._path(path)):
            if not line.strip() or line.endswith(":"):
                continue
            is_directory = line.endswith("/")
            name = posixpath.basename(line.rstrip("/"))
            if not regex.fullmatch(name):
                continue
            entry = Entry(
                type=EntryType.DIRECTORY if is_directory else EntryType.FILE,
                mode=0,
                nlink=0,
                owner="",
                group="",
                size=0,
                mtime=None,
                name=name,
                parent=path,
            )
            self._apply_naming(entry, path, naming)
            results.append(entry)
            if recursive and is_directory:
                results.extend(self.list_dir(f"{path}/{name}", pattern, recursive, naming))
        return results

    def exists(self, path: str) -> bool:
        """
        Check whether a file or directory exists.

        Raises:
            CommandFailure: For any failure other than "not found".
        """
        try:
            self.stat(path)
            return True
        except CommandFailure as e:
            if e.is_not_found:
                return False
            raise

    def du(self, path: str) -> int:
        """
        Bytes used by a file, or by everything under a directory.
        """
        lines = self.run("du", "-n", "-s", self._path(path))
        for line in lines:
            first = line.split(None, 1)[0] if line.strip() else ""
            if first.isdigit():
                return int(first)
        raise ParseFailure(f"No usage total in du output for {path}")

    # ---------------------------------
    # Namespace changes
    # ---------------------------------

    def mkdir(self, path: str, parents: bool = False) -> None:
        self.run("mkdir", "-p" if parents else "", self._path(path))

    def rmdir(self, path: str) -> None:
        self.run("rmdir", self._path(path))

    def delete(self, path: str) -> None:
        self.run("delete", self._path(path))

    def rename(self, old_name: str, new_name: str, force: bool = False) -> None:
        self.run("mv", "-f" if force else "", self._path(old_name), self._path(new_name))

    def link(self, src_path: str, dest_path: str) -> None:
        """Create a hard link ``dest_path`` to ``src_path``."""
        self.run("ln", "-f", self._path(src_path), self._path(dest_path))

    def symlink(self, src_path: str, dest_path: str) -> None:
        self.run("ln", "-f", "-s", self._path(src_path), self._path(dest_path))

    def chmod(
        self,
        mode: Union[str, int],
        path: str,
        recursive: bool = False,
        files_only: bool = False,
        dirs_only: bool = False
    ) -> None:
        """
        Change the permissions of an entry.

        Args:
            mode (Union[str, int]): Symbolic mode (``"g+w"``, ``"a=rX,u+w"``) or
                numeric mode between 0 and 0o7777.
            path (str): The entry to modify.
            recursive (bool): Apply to everything below ``path``.
            files_only (bool): Only change files.
            dirs_only (bool): Only change directories.

        Raises:
            InvalidArgument: For a malformed mode or conflicting flags.
        """
        if isinstance(mode, int):
            if mode < 0 or mode > 0o7777:
                raise InvalidArgument("Mode must be between 0000 and 07777")
            mode_text = f"{mode:o}"
        else:
            validate_chmod_mode(mode)
            mode_text = mode
        if files_only and dirs_only:
            raise InvalidArgument("Cannot specify files only AND dirs only")
        self.run(
            "chmod",
            "-R" if recursive else "",
            "-f" if files_only else "",
            "-d" if dirs_only else "",
            mode_text,
            self._path(path),
        )

    def chcos(self, path: str, cos: int) -> None:
        """
        Change the class of service of a file; -1 selects the automatic class.

        HPSS may need to recall the file and rewrite it to new tapes.
        """
        self.run("chcos", "auto" if cos == -1 else str(cos), self._path(path))

    def annotate(self, path: str, annotation: str) -> None:
        if len(annotation) > MAX_ANNOTATION_LENGTH:
            raise InvalidArgument(f"Annotation must be shorter than {MAX_ANNOTATION_LENGTH} characters")
        if '"' in annotation:
            raise InvalidArgument('Annotation cannot contain the double quote (") character')
        self.run("annotate", "-A", f'"{annotation}"', self._path(path))

    def get_annotation(self, path: str) -> str:
        """
        The annotation of an entry, or an empty string if it has none.
        """
        for line in self.run("ls", "-Ad", self._path(path)):
            stripped = line.strip()
            if stripped.startswith("Annotation:"):
                return stripped[len("Annotation:"):].strip()
        return ""

    # ---------------------------------
    # Checksums
    # ---------------------------------

    def _checksum_from(self, lines: List[str], path: str) -> str:
        match = MD5_RE.search(lines[0]) if lines else None
        if match is None:
            raise ParseFailure(f"No MD5 checksum in hsi output for {path}", lines[0] if lines else None)
        return match.group(0).lower()

    def create_checksum(self, path: str) -> str:
        """
        Create an MD5 checksum for a file and return it.

        If the file already has one, the existing value is returned.
        """
        return self._checksum_from(self.run("hashcreate", "-H", "md5", self._path(path)), path)

    def get_checksum(self, path: str, create: bool = False) -> Optional[str]:
        """
        The stored MD5 checksum of a file.

        Args:
            path (str): The file.
            create (bool): Create the checksum if the file has none.

        Returns:
            Optional[str]: The checksum, or None when there is none and ``create`` is False.
        """
        lines = self.run("hashlist", "-h", self._path(path))
        if lines and lines[0].startswith("(none)"):
            return self.create_checksum(path) if create else None
        return self._checksum_from(lines, path)

    def verify_checksum(self, path: str, create: bool = False) -> bool:
        """
        Verify a file against its stored checksum.

        Args:
            path (str): The file.
            create (bool): If the file has no checksum, create one instead.

        Returns:
            bool: True if the checksum verified or was newly created.

        Raises:
            HsiError: If the file has no checksum and ``create`` is False.
        """
        lines = self.run("hashverify", self._path(path))
        if not lines:
            raise ParseFailure(f"No output from hashverify for {path}")
        line = lines[0]
        if line.startswith("no valid checksum found"):
            if not create:
                raise HsiError("File does not have a checksum to verify")
            self.create_checksum(path)
            return True
        return line.rstrip().endswith("OK")

    # ---------------------------------
    # Transfers
    # ---------------------------------

    def get(self, remote_path: str, local_path: str, recursive: bool = False) -> None:
        """
        Retrieve a file (or tree) from HPSS.

        If ``local_path`` is a directory the data is retrieved into it,
        otherwise it is stored as ``local_path``.
        """
        if Path(local_path).is_dir():
            self.run("lcd", _quote(local_path))
            self.run("get", "-c", "on", "-R" if recursive else "", self._path(remote_path))
        else:
            self.run(
                "get", "-c", "on",
                "-R" if recursive else "",
                _quote(local_path), ":", self._path(remote_path),
            )

    def put(self, local_path: str, remote_path: str, cos: Optional[int] = None) -> None:
        """
        Store a local file on HPSS with an MD5 checksum.

        Args:
            local_path (str): The local file.
            remote_path (str): Destination on HPSS.
            cos (Optional[int]): Class of service; the configured default when None,
                the HPSS default when -1.
        """
        if cos is None:
            cos = self.config.default_cos
        self.run(
            "put", "-c", "on", "-H", "md5",
            _quote(local_path), ":", self._path(remote_path),
            f"cos={cos}" if cos != -1 else "",
        )

    # ---------------------------------
    # Tape management
    # ---------------------------------

    def stage(self, paths: Sequence[str]) -> None:
        """
        Synchronously stage files from tape to the disk cache.

        Long lists are written to a temporary file and fed to hsi with ``in``.
        """
        absolute = [self.abs_path(path) for path in paths]
        if len(absolute) <= STAGE_INLINE_LIMIT:
            self.run("stage", "-w", *[_quote(path) for path in absolute])
            return

        logger.info(f"Staging {len(absolute)} files through an input file")
        with tempfile.NamedTemporaryFile("w", prefix="stage-queue", suffix=".txt", delete=False) as queue_file:
            queue_file.write("stage -w <<EOF\n")
            for path in absolute:
                queue_file.write(f"{path}\n")
            queue_file.write("EOF\n")
        try:
            self.run("in", _quote(queue_file.name))
        finally:
            os.unlink(queue_file.name)

    def purge(self, path: str, recursive: bool = False) -> None:
        """
        Purge a file from the disk cache.

        HPSS ignores the request for data that has not been migrated, and
        blocks until an in-progress migration completes.
        """
        self.run("purge", "-R" if recursive else "", self._path(path))

    def migrate(self, path: str, recursive: bool = False, force: bool = False, purge: bool = False) -> None:
        """
        Migrate data from a higher level of the hierarchy to a lower one.

        Args:
            path (str): The path to migrate.
            recursive (bool): Migrate everything under ``path``.
            force (bool): Migrate regardless of storage class settings.
            purge (bool): Purge the higher level copy afterwards.
        """
        self.run(
            "migrate",
            "-R" if recursive else "",
            "-F" if force else "",
            "-P" if purge else "",
            self._path(path),
        )

    def is_on_disk(self, path: str) -> bool:
        """True if a complete copy of the file is in the disk cache."""
        entry = self.stat(path, tape_info=True)
        return any(level.medium is Medium.DISK and level.complete for level in entry.levels)

    def is_on_tape(self, path: str) -> bool:
        """True if some tape level holds a complete copy of the file."""
        entry = self.stat(path, tape_info=True)
        return any(level.medium is Medium.TAPE and level.complete for level in entry.levels)

    def migration_finished(self, path: str) -> bool:
        """True if every tape level holds a complete copy of the file."""
        entry = self.stat(path, tape_info=True)
        return all(level.complete for level in entry.levels if level.medium is Medium.TAPE)
