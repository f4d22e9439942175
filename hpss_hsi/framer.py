"""
Command/response framing over an hsi process.

hsi has no notion of request ids or end-of-response markers, so every
command is suffixed with ``;id``. The output of ``id`` (``uid=...(...)``)
cannot be produced by any listing or management command and marks the end
of the command's output. Lines starting with ``***`` are hsi error reports;
a few of them are known to be harmless and are dropped, everything else
aborts the command.
"""

import logging
import queue
import re
import time
from typing import List, Optional

from hpss_hsi.errors import CommandCancelled, CommandFailure, CommandTimeout, ProcessDied

logger = logging.getLogger(__name__)

PROBE_SUFFIX = ";id"
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_RESYNC_TIMEOUT = 5.0

ERROR_LINE_RE = re.compile(r"^\*\*\*.+")
MARKER_RE = re.compile(r"^uid=\d+\(.+")

# Ordered allow-list of error lines that do not fail a command. The patterns
# match hsi's own wording, spelling included.
BENIGN_ERRORS = (
    (re.compile(r".+getFile: no valid checksum for.*"), "no-valid-checksum"),
    (re.compile(r".+no data at heirarchy level.*"), "missing-hierarchy-level"),
    (re.compile(r".+ls:.+HPSS_NOENT.*"), "ls-not-found"),
    (re.compile(r".+Background stage failed with error -5.*"), "background-stage-error"),
    (re.compile(r".+setting nameserver attributes.+HPSS_EACCES.*"), "attribute-permission"),
    (re.compile(r".+stage: No such file or directory.*"), "stage-not-found"),
)


def classify_error_line(line: str) -> Optional[str]:
    """
    Look up an error line in the benign allow-list.

    Args:
        line (str): A line starting with ``***``.

    Returns:
        Optional[str]: The label of the first matching benign pattern, or None
        if the error is fatal.
    """
    for pattern, label in BENIGN_ERRORS:
        if pattern.match(line):
            return label
    return None


def resync(session, poll_interval: float, limit: float) -> None:
    """
    Skip the unread output of a command that was aborted mid-stream.

    Lines are dropped up to and including the aborted command's completion
    marker. If the marker does not arrive within ``limit`` seconds the
    process is killed: hsi answers commands in order, so anything sent
    before the marker would be handed the failed command's output.

    Raises:
        ProcessDied: The marker did not arrive, or the process exited first.
        CommandCancelled: The session was cancelled while waiting.
    """
    deadline = time.monotonic() + limit
    dropped = 0
    while time.monotonic() < deadline:
        if session.cancelled:
            raise CommandCancelled("Session was cancelled while skipping stale output")
        try:
            line = session.lines.get_nowait()
        except queue.Empty:
            if session.output_closed and session.lines.empty():
                raise ProcessDied(session.process.poll())
            session.wait(poll_interval)
            continue
        if MARKER_RE.match(line):
            logger.debug(f"Discarded {dropped} stale output lines")
            session.stale = False
            return
        dropped += 1

    logger.warning(f"No completion marker from the previously failed command within {limit}s, terminating hsi")
    session.terminate()
    raise ProcessDied(session.process.poll())


def execute(
    session,
    command: str,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    timeout: Optional[float] = None,
    resync_timeout: float = DEFAULT_RESYNC_TIMEOUT
) -> List[str]:
    """
    Run one command on a session and collect its output.

    The session lock is held for the whole exchange, so concurrent callers
    sharing a session are serialized.

    Args:
        session (Session): A live session.
        command (str): The hsi command line, without a trailing newline.
        poll_interval (float): Seconds to wait when no output is available.
        timeout (Optional[float]): Give up, and kill the process, after this
            many seconds.
        resync_timeout (float): How long to wait for the leftover output of a
            previously failed command before sending this one.

    Returns:
        List[str]: Output lines in arrival order, without the completion marker.

    Raises:
        CommandFailure: hsi printed a non-benign ``***`` line.
        ProcessDied: The process exited before the marker was seen, or was
            killed because a previously failed command never finished.
        CommandTimeout: ``timeout`` elapsed.
        CommandCancelled: The session was cancelled while waiting.
    """
    if "\n" in command or "\r" in command:
        raise ValueError("An hsi command cannot contain a newline")

    with session.lock:
        if session.cancelled:
            raise CommandCancelled(f"Session was cancelled before: {command}")
        if session.stale:
            resync(session, poll_interval, resync_timeout)

        request = command + PROBE_SUFFIX
        logger.debug(f"running command: {request}")
        try:
            session.process.stdin.write(request + "\n")
            session.process.stdin.flush()
        except (BrokenPipeError, ValueError, OSError):
            raise ProcessDied(session.process.poll())

        deadline = time.monotonic() + timeout if timeout is not None else None
        result = []
        while True:
            if session.cancelled:
                raise CommandCancelled(f"Command cancelled: {command}")
            # Checked on every line so that a steady stream cannot outlive the timeout.
            if deadline is not None and time.monotonic() >= deadline:
                session.terminate()
                raise CommandTimeout(command, timeout)
            try:
                line = session.lines.get_nowait()
            except queue.Empty:
                if session.output_closed and session.lines.empty():
                    returncode = session.process.poll()
                    if returncode is not None:
                        # A cancelled session dies by our own hand.
                        if session.cancelled:
                            raise CommandCancelled(f"Command cancelled: {command}")
                        raise ProcessDied(returncode)
                session.wait(poll_interval)
                continue

            logger.debug(f"Got line: [{line}]")
            if ERROR_LINE_RE.match(line):
                label = classify_error_line(line)
                if label is None:
                    session.stale = True
                    raise CommandFailure(line)
                logger.warning(f"Ignoring benign hsi error ({label}): {line}")
            elif MARKER_RE.match(line):
                return result
            else:
                result.append(line)
