"""
Exceptions raised while talking to hsi.

Every failure in the session, framer and parser layers surfaces as one of the
types below. Nothing in this package retries: the caller decides whether to
obtain a fresh session and resubmit.
"""

# Substrings of hsi error lines that mean "the path does not exist".
NOT_FOUND_MARKERS = ("HPSS_ENOENT",)


class HsiError(Exception):
    pass


class StartupFailure(HsiError):
    """The hsi process could not be started."""


class ProcessDied(HsiError):
    """
    The hsi process exited before the command completed.

    Args:
        returncode (int): Exit status of the process, if known.
    """
    def __init__(self, returncode=None):
        super().__init__(f"HSI process died. rc: {returncode}")
        self.returncode = returncode


class CommandFailure(HsiError):
    """
    hsi reported a non-benign error line (one starting with ``***``).

    Args:
        line (str): The exact error line emitted by hsi.
    """
    def __init__(self, line: str) -> None:
        super().__init__(line)
        self.line = line

    @property
    def is_not_found(self) -> bool:
        """
        Whether this failure means the target path does not exist.

        This is the only place that interprets hsi error text for callers;
        everything else should ask this property instead of matching strings.
        """
        return any(marker in self.line for marker in NOT_FOUND_MARKERS)


class ParseFailure(HsiError):
    """Listing output did not match any known layout."""
    def __init__(self, message: str, line: str = None) -> None:
        super().__init__(f"{message}: [{line}]" if line is not None else message)
        self.line = line


class CommandCancelled(HsiError):
    """The in-flight command was cancelled and its process terminated."""


class CommandTimeout(CommandCancelled):
    def __init__(self, command: str, timeout: float) -> None:
        super().__init__(f"Command did not complete within {timeout}s: {command}")
        self.command = command
        self.timeout = timeout


class InvalidArgument(HsiError, ValueError):
    """A client-side argument check failed before anything was sent to hsi."""
