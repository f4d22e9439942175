"""
Lifecycle of the long-lived hsi child process.

A ``SessionManager`` owns at most one ``Session`` (one hsi process) at a
time. ``ensure()`` hands out the current session, replacing it with a fresh
process when the old one has exited. Nothing here retries: a failed start
or a dead process is reported to the caller.
"""

import logging
import os
import queue
import subprocess
import threading
from typing import List, Optional

from hpss_hsi.config import HsiConfig
from hpss_hsi.errors import HsiError, StartupFailure
from hpss_hsi.framer import execute

logger = logging.getLogger(__name__)

# Sent once per process: remote cwd, connection info, local cwd, disable
# globbing, and never time out while idle.
PRIMING_COMMANDS = ("pwd", "lscon", "lpwd", "glob", "idletime -1")


class Session:
    """
    One running hsi process and the channel to it.

    Output is read by a background thread into ``lines`` so that the framer
    can poll without blocking on the pipe. ``cwd`` and ``hpss_version`` are
    filled in once, when the session is primed.
    """
    def __init__(self, process: subprocess.Popen) -> None:
        self.process = process
        self.lock = threading.Lock()
        self.lines: "queue.Queue[str]" = queue.Queue()
        self.output_closed = False
        self.stale = False
        self.cwd: Optional[str] = None
        self.hpss_version: Optional[str] = None
        self._cancel = threading.Event()
        self._reader = threading.Thread(
            target=self._read_output,
            name=f"hsi-reader-{process.pid}",
            daemon=True,
        )
        self._reader.start()

    def _read_output(self) -> None:
        try:
            for line in iter(self.process.stdout.readline, ""):
                self.lines.put(line.rstrip("\r\n"))
        except (OSError, ValueError) as e:
            logger.debug(f"hsi output closed: {e}")
        finally:
            self.output_closed = True

    @property
    def is_alive(self) -> bool:
        return self.process.poll() is None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def wait(self, interval: float) -> None:
        """Sleep for ``interval`` seconds, waking early if cancelled."""
        self._cancel.wait(interval)

    def set_remote_info(self, cwd: Optional[str] = None, hpss_version: Optional[str] = None) -> None:
        # Both values are fixed for the lifetime of the process.
        if cwd is not None and self.cwd is None:
            self.cwd = cwd
            logger.info(f"Setting cwd to {cwd}")
        if hpss_version is not None and self.hpss_version is None:
            self.hpss_version = hpss_version
            logger.info(f"Setting hpssVersion to {hpss_version}")

    def terminate(self) -> None:
        """Kill the process if it is still running."""
        if self.is_alive:
            logger.info(f"Terminating hsi process {self.process.pid}")
            self.process.kill()
            try:
                self.process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning(f"hsi process {self.process.pid} did not exit after kill")

    def cancel(self) -> None:
        """
        Abort the in-flight command, if any.

        hsi has no in-band abort, so the process is killed. A command blocked
        in ``execute()`` wakes up and raises ``CommandCancelled``.
        """
        self._cancel.set()
        self.terminate()

    def close(self) -> None:
        self.terminate()
        for stream in (self.process.stdin, self.process.stdout):
            if stream is not None:
                try:
                    stream.close()
                except OSError as e:
                    logger.debug(f"Error closing hsi stream: {e}")


class SessionManager:
    """
    Owns the hsi process for one logical client.

    Args:
        config (HsiConfig): Connection settings. ``binary`` and ``keytab`` must
            be resolved (see ``hpss_hsi.factory``).
    """
    def __init__(self, config: HsiConfig) -> None:
        self.config = config
        self.session: Optional[Session] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "SessionManager":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def ensure(self) -> Session:
        """
        Return a live session, starting a new hsi process if needed.

        Raises:
            StartupFailure: If the process cannot be spawned.
        """
        with self._lock:
            if self.session is not None and self.session.is_alive:
                return self.session
            if self.session is not None:
                logger.info(f"hsi process exited (rc: {self.session.process.poll()}), starting a new one")
                self.session.close()
                self.session = None
            self.session = self._start()
            return self.session

    def _command_line(self) -> List[str]:
        return [
            self.config.binary,
            "-P",                       # pipe mode
            "-A", "keytab",             # auth type
            "-k", self.config.keytab,   # the keytab itself
            "-l", self.config.username,
        ]

    def _start(self) -> Session:
        if not self.config.binary or not self.config.keytab:
            raise StartupFailure("Cannot start hsi: binary and keytab must be configured")

        env = None
        if self.config.local_address:
            env = dict(os.environ, HPSS_HOSTNAME=self.config.local_address)

        args = self._command_line()
        logger.info(f"Starting hsi: {' '.join(args)}")
        try:
            process = subprocess.Popen(
                args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
                env=env,
            )
        except OSError as e:
            raise StartupFailure(f"Cannot start hsi: {e}") from e

        session = Session(process)
        try:
            self._prime(session)
        except HsiError:
            session.close()
            raise
        return session

    def _prime(self, session: Session) -> None:
        commands = list(PRIMING_COMMANDS)
        if self.config.default_cos != -1:
            commands.append(f"cos={self.config.default_cos}")
        intro = execute(
            session,
            ";".join(commands),
            poll_interval=self.config.poll_interval,
            timeout=self.config.command_timeout,
            resync_timeout=self.config.resync_timeout,
        )
        for line in intro:
            if line.startswith("pwd0:"):
                session.set_remote_info(cwd=line[len("pwd0:"):].strip())
            elif line.startswith("->"):
                parts = line.split()
                if len(parts) > 4:
                    session.set_remote_info(hpss_version=parts[4])

    def run(self, command: str, timeout: Optional[float] = None) -> List[str]:
        """
        Run a command on the current session, starting one if needed.

        Args:
            command (str): hsi command line.
            timeout (Optional[float]): Overrides the configured command timeout.

        Returns:
            List[str]: The command's output lines.
        """
        session = self.ensure()
        return execute(
            session,
            command,
            poll_interval=self.config.poll_interval,
            timeout=timeout if timeout is not None else self.config.command_timeout,
            resync_timeout=self.config.resync_timeout,
        )

    def cancel(self) -> None:
        session = self.session
        if session is not None:
            session.cancel()

    def close(self) -> None:
        with self._lock:
            if self.session is not None:
                self.session.close()
                self.session = None
