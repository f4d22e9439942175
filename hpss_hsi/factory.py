"""
Discovery of local hsi prerequisites and construction of clients.
"""

from dataclasses import replace
import logging
import os
from pathlib import Path
import shutil
import subprocess
from typing import Optional

from hpss_hsi.client import HsiClient
from hpss_hsi.config import HsiConfig
from hpss_hsi.errors import HsiError

logger = logging.getLogger(__name__)


def find_keytab(username: str) -> Optional[str]:
    """
    Look for an hsi keytab at ~/.hsi.keytab, then /home/<username>/.hsi.keytab.

    Returns:
        Optional[str]: The keytab path, or None if not found.
    """
    for candidate in (Path.home() / ".hsi.keytab", Path("/home") / username / ".hsi.keytab"):
        if candidate.exists():
            return str(candidate)
    return None


def find_hsi_binary(path: Optional[str] = None) -> Optional[str]:
    """
    Search for an executable named hsi along ``path`` (default: $PATH).
    """
    return shutil.which("hsi", path=path)


class HsiFactory:
    """
    Resolve an ``HsiConfig`` and build clients from it.

    Args:
        config (HsiConfig): Settings; a missing keytab or binary is discovered.

    Raises:
        FileNotFoundError: If no keytab or no hsi binary can be found.
    """
    def __init__(self, config: Optional[HsiConfig] = None) -> None:
        config = config or HsiConfig()
        keytab = config.keytab or find_keytab(config.username)
        if keytab is None:
            raise FileNotFoundError("Cannot find keytab")
        binary = config.binary or find_hsi_binary()
        if binary is None:
            raise FileNotFoundError("Cannot find HSI binary")
        self.config = replace(config, keytab=keytab, binary=binary)

    def get_client(self) -> HsiClient:
        return HsiClient(self.config)

    def ping(self) -> bool:
        """
        Run a one-shot ``hsi pwd`` to check whether HPSS is reachable.

        Returns:
            bool: True if hsi exited with status 0.

        Raises:
            HsiError: If hsi cannot be run at all.
        """
        args = [
            self.config.binary,
            "-P",
            "-A", "keytab",
            "-k", self.config.keytab,
            "-l", self.config.username,
            "pwd",
        ]
        env = None
        if self.config.local_address:
            env = dict(os.environ, HPSS_HOSTNAME=self.config.local_address)
        try:
            completed = subprocess.run(
                args,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                env=env,
                timeout=self.config.command_timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Ping of HPSS timed out")
            return False
        except OSError as e:
            raise HsiError(f"Cannot ping HPSS: {e}") from e
        return completed.returncode == 0
