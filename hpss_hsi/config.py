import builtins
import collections.abc
from dataclasses import dataclass, field, fields
import getpass
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
import yaml

load_dotenv()

# Config fields that must be converted when they come from the environment.
NUMERIC_FIELDS = (
    ("default_cos", int),
    ("poll_interval", float),
    ("command_timeout", float),
    ("resync_timeout", float),
)


def get_config():
    return read_config(config_file=Path(__file__).parent.parent / "config.yml")


def read_config(config_file="config.yml"):
    with open(config_file, "r") as end_file:
        hsi_config = yaml.safe_load(end_file)
    return expand_environment_variables(hsi_config or {})


def expand_environment_variables(config):
    """Expand environment variables in a nested config dictionary
    VENDORED FROM dask.config and tiled.
    This function will recursively search through any nested dictionaries
    and/or lists.
    Parameters
    ----------
    config : dict, iterable, or str
        Input object to search for environment variables
    Returns
    -------
    config : same type as input
    Examples
    --------
    >>> expand_environment_variables({'x': [1, 2, '$USER']})  # doctest: +SKIP
    {'x': [1, 2, 'my-username']}
    """
    if isinstance(config, collections.abc.Mapping):
        return {k: expand_environment_variables(v) for k, v in config.items()}
    elif isinstance(config, str):
        return os.path.expandvars(config)
    elif isinstance(config, (list, tuple, builtins.set)):
        return type(config)([expand_environment_variables(v) for v in config])
    else:
        return config


@dataclass
class HsiConfig:
    """
    Settings for one hsi connection.

    Attributes:
        username (str): HPSS user; defaults to the local user.
        keytab (Optional[str]): Keytab used for authentication.
        binary (Optional[str]): Path to the hsi executable.
        init_dir (str): Base directory on HPSS that relative paths resolve under.
        local_address (Optional[str]): Callback address for data connections on
            multi-homed hosts, passed to hsi as HPSS_HOSTNAME.
        default_cos (int): Class of service for new files, -1 for the HPSS default.
        poll_interval (float): Seconds to wait between output polls.
        command_timeout (Optional[float]): Per-command timeout in seconds.
        resync_timeout (float): Seconds to wait for leftover output of a failed
            command before the next command is sent.
    """
    username: str = field(default_factory=getpass.getuser)
    keytab: Optional[str] = None
    binary: Optional[str] = None
    init_dir: str = "."
    local_address: Optional[str] = None
    default_cos: int = -1
    poll_interval: float = 0.1
    command_timeout: Optional[float] = None
    resync_timeout: float = 5.0

    @classmethod
    def from_dict(cls, data: dict) -> "HsiConfig":
        known = {f.name for f in fields(cls)}
        # Empty values in the YAML file mean "use the default".
        values = {k: v for k, v in data.items() if k in known and v not in (None, "")}
        # Values substituted from the environment arrive as strings.
        for name, convert in NUMERIC_FIELDS:
            if name in values:
                values[name] = convert(values[name])
        return cls(**values)

    @classmethod
    def from_file(cls, config_file=None) -> "HsiConfig":
        config = read_config(config_file) if config_file else get_config()
        return cls.from_dict(config.get("hsi", {}))
