"""
Prefect flows for HPSS tape management.

These flows wrap the HsiClient operations that move data between the disk
cache and tape (stage, migrate, purge) plus a residency report, so they can
be scheduled and retried by Prefect deployments. Failures are logged
and the flows return False rather than raise.
"""

import logging
from typing import Dict, List, Optional, Union

from prefect import flow

from hpss_hsi.client import HsiClient
from hpss_hsi.config import HsiConfig
from hpss_hsi.errors import HsiError
from hpss_hsi.factory import HsiFactory

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def _get_client(config: Optional[HsiConfig]) -> HsiClient:
    return HsiFactory(config or HsiConfig.from_file()).get_client()


def residency(client: HsiClient, path: str) -> Dict[str, bool]:
    """
    Report where the data for ``path`` currently lives.

    Args:
        client (HsiClient): An open client.
        path (str): File path on HPSS.

    Returns:
        Dict[str, bool]: ``on_disk``, ``on_tape`` and ``migration_finished``.
    """
    return {
        "on_disk": client.is_on_disk(path),
        "on_tape": client.is_on_tape(path),
        "migration_finished": client.migration_finished(path),
    }


@flow(name="hpss_stage_flow")
def hpss_stage_flow(
    file_path: Optional[Union[str, List[str]]] = None,
    config: Optional[HsiConfig] = None
) -> bool:
    """
    Stage one or more files from tape into the HPSS disk cache.

    Args:
        file_path (Union[str, List[str]]): A single path or a list of paths on HPSS.
        config (HsiConfig): Connection settings; read from config.yml when omitted.

    Returns:
        bool: True if staging completed, False otherwise.
    """
    logger.info("Running hpss_stage_flow")

    if not file_path:
        logger.error("No file path provided for staging")
        return False

    paths = file_path if isinstance(file_path, list) else [file_path]
    logger.info(f"Staging {len(paths)} files")
    for path in paths:
        logger.debug(f"  - {path}")

    try:
        with _get_client(config) as client:
            client.stage(paths)
        logger.info("Staging completed successfully")
        return True
    except (HsiError, FileNotFoundError) as e:
        logger.error(f"Error during staging: {str(e)}", exc_info=True)
        return False


@flow(name="hpss_migrate_flow")
def hpss_migrate_flow(
    file_path: Optional[str] = None,
    recursive: bool = False,
    force: bool = False,
    purge: bool = False,
    config: Optional[HsiConfig] = None
) -> bool:
    """
    Migrate data toward tape, optionally purging the disk copy afterwards.

    Args:
        file_path (str): The path on HPSS.
        recursive (bool): Migrate everything below ``file_path``.
        force (bool): Ignore storage class migration policy.
        purge (bool): Purge the disk cache copy once migrated.
        config (HsiConfig): Connection settings; read from config.yml when omitted.

    Returns:
        bool: True if the migration command succeeded, False otherwise.
    """
    logger.info("Running hpss_migrate_flow")

    if not file_path:
        logger.error("No file path provided for migration")
        return False

    try:
        with _get_client(config) as client:
            client.migrate(file_path, recursive=recursive, force=force, purge=purge)
            finished = client.migration_finished(file_path) if not recursive else True
        if finished:
            logger.info(f"Migration of {file_path} completed successfully")
        else:
            logger.warning(f"Migration of {file_path} was accepted but tape copies are incomplete")
        return True
    except (HsiError, FileNotFoundError) as e:
        logger.error(f"Error during migration of {file_path}: {str(e)}", exc_info=True)
        return False


@flow(name="hpss_purge_flow")
def hpss_purge_flow(
    file_path: Optional[str] = None,
    recursive: bool = False,
    require_tape_copy: bool = True,
    config: Optional[HsiConfig] = None
) -> bool:
    """
    Purge data from the HPSS disk cache.

    Args:
        file_path (str): The path on HPSS.
        recursive (bool): Purge everything below ``file_path``.
        require_tape_copy (bool): Refuse to purge a single file without a complete tape copy.
        config (HsiConfig): Connection settings; read from config.yml when omitted.

    Returns:
        bool: True if the purge was issued, False otherwise.
    """
    logger.info("Running hpss_purge_flow")

    if not file_path:
        logger.error("No file path provided for purge")
        return False

    try:
        with _get_client(config) as client:
            if require_tape_copy and not recursive and not client.is_on_tape(file_path):
                logger.error(f"Not purging {file_path}: no complete copy on tape")
                return False
            client.purge(file_path, recursive=recursive)
        logger.info(f"Purged {file_path} from the disk cache")
        return True
    except (HsiError, FileNotFoundError) as e:
        logger.error(f"Error during purge of {file_path}: {str(e)}", exc_info=True)
        return False


@flow(name="hpss_residency_flow")
def hpss_residency_flow(
    file_path: Optional[Union[str, List[str]]] = None,
    config: Optional[HsiConfig] = None
) -> Dict[str, Dict[str, bool]]:
    """
    Report disk and tape residency for one or more files.

    Returns:
        Dict[str, Dict[str, bool]]: Residency per path; paths that could not be
        inspected are left out.
    """
    logger.info("Running hpss_residency_flow")
    report = {}
    if not file_path:
        logger.error("No file path provided for residency report")
        return report

    paths = file_path if isinstance(file_path, list) else [file_path]
    try:
        client = _get_client(config)
    except FileNotFoundError as e:
        logger.error(f"Cannot configure hsi: {str(e)}", exc_info=True)
        return report

    with client:
        for path in paths:
            try:
                report[path] = residency(client, path)
            except HsiError as e:
                logger.error(f"Cannot inspect {path}: {str(e)}", exc_info=True)
    return report
