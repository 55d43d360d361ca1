"""
L4 Execution — Binary backup and restore.

Copies a binary aside before this run overwrites it, so rollback can
put the previous version back instead of deleting it.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

from kodegen_setup.core.models.state import InstallationState

logger = logging.getLogger(__name__)


def backup_binary(path: Path, backup_dir: Path, state: InstallationState) -> Path | None:
    """Back up *path* into *backup_dir* and record it in ``state.backups``.

    Creates a timestamped copy (``NAME.bak.YYYYMMDD_HHMMSS``) preserving
    permissions.  Failures are logged but do **not** abort the install;
    rollback then treats the file as untouched.

    Returns:
        The backup path, or None if nothing was backed up.
    """
    key = str(path)
    if key in state.backups:
        return Path(state.backups[key])
    if not path.is_file():
        logger.debug("backup: path does not exist, skipping: %s", path)
        return None

    ts = time.strftime("%Y%m%d_%H%M%S")
    dest = backup_dir / f"{path.name}.bak.{ts}"
    try:
        backup_dir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, dest)
    except OSError as e:
        logger.warning("backup failed for %s: %s", path, e)
        return None

    state.backups[key] = str(dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


def restore_backup(backup: Path, path: Path) -> None:
    """Copy *backup* back over *path* (raises ``OSError`` on failure)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(backup, path)
    logger.info("Restored %s from %s", path, backup)
