"""Backup and temp-file handling around the local mirror path.

Every rename here goes through ``os.replace`` so it is atomic on a single
filesystem. Temp files are allocated next to the target for the same reason.
"""

from __future__ import annotations

import logging
import os
import tempfile
from enum import Enum
from pathlib import Path

from digestmirror.errors import BackupExistsError, LocalIOError

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"
TEMP_SUFFIX = ".new"


class BackupPolicy(str, Enum):
    """What to do when ``<path>.bak`` already exists."""

    rotate = "rotate"
    overwrite = "overwrite"
    fail = "fail"


def backup_path_for(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def _rotated(backup: Path, n: int) -> Path:
    return backup.with_name(f"{backup.name}.{n}")


class BackupMover:
    """Moves a local file out of the way before it gets replaced."""

    def __init__(self, policy: BackupPolicy = BackupPolicy.rotate) -> None:
        self.policy = BackupPolicy(policy)

    def backup(self, path: Path | str) -> Path:
        """Move *path* to ``<path>.bak`` and return the backup location.

        Under ``rotate`` an existing ``.bak`` is shifted to ``.bak.1`` (and
        ``.bak.1`` to ``.bak.2``, ...) first, so no backup is ever lost.
        """
        path = Path(path)
        if not path.is_file():
            raise LocalIOError("backup", path, FileNotFoundError(f"{path} does not exist"))

        dest = backup_path_for(path)
        if dest.exists():
            if self.policy is BackupPolicy.fail:
                raise BackupExistsError(dest)
            if self.policy is BackupPolicy.rotate:
                self._rotate(dest)
            else:
                logger.info("Overwriting existing backup %s", dest)

        try:
            os.replace(path, dest)
        except OSError as e:
            raise LocalIOError("backup", path, e) from e
        logger.info("Backed up %s -> %s", path, dest)
        return dest

    @staticmethod
    def _rotate(backup: Path) -> None:
        n = 1
        while _rotated(backup, n).exists():
            n += 1
        # shift from the highest slot down so nothing is overwritten
        try:
            for i in range(n, 1, -1):
                os.replace(_rotated(backup, i - 1), _rotated(backup, i))
            os.replace(backup, _rotated(backup, 1))
        except OSError as e:
            raise LocalIOError("rotate backup", backup, e) from e
        logger.debug("Rotated %s (%d generation(s) kept)", backup, n)


def allocate_temp_path(path: Path | str) -> Path:
    """Reserve a unique ``<name>.<random>.new`` file next to *path*."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix=f"{path.name}.", suffix=TEMP_SUFFIX, dir=path.parent)
    except OSError as e:
        raise LocalIOError("allocate temp file for", path, e) from e
    os.close(fd)
    return Path(name)


def promote(temp: Path, path: Path) -> None:
    """Atomically move a downloaded temp file into place."""
    try:
        os.replace(temp, path)
    except OSError as e:
        raise LocalIOError("promote", temp, e) from e
    logger.debug("Promoted %s -> %s", temp, path)


def discard(temp: Path) -> None:
    """Remove a temp file; a file that is already gone is fine."""
    try:
        temp.unlink(missing_ok=True)
    except OSError as e:
        raise LocalIOError("discard", temp, e) from e
