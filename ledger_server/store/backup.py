"""
Directory backups of the ledger documents.

A backup is a folder ``backup_<timestamp>`` under the backup directory
holding a copy of every ``*.json`` document in the data directory. The
timestamp is UTC ``%Y%m%dT%H%M%S%fZ`` so lexical order is time order.

Invariants:
    - Backup ids are validated before touching the filesystem
    - Restore replaces each document atomically, the set as a whole is not
    - Prune never deletes the newest ``max_kept`` backups
    - Only complete backups are listed (partial ones are removed on failure)

How to change safely:
    - Keep the folder name format; restore and prune parse it
    - Test restore against backups taken by older versions
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

BACKUP_PREFIX = "backup_"
TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S%fZ"

_BACKUP_ID_RE = re.compile(r"^backup_(\d{8}T\d{12}Z)(?:_(\d+))?$")


@dataclass(frozen=True)
class BackupInfo:
    """A backup folder on disk.

    Attributes:
        backup_id: Folder name (``backup_<timestamp>[_<n>]``)
        created_at: Timestamp parsed from the folder name
        path: Absolute folder path
        files: Document file names contained in the backup
    """

    backup_id: str
    created_at: datetime
    path: Path
    files: tuple[str, ...]


def parse_backup_id(backup_id: str) -> tuple[datetime, int]:
    """Parse a backup id into its timestamp and collision counter.

    Raises:
        ValidationError: If the id is not a well-formed backup name
    """
    match = _BACKUP_ID_RE.match(backup_id)
    if not match:
        raise ValidationError(f"Invalid backup id: {backup_id!r}", field_name="backup_id")
    created = datetime.strptime(match.group(1), TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    return created, int(match.group(2) or 0)


class BackupManager:
    """Creates, lists, restores and prunes document backups.

    Example:
        >>> manager = BackupManager("/var/lib/ledger", "/var/lib/ledger/backups")
        >>> backup_id = manager.create_backup()
        >>> manager.prune_backups(10)
        >>> manager.restore_backup(backup_id)
    """

    def __init__(
        self,
        data_dir: str | Path,
        backup_dir: str | Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the backup manager.

        Args:
            data_dir: Directory holding the live documents
            backup_dir: Directory for backup folders (default data_dir/backups)
            clock: Returns the current UTC time
        """
        self.data_dir = Path(data_dir)
        self.backup_dir = Path(backup_dir) if backup_dir else self.data_dir / "backups"
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _document_files(self, directory: Path) -> list[Path]:
        return sorted(p for p in directory.glob("*.json") if p.is_file())

    def create_backup(self) -> str:
        """Copy every current document into a new backup folder.

        Returns:
            The new backup id

        Raises:
            OSError: If the copy fails (the partial folder is removed)
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._clock().astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
        backup_id = f"{BACKUP_PREFIX}{stamp}"
        counter = 0
        while (self.backup_dir / backup_id).exists():
            counter += 1
            backup_id = f"{BACKUP_PREFIX}{stamp}_{counter}"

        backup_path = self.backup_dir / backup_id
        backup_path.mkdir(parents=True)
        try:
            for source in self._document_files(self.data_dir):
                shutil.copy2(source, backup_path / source.name)
        except OSError as e:
            logger.error(f"Backup {backup_id} failed: {e}", exc_info=True)
            shutil.rmtree(backup_path, ignore_errors=True)
            raise

        logger.info(f"Backup created: {backup_id}", extra={"backup_path": str(backup_path)})
        return backup_id

    def list_backups(self) -> list[BackupInfo]:
        """List backups, newest first."""
        if not self.backup_dir.exists():
            return []

        backups = []
        for entry in self.backup_dir.iterdir():
            if not entry.is_dir() or not entry.name.startswith(BACKUP_PREFIX):
                continue
            try:
                created, counter = parse_backup_id(entry.name)
            except ValidationError:
                logger.warning(f"Ignoring unrecognized backup folder: {entry.name}")
                continue
            files = tuple(p.name for p in self._document_files(entry))
            backups.append(((created, counter), BackupInfo(entry.name, created, entry, files)))

        backups.sort(key=lambda item: item[0], reverse=True)
        return [info for _, info in backups]

    def get_backup(self, backup_id: str) -> BackupInfo:
        """Look up one backup by id.

        Raises:
            ValidationError: If the id is malformed
            NotFoundError: If no such backup exists
        """
        created, _ = parse_backup_id(backup_id)
        path = self.backup_dir / backup_id
        if not path.is_dir():
            raise NotFoundError(f"Backup not found: {backup_id}", "backup", backup_id)
        files = tuple(p.name for p in self._document_files(path))
        return BackupInfo(backup_id, created, path, files)

    def restore_backup(self, backup_id: str) -> list[str]:
        """Copy every document of a backup over the live documents.

        Each file is replaced atomically; a crash mid-restore can leave a
        mix of restored and live documents.

        Args:
            backup_id: Backup to restore

        Returns:
            Names of the restored document files
        """
        info = self.get_backup(backup_id)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        restored = []
        for name in info.files:
            _atomic_copy(info.path / name, self.data_dir / name)
            restored.append(name)

        logger.info(f"Backup restored: {backup_id}", extra={"files": restored})
        return restored

    def prune_backups(self, max_kept: int) -> list[str]:
        """Delete all backups beyond the newest ``max_kept``.

        Returns:
            Ids of the deleted backups
        """
        if max_kept < 0:
            raise ValidationError("max_kept must not be negative", field_name="max_kept")

        deleted = []
        for info in self.list_backups()[max_kept:]:
            try:
                shutil.rmtree(info.path)
            except OSError as e:
                logger.error(f"Failed to delete old backup {info.backup_id}: {e}")
                continue
            deleted.append(info.backup_id)
            logger.info(f"Deleted old backup: {info.backup_id}")
        return deleted


def _atomic_copy(source: Path, target: Path) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    os.close(fd)
    try:
        shutil.copyfile(source, tmp_path)
        os.replace(tmp_path, target)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
