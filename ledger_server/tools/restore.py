"""
Backup and restore CLI for the Concrete Ledger.

Operates directly on a data directory; stop the server before restoring,
since a running server keeps serving its in-memory copy and would
overwrite restored documents on its next write.

Usage:
    ledger-restore list    --data-dir <path>
    ledger-restore create  --data-dir <path>
    ledger-restore restore --data-dir <path> <backup_id> [--no-safety-backup]
    ledger-restore prune   --data-dir <path> --keep 10

Invariants:
    - Restore takes a safety backup of the live documents first (unless
      --no-safety-backup), so a restore can itself be undone
    - Backup ids are validated before any path is built from them
    - Exit status is 0 on success and 1 on any failure

How to change safely:
    - Add new subcommands additively; scripts depend on the existing ones
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field

from ..errors import LedgerError
from ..store import BackupManager

logger = logging.getLogger(__name__)


@dataclass
class RestoreResult:
    """Result of a restore operation.

    Attributes:
        success: Whether the restore succeeded
        backup_id: Backup that was restored
        safety_backup_id: Backup taken of the live documents beforehand
        restored_files: Document files copied back
        duration_ms: Total restore duration
        error: Error message if failed
    """

    success: bool
    backup_id: str
    safety_backup_id: str | None = None
    restored_files: list[str] = field(default_factory=list)
    duration_ms: int = 0
    error: str | None = None


class RestoreTool:
    """Restores a data directory from one of its backups.

    Example:
        >>> tool = RestoreTool(BackupManager("./data"))
        >>> result = tool.restore("backup_20240101T000000000000Z")
        >>> print(result.restored_files)
    """

    def __init__(self, manager: BackupManager, safety_backup: bool = True) -> None:
        self.manager = manager
        self.safety_backup = safety_backup

    def restore(self, backup_id: str) -> RestoreResult:
        start_time = time.time()
        result = RestoreResult(success=False, backup_id=backup_id)

        try:
            # Fail on unknown ids before taking the safety backup
            self.manager.get_backup(backup_id)

            if self.safety_backup:
                result.safety_backup_id = self.manager.create_backup()
                logger.info(f"Safety backup created: {result.safety_backup_id}")

            result.restored_files = self.manager.restore_backup(backup_id)
            result.success = True
        except (LedgerError, OSError) as e:
            logger.error(f"Restore of {backup_id} failed: {e}", exc_info=True)
            result.error = e.message if isinstance(e, LedgerError) else str(e)

        result.duration_ms = int((time.time() - start_time) * 1000)
        return result


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage Concrete Ledger backups")
    parser.add_argument("--data-dir", default="./data", help="Directory holding the documents")
    parser.add_argument("--backup-dir", help="Backup directory (default: <data-dir>/backups)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="List backups, newest first")
    subparsers.add_parser("create", help="Back up the current documents")

    restore = subparsers.add_parser("restore", help="Restore documents from a backup")
    restore.add_argument("backup_id", help="Backup to restore")
    restore.add_argument(
        "--no-safety-backup",
        action="store_true",
        help="Don't back up the live documents before restoring",
    )

    prune = subparsers.add_parser("prune", help="Delete all but the newest backups")
    prune.add_argument("--keep", type=int, default=10, help="Number of backups to keep")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the backup tool."""
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    manager = BackupManager(args.data_dir, args.backup_dir)

    if args.command == "restore":
        tool = RestoreTool(manager, safety_backup=not args.no_safety_backup)
        result = tool.restore(args.backup_id)
        if not result.success:
            print(f"Restore failed: {result.error}")
            return 1
        print("Restore completed successfully")
        print(f"  Backup: {result.backup_id}")
        print(f"  Safety backup: {result.safety_backup_id or 'none'}")
        print(f"  Files: {', '.join(result.restored_files) or 'none'}")
        print(f"  Duration: {result.duration_ms}ms")
        return 0

    try:
        if args.command == "list":
            backups = manager.list_backups()
            if not backups:
                print("No backups found")
            for info in backups:
                print(f"{info.backup_id}  {info.created_at.isoformat()}  {len(info.files)} files")
        elif args.command == "create":
            print(f"Backup created: {manager.create_backup()}")
        elif args.command == "prune":
            deleted = manager.prune_backups(args.keep)
            print(f"Deleted {len(deleted)} backups")
            for backup_id in deleted:
                print(f"  {backup_id}")
    except (LedgerError, OSError) as e:
        print(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
