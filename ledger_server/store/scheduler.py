"""
Periodic backup loop.

The BackupScheduler runs as a background task that takes a backup every
``interval_seconds`` and prunes old ones afterwards. It does not take the
document locks: every document write is an atomic rename, so each copied
file is a complete committed version even if writers are active.

Invariants:
    - A failed cycle is logged and the loop keeps running
    - Stopping the scheduler never interrupts a copy half-way through a file
"""

from __future__ import annotations

import asyncio
import logging

from .backup import BackupManager

logger = logging.getLogger(__name__)


class BackupScheduler:
    """Takes backups on a fixed interval.

    Example:
        >>> scheduler = BackupScheduler(manager, interval_seconds=3600, max_kept=10)
        >>> task = asyncio.create_task(scheduler.start())
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        manager: BackupManager,
        interval_seconds: int,
        max_kept: int = 10,
    ) -> None:
        self.manager = manager
        self.interval_seconds = interval_seconds
        self.max_kept = max_kept
        self._running = False
        self._backup_count = 0
        self._stop_event = asyncio.Event()

    @property
    def backup_count(self) -> int:
        """Number of backups taken by this scheduler."""
        return self._backup_count

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run the backup loop until stopped."""
        if self._running:
            logger.warning("Backup scheduler already running")
            return

        self._running = True
        self._stop_event.clear()
        logger.info(
            "Starting backup scheduler",
            extra={"interval_seconds": self.interval_seconds, "max_kept": self.max_kept},
        )

        try:
            while self._running:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                    break
                except asyncio.TimeoutError:
                    pass
                await self.run_cycle()
        except asyncio.CancelledError:
            logger.info("Backup scheduler cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """Stop the loop after the current cycle."""
        self._running = False
        self._stop_event.set()
        logger.info("Stopping backup scheduler")

    async def run_cycle(self) -> str | None:
        """Take one backup and prune.

        Returns:
            The new backup id, or None if the cycle failed
        """
        loop = asyncio.get_running_loop()
        try:
            backup_id = await loop.run_in_executor(None, self.manager.create_backup)
            await loop.run_in_executor(None, self.manager.prune_backups, self.max_kept)
        except Exception as e:
            logger.error(f"Backup cycle failed: {e}", exc_info=True)
            return None

        self._backup_count += 1
        return backup_id
