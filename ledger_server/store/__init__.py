"""
Storage module for the ledger - JSON documents and their backups.

This module handles:
- Atomic whole-document reads and writes
- Timestamped directory backups, restore and pruning
- The optional periodic backup loop

Invariants:
    - Readers never observe a partially written document
    - Backups only ever contain complete document files
"""

from .backup import BackupInfo, BackupManager, parse_backup_id
from .document_store import DocumentName, DocumentStore
from .scheduler import BackupScheduler

__all__ = [
    "BackupInfo",
    "BackupManager",
    "BackupScheduler",
    "DocumentName",
    "DocumentStore",
    "parse_backup_id",
]
