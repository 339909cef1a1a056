"""
Repository module for the ledger - cached, typed access to documents.

This module handles:
- The process-wide in-memory mirror of all documents
- Per-user sharding of the records and history documents
- Typed models for everything persisted
"""

from .cache import DocumentCache
from .models import AdminAccount, HistoryEntry, Record, SystemSettings, User
from .repositories import (
    AdminAccountRepository,
    HistoryRepository,
    RecordRepository,
    SettingsRepository,
    ShardedDocument,
    UserRepository,
)

__all__ = [
    "AdminAccount",
    "AdminAccountRepository",
    "DocumentCache",
    "HistoryEntry",
    "HistoryRepository",
    "Record",
    "RecordRepository",
    "SettingsRepository",
    "ShardedDocument",
    "SystemSettings",
    "User",
    "UserRepository",
]
