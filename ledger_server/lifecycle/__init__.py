"""
Lifecycle module for the ledger - validated operations over the repositories.

This module handles:
- Validation and sanitization of client input
- Record and history operations with ownership and capacity checks
- Accounts, admin operations and system settings
- Spreadsheet export
"""

from .accounts import AccountService, UserSummary, build_default_documents, default_password_context
from .export import EXPORT_COLUMNS, ExportFile, SpreadsheetEncoder, WorkbookEncoder
from .ids import IdGenerator, MonotonicIdGenerator, SequentialIdGenerator, utc_now
from .records import RecordLifecycle

__all__ = [
    "AccountService",
    "EXPORT_COLUMNS",
    "ExportFile",
    "IdGenerator",
    "MonotonicIdGenerator",
    "RecordLifecycle",
    "SequentialIdGenerator",
    "SpreadsheetEncoder",
    "UserSummary",
    "WorkbookEncoder",
    "build_default_documents",
    "default_password_context",
    "utc_now",
]
