"""
Concrete Ledger Server - multi-tenant record keeping on JSON documents.

This package implements a small record-keeping service built on:
- Whole-file JSON documents as the unit of persistence
- Per-user shards inside shared documents (records, history)
- An in-memory mirror of every document, loaded once at startup
- Timestamped directory backups of the document set

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│ RecordLifecycle │
    │  (browser)  │     │  (FastAPI)  │     │ AccountService  │
    └─────────────┘     └─────────────┘     └────────┬────────┘
                                                     │
                                                     ▼
                        ┌─────────────────────────────────────────┐
                        │   Repositories over DocumentCache       │
                        └─────────────────────────────────────────┘
                                             │
                        ┌────────────────────┼────────────────────┐
                        ▼                                         ▼
                   ┌──────────────┐                        ┌─────────────┐
                   │DocumentStore │                        │BackupManager│
                   │ (JSON files) │                        │ (backup_*/) │
                   └──────────────┘                        └─────────────┘

Invariants:
    - Every record in a user's shard has createdBy == that username
    - Volume is always derived server-side, never trusted from input
    - Writes reach disk before the in-memory mirror is updated
    - Each document is its own consistency unit

How to change safely:
    - Keep persisted key names stable (camelCase, as on disk today)
    - Add new document fields with defaults so old files still load
    - Never widen the character set accepted for exported strings

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
