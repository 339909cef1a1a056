"""
Service container for the ledger.

Builds the component graph once per process:

    DocumentStore -> DocumentCache -> repositories -> RecordLifecycle
                                                   -> AccountService
    BackupManager (+ optional BackupScheduler)

and performs startup initialization: create missing documents, load the
cache, take a startup backup and prune old ones.

Invariants:
    - There is exactly one DocumentCache per data directory per process
    - ``initialize`` runs before any request is served
    - A failed startup backup is logged, never fatal

How to change safely:
    - Inject ``id_generator``/``clock``/``pwd_context`` in tests instead of
      patching module globals
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from passlib.context import CryptContext

from .config import ServerConfig
from .errors import LedgerError
from .lifecycle import (
    AccountService,
    IdGenerator,
    RecordLifecycle,
    build_default_documents,
    default_password_context,
    utc_now,
)
from .lifecycle.ids import Clock
from .repo import (
    AdminAccountRepository,
    DocumentCache,
    HistoryRepository,
    RecordRepository,
    SettingsRepository,
    UserRepository,
)
from .store import BackupManager, BackupScheduler, DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class LedgerServices:
    """Everything the HTTP layer and tools need, wired together."""

    config: ServerConfig
    store: DocumentStore
    cache: DocumentCache
    backups: BackupManager
    records: RecordLifecycle
    accounts: AccountService
    scheduler: BackupScheduler | None = None


def build_services(
    config: ServerConfig,
    id_generator: IdGenerator | None = None,
    clock: Clock | None = None,
    pwd_context: CryptContext | None = None,
) -> LedgerServices:
    """Wire the components for ``config`` without touching the disk."""
    clock = clock or utc_now
    pwd_context = pwd_context or default_password_context()

    store = DocumentStore(
        config.storage.data_dir,
        defaults=build_default_documents(config.auth, pwd_context, clock),
    )
    cache = DocumentCache(store)

    users = UserRepository(cache)
    records = RecordRepository(cache)
    history = HistoryRepository(cache)
    admin = AdminAccountRepository(cache)
    settings = SettingsRepository(cache)

    backups = BackupManager(config.storage.data_dir, config.storage.resolved_backup_dir)
    scheduler = None
    if config.storage.backup_interval_seconds > 0:
        scheduler = BackupScheduler(
            backups,
            interval_seconds=config.storage.backup_interval_seconds,
            max_kept=config.storage.max_backups,
        )

    return LedgerServices(
        config=config,
        store=store,
        cache=cache,
        backups=backups,
        records=RecordLifecycle(records, history, settings, id_generator=id_generator, clock=clock),
        accounts=AccountService(
            users, records, history, admin, settings, pwd_context=pwd_context, clock=clock
        ),
        scheduler=scheduler,
    )


def initialize(services: LedgerServices) -> None:
    """Prepare the data directory and load the cache.

    Raises:
        StorageIOError: If a missing document could not be created
    """
    storage = services.config.storage
    created = services.store.ensure_documents()
    services.cache.load()

    if storage.backup_on_startup:
        try:
            backup_id = services.backups.create_backup()
            services.backups.prune_backups(storage.max_backups)
            logger.info(f"Startup backup created: {backup_id}")
        except (LedgerError, OSError) as e:
            logger.error(f"Startup backup failed: {e}", exc_info=True)

    logger.info(
        "Ledger initialized",
        extra={
            "data_dir": str(storage.data_dir),
            "created_documents": [n.value for n in created],
            "unavailable_documents": [n.value for n in services.cache.unavailable],
        },
    )
