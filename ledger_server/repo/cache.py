"""
Process-wide in-memory mirror of the ledger documents.

The cache is loaded once at startup and is the only thing request handlers
read from. Writes go through ``replace``: the new document is persisted
first and becomes visible in memory only after the write succeeded, so the
mirror never runs ahead of the disk.

Invariants:
    - Reads never touch the disk after ``load``
    - A failed write leaves both the disk and the mirror unchanged
    - A document that failed to load stays unavailable (reads and writes
      raise CorruptDocumentError) while the other documents keep serving
    - Each document has its own asyncio.Lock for read-modify-write cycles
    - Disk writes run off the event loop; the mirror is updated only
      after the write returned

How to change safely:
    - Never hand out the cached objects for in-place mutation; callers
      build a new document and call ``replace``
    - Call ``load`` again after restoring a backup underneath a live cache
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..errors import CorruptDocumentError
from ..store.document_store import DocumentName, DocumentStore

logger = logging.getLogger(__name__)

_EXPECTED_TYPES: dict[DocumentName, type] = {
    DocumentName.USERS: list,
    DocumentName.USER_RECORDS: dict,
    DocumentName.USER_HISTORY: dict,
    DocumentName.ADMIN_ACCOUNT: dict,
    DocumentName.SYSTEM_SETTINGS: dict,
}


class DocumentCache:
    """In-memory mirror of every document.

    Example:
        >>> cache = DocumentCache(store)
        >>> cache.load()
        >>> async with cache.lock(DocumentName.USERS):
        ...     users = list(cache.get(DocumentName.USERS))
        ...     await cache.replace(DocumentName.USERS, users + [new_user])
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self._documents: dict[DocumentName, Any] = {}
        self._errors: dict[DocumentName, CorruptDocumentError] = {}
        self._locks: dict[DocumentName, asyncio.Lock] = {name: asyncio.Lock() for name in DocumentName}
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def unavailable(self) -> tuple[DocumentName, ...]:
        """Documents that failed to load."""
        return tuple(self._errors)

    def load(self) -> None:
        """Read every document from the store into memory."""
        documents: dict[DocumentName, Any] = {}
        errors: dict[DocumentName, CorruptDocumentError] = {}

        for name in DocumentName:
            try:
                document = self.store.read(name)
                if not isinstance(document, _EXPECTED_TYPES[name]):
                    raise CorruptDocumentError(
                        name.value, f"expected {_EXPECTED_TYPES[name].__name__} at top level"
                    )
            except CorruptDocumentError as e:
                logger.error(
                    f"Document {name.value} is unreadable and will be unavailable: {e.reason}",
                    extra={"document": name.value},
                )
                errors[name] = e
                continue
            documents[name] = document

        self._documents = documents
        self._errors = errors
        self._loaded = True
        logger.info(
            f"Loaded {len(documents)} documents into cache",
            extra={"unavailable": [n.value for n in errors]},
        )

    def _check(self, name: DocumentName) -> None:
        if not self._loaded:
            raise RuntimeError("DocumentCache.load() must be called before use")
        if name in self._errors:
            raise self._errors[name]

    def get(self, name: DocumentName) -> Any:
        """Return the cached document (treat as read-only).

        Raises:
            CorruptDocumentError: If the document failed to load
        """
        name = DocumentName(name)
        self._check(name)
        return self._documents[name]

    async def replace(self, name: DocumentName, document: Any) -> None:
        """Persist a new version of a document, then publish it in memory.

        The write runs in the default executor so other requests keep
        being served while it is in flight. Callers hold ``lock(name)``.

        Raises:
            CorruptDocumentError: If the document failed to load
            StorageIOError: If the write failed (the mirror is unchanged)
        """
        name = DocumentName(name)
        self._check(name)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.write, name, document)
        self._documents[name] = document

    def lock(self, name: DocumentName) -> asyncio.Lock:
        """Mutation lock for one document."""
        return self._locks[DocumentName(name)]
