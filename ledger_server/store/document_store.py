"""
Whole-document JSON store for the ledger.

Each document is one JSON file in the data directory. Readers always get a
complete committed version: writes go to a temporary file in the same
directory and are renamed over the target with ``os.replace``.

Documents:
    users.json          - list of users
    userRecords.json    - {username: [record, ...]}
    userHistory.json    - {username: [history entry, ...]}
    adminAccount.json   - singleton admin account
    systemSettings.json - singleton system settings

Invariants:
    - A missing file reads as the document's default value
    - A present but unparseable file raises CorruptDocumentError
    - A failed write leaves the previous file untouched and no temp file
    - Only the known document names are addressable

How to change safely:
    - New documents need a DocumentName member and a default factory
    - Keep the temp file in the target directory so the rename stays on
      one filesystem
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Mapping
from enum import Enum
from pathlib import Path
from typing import Any

from ..errors import CorruptDocumentError, StorageIOError

logger = logging.getLogger(__name__)


class DocumentName(str, Enum):
    """Names of the persisted documents."""

    USERS = "users.json"
    USER_RECORDS = "userRecords.json"
    USER_HISTORY = "userHistory.json"
    ADMIN_ACCOUNT = "adminAccount.json"
    SYSTEM_SETTINGS = "systemSettings.json"


DefaultFactory = Callable[[], Any]

BASE_DEFAULTS: dict[DocumentName, DefaultFactory] = {
    DocumentName.USERS: list,
    DocumentName.USER_RECORDS: dict,
    DocumentName.USER_HISTORY: dict,
    DocumentName.ADMIN_ACCOUNT: dict,
    DocumentName.SYSTEM_SETTINGS: dict,
}


class DocumentStore:
    """Reads and atomically writes whole JSON documents.

    Example:
        >>> store = DocumentStore("/var/lib/ledger")
        >>> store.ensure_documents()
        >>> users = store.read(DocumentName.USERS)
        >>> store.write(DocumentName.USERS, users + [new_user])
    """

    TEMP_SUFFIX = ".tmp"

    def __init__(
        self,
        data_dir: str | Path,
        defaults: Mapping[DocumentName, DefaultFactory] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory holding the documents
            defaults: Default factories per document, overriding BASE_DEFAULTS
        """
        self.data_dir = Path(data_dir)
        self._defaults: dict[DocumentName, DefaultFactory] = dict(BASE_DEFAULTS)
        if defaults:
            self._defaults.update(defaults)

    @property
    def document_names(self) -> tuple[DocumentName, ...]:
        return tuple(DocumentName)

    def path_for(self, name: DocumentName | str) -> Path:
        """Get the file path of a document."""
        return self.data_dir / DocumentName(name).value

    def default_for(self, name: DocumentName | str) -> Any:
        """Build a fresh default value for a document."""
        return self._defaults[DocumentName(name)]()

    def ensure_documents(self) -> list[DocumentName]:
        """Create every missing document with its default content.

        Returns:
            Names of the documents that were created
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        created = []
        for name in DocumentName:
            if not self.path_for(name).exists():
                self.write(name, self.default_for(name))
                created.append(name)
        if created:
            logger.info(f"Initialized documents: {', '.join(n.value for n in created)}")
        return created

    def read(self, name: DocumentName | str) -> Any:
        """Read a document.

        Args:
            name: Document name

        Returns:
            The parsed document, or its default when the file is absent

        Raises:
            CorruptDocumentError: If the file exists but is not valid JSON
        """
        name = DocumentName(name)
        path = self.path_for(name)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return self.default_for(name)
        except UnicodeDecodeError as exc:
            raise CorruptDocumentError(name.value, "invalid UTF-8") from exc

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptDocumentError(name.value, f"invalid JSON at line {exc.lineno}") from exc

    def write(self, name: DocumentName | str, document: Any) -> None:
        """Atomically replace a document.

        Args:
            name: Document name
            document: JSON-serializable content

        Raises:
            StorageIOError: If serialization or any filesystem step fails
        """
        name = DocumentName(name)
        path = self.path_for(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            content = json.dumps(document, indent=2, ensure_ascii=False)
            _atomic_write_text(path, content, self.TEMP_SUFFIX)
        except (OSError, TypeError, ValueError) as exc:
            logger.error(f"Failed to write document {name.value}: {exc}")
            raise StorageIOError(name.value, type(exc).__name__) from exc


def _atomic_write_text(path: Path, content: str, suffix: str) -> None:
    """Write *content* to *path* via a sibling temp file and ``os.replace``."""
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=suffix)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
