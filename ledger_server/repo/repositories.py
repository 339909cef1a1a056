"""
Typed repositories over the cached ledger documents.

Each repository owns exactly one document:
- UserRepository          -> users.json (list of users)
- RecordRepository        -> userRecords.json (username -> records)
- HistoryRepository       -> userHistory.json (username -> history entries)
- AdminAccountRepository  -> adminAccount.json (singleton)
- SettingsRepository      -> systemSettings.json (singleton)

Reads come from the DocumentCache; every write persists the whole document
through it. Callers doing read-modify-write must hold ``repository.lock``.

Invariants:
    - A username without a shard reads as an empty list
    - Reading never creates a shard; only ``save`` does
    - Returned objects are fresh copies, safe to mutate
    - A shard that is not a list raises CorruptDocumentError for that
      user only; other shards keep serving
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from ..errors import CorruptDocumentError
from ..store.document_store import DocumentName
from .cache import DocumentCache
from .models import AdminAccount, HistoryEntry, Record, SystemSettings, User

logger = logging.getLogger(__name__)


class ShardedDocument:
    """Username -> ordered list view over a mapping document.

    The view never mutates the mapping it wraps; ``with_shard`` and
    ``without_shard`` return new top-level mappings that share the
    untouched shards.
    """

    def __init__(self, data: Mapping[str, list[Any]], document: str = "") -> None:
        self._data = data
        self.document = document

    def get(self, username: str) -> list[Any]:
        """Return a copy of the user's shard, or [] if there is none.

        Raises:
            CorruptDocumentError: If the stored shard is not a list
        """
        items = self._data.get(username, [])
        if not isinstance(items, list):
            raise CorruptDocumentError(
                self.document, f"shard for {username!r} is {type(items).__name__}, expected list"
            )
        return list(items)

    def with_shard(self, username: str, items: Iterable[Any]) -> dict[str, list[Any]]:
        data = dict(self._data)
        data[username] = list(items)
        return data

    def without_shard(self, username: str) -> dict[str, list[Any]]:
        return {key: value for key, value in self._data.items() if key != username}

    def counts(self) -> dict[str, int]:
        return {
            username: len(items) if isinstance(items, list) else 0
            for username, items in self._data.items()
        }

    def usernames(self) -> list[str]:
        return list(self._data)

    def __contains__(self, username: object) -> bool:
        return username in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)


class _DocumentRepository:
    document: DocumentName

    def __init__(self, cache: DocumentCache) -> None:
        self.cache = cache

    @property
    def lock(self) -> asyncio.Lock:
        return self.cache.lock(self.document)


class UserRepository(_DocumentRepository):
    """Registered users, in registration order."""

    document = DocumentName.USERS

    def list(self) -> list[User]:
        return [User.from_dict(u) for u in self.cache.get(self.document)]

    def get(self, username: str) -> User | None:
        for data in self.cache.get(self.document):
            if data.get("username") == username:
                return User.from_dict(data)
        return None

    def exists(self, username: str) -> bool:
        return self.get(username) is not None

    async def add(self, user: User) -> None:
        users = list(self.cache.get(self.document))
        users.append(user.to_dict())
        await self.cache.replace(self.document, users)

    async def update(self, user: User) -> bool:
        """Replace the stored user with the same username.

        Returns:
            False if no such user exists
        """
        users = list(self.cache.get(self.document))
        for i, data in enumerate(users):
            if data.get("username") == user.username:
                users[i] = {**data, **user.to_dict()}
                await self.cache.replace(self.document, users)
                return True
        return False

    async def remove(self, username: str) -> bool:
        users = self.cache.get(self.document)
        remaining = [u for u in users if u.get("username") != username]
        if len(remaining) == len(users):
            return False
        await self.cache.replace(self.document, remaining)
        return True


class _ShardRepository(_DocumentRepository):
    def shards(self) -> ShardedDocument:
        return ShardedDocument(self.cache.get(self.document), self.document.value)

    def counts(self) -> dict[str, int]:
        return self.shards().counts()

    async def drop(self, username: str) -> bool:
        """Delete a user's whole shard.

        Returns:
            False if the user had no shard
        """
        shards = self.shards()
        if username not in shards:
            return False
        await self.cache.replace(self.document, shards.without_shard(username))
        return True


class RecordRepository(_ShardRepository):
    """Active records per user."""

    document = DocumentName.USER_RECORDS

    def list(self, username: str) -> list[Record]:
        return [Record.from_dict(r) for r in self.shards().get(username)]

    async def save(self, username: str, records: Iterable[Record]) -> None:
        document = self.shards().with_shard(username, (r.to_dict() for r in records))
        await self.cache.replace(self.document, document)


class HistoryRepository(_ShardRepository):
    """Saved history entries per user."""

    document = DocumentName.USER_HISTORY

    def list(self, username: str) -> list[HistoryEntry]:
        return [HistoryEntry.from_dict(h) for h in self.shards().get(username)]

    async def save(self, username: str, entries: Iterable[HistoryEntry]) -> None:
        document = self.shards().with_shard(username, (h.to_dict() for h in entries))
        await self.cache.replace(self.document, document)


class AdminAccountRepository(_DocumentRepository):
    document = DocumentName.ADMIN_ACCOUNT

    def get(self) -> AdminAccount | None:
        """Return the admin account, or None if it was never seeded."""
        data = self.cache.get(self.document)
        if not data.get("username"):
            return None
        return AdminAccount.from_dict(data)

    async def save(self, account: AdminAccount) -> None:
        await self.cache.replace(self.document, account.to_dict())


class SettingsRepository(_DocumentRepository):
    document = DocumentName.SYSTEM_SETTINGS

    def get(self) -> SystemSettings:
        return SystemSettings.from_dict(self.cache.get(self.document))

    async def save(self, settings: SystemSettings) -> None:
        await self.cache.replace(self.document, settings.to_dict())
