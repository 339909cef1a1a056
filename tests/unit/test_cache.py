"""
Unit tests for the in-memory document cache.

Tests cover:
- Loading and serving documents
- Write-before-publish on replace
- Isolation of corrupt documents
"""

import tempfile
from pathlib import Path

import pytest

from ledger_server.errors import CorruptDocumentError, StorageIOError
from ledger_server.repo import DocumentCache
from ledger_server.store import DocumentName, DocumentStore


class TestDocumentCache:
    """Tests for DocumentCache."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        store = DocumentStore(data_dir)
        store.ensure_documents()
        return store

    @pytest.fixture
    def cache(self, store):
        cache = DocumentCache(store)
        cache.load()
        return cache

    def test_get_before_load(self, store):
        with pytest.raises(RuntimeError):
            DocumentCache(store).get(DocumentName.USERS)

    def test_serves_loaded_documents(self, cache):
        assert cache.is_loaded
        assert cache.get(DocumentName.USERS) == []
        assert cache.unavailable == ()

    def test_reads_do_not_touch_disk(self, cache, store):
        """After load, changes made behind the cache's back are not seen."""
        store.write(DocumentName.USERS, [{"username": "ghost"}])
        assert cache.get(DocumentName.USERS) == []

    @pytest.mark.asyncio
    async def test_replace_persists_and_publishes(self, cache, store):
        await cache.replace(DocumentName.USERS, [{"username": "alice"}])

        assert cache.get(DocumentName.USERS) == [{"username": "alice"}]
        assert store.read(DocumentName.USERS) == [{"username": "alice"}]

    @pytest.mark.asyncio
    async def test_failed_write_leaves_mirror(self, cache, store, monkeypatch):
        """The mirror never runs ahead of the disk."""
        def failing_write(name, document):
            raise StorageIOError(name.value, "OSError")

        monkeypatch.setattr(store, "write", failing_write)

        with pytest.raises(StorageIOError):
            await cache.replace(DocumentName.USERS, [{"username": "alice"}])
        assert cache.get(DocumentName.USERS) == []

    @pytest.mark.asyncio
    async def test_corrupt_document_isolated(self, store, data_dir):
        """A corrupt document is unavailable; the others keep serving."""
        Path(data_dir, "userHistory.json").write_text("{oops", encoding="utf-8")
        cache = DocumentCache(store)
        cache.load()

        assert cache.unavailable == (DocumentName.USER_HISTORY,)
        assert cache.get(DocumentName.USER_RECORDS) == {}
        with pytest.raises(CorruptDocumentError):
            cache.get(DocumentName.USER_HISTORY)
        with pytest.raises(CorruptDocumentError):
            await cache.replace(DocumentName.USER_HISTORY, {})

    def test_wrong_top_level_type_is_corrupt(self, store):
        store.write(DocumentName.USER_RECORDS, [])
        cache = DocumentCache(store)
        cache.load()

        assert DocumentName.USER_RECORDS in cache.unavailable

    def test_one_lock_per_document(self, cache):
        assert cache.lock(DocumentName.USERS) is cache.lock(DocumentName.USERS)
        assert cache.lock(DocumentName.USERS) is not cache.lock(DocumentName.USER_RECORDS)
