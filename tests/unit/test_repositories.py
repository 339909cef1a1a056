"""
Unit tests for the keyed repositories.

Tests cover:
- ShardedDocument views
- Lazy shard creation
- User, settings and admin account persistence
"""

import tempfile

import pytest

from ledger_server.errors import CorruptDocumentError
from ledger_server.repo import (
    AdminAccount,
    AdminAccountRepository,
    DocumentCache,
    Record,
    RecordRepository,
    SettingsRepository,
    ShardedDocument,
    User,
    UserRepository,
)
from ledger_server.store import DocumentName, DocumentStore


def _record(part="Wall A", created_by="alice"):
    return Record(
        part=part,
        type="Column",
        number="C-1",
        height=3,
        thick=0.2,
        length=5,
        count=2,
        volume=6.0,
        created_at="2024-05-01T08:30:00.000Z",
        created_by=created_by,
        id=1,
    )


class TestShardedDocument:
    def test_missing_shard_is_empty(self):
        assert ShardedDocument({}).get("alice") == []

    def test_with_shard_does_not_mutate(self):
        data = {"alice": [1]}
        updated = ShardedDocument(data).with_shard("bob", [2])

        assert data == {"alice": [1]}
        assert updated == {"alice": [1], "bob": [2]}

    def test_without_shard(self):
        view = ShardedDocument({"alice": [1], "bob": [2, 3]})
        assert view.without_shard("alice") == {"bob": [2, 3]}
        assert view.counts() == {"alice": 1, "bob": 2}
        assert "bob" in view
        assert len(view) == 2

    def test_non_list_shard_is_corrupt(self):
        view = ShardedDocument({"alice": {"part": "A"}, "bob": [1]}, "userRecords.json")

        with pytest.raises(CorruptDocumentError) as exc_info:
            view.get("alice")

        assert exc_info.value.document == "userRecords.json"
        assert view.get("bob") == [1]
        assert view.counts() == {"alice": 0, "bob": 1}


class TestRepositories:
    """Tests for the document repositories."""

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

    def test_lazy_shard_creation(self, cache, store):
        """Reading an unknown user's shard persists nothing."""
        records = RecordRepository(cache)

        assert records.list("alice") == []
        assert "alice" not in records.shards()
        assert store.read(DocumentName.USER_RECORDS) == {}

    @pytest.mark.asyncio
    async def test_save_and_list_records(self, cache, store):
        records = RecordRepository(cache)
        await records.save("alice", [_record()])

        assert records.list("alice") == [_record()]
        assert store.read(DocumentName.USER_RECORDS)["alice"][0]["createdBy"] == "alice"

    @pytest.mark.asyncio
    async def test_returned_lists_are_copies(self, cache):
        records = RecordRepository(cache)
        await records.save("alice", [_record()])

        records.list("alice").append(_record(part="Wall B"))
        assert len(records.list("alice")) == 1

    @pytest.mark.asyncio
    async def test_drop_shard(self, cache):
        records = RecordRepository(cache)
        await records.save("alice", [_record()])

        assert await records.drop("alice") is True
        assert await records.drop("alice") is False
        assert records.counts() == {}

    @pytest.mark.asyncio
    async def test_users(self, cache):
        users = UserRepository(cache)
        await users.add(User(username="alice", password_hash="h1", created_at="t0"))

        assert users.exists("alice")
        assert not users.exists("bob")

        assert await users.update(User(username="alice", password_hash="h2", created_at="t0"))
        assert users.get("alice").password_hash == "h2"
        assert not await users.update(User(username="bob", password_hash="x"))

        assert await users.remove("alice")
        assert not await users.remove("alice")
        assert users.list() == []

    def test_legacy_password_field(self, cache, store):
        """Users written by older versions keep their hash under 'password'."""
        store.write(DocumentName.USERS, [{"username": "old", "password": "abc123"}])
        cache.load()

        assert UserRepository(cache).get("old").password_hash == "abc123"

    def test_settings_defaults(self, cache):
        settings = SettingsRepository(cache).get()

        assert settings.allow_registration is False
        assert settings.max_records_per_user == 1000
        assert settings.max_history_per_user == 100

    @pytest.mark.asyncio
    async def test_admin_account_unseeded(self, cache):
        admin = AdminAccountRepository(cache)
        assert admin.get() is None

        await admin.save(AdminAccount(username="root", password_hash="h"))
        assert admin.get().username == "root"
