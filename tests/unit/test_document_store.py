"""
Unit tests for the JSON document store.

Tests cover:
- Defaults for missing documents
- First-run initialization
- Atomic writes and failure handling
- Corrupt document detection
"""

import json
import os
import tempfile
from pathlib import Path

import pytest

from ledger_server.errors import CorruptDocumentError, StorageIOError
from ledger_server.store import DocumentName, DocumentStore


class TestDocumentStore:
    """Tests for DocumentStore."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def store(self, data_dir):
        return DocumentStore(data_dir)

    def test_missing_document_reads_default(self, store):
        assert store.read(DocumentName.USERS) == []
        assert store.read(DocumentName.USER_RECORDS) == {}

    def test_read_does_not_create_file(self, store):
        store.read(DocumentName.USERS)
        assert not store.path_for(DocumentName.USERS).exists()

    def test_write_then_read(self, store):
        """Written documents read back identically, non-ASCII included."""
        document = {"张三": [{"part": "墙", "volume": 6.0}]}
        store.write(DocumentName.USER_RECORDS, document)

        assert store.read(DocumentName.USER_RECORDS) == document
        text = store.path_for(DocumentName.USER_RECORDS).read_text(encoding="utf-8")
        assert "张三" in text
        assert text.startswith("{\n  ")

    def test_ensure_documents(self, data_dir):
        """Missing documents are created with their defaults; existing ones kept."""
        store = DocumentStore(
            data_dir,
            defaults={DocumentName.SYSTEM_SETTINGS: lambda: {"allowRegistration": False}},
        )
        store.write(DocumentName.USERS, [{"username": "alice"}])

        created = store.ensure_documents()

        assert DocumentName.USERS not in created
        assert set(created) == set(DocumentName) - {DocumentName.USERS}
        assert store.read(DocumentName.USERS) == [{"username": "alice"}]
        assert store.read(DocumentName.SYSTEM_SETTINGS) == {"allowRegistration": False}
        assert store.ensure_documents() == []

    def test_string_names_accepted(self, store):
        store.write("users.json", [])
        assert store.read("users.json") == []

    def test_unknown_name_rejected(self, store):
        with pytest.raises(ValueError):
            store.read("passwords.json")

    def test_invalid_json_is_corrupt(self, store, data_dir):
        Path(data_dir, "users.json").write_text("[{not json", encoding="utf-8")

        with pytest.raises(CorruptDocumentError) as exc_info:
            store.read(DocumentName.USERS)
        assert exc_info.value.document == "users.json"
        assert data_dir not in exc_info.value.message

    def test_invalid_utf8_is_corrupt(self, store, data_dir):
        Path(data_dir, "users.json").write_bytes(b"\xff\xfe[]")

        with pytest.raises(CorruptDocumentError):
            store.read(DocumentName.USERS)

    def test_failed_rename_keeps_previous_version(self, store, data_dir, monkeypatch):
        """A failure before the rename leaves the old file and no temp file."""
        store.write(DocumentName.USERS, [{"username": "alice"}])

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", failing_replace)

        with pytest.raises(StorageIOError) as exc_info:
            store.write(DocumentName.USERS, [{"username": "bob"}])

        monkeypatch.undo()
        assert isinstance(exc_info.value.__cause__, OSError)
        assert store.read(DocumentName.USERS) == [{"username": "alice"}]
        assert os.listdir(data_dir) == ["users.json"]

    def test_unserializable_document(self, store):
        with pytest.raises(StorageIOError):
            store.write(DocumentName.USERS, [object()])
        assert not store.path_for(DocumentName.USERS).exists()

    def test_written_file_is_valid_json(self, store):
        store.write(DocumentName.ADMIN_ACCOUNT, {"username": "admin"})
        with open(store.path_for(DocumentName.ADMIN_ACCOUNT), encoding="utf-8") as f:
            assert json.load(f) == {"username": "admin"}
