"""
Unit tests for server configuration.

Tests cover:
- Environment loading and defaults
- Validation errors
"""

from pathlib import Path

import pytest

from ledger_server.config import ServerConfig, StorageConfig

_ENV_VARS = [
    "LEDGER_DATA_DIR",
    "LEDGER_BACKUP_DIR",
    "LEDGER_MAX_BACKUPS",
    "LEDGER_BACKUP_ON_STARTUP",
    "LEDGER_BACKUP_INTERVAL_SECONDS",
    "JWT_SECRET",
    "TOKEN_TTL_HOURS",
    "ADMIN_USERNAME",
    "ADMIN_PASSWORD",
    "HOST",
    "PORT",
    "ALLOWED_ORIGINS",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


class TestServerConfig:
    """Tests for ServerConfig.from_env."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in _ENV_VARS:
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        config = ServerConfig.from_env()

        assert config.storage.data_dir == "./data"
        assert config.storage.max_backups == 10
        assert config.storage.backup_on_startup is True
        assert config.storage.backup_interval_seconds == 0
        assert config.http.port == 3000
        assert config.auth.admin_username == "admin"
        assert config.auth.secret_from_env is False
        assert len(config.auth.jwt_secret) >= 32

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DATA_DIR", "/srv/ledger")
        monkeypatch.setenv("LEDGER_MAX_BACKUPS", "3")
        monkeypatch.setenv("LEDGER_BACKUP_ON_STARTUP", "false")
        monkeypatch.setenv("JWT_SECRET", "s3cret")
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example")
        monkeypatch.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.storage.data_dir == "/srv/ledger"
        assert config.storage.max_backups == 3
        assert config.storage.backup_on_startup is False
        assert config.auth.jwt_secret == "s3cret"
        assert config.auth.secret_from_env is True
        assert config.http.port == 8080
        assert config.http.cors_origins == ("https://a.example", "https://b.example")
        assert config.observability.log_format == "text"

    def test_backup_dir_default(self):
        assert StorageConfig(data_dir="/srv").resolved_backup_dir == Path("/srv/backups")
        assert StorageConfig(backup_dir="/b").resolved_backup_dir == Path("/b")

    @pytest.mark.parametrize(
        "name,value",
        [
            ("LEDGER_MAX_BACKUPS", "0"),
            ("LEDGER_BACKUP_INTERVAL_SECONDS", "-5"),
            ("TOKEN_TTL_HOURS", "0"),
            ("LOG_FORMAT", "xml"),
            ("PORT", "not-a-port"),
        ],
    )
    def test_invalid(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ValueError):
            ServerConfig.from_env()
