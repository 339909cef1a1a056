"""
Configuration management for the Concrete Ledger server.

All configuration is done via environment variables - no config files.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set JWT_SECRET explicitly
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable once released
"""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Document storage and backup configuration.

    Attributes:
        data_dir: Directory holding the JSON documents
        backup_dir: Directory holding backup_* folders (defaults to data_dir/backups)
        max_backups: Number of backups kept after pruning
        backup_on_startup: Take a backup once the documents are loaded
        backup_interval_seconds: Periodic backup interval (0 = disabled)
    """

    data_dir: str = "./data"
    backup_dir: str | None = None
    max_backups: int = 10
    backup_on_startup: bool = True
    backup_interval_seconds: int = 0

    @property
    def resolved_backup_dir(self) -> Path:
        """Backup directory, falling back to ``<data_dir>/backups``."""
        if self.backup_dir:
            return Path(self.backup_dir)
        return Path(self.data_dir) / "backups"

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            data_dir=os.getenv("LEDGER_DATA_DIR", "./data"),
            backup_dir=os.getenv("LEDGER_BACKUP_DIR"),
            max_backups=int(os.getenv("LEDGER_MAX_BACKUPS", "10")),
            backup_on_startup=_env_bool("LEDGER_BACKUP_ON_STARTUP", "true"),
            backup_interval_seconds=int(os.getenv("LEDGER_BACKUP_INTERVAL_SECONDS", "0")),
        )


@dataclass(frozen=True)
class AuthConfig:
    """Token and seed-account configuration.

    Attributes:
        jwt_secret: HMAC secret for access tokens
        jwt_algorithm: JWT signing algorithm
        token_ttl_hours: Access token lifetime
        admin_username: Username of the admin account seeded on first run
        admin_password: Password of the admin account seeded on first run
        secret_from_env: Whether jwt_secret came from the environment
    """

    jwt_secret: str = field(default_factory=lambda: secrets.token_hex(64))
    jwt_algorithm: str = "HS256"
    token_ttl_hours: int = 24
    admin_username: str = "admin"
    admin_password: str = "admin"
    secret_from_env: bool = False

    @classmethod
    def from_env(cls) -> AuthConfig:
        """Load configuration from environment variables."""
        secret = os.getenv("JWT_SECRET")
        return cls(
            jwt_secret=secret or secrets.token_hex(64),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            token_ttl_hours=int(os.getenv("TOKEN_TTL_HOURS", "24")),
            admin_username=os.getenv("ADMIN_USERNAME", "admin"),
            admin_password=os.getenv("ADMIN_PASSWORD", "admin"),
            secret_from_env=secret is not None,
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: tuple[str, ...] = ("http://localhost:3000",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("ALLOWED_ORIGINS")
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip())
            if origins
            else ("http://localhost:3000",),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Document storage configuration
        auth: Token and seed-account configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            auth=AuthConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.storage.data_dir:
            raise ValueError("LEDGER_DATA_DIR must not be empty")
        if self.storage.max_backups < 1:
            raise ValueError("LEDGER_MAX_BACKUPS must be at least 1")
        if self.storage.backup_interval_seconds < 0:
            raise ValueError("LEDGER_BACKUP_INTERVAL_SECONDS must not be negative")
        if self.auth.token_ttl_hours < 1:
            raise ValueError("TOKEN_TTL_HOURS must be at least 1")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not self.auth.secret_from_env:
            logger.warning(
                "JWT_SECRET is not set; using a random secret. "
                "Issued tokens will not survive a restart."
            )
        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on startup."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "data_dir": self.storage.data_dir,
                "backup_dir": str(self.storage.resolved_backup_dir),
                "max_backups": self.storage.max_backups,
                "backup_interval_seconds": self.storage.backup_interval_seconds,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "cors_origins": list(self.http.cors_origins),
                "token_ttl_hours": self.auth.token_ttl_hours,
                "log_level": self.observability.log_level,
            },
        )
