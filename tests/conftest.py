"""
Shared fixtures for the ledger test suite.

Services are built over a temporary data directory with deterministic ids,
a fixed clock and a cheap password hash so tests stay fast and repeatable.
"""

import tempfile
from datetime import datetime, timezone

import pytest
from passlib.context import CryptContext

from ledger_server.config import AuthConfig, ServerConfig, StorageConfig
from ledger_server.lifecycle import SequentialIdGenerator
from ledger_server.services import build_services, initialize

FIXED_NOW = datetime(2024, 5, 1, 8, 30, 0, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


def make_record(**overrides):
    """A valid record payload, with overrides."""
    record = {
        "part": "Wall A",
        "type": "Column",
        "number": "C-1",
        "height": 3,
        "thick": 0.2,
        "length": 5,
        "count": 2,
    }
    record.update(overrides)
    return record


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def pwd_context():
    """Low-cost hashing context for tests."""
    return CryptContext(schemes=["pbkdf2_sha256"], pbkdf2_sha256__default_rounds=1000)


@pytest.fixture
def config(data_dir):
    """Server configuration rooted at the temporary data directory."""
    return ServerConfig(
        storage=StorageConfig(data_dir=data_dir, backup_on_startup=False),
        auth=AuthConfig(jwt_secret="test-secret", secret_from_env=True),
    )


@pytest.fixture
def services(config, pwd_context):
    """Initialized service container."""
    container = build_services(
        config,
        id_generator=SequentialIdGenerator(1000),
        clock=fixed_clock,
        pwd_context=pwd_context,
    )
    initialize(container)
    return container


@pytest.fixture
def record_payload():
    """Factory for valid record payloads."""
    return make_record


@pytest.fixture
def now():
    """The fixed time the services run at."""
    return FIXED_NOW
