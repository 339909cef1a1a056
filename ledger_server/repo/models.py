"""
Domain types persisted in the ledger documents.

Each type converts to and from the camelCase dictionaries stored on disk.
``from_dict`` is tolerant of missing optional keys so documents written by
older versions still load.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class User:
    """A registered user.

    Attributes:
        username: Unique login name
        password_hash: Hash produced by the password context
        created_at: ISO-8601 creation timestamp
        updated_at: ISO-8601 timestamp of the last password change
    """

    username: str
    password_hash: str
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "username": self.username,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> User:
        return cls(
            username=data["username"],
            password_hash=data.get("passwordHash") or data.get("password", ""),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Record:
    """One measurement line item.

    Attributes:
        part: Building part (e.g. "Wall A")
        type: Component type (e.g. "Column")
        number: Component number (e.g. "C-1")
        height: Height, in (0, 1000]
        thick: Thickness, in (0, 100]
        length: Length, in (0, 10000]
        count: Number of identical components, in (0, 10000]
        volume: height * thick * length * count, rounded to 3 decimals
        created_at: ISO-8601 creation timestamp
        created_by: Owning username
        id: Stable identifier
        updated_at: ISO-8601 timestamp of the last update
    """

    part: str
    type: str
    number: str
    height: float
    thick: float
    length: float
    count: float
    volume: float
    created_at: str | None
    created_by: str
    id: int | float | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "part": self.part,
            "type": self.type,
            "number": self.number,
            "height": self.height,
            "thick": self.thick,
            "length": self.length,
            "count": self.count,
            "volume": self.volume,
            "createdAt": self.created_at,
            "createdBy": self.created_by,
            "id": self.id,
        }
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        return cls(
            part=data["part"],
            type=data["type"],
            number=data["number"],
            height=data["height"],
            thick=data["thick"],
            length=data["length"],
            count=data["count"],
            volume=data.get("volume", 0),
            created_at=data.get("createdAt"),
            created_by=data.get("createdBy", ""),
            id=data.get("id"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class HistoryEntry:
    """A named snapshot of a record set."""

    id: int
    name: str
    records: list[Record] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "records": [r.to_dict() for r in self.records],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            records=[Record.from_dict(r) for r in data.get("records", [])],
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class AdminAccount:
    """The single administrator account."""

    username: str
    password_hash: str
    created_at: str | None = None
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "username": self.username,
            "passwordHash": self.password_hash,
            "createdAt": self.created_at,
        }
        if self.updated_at is not None:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdminAccount:
        return cls(
            username=data["username"],
            password_hash=data.get("passwordHash") or data.get("password", ""),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class SystemSettings:
    """Registration policy and per-user caps.

    Attributes:
        allow_registration: Whether self-service registration is open
        max_records_per_user: Cap on active records per user
        max_history_per_user: Cap on history entries per user
        updated_at: ISO-8601 timestamp of the last change
    """

    allow_registration: bool = False
    max_records_per_user: int = 1000
    max_history_per_user: int = 100
    updated_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowRegistration": self.allow_registration,
            "maxRecordsPerUser": self.max_records_per_user,
            "maxHistoryPerUser": self.max_history_per_user,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SystemSettings:
        defaults = cls()
        return cls(
            allow_registration=bool(data.get("allowRegistration", defaults.allow_registration)),
            max_records_per_user=int(data.get("maxRecordsPerUser", defaults.max_records_per_user)),
            max_history_per_user=int(data.get("maxHistoryPerUser", defaults.max_history_per_user)),
            updated_at=data.get("updatedAt"),
        )
