"""
Account service - users, the admin account and system settings.

Handles registration (gated by ``allowRegistration``), credential checks,
password changes and the admin operations: user listing, password resets,
cascading user deletion, settings and admin self-service.

Passwords are hashed with a passlib CryptContext. Hashes written by older
deployments that passlib cannot identify never verify; those users need a
password reset by the admin.

Invariants:
    - Usernames are unique
    - Password hashes never leave this module in a return value meant
      for clients (see UserSummary and get_admin_account)
    - Deleting a user removes the user, their records shard and their
      history shard, taking the users, records and history locks in that
      order

How to change safely:
    - Lock order users -> records -> history must hold everywhere more
      than one document lock is taken
    - Keep settings bounds in line with the hard caps in validation.py
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any

from passlib.context import CryptContext

from ..config import AuthConfig
from ..errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    RegistrationClosedError,
    ValidationError,
)
from ..repo import (
    AdminAccount,
    AdminAccountRepository,
    HistoryRepository,
    RecordRepository,
    SettingsRepository,
    SystemSettings,
    User,
    UserRepository,
)
from ..store.document_store import DocumentName
from .ids import Clock, isoformat_utc, utc_now
from .validation import (
    MAX_HISTORY_PER_USER,
    MAX_RECORDS_PER_USER,
    sanitize_string,
    validate_password,
    validate_username,
)

logger = logging.getLogger(__name__)

SETTINGS_BOUNDS: dict[str, tuple[int, int]] = {
    "maxRecordsPerUser": (1, MAX_RECORDS_PER_USER),
    "maxHistoryPerUser": (1, MAX_HISTORY_PER_USER),
}


def default_password_context() -> CryptContext:
    return CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass(frozen=True)
class UserSummary:
    """What the admin sees about a user."""

    username: str
    records_count: int
    history_count: int
    created_at: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "recordsCount": self.records_count,
            "historyCount": self.history_count,
            "createdAt": self.created_at,
        }


def build_default_documents(
    auth: AuthConfig,
    pwd_context: CryptContext,
    clock: Clock = utc_now,
) -> dict[DocumentName, Any]:
    """Default-content factories for first-run initialization.

    The admin account is seeded from configuration; the hash is only
    computed when the document is actually missing.
    """

    def admin_account() -> dict[str, Any]:
        return AdminAccount(
            username=auth.admin_username,
            password_hash=pwd_context.hash(auth.admin_password),
            created_at=isoformat_utc(clock()),
        ).to_dict()

    def system_settings() -> dict[str, Any]:
        return SystemSettings(updated_at=isoformat_utc(clock())).to_dict()

    return {
        DocumentName.ADMIN_ACCOUNT: admin_account,
        DocumentName.SYSTEM_SETTINGS: system_settings,
    }


class AccountService:
    """User and admin account operations."""

    def __init__(
        self,
        users: UserRepository,
        records: RecordRepository,
        history: HistoryRepository,
        admin: AdminAccountRepository,
        settings: SettingsRepository,
        pwd_context: CryptContext | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.users = users
        self.records = records
        self.history = history
        self.admin = admin
        self.settings = settings
        self.pwd_context = pwd_context or default_password_context()
        self.clock = clock or utc_now

    def _now(self) -> str:
        return isoformat_utc(self.clock())

    async def _hash(self, password: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.pwd_context.hash, password)

    async def _verify(self, password: str, password_hash: str, subject: str) -> bool:
        """Check a password off the event loop; unknown hash formats never match."""
        if not password_hash:
            return False
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, self.pwd_context.verify, password, password_hash
            )
        except ValueError:
            logger.warning(
                f"Stored password hash for {subject} is in an unsupported format",
                extra={"username": subject},
            )
            return False

    # =========================================================================
    # Users
    # =========================================================================

    async def register_user(self, username: Any, password: Any) -> User:
        """Create a new user.

        Raises:
            RegistrationClosedError: If registration is disabled
            ValidationError: If the username or password is malformed
            ConflictError: If the username is taken
        """
        if not self.settings.get().allow_registration:
            raise RegistrationClosedError()

        username = sanitize_string(validate_username(username))
        password = validate_password(password)

        async with self.users.lock:
            if self.users.exists(username):
                raise ConflictError("Username already exists", details={"username": username})
            user = User(
                username=username,
                password_hash=await self._hash(password),
                created_at=self._now(),
            )
            await self.users.add(user)

        logger.info(f"New user registered: {username}", extra={"username": username})
        return user

    async def authenticate_user(self, username: Any, password: Any) -> User:
        """Check a user's credentials.

        Raises:
            ValidationError: If the username or password is malformed
            AuthenticationError: If the credentials do not match
        """
        username = sanitize_string(validate_username(username))
        password = validate_password(password)

        user = self.users.get(username)
        if user is None or not await self._verify(password, user.password_hash, username):
            raise AuthenticationError("Invalid username or password")

        logger.info(f"User logged in: {username}", extra={"username": username})
        return user

    async def require_user(self, username: str) -> User:
        """Return the user, or raise AuthenticationError if they are gone."""
        user = self.users.get(username)
        if user is None:
            raise AuthenticationError("User no longer exists")
        return user

    async def change_password(self, username: str, old_password: Any, new_password: Any) -> None:
        """Self-service password change.

        Raises:
            ValidationError: If either password is malformed
            AuthenticationError: If the old password does not match
        """
        old_password = validate_password(old_password, field_name="oldPassword")
        new_password = validate_password(new_password, field_name="newPassword")

        async with self.users.lock:
            user = self.users.get(username)
            if user is None or not await self._verify(
                old_password, user.password_hash, username
            ):
                raise AuthenticationError("Current password is incorrect")
            user.password_hash = await self._hash(new_password)
            user.updated_at = self._now()
            await self.users.update(user)

        logger.info(f"Password changed by {username}", extra={"username": username})

    # =========================================================================
    # Admin
    # =========================================================================

    async def authenticate_admin(self, username: Any, password: Any) -> AdminAccount:
        """Check the admin credentials.

        Raises:
            ValidationError: If the username or password is malformed
            AuthenticationError: If the credentials do not match
        """
        username = sanitize_string(validate_username(username))
        password = validate_password(password)

        account = self.admin.get()
        if account is None:
            logger.error("Admin account is not initialized")
            raise AuthenticationError("Invalid admin username or password")
        if username != account.username or not await self._verify(
            password, account.password_hash, username
        ):
            raise AuthenticationError("Invalid admin username or password")

        logger.info(f"Admin logged in: {username}", extra={"username": username})
        return account

    async def list_users(self) -> list[UserSummary]:
        """All users in registration order with their collection sizes."""
        record_counts = self.records.counts()
        history_counts = self.history.counts()
        return [
            UserSummary(
                username=user.username,
                records_count=record_counts.get(user.username, 0),
                history_count=history_counts.get(user.username, 0),
                created_at=user.created_at,
            )
            for user in self.users.list()
        ]

    async def set_password_for_user(self, username: str, password: Any) -> None:
        """Admin password reset.

        Raises:
            ValidationError: If the password is malformed
            NotFoundError: If the user does not exist
        """
        password = validate_password(password)
        username = sanitize_string(username)

        async with self.users.lock:
            user = self.users.get(username)
            if user is None:
                raise NotFoundError("User not found", resource_type="user", resource_id=username)
            user.password_hash = await self._hash(password)
            user.updated_at = self._now()
            await self.users.update(user)

        logger.info(f"Password reset for user {username}", extra={"username": username})

    async def delete_user(self, username: str) -> None:
        """Delete a user together with their records and history.

        Raises:
            NotFoundError: If the user does not exist
        """
        username = sanitize_string(username)

        async with self.users.lock, self.records.lock, self.history.lock:
            if not await self.users.remove(username):
                raise NotFoundError("User not found", resource_type="user", resource_id=username)
            dropped_records = await self.records.drop(username)
            dropped_history = await self.history.drop(username)

        logger.info(
            f"Deleted user {username}",
            extra={
                "username": username,
                "records_dropped": dropped_records,
                "history_dropped": dropped_history,
            },
        )

    async def get_settings(self) -> SystemSettings:
        return self.settings.get()

    async def set_settings(self, changes: Any) -> SystemSettings:
        """Partially update system settings.

        Accepts any subset of allowRegistration (bool), maxRecordsPerUser
        and maxHistoryPerUser (integers within SETTINGS_BOUNDS).

        Raises:
            ValidationError: If a value is of the wrong kind or out of bounds,
                or no known setting is given
        """
        if not isinstance(changes, dict):
            raise ValidationError("Settings must be an object")

        updates: dict[str, Any] = {}
        if "allowRegistration" in changes:
            value = changes["allowRegistration"]
            if not isinstance(value, bool):
                raise ValidationError(
                    "allowRegistration must be a boolean", field_name="allowRegistration"
                )
            updates["allow_registration"] = value

        for key, attribute in (
            ("maxRecordsPerUser", "max_records_per_user"),
            ("maxHistoryPerUser", "max_history_per_user"),
        ):
            if key not in changes:
                continue
            value = changes[key]
            low, high = SETTINGS_BOUNDS[key]
            if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
                raise ValidationError(
                    f"{key} must be an integer between {low} and {high}", field_name=key
                )
            updates[attribute] = value

        if not updates:
            raise ValidationError("No recognized settings to update")

        async with self.settings.lock:
            settings = replace(self.settings.get(), **updates, updated_at=self._now())
            await self.settings.save(settings)

        logger.info("System settings updated", extra={"changes": sorted(updates)})
        return settings

    async def get_admin_account(self) -> dict[str, Any]:
        """Admin account without its password hash."""
        account = self.admin.get()
        if account is None:
            return {"username": None, "createdAt": None, "updatedAt": None}
        return {
            "username": account.username,
            "createdAt": account.created_at,
            "updatedAt": account.updated_at,
        }

    async def update_admin_account(self, username: Any, password: Any) -> AdminAccount:
        """Replace the admin username and password.

        Raises:
            ValidationError: If the username or password is malformed
        """
        username = sanitize_string(validate_username(username))
        password = validate_password(password)

        async with self.admin.lock:
            existing = self.admin.get()
            now = self._now()
            account = AdminAccount(
                username=username,
                password_hash=await self._hash(password),
                created_at=existing.created_at if existing else now,
                updated_at=now,
            )
            await self.admin.save(account)

        logger.info(f"Admin account updated: {username}", extra={"username": username})
        return account

    # =========================================================================
    # Statistics
    # =========================================================================

    async def data_stats(self) -> dict[str, Any]:
        """Totals across all users plus per-user record and history counts."""
        users = self.users.list()
        record_counts = self.records.counts()
        history_counts = self.history.counts()
        return {
            "totalUsers": len(users),
            "totalRecords": sum(record_counts.values()),
            "totalHistory": sum(history_counts.values()),
            "userStats": {
                user.username: {
                    "records": record_counts.get(user.username, 0),
                    "history": history_counts.get(user.username, 0),
                }
                for user in users
            },
        }

    async def health(self) -> dict[str, Any]:
        unavailable = [name.value for name in self.users.cache.unavailable]
        if unavailable:
            return {"status": "degraded", "timestamp": self._now(), "unavailable": unavailable}
        return {
            "status": "ok",
            "timestamp": self._now(),
            "totalUsers": len(self.users.list()),
            "totalUserRecords": len(self.records.shards()),
            "totalUserHistory": sum(self.history.counts().values()),
        }
