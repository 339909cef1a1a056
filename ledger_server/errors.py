"""
Error types for the Concrete Ledger server.

This module defines every exception the core raises to its callers:
- LedgerError: Base exception
- ValidationError: Malformed, out-of-range or forbidden-character input
- OwnershipError: Target resource belongs to another user
- NotFoundError: Index, id or username does not resolve
- CapacityExceededError: Collection is at its cap
- ConflictError: Unique value already taken
- AuthenticationError / PermissionDeniedError / RegistrationClosedError
- CorruptDocumentError: On-disk JSON unreadable
- StorageIOError: Document write failed

Invariants:
    - All errors inherit from LedgerError
    - ``code`` is stable and safe to show to clients
    - ``message`` never contains file paths or tracebacks for server errors
    - ``http_status`` is the status the HTTP layer responds with
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base exception for all ledger errors.

    Attributes:
        message: Client-facing error message
        code: Error code for programmatic handling
        details: Additional error context
        http_status: Status code used by the HTTP layer
    """

    http_status = 500
    default_code = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class ValidationError(LedgerError):
    """Input validation failed.

    Raised when:
    - A required field is missing or has the wrong kind
    - A number is non-finite or outside its bounds
    - A string is empty, too long or contains forbidden characters
    """

    http_status = 400
    default_code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message, details={"field": field_name})
        self.field_name = field_name


class OwnershipError(LedgerError):
    """Operation targets a resource owned by someone else."""

    http_status = 403
    default_code = "OWNERSHIP_ERROR"

    def __init__(self, message: str, actor: str, owner: Optional[str] = None) -> None:
        super().__init__(message, details={"actor": actor})
        self.actor = actor
        self.owner = owner


class NotFoundError(LedgerError):
    """Resource not found.

    Raised when:
    - A record index is outside the caller's shard
    - A history id does not exist for the caller
    - A username or backup id does not exist
    """

    http_status = 404
    default_code = "NOT_FOUND"

    def __init__(self, message: str, resource_type: str, resource_id: Any) -> None:
        super().__init__(
            message,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class RecordIndexError(NotFoundError):
    """Position-indexed record lookup fell outside the shard.

    Reported as a client error (400) like any other malformed index.
    """

    http_status = 400

    def __init__(self, index: int, length: int) -> None:
        super().__init__(
            f"Record index {index} is out of range (0..{length - 1})"
            if length
            else f"Record index {index} is out of range (no records)",
            resource_type="record",
            resource_id=index,
        )
        self.index = index
        self.length = length


class CapacityExceededError(LedgerError):
    """Collection already holds its maximum number of items."""

    http_status = 400
    default_code = "CAPACITY_EXCEEDED"

    def __init__(self, message: str, collection: str, limit: int) -> None:
        super().__init__(message, details={"collection": collection, "limit": limit})
        self.collection = collection
        self.limit = limit


class ConflictError(LedgerError):
    """A unique value (e.g. username) is already taken."""

    http_status = 400
    default_code = "CONFLICT"


class AuthenticationError(LedgerError):
    """Credentials or token did not verify."""

    http_status = 401
    default_code = "AUTHENTICATION_FAILED"


class PermissionDeniedError(LedgerError):
    """Caller is authenticated but lacks the required role."""

    http_status = 403
    default_code = "PERMISSION_DENIED"


class RegistrationClosedError(LedgerError):
    """Self-service registration is disabled in system settings."""

    http_status = 403
    default_code = "REGISTRATION_CLOSED"

    def __init__(self) -> None:
        super().__init__("Registration of new users is currently disabled")


class CorruptDocumentError(LedgerError):
    """A document exists on disk but cannot be parsed.

    The client only ever sees the generic message; the document name is
    kept in ``details`` for logs.
    """

    http_status = 500
    default_code = "CORRUPT_DOCUMENT"

    def __init__(self, document: str, reason: Optional[str] = None) -> None:
        super().__init__(
            "Stored data is unreadable",
            details={"document": document, "reason": reason},
        )
        self.document = document
        self.reason = reason


class StorageIOError(LedgerError):
    """Writing a document failed; the previous content is intact."""

    http_status = 500
    default_code = "STORAGE_IO_ERROR"

    def __init__(self, document: str, reason: Optional[str] = None) -> None:
        super().__init__(
            "Failed to save data",
            details={"document": document, "reason": reason},
        )
        self.document = document
        self.reason = reason
