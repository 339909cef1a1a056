"""
Input validation for the ledger.

Pure functions that check shape, range and character-set constraints on
usernames, passwords, records and history entries. Validation rejects
markup characters outright; sanitization (``sanitize_string``) is a second,
independent pass that strips angle brackets and trims whitespace.

Invariants:
    - Validation errors are deterministic and name the offending field
    - Strings containing any of < > " ' & are rejected, never stripped
    - Numbers must be real (not bool), finite and within (0, max]
    - Batch validation checks every item before returning anything

How to change safely:
    - Bounds are part of the stored-data contract; raising them is safe,
      lowering them can make existing records fail re-validation on update
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ..errors import ValidationError

FORBIDDEN_CHARACTERS = frozenset("<>\"'&")

NUMERIC_LIMITS: dict[str, float] = {
    "height": 1000,
    "thick": 100,
    "length": 10000,
    "count": 10000,
}

STRING_LIMITS: dict[str, int] = {
    "part": 100,
    "type": 50,
    "number": 50,
}

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 3
PASSWORD_MAX_LENGTH = 50
HISTORY_NAME_MAX_LENGTH = 100

MAX_RECORDS_PER_USER = 1000
MAX_HISTORY_PER_USER = 100
MAX_RECORDS_PER_HISTORY = 1000

# Letters, digits, underscore and CJK unified ideographs.
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_\u4e00-\u9fa5]+$")

_VOLUME_QUANTUM = Decimal("0.001")


@dataclass(frozen=True)
class RecordFields:
    """Validated and sanitized client-supplied record fields."""

    part: str
    type: str
    number: str
    height: float
    thick: float
    length: float
    count: float

    @property
    def volume(self) -> float:
        return compute_volume(self.height, self.thick, self.length, self.count)


def sanitize_string(value: Any) -> str:
    """Strip ``<``/``>`` and surrounding whitespace; non-strings become ''."""
    if not isinstance(value, str):
        return ""
    return value.replace("<", "").replace(">", "").strip()


def contains_forbidden(value: str) -> bool:
    return any(ch in FORBIDDEN_CHARACTERS for ch in value)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def compute_volume(height: float, thick: float, length: float, count: float) -> float:
    """Volume rounded half away from zero to 3 decimal places.

    The product is rounded from its shortest decimal representation, so
    ``3 * 0.2 * 5 * 2`` (6.000000000000001 in binary) gives 6.0.
    """
    product = Decimal(repr(height * thick * length * count))
    return float(product.quantize(_VOLUME_QUANTUM, rounding=ROUND_HALF_UP))


def validate_username(username: Any) -> str:
    """Validate a username.

    Returns:
        The username

    Raises:
        ValidationError: If the username is missing, mis-sized or uses
            characters outside letters, digits, underscore and CJK
    """
    if not isinstance(username, str) or not username:
        raise ValidationError("Username is required", field_name="username")
    if not USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"Username must be {USERNAME_MIN_LENGTH}-{USERNAME_MAX_LENGTH} characters",
            field_name="username",
        )
    if not _USERNAME_RE.match(username) or contains_forbidden(username):
        raise ValidationError(
            "Username may only contain letters, digits and underscores",
            field_name="username",
        )
    return username


def validate_password(password: Any, field_name: str = "password") -> str:
    if not isinstance(password, str) or not password:
        raise ValidationError("Password is required", field_name=field_name)
    if not PASSWORD_MIN_LENGTH <= len(password) <= PASSWORD_MAX_LENGTH:
        raise ValidationError(
            f"Password must be {PASSWORD_MIN_LENGTH}-{PASSWORD_MAX_LENGTH} characters",
            field_name=field_name,
        )
    return password


def _validate_string_field(payload: Mapping[str, Any], name: str, max_length: int) -> str:
    value = payload.get(name)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Field '{name}' must be a non-empty string", field_name=name)
    if len(value) > max_length:
        raise ValidationError(
            f"Field '{name}' must be at most {max_length} characters", field_name=name
        )
    if contains_forbidden(value):
        raise ValidationError(
            f"Field '{name}' contains forbidden characters (< > \" ' &)", field_name=name
        )
    sanitized = sanitize_string(value)
    if not sanitized:
        raise ValidationError(f"Field '{name}' must not be blank", field_name=name)
    return sanitized


def _validate_numeric_field(payload: Mapping[str, Any], name: str, maximum: float) -> float:
    value = payload.get(name)
    if not is_number(value):
        raise ValidationError(f"Field '{name}' must be a number", field_name=name)
    # Bounds before isfinite: float() of an oversized int overflows.
    if value <= 0 or value > maximum or not math.isfinite(value):
        raise ValidationError(
            f"Field '{name}' must be greater than 0 and at most {maximum:g}", field_name=name
        )
    return value


def validate_record(payload: Any) -> RecordFields:
    """Validate and sanitize one client-supplied record.

    Any ``volume``, ``createdBy`` or ``id`` in the payload is ignored.

    Raises:
        ValidationError: On the first failing field
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Record must be an object")

    strings = {
        name: _validate_string_field(payload, name, limit) for name, limit in STRING_LIMITS.items()
    }
    numbers = {
        name: _validate_numeric_field(payload, name, limit)
        for name, limit in NUMERIC_LIMITS.items()
    }
    return RecordFields(**strings, **numbers)


def validate_record_batch(records: Any) -> list[RecordFields]:
    """Validate a history batch; all records must pass.

    Raises:
        ValidationError: If the batch is not a list of 1..1000 valid records
    """
    if not isinstance(records, list) or not records:
        raise ValidationError("Records must be a non-empty list", field_name="records")
    if len(records) > MAX_RECORDS_PER_HISTORY:
        raise ValidationError(
            f"At most {MAX_RECORDS_PER_HISTORY} records can be saved at once",
            field_name="records",
        )

    validated = []
    for i, record in enumerate(records):
        try:
            validated.append(validate_record(record))
        except ValidationError as e:
            raise ValidationError(f"Record {i + 1}: {e.message}", field_name=e.field_name) from e
    return validated


def validate_history_name(name: Any) -> str:
    """Validate and sanitize a history entry name."""
    if not isinstance(name, str) or not name:
        raise ValidationError("Name must be a non-empty string", field_name="name")
    if len(name) > HISTORY_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be at most {HISTORY_NAME_MAX_LENGTH} characters", field_name="name"
        )
    sanitized = sanitize_string(name)
    if not sanitized:
        raise ValidationError("Name must not be blank", field_name="name")
    return sanitized


def parse_integer(raw: Any, field_name: str) -> int:
    """Parse an index or id given as an int or a decimal string.

    Raises:
        ValidationError: If ``raw`` is not an integer, or is a string of
            more than 18 digits
    """
    if isinstance(raw, bool):
        raise ValidationError(f"'{field_name}' must be an integer", field_name=field_name)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float) and raw.is_integer():
        return int(raw)
    if isinstance(raw, str) and re.fullmatch(r"-?\d{1,18}", raw.strip()):
        return int(raw.strip())
    raise ValidationError(f"'{field_name}' must be an integer", field_name=field_name)
