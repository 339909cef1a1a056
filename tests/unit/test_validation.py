"""
Unit tests for input validation.

Tests cover:
- Record field kinds, bounds and forbidden characters
- Volume rounding
- Usernames, passwords and history names
- Batch validation and index parsing
"""

import pytest

from ledger_server.errors import ValidationError
from ledger_server.lifecycle.validation import (
    compute_volume,
    parse_integer,
    sanitize_string,
    validate_history_name,
    validate_password,
    validate_record,
    validate_record_batch,
    validate_username,
)


class TestValidateRecord:
    """Tests for single-record validation."""

    def test_valid_record(self, record_payload):
        """A well-formed record passes and gets its volume computed."""
        fields = validate_record(record_payload())

        assert fields.part == "Wall A"
        assert fields.type == "Column"
        assert fields.number == "C-1"
        assert fields.volume == 6.0

    def test_client_volume_ignored(self, record_payload):
        fields = validate_record(record_payload(volume=999))
        assert fields.volume == 6.0

    def test_markup_rejected_not_stripped(self, record_payload):
        """Forbidden characters fail validation outright."""
        with pytest.raises(ValidationError) as exc_info:
            validate_record(record_payload(part="Wall<script>"))
        assert exc_info.value.field_name == "part"

    @pytest.mark.parametrize("char", ["<", ">", '"', "'", "&"])
    def test_each_forbidden_character(self, record_payload, char):
        with pytest.raises(ValidationError):
            validate_record(record_payload(number=f"C{char}1"))

    def test_string_length_limits(self, record_payload):
        validate_record(record_payload(part="p" * 100, type="t" * 50, number="n" * 50))

        with pytest.raises(ValidationError):
            validate_record(record_payload(part="p" * 101))
        with pytest.raises(ValidationError):
            validate_record(record_payload(type="t" * 51))
        with pytest.raises(ValidationError):
            validate_record(record_payload(number="n" * 51))

    def test_whitespace_trimmed(self, record_payload):
        fields = validate_record(record_payload(part="  Wall B  "))
        assert fields.part == "Wall B"

    def test_blank_string_rejected(self, record_payload):
        with pytest.raises(ValidationError):
            validate_record(record_payload(part="   "))

    def test_missing_field(self, record_payload):
        payload = record_payload()
        del payload["thick"]

        with pytest.raises(ValidationError) as exc_info:
            validate_record(payload)
        assert exc_info.value.field_name == "thick"

    def test_numeric_bounds(self, record_payload):
        validate_record(record_payload(height=1000, thick=100, length=10000, count=10000))

        for name, value in [("height", 1000.5), ("thick", 101), ("length", 10001), ("count", 10001)]:
            with pytest.raises(ValidationError):
                validate_record(record_payload(**{name: value}))

    @pytest.mark.parametrize("value", [0, -1, True, "3", None, float("nan"), float("inf")])
    def test_invalid_numbers(self, record_payload, value):
        """Zero, negatives, bools, strings and non-finite values are rejected."""
        with pytest.raises(ValidationError):
            validate_record(record_payload(height=value))

    def test_oversized_integer_rejected(self, record_payload):
        """An int too large for a float is out of range, not a crash."""
        with pytest.raises(ValidationError) as exc_info:
            validate_record(record_payload(height=10**400))
        assert exc_info.value.field_name == "height"

    def test_non_object_rejected(self):
        with pytest.raises(ValidationError):
            validate_record(["Wall A"])


class TestVolume:
    """Tests for volume computation."""

    def test_binary_noise_removed(self):
        """3 * 0.2 * 5 * 2 is 6.000000000000001 in floating point."""
        assert compute_volume(3, 0.2, 5, 2) == 6.0

    def test_rounds_half_away_from_zero(self):
        assert compute_volume(1.0005, 1, 1, 1) == 1.001
        assert compute_volume(1.0004, 1, 1, 1) == 1.0

    def test_three_decimals(self):
        assert compute_volume(1.23456, 1, 1, 1) == 1.235


class TestSanitize:
    def test_strips_angle_brackets(self):
        assert sanitize_string("  <b>bold</b> ") == "bbold/b"

    def test_non_string(self):
        assert sanitize_string(42) == ""


class TestAccountsValidation:
    """Tests for username and password validation."""

    @pytest.mark.parametrize("username", ["alice", "bob_42", "ABC", "张三丰"])
    def test_valid_usernames(self, username):
        assert validate_username(username) == username

    @pytest.mark.parametrize("username", ["ab", "a" * 21, "bad name", "bad-name", "", None, 123])
    def test_invalid_usernames(self, username):
        with pytest.raises(ValidationError):
            validate_username(username)

    def test_password_bounds(self):
        assert validate_password("abc") == "abc"
        assert validate_password("x" * 50) == "x" * 50

        for password in ["ab", "x" * 51, "", None]:
            with pytest.raises(ValidationError):
                validate_password(password)

    def test_password_field_name(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_password("", field_name="newPassword")
        assert exc_info.value.field_name == "newPassword"


class TestBatchValidation:
    """Tests for history batch validation."""

    def test_valid_batch(self, record_payload):
        fields = validate_record_batch([record_payload(), record_payload(count=1)])
        assert [f.volume for f in fields] == [6.0, 3.0]

    def test_empty_batch(self):
        with pytest.raises(ValidationError):
            validate_record_batch([])

    def test_not_a_list(self, record_payload):
        with pytest.raises(ValidationError):
            validate_record_batch(record_payload())

    def test_too_many_records(self, record_payload):
        with pytest.raises(ValidationError):
            validate_record_batch([record_payload()] * 1001)

    def test_error_names_position(self, record_payload):
        """The failing record is identified by its 1-based position."""
        with pytest.raises(ValidationError) as exc_info:
            validate_record_batch([record_payload(), record_payload(height=-1)])
        assert exc_info.value.message.startswith("Record 2: ")

    def test_history_name(self):
        assert validate_history_name(" <Q1> totals ") == "Q1 totals"

        for name in ["", "n" * 101, None, "<>"]:
            with pytest.raises(ValidationError):
                validate_history_name(name)


class TestParseInteger:
    @pytest.mark.parametrize("raw,expected", [(5, 5), ("5", 5), (5.0, 5), (" 7 ", 7), ("-1", -1)])
    def test_valid(self, raw, expected):
        assert parse_integer(raw, "index") == expected

    @pytest.mark.parametrize("raw", ["abc", "1.5", 1.5, True, None, ""])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            parse_integer(raw, "index")

    def test_overlong_digit_string(self):
        """Digit strings past int() conversion limits are rejected as input errors."""
        with pytest.raises(ValidationError):
            parse_integer("9" * 5000, "index")
        with pytest.raises(ValidationError):
            parse_integer("1" * 19, "id")
        assert parse_integer("9" * 18, "id") == int("9" * 18)
