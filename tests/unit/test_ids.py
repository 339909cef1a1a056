"""
Unit tests for id generators and timestamp helpers.
"""

from datetime import datetime, timezone

from ledger_server.lifecycle.ids import (
    MonotonicIdGenerator,
    SequentialIdGenerator,
    isoformat_utc,
    parse_iso,
)


class TestIdGenerators:
    def test_monotonic_when_clock_stalls(self):
        """Ids keep increasing when the clock does not advance."""
        generator = MonotonicIdGenerator(time_ms=lambda: 1_700_000_000_000)

        ids = [generator.next_id() for _ in range(3)]

        assert ids == [1_700_000_000_000, 1_700_000_000_001, 1_700_000_000_002]

    def test_monotonic_when_clock_goes_back(self):
        readings = iter([500, 400, 600])
        generator = MonotonicIdGenerator(time_ms=lambda: next(readings))

        assert [generator.next_id() for _ in range(3)] == [500, 501, 600]

    def test_default_uses_epoch_millis(self):
        assert MonotonicIdGenerator().next_id() > 1_600_000_000_000

    def test_sequential(self):
        generator = SequentialIdGenerator(start=10)
        assert [generator.next_id() for _ in range(3)] == [10, 11, 12]


class TestTimestamps:
    def test_isoformat_utc(self):
        moment = datetime(2024, 5, 1, 8, 30, 0, 123456, tzinfo=timezone.utc)
        assert isoformat_utc(moment) == "2024-05-01T08:30:00.123Z"

    def test_parse_iso(self):
        parsed = parse_iso("2024-05-01T08:30:00.123Z")
        assert parsed == datetime(2024, 5, 1, 8, 30, 0, 123000, tzinfo=timezone.utc)

    def test_parse_iso_invalid(self):
        assert parse_iso("yesterday") is None
        assert parse_iso(None) is None

    def test_parse_iso_non_string(self):
        """Numeric timestamps from older documents are treated as missing."""
        assert parse_iso(1714552200000) is None
        assert parse_iso({"at": "2024-05-01"}) is None
