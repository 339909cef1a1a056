"""
Record lifecycle - the per-user record and history operations.

Every mutating call runs the same pipeline:
    1. Validate shape, bounds and character set (validation.py)
    2. Sanitize strings (strip < >, trim)
    3. Recompute volume; any client-supplied volume is ignored
    4. Check ownership against createdBy
    5. Check capacity against the configured caps

and then read-modify-writes the caller's shard while holding the
document's lock. Nothing is persisted unless every check passed.

Invariants:
    - A user only ever sees or mutates their own shard
    - Records are addressed by position; out-of-range indexes leave the
      shard unchanged and raise RecordIndexError
    - History ids are unique per user (generated by the IdGenerator)
    - Bulk operations are all-or-nothing

How to change safely:
    - Keep validation ahead of ``async with repo.lock``; rejected input
      must never wait on or touch the document
    - Capacity is min(settings cap, hard cap); raising the hard caps also
      needs the settings bounds in accounts.py raised
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import (
    CapacityExceededError,
    NotFoundError,
    OwnershipError,
    RecordIndexError,
    ValidationError,
)
from ..repo import HistoryEntry, HistoryRepository, Record, RecordRepository, SettingsRepository
from .export import ExportFile, SpreadsheetEncoder, WorkbookEncoder, export_records
from .ids import Clock, IdGenerator, MonotonicIdGenerator, isoformat_utc, parse_iso, utc_now
from .validation import (
    MAX_HISTORY_PER_USER,
    MAX_RECORDS_PER_USER,
    RecordFields,
    parse_integer,
    validate_history_name,
    validate_record,
    validate_record_batch,
)

logger = logging.getLogger(__name__)

EXPORT_BASE_NAME = "concrete_volume"


class RecordLifecycle:
    """Record and history operations for authenticated users.

    Example:
        >>> lifecycle = RecordLifecycle(records_repo, history_repo, settings_repo)
        >>> record = await lifecycle.add_record("alice", {
        ...     "part": "Wall A", "type": "Column", "number": "C-1",
        ...     "height": 3, "thick": 0.2, "length": 5, "count": 2,
        ... })
        >>> record.volume
        6.0
    """

    def __init__(
        self,
        records: RecordRepository,
        history: HistoryRepository,
        settings: SettingsRepository,
        id_generator: IdGenerator | None = None,
        clock: Clock | None = None,
        encoder: SpreadsheetEncoder | None = None,
    ) -> None:
        self.records = records
        self.history = history
        self.settings = settings
        self.id_generator = id_generator or MonotonicIdGenerator()
        self.clock = clock or utc_now
        self.encoder = encoder or WorkbookEncoder()

    def _now(self) -> str:
        return isoformat_utc(self.clock())

    def _record_cap(self) -> int:
        return min(self.settings.get().max_records_per_user, MAX_RECORDS_PER_USER)

    def _history_cap(self) -> int:
        return min(self.settings.get().max_history_per_user, MAX_HISTORY_PER_USER)

    def _build_record(
        self,
        fields: RecordFields,
        created_by: str,
        created_at: str,
        record_id: int | float | None,
    ) -> Record:
        return Record(
            part=fields.part,
            type=fields.type,
            number=fields.number,
            height=fields.height,
            thick=fields.thick,
            length=fields.length,
            count=fields.count,
            volume=fields.volume,
            created_at=created_at,
            created_by=created_by,
            id=record_id,
        )

    # =========================================================================
    # Records
    # =========================================================================

    async def list_records(self, username: str) -> list[Record]:
        """Return the user's records in insertion order.

        Never creates a shard; an unknown user simply has no records.
        """
        return self.records.list(username)

    async def add_record(self, username: str, payload: Any) -> Record:
        """Validate and append one record.

        Raises:
            ValidationError: If the payload fails validation
            CapacityExceededError: If the user is at the record cap
        """
        fields = validate_record(payload)

        async with self.records.lock:
            current = self.records.list(username)
            cap = self._record_cap()
            if len(current) >= cap:
                raise CapacityExceededError(
                    f"Record limit of {cap} reached", collection="records", limit=cap
                )

            record = self._build_record(
                fields,
                created_by=username,
                created_at=self._now(),
                record_id=self.id_generator.next_id(),
            )
            await self.records.save(username, current + [record])

        logger.info(
            f"Added record for {username}",
            extra={"username": username, "record_id": record.id, "count": len(current) + 1},
        )
        return record

    def _resolve_index(self, username: str, records: list[Record], raw_index: Any) -> int:
        index = parse_integer(raw_index, "index")
        if index < 0 or index >= len(records):
            raise RecordIndexError(index, len(records))
        if records[index].created_by != username:
            raise OwnershipError(
                "Not allowed to modify this record",
                actor=username,
                owner=records[index].created_by,
            )
        return index

    async def update_record(self, username: str, raw_index: Any, payload: Any) -> Record:
        """Replace the record at ``raw_index`` with validated fields.

        Identity (id, createdAt, createdBy) is preserved and updatedAt set.

        Raises:
            ValidationError: If the index or payload is malformed
            RecordIndexError: If the index is out of range
            OwnershipError: If the record belongs to someone else
        """
        parse_integer(raw_index, "index")
        fields = validate_record(payload)

        async with self.records.lock:
            current = self.records.list(username)
            index = self._resolve_index(username, current, raw_index)
            existing = current[index]

            updated = self._build_record(
                fields,
                created_by=existing.created_by,
                created_at=existing.created_at,
                record_id=existing.id,
            )
            updated.updated_at = self._now()
            current[index] = updated
            await self.records.save(username, current)

        logger.info(f"Updated record {index} for {username}", extra={"username": username})
        return updated

    async def delete_record(self, username: str, raw_index: Any) -> Record:
        """Remove the record at ``raw_index``; later records shift down.

        Returns:
            The removed record
        """
        parse_integer(raw_index, "index")

        async with self.records.lock:
            current = self.records.list(username)
            index = self._resolve_index(username, current, raw_index)
            removed = current.pop(index)
            await self.records.save(username, current)

        logger.info(f"Deleted record {index} for {username}", extra={"username": username})
        return removed

    async def clear_records(self, username: str) -> int:
        """Empty the user's record list.

        Returns:
            Number of records removed
        """
        async with self.records.lock:
            if username not in self.records.shards():
                return 0
            removed = len(self.records.list(username))
            await self.records.save(username, [])

        logger.info(f"Cleared {removed} records for {username}", extra={"username": username})
        return removed

    async def record_stats(self, username: str) -> dict[str, Any]:
        """Summary of the user's records.

        Parts and types are distinct values in first-seen order;
        lastUpdated is the latest createdAt, or None with no records.
        """
        records = self.records.list(username)
        parts = list(dict.fromkeys(r.part for r in records))
        types = list(dict.fromkeys(r.type for r in records))

        last_updated = None
        stamps = [(parse_iso(r.created_at), r.created_at) for r in records]
        stamps = [(parsed, raw) for parsed, raw in stamps if parsed is not None]
        if stamps:
            last_updated = max(stamps, key=lambda s: s[0])[1]

        return {
            "totalRecords": len(records),
            "totalVolume": round(sum(r.volume for r in records), 3),
            "parts": parts,
            "types": types,
            "lastUpdated": last_updated,
        }

    # =========================================================================
    # History
    # =========================================================================

    async def list_history(self, username: str) -> list[HistoryEntry]:
        return self.history.list(username)

    async def get_history(self, username: str, raw_id: Any) -> HistoryEntry:
        """Look up one of the user's history entries.

        Raises:
            ValidationError: If the id is not an integer
            NotFoundError: If the user has no entry with that id
        """
        history_id = parse_integer(raw_id, "id")
        for entry in self.history.list(username):
            if entry.id == history_id:
                return entry
        raise NotFoundError(
            f"History entry {history_id} not found", resource_type="history", resource_id=history_id
        )

    def _build_history_records(
        self, username: str, raw_records: list[Any], fields: list[RecordFields]
    ) -> list[Record]:
        now = self._now()
        built = []
        for raw, validated in zip(raw_records, fields):
            created_at = raw.get("createdAt")
            record_id = raw.get("id")
            if isinstance(record_id, bool) or not isinstance(record_id, (int, float)):
                record_id = None
            built.append(
                self._build_record(
                    validated,
                    created_by=username,
                    created_at=created_at if isinstance(created_at, str) else now,
                    record_id=record_id,
                )
            )
        return built

    async def save_history(self, username: str, name: Any, records: Any) -> HistoryEntry:
        """Save a named snapshot of ``records`` as a new history entry.

        Raises:
            ValidationError: If the name or any record is invalid
            CapacityExceededError: If the user is at the history cap
        """
        clean_name = validate_history_name(name)
        fields = validate_record_batch(records)

        async with self.history.lock:
            entries = self.history.list(username)
            cap = self._history_cap()
            if len(entries) >= cap:
                raise CapacityExceededError(
                    f"History limit of {cap} reached", collection="history", limit=cap
                )

            now = self._now()
            entry = HistoryEntry(
                id=self.id_generator.next_id(),
                name=clean_name,
                records=self._build_history_records(username, records, fields),
                created_at=now,
                updated_at=now,
            )
            await self.history.save(username, entries + [entry])

        logger.info(
            f"Saved history entry {entry.id} for {username}",
            extra={"username": username, "history_id": entry.id, "records": len(fields)},
        )
        return entry

    async def update_history(
        self, username: str, raw_id: Any, name: Any, records: Any
    ) -> HistoryEntry:
        """Replace the name and records of an existing history entry.

        Raises:
            ValidationError: If the id, name or any record is invalid
            NotFoundError: If the user has no entry with that id
        """
        history_id = parse_integer(raw_id, "id")
        clean_name = validate_history_name(name)
        fields = validate_record_batch(records)

        async with self.history.lock:
            entries = self.history.list(username)
            for i, entry in enumerate(entries):
                if entry.id == history_id:
                    break
            else:
                raise NotFoundError(
                    f"History entry {history_id} not found",
                    resource_type="history",
                    resource_id=history_id,
                )

            entry.name = clean_name
            entry.records = self._build_history_records(username, records, fields)
            entry.updated_at = self._now()
            entries[i] = entry
            await self.history.save(username, entries)

        logger.info(f"Updated history entry {history_id} for {username}")
        return entry

    async def delete_history(self, username: str, raw_id: Any) -> None:
        """Remove a history entry.

        Raises:
            ValidationError: If the id is not an integer
            NotFoundError: If the user has no entry with that id
        """
        history_id = parse_integer(raw_id, "id")

        async with self.history.lock:
            entries = self.history.list(username)
            remaining = [e for e in entries if e.id != history_id]
            if len(remaining) == len(entries):
                raise NotFoundError(
                    f"History entry {history_id} not found",
                    resource_type="history",
                    resource_id=history_id,
                )
            await self.history.save(username, remaining)

        logger.info(f"Deleted history entry {history_id} for {username}")

    # =========================================================================
    # Export
    # =========================================================================

    async def export_records(self, username: str) -> ExportFile:
        """Encode the user's active records as a spreadsheet.

        Raises:
            ValidationError: If the user has no records
        """
        records = self.records.list(username)
        if not records:
            raise ValidationError("No data to export")
        return export_records(
            records,
            base_name=f"{EXPORT_BASE_NAME}_{username}",
            creator_fallback=username,
            encoder=self.encoder,
            now=self.clock(),
        )

    async def export_history(self, username: str, raw_id: Any) -> ExportFile:
        """Encode one history entry as a spreadsheet.

        Raises:
            ValidationError: If the id is malformed or the entry is empty
            NotFoundError: If the user has no entry with that id
        """
        entry = await self.get_history(username, raw_id)
        if not entry.records:
            raise ValidationError("No data to export")
        return export_records(
            entry.records,
            base_name=f"{EXPORT_BASE_NAME}_{username}_{entry.name}",
            creator_fallback=username,
            encoder=self.encoder,
            now=self.clock(),
        )
