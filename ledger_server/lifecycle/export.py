"""
Spreadsheet export of records.

Builds the flat tabular projection of a record list and hands it to a
spreadsheet encoder. The default encoder writes an .xlsx workbook with
openpyxl; anything with an ``encode(sheet_name, header, rows)`` method can
stand in for it.

Invariants:
    - Column set and order are fixed (see EXPORT_COLUMNS)
    - Rows are numbered from 1 in stored order
    - Filenames are deterministic for a given base name and time
"""

from __future__ import annotations

import io
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from ..repo.models import Record
from .ids import parse_iso

logger = logging.getLogger(__name__)

EXPORT_COLUMNS: tuple[str, ...] = (
    "No.",
    "Part",
    "Type",
    "Number",
    "Height",
    "Thick",
    "Length",
    "Count",
    "Volume",
    "Created At",
    "Created By",
)

SHEET_NAME = "Concrete Volume"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
FILENAME_MAX_LENGTH = 100

_UNSAFE_FILENAME_RE = re.compile(r'[<>:"/\\|?*]')


@dataclass(frozen=True)
class ExportFile:
    """An encoded export ready to be sent to the client."""

    filename: str
    content: bytes
    media_type: str = XLSX_MEDIA_TYPE


class SpreadsheetEncoder(Protocol):
    def encode(
        self, sheet_name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> bytes: ...


class WorkbookEncoder:
    """Encodes one sheet into .xlsx bytes with openpyxl."""

    def encode(
        self, sheet_name: str, header: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> bytes:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = sheet_name
        sheet.append(list(header))
        for row in rows:
            sheet.append([_clean_cell(value) for value in row])

        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()


def _clean_cell(value: Any) -> Any:
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value


def format_timestamp(value: Any) -> str:
    """Human-readable UTC time, or '' when missing or unparseable."""
    parsed = parse_iso(value)
    if parsed is None:
        return ""
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def build_rows(records: Sequence[Record], creator_fallback: str) -> list[list[Any]]:
    """Project records onto EXPORT_COLUMNS, numbered from 1."""
    return [
        [
            position,
            record.part,
            record.type,
            record.number,
            record.height,
            record.thick,
            record.length,
            record.count,
            record.volume,
            format_timestamp(record.created_at),
            record.created_by or creator_fallback,
        ]
        for position, record in enumerate(records, start=1)
    ]


def safe_filename(base_name: str, now: datetime) -> str:
    """Filesystem-safe ``<base>_<YYYY-MM-DDTHH-MM-SS>.xlsx``.

    Unsafe characters become underscores and the base is truncated to
    FILENAME_MAX_LENGTH characters.
    """
    safe = _UNSAFE_FILENAME_RE.sub("_", base_name)[:FILENAME_MAX_LENGTH]
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")
    return f"{safe}_{stamp}.xlsx"


def export_records(
    records: Sequence[Record],
    base_name: str,
    creator_fallback: str,
    encoder: SpreadsheetEncoder,
    now: datetime,
) -> ExportFile:
    """Encode records into an ExportFile."""
    rows = build_rows(records, creator_fallback)
    content = encoder.encode(SHEET_NAME, EXPORT_COLUMNS, rows)
    filename = safe_filename(base_name, now)
    logger.debug(f"Encoded export {filename} with {len(rows)} rows")
    return ExportFile(filename=filename, content=content)
