from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import MalformedGridError, UnmappableRecordError
from .models import ResponseRecord

LOGGER = logging.getLogger(__name__)

GENERAL_PREFIX = "G."
SPECIFIC_PREFIX = "S."


def _text(value: Any) -> str:
    if value is None or value == "" or value is False:
        return ""
    return value if isinstance(value, str) else str(value)


def validate_grid(grid: Any, min_width: int = 0) -> List[Sequence[Any]]:
    """Ensure ``grid`` is a rectangular list of rows at least ``min_width`` wide."""

    if not isinstance(grid, (list, tuple)):
        raise MalformedGridError(f"Grid must be a list of rows; received {type(grid).__name__}")

    width: Optional[int] = None
    for idx, row in enumerate(grid):
        if not isinstance(row, (list, tuple)):
            raise MalformedGridError(f"Row {idx + 1} is not a list of cells")
        for value in row:
            if isinstance(value, (list, tuple, dict)):
                raise MalformedGridError(f"Row {idx + 1} contains a non-scalar cell")
        if width is None:
            width = len(row)
        elif len(row) != width:
            raise MalformedGridError(
                f"Row {idx + 1} has {len(row)} cells; expected {width} (grid is not rectangular)"
            )

    if grid and width is not None and width < min_width:
        raise MalformedGridError(
            f"Grid has {width} columns; the responses layout needs at least {min_width}"
        )
    return list(grid)


def extract_responses(
    grid: Sequence[Sequence[Any]],
    row_windows: Iterable[Tuple[int, int]],
    *,
    id_column: int = 0,
    filter_column: int = 2,
    issue_column: int = 1,
    response_column: int = 3,
) -> List[ResponseRecord]:
    """Read issue/response pairs from 1-based inclusive row windows.

    A row is considered when its id or filter column is non-empty and is kept
    only when both the issue and response columns are non-empty.
    """

    rows = validate_grid(grid, max(id_column, filter_column, issue_column, response_column) + 1)

    records: List[ResponseRecord] = []
    for start, end in row_windows:
        if start < 1 or start > end:
            raise ValueError(f"Invalid row window [{start}, {end}]")
        for row in rows[start - 1 : end]:
            if not (row[id_column] or row[filter_column]):
                continue
            record = ResponseRecord(
                record_id=_text(row[id_column]).strip(),
                issue_text=_text(row[issue_column]),
                response_text=_text(row[response_column]),
            )
            if not record.issue_text or not record.response_text:
                LOGGER.debug("Skipping incomplete response row %r", record.record_id)
                continue
            records.append(record)

    LOGGER.info("Extracted %s client responses", len(records))
    return records


def _parse_suffix(text: str) -> Optional[int]:
    digits = text.strip()
    if not digits or not (digits.isascii() and digits.isdecimal()):
        return None
    return int(digits)


def map_to_row(
    record_id: str,
    general_offset: int = 13,
    specific_offset: int = 41,
) -> Optional[int]:
    """Destination row for ``G.<n>`` (offset 13) and ``S.<n>`` (offset 41) ids."""

    record_id = record_id or ""
    if record_id.startswith(GENERAL_PREFIX):
        offset = general_offset
    elif record_id.startswith(SPECIFIC_PREFIX):
        offset = specific_offset
    else:
        return None

    number = _parse_suffix(record_id[2:])
    if number is None:
        return None
    return offset + number


def resolve_row(
    record: ResponseRecord,
    general_offset: int = 13,
    specific_offset: int = 41,
) -> int:
    row = map_to_row(record.record_id, general_offset, specific_offset)
    if row is None:
        raise UnmappableRecordError(record.record_id)
    return row


def notes_by_row(
    records: Iterable[ResponseRecord],
    first_row: int,
    last_row: int,
    *,
    general_offset: int = 13,
    specific_offset: int = 41,
    general_limit: int = 21,
    specific_limit: int = 100,
) -> Dict[int, str]:
    """Map drafted notes onto destination rows, skipping records that cannot be placed.

    ``G.<n>`` is placed only for ``1 <= n <= general_limit`` and ``S.<n>`` only
    for ``1 <= n <= specific_limit`` so one family never lands in the other's
    section.
    """

    entries: Dict[int, str] = {}
    for record in records:
        try:
            row = resolve_row(record, general_offset, specific_offset)
        except UnmappableRecordError as exc:
            LOGGER.warning("%s; skipping", exc)
            continue
        if record.record_id.startswith(GENERAL_PREFIX):
            number, limit = row - general_offset, general_limit
        else:
            number, limit = row - specific_offset, specific_limit
        if not 1 <= number <= limit:
            LOGGER.warning(
                "Record %s is outside its section (1-%s); skipping", record.record_id, limit
            )
            continue
        if not first_row <= row <= last_row:
            LOGGER.warning(
                "Record %s maps to row %s outside %s-%s; skipping",
                record.record_id,
                row,
                first_row,
                last_row,
            )
            continue
        if row in entries:
            LOGGER.warning("Record %s overwrites the note for row %s", record.record_id, row)
        entries[row] = record.drafted_note or ""
    return entries


def build_column(entries: Mapping[int, str], first_row: int, last_row: int) -> List[List[str]]:
    """Dense ``N x 1`` payload for one write covering ``first_row..last_row``."""

    if last_row < first_row:
        raise ValueError(f"last_row {last_row} precedes first_row {first_row}")
    return [[entries.get(row, "")] for row in range(first_row, last_row + 1)]
