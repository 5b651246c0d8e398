from __future__ import annotations

import re
from typing import Any, List, Sequence, Tuple

_CELL_RE = re.compile(r"^\$?([A-Za-z]+)\$?(\d+)$")


def column_letter(index: int) -> str:
    """Convert a zero-based column index to spreadsheet letters (0 -> A, 26 -> AA)."""

    if isinstance(index, bool) or not isinstance(index, int):
        raise TypeError(f"Column index must be an integer; received {index!r}")
    if index < 0:
        raise ValueError(f"Column index cannot be negative; received {index}")

    letters = ""
    while index >= 0:
        index, remainder = divmod(index, 26)
        letters = chr(65 + remainder) + letters
        index -= 1
    return letters


def column_index(letters: str) -> int:
    """Inverse of :func:`column_letter`."""

    text = (letters or "").strip().upper()
    if not text or not text.isalpha() or not text.isascii():
        raise ValueError(f"Invalid column letters: {letters!r}")

    value = 0
    for char in text:
        value = value * 26 + (ord(char) - 64)
    return value - 1


def cell_reference(row_number: int, col_idx: int) -> str:
    """Build an A1 reference from a 1-based row number and zero-based column index."""

    if row_number < 1:
        raise ValueError(f"Row numbers must be 1-based; received {row_number}")
    return f"{column_letter(col_idx)}{row_number}"


def split_cell_reference(reference: str) -> Tuple[int, int]:
    """Return ``(row_number, col_idx)`` for an A1 reference such as ``"E5"``."""

    match = _CELL_RE.match((reference or "").strip())
    if not match:
        raise ValueError(f"Invalid cell reference: {reference!r}")
    letters, digits = match.groups()
    return int(digits), column_index(letters)


def range_address(start_col: str, start_row: int, end_col: str, end_row: int) -> str:
    return f"{start_col}{start_row}:{end_col}{end_row}"


def _extract_row_number(cell_ref: str) -> int | None:
    digits = [ch for ch in cell_ref if ch.isdigit()]
    if not digits:
        return None
    return int("".join(digits))


def parse_range_rows(range_str: str) -> tuple[int, int] | None:
    """Return the first and last row numbers of ``"Sheet!C14:D20"`` style ranges."""

    if not range_str:
        return None
    _, _, range_body = range_str.partition("!")
    if not range_body:
        range_body = range_str
    start_ref, sep, end_ref = range_body.partition(":")
    if not sep:
        end_ref = start_ref
    start_row = _extract_row_number(start_ref)
    end_row = _extract_row_number(end_ref)
    if start_row is None or end_row is None:
        return None
    return start_row, end_row


def grid_range_address(values: Sequence[Sequence[Any]], start_cell: str = "A1") -> str:
    """Address of the rectangle a 2D payload covers when written at ``start_cell``."""

    if not values:
        raise ValueError("Cannot compute a range for an empty payload")
    width = max(len(row) for row in values)
    if width == 0:
        raise ValueError("Payload must contain at least one column")

    start_row, start_col = split_cell_reference(start_cell)
    end_col = column_letter(start_col + width - 1)
    end_row = start_row + len(values) - 1
    return range_address(column_letter(start_col), start_row, end_col, end_row)


def pad_rows(values: Sequence[Sequence[Any]], width: int | None = None) -> List[List[Any]]:
    """Right-pad ragged rows with empty strings so the grid is rectangular."""

    rows = [list(row) for row in values]
    target = width if width is not None else max((len(row) for row in rows), default=0)
    for row in rows:
        if len(row) < target:
            row.extend([""] * (target - len(row)))
    return rows
