"""Testing-sheet RFI extraction: scan cells, group by marker text, compose notes, bucket."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .addressing import cell_reference, range_address
from .models import AffectedRecord, IssueBucket, IssueBuckets, MarkerGroup, MarkerRecord

LOGGER = logging.getLogger(__name__)

_MARKER_PREFIX_RE = re.compile(r"^RFI\s*-\s*", re.IGNORECASE)

_DOCUMENTATION_KEYWORDS = ("not been uploaded", "not been provided")
_REVIEW_KEYWORDS = ("invoice", "declaration")

ACTION_PROVIDE_DOCUMENTATION = "Can you please provide this documentation?"
ACTION_REVIEW = "Can you please review and provide clarification?"
ACTION_CLARIFY = "Can you please clarify?"


def _cell_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


def scan_cells(
    grid: Sequence[Sequence[Any]],
    marker: str,
    excluded_column: Optional[int] = None,
    *,
    header_rows: int = 2,
    identifier_column: int = 2,
) -> List[List[MarkerRecord]]:
    """Find every string cell containing ``marker`` below the header rows.

    Grid row 0 is spreadsheet row 1. The result holds one list per row that
    produced at least one record, in row order then column order.
    """

    if not marker:
        raise ValueError("Marker substring must not be empty")

    rows: List[List[MarkerRecord]] = []
    for row_idx in range(header_rows, len(grid)):
        row = grid[row_idx]
        if not isinstance(row, (list, tuple)):
            LOGGER.warning("Row %s is not a list of cells; skipping", row_idx + 1)
            continue

        identifier = _cell_text(row[identifier_column]) if identifier_column < len(row) else None
        found: List[MarkerRecord] = []
        for col_idx, value in enumerate(row):
            if col_idx == excluded_column:
                continue
            if isinstance(value, str) and marker in value:
                found.append(
                    MarkerRecord(
                        marker_text=value,
                        cell_reference=cell_reference(row_idx + 1, col_idx),
                        row_identifier=identifier,
                    )
                )
        if found:
            rows.append(found)

    LOGGER.debug("Found %s rows with '%s' cells", len(rows), marker)
    return rows


def _flatten(records: Iterable[Any]) -> Iterable[MarkerRecord]:
    for item in records:
        if isinstance(item, MarkerRecord):
            yield item
        else:
            yield from item


def group_markers(records: Iterable[Any]) -> List[MarkerGroup]:
    """Group marker records by exact marker text, keeping first-seen order.

    Accepts either a flat sequence of records or the per-row lists produced by
    :func:`scan_cells`.
    """

    groups: Dict[str, MarkerGroup] = {}
    for record in _flatten(records):
        group = groups.get(record.marker_text)
        if group is None:
            group = MarkerGroup(marker_text=record.marker_text)
            groups[record.marker_text] = group
        group.affected_records.append(
            AffectedRecord(
                cell_reference=record.cell_reference,
                row_identifier=record.row_identifier,
            )
        )
    return list(groups.values())


def compose_note(marker_text: str) -> str:
    """Turn raw RFI cell text into the sentence sent to the client."""

    clean_text = _MARKER_PREFIX_RE.sub("", marker_text or "", count=1).strip()
    lowered = clean_text.lower()

    if any(keyword in lowered for keyword in _DOCUMENTATION_KEYWORDS):
        action_item = ACTION_PROVIDE_DOCUMENTATION
    elif any(keyword in lowered for keyword in _REVIEW_KEYWORDS):
        action_item = ACTION_REVIEW
    else:
        action_item = ACTION_CLARIFY

    return f"The auditor noted that {clean_text}. {action_item}"


def compose_groups(groups: Iterable[MarkerGroup]) -> List[MarkerGroup]:
    composed = []
    for group in groups:
        group.composed_note = compose_note(group.marker_text)
        composed.append(group)
    return composed


def bucket_for(group: MarkerGroup, threshold: int = 4) -> IssueBucket:
    if group.affected_count >= threshold:
        return IssueBucket.GENERAL
    return IssueBucket.SPECIFIC


def classify_groups(groups: Iterable[MarkerGroup], threshold: int = 4) -> IssueBuckets:
    buckets = IssueBuckets(general=[], specific=[])
    for group in groups:
        if bucket_for(group, threshold) is IssueBucket.GENERAL:
            buckets.general.append(group)
        else:
            buckets.specific.append(group)
    return buckets


def compute_ranges(
    general_start_row: int,
    specific_start_row: int,
    general_count: int,
    specific_count: int,
) -> Dict[IssueBucket, str]:
    """Return the ``C{start}:D{end}`` address of each bucket.

    A zero count yields an end row before the start row; callers must not
    write such a range.
    """

    for name, value in (
        ("general_start_row", general_start_row),
        ("specific_start_row", specific_start_row),
    ):
        if value < 1:
            raise ValueError(f"{name} must be a positive row number; received {value}")
    for name, value in (("general_count", general_count), ("specific_count", specific_count)):
        if value < 0:
            raise ValueError(f"{name} must not be negative; received {value}")

    return {
        IssueBucket.GENERAL: range_address(
            "C", general_start_row, "D", general_start_row + general_count - 1
        ),
        IssueBucket.SPECIFIC: range_address(
            "C", specific_start_row, "D", specific_start_row + specific_count - 1
        ),
    }


def groups_to_rows(groups: Iterable[MarkerGroup]) -> List[List[str]]:
    """Two-column payload: composed note and comma-joined affected identifiers."""

    rows: List[List[str]] = []
    for group in groups:
        if not group.composed_note:
            raise ValueError(f"Group '{group.marker_text}' has no composed note")
        rows.append([group.composed_note, ", ".join(group.identifiers)])
    return rows
