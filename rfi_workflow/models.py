from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple


@dataclass(slots=True, frozen=True)
class MarkerRecord:
    """A Testing-sheet cell whose text contains the RFI marker."""

    marker_text: str
    cell_reference: str  # A1 style, e.g. "E5"
    row_identifier: Optional[str]  # item id from the identifier column, if present


@dataclass(slots=True, frozen=True)
class AffectedRecord:
    cell_reference: str
    row_identifier: Optional[str]


@dataclass(slots=True)
class MarkerGroup:
    """All marker cells that share the exact same marker text."""

    marker_text: str
    affected_records: List[AffectedRecord] = field(default_factory=list)
    composed_note: str = ""

    @property
    def affected_count(self) -> int:
        return len(self.affected_records)

    @property
    def identifiers(self) -> List[str]:
        return [record.row_identifier for record in self.affected_records if record.row_identifier]


class IssueBucket(str, Enum):
    GENERAL = "general"
    SPECIFIC = "specific"


@dataclass(slots=True)
class IssueBuckets:
    general: List[MarkerGroup]
    specific: List[MarkerGroup]


@dataclass(slots=True, frozen=True)
class ResponseRecord:
    """One issue/response pair read from the client responses sheet."""

    record_id: str  # "<prefix>.<number>", prefix G or S; may be empty
    issue_text: str
    response_text: str
    drafted_note: Optional[str] = None

    @property
    def issue_pair(self) -> Tuple[str, str]:
        return (self.issue_text, self.response_text)

    def with_note(self, note: str) -> "ResponseRecord":
        if self.drafted_note is not None:
            raise ValueError(f"Record {self.record_id!r} already has a drafted note")
        return replace(self, drafted_note=note)


@dataclass(slots=True)
class WriteReport:
    """Outcome of a multi-range write-back."""

    written: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
