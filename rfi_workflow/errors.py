from __future__ import annotations

from typing import List, Sequence


class RfiWorkflowError(Exception):
    """Base class for errors raised by the RFI workflow."""


class RemoteReadError(RfiWorkflowError):
    """A sheet read failed or returned no values."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class RemoteWriteError(RfiWorkflowError):
    """A range write, clear or file copy failed."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(f"{operation}: {message}")
        self.operation = operation


class PartialWriteError(RemoteWriteError):
    """Raised after every bucket write was attempted and at least one failed.

    ``completed`` holds the ranges that were written, ``failures`` maps the
    remaining ranges to the error that stopped them. The sheet may be left in a
    mixed state and needs manual reconciliation.
    """

    def __init__(self, completed: Sequence[str], failures: dict[str, Exception]) -> None:
        self.completed: List[str] = list(completed)
        self.failures = dict(failures)
        failed = ", ".join(f"{rng} ({exc})" for rng, exc in self.failures.items())
        written = ", ".join(self.completed) or "none"
        super().__init__(
            "write issue buckets",
            f"failed ranges: {failed}; written ranges: {written}",
        )


class MalformedGridError(RfiWorkflowError, ValueError):
    """Input grid is not a rectangular array of scalar rows."""


class DraftCountMismatchError(RfiWorkflowError):
    """The note drafter returned a different number of notes than it was given."""

    def __init__(self, batch_index: int, expected: int, received: int) -> None:
        super().__init__(
            f"Batch {batch_index} expected {expected} drafted notes but received {received}"
        )
        self.batch_index = batch_index
        self.expected = expected
        self.received = received


class UnmappableRecordError(RfiWorkflowError, ValueError):
    """A response record id does not map to a destination row; the record is skipped."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record id {record_id!r} does not map to a destination row")
        self.record_id = record_id


class LayoutOverflowError(RfiWorkflowError, ValueError):
    """More issue groups than the template section has rows for."""
