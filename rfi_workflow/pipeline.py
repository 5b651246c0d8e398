from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .addressing import grid_range_address, range_address
from .config import AppConfig, ScanLayoutConfig
from .drafting import Drafter, KnowledgeBase, draft_all
from .errors import LayoutOverflowError, PartialWriteError, RemoteWriteError
from .models import IssueBucket, MarkerGroup, ResponseRecord, WriteReport
from .responses import build_column, extract_responses, notes_by_row
from .scanning import (
    classify_groups,
    compose_groups,
    compute_ranges,
    group_markers,
    groups_to_rows,
    scan_cells,
)

LOGGER = logging.getLogger("rfi_workflow.pipeline")

CLIENT_WORKBOOK_PREFIX = "RFI Responses - "


class SheetGateway(Protocol):
    def read_used_range(self, spreadsheet_id: str, sheet_name: str) -> List[List[Any]]: ...

    def patch_range(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        address: str,
        values: Sequence[Sequence[Any]],
    ) -> None: ...

    def clear_ranges(self, spreadsheet_id: str, sheet_name: str, ranges: Sequence[str]) -> None: ...

    def unique_file_name(self, folder_id: str, base_name: str) -> str: ...

    def copy_file(self, file_id: str, name: str, folder_id: str) -> Dict[str, str]: ...


def _log_report(message: str) -> None:
    LOGGER.info(message)


@dataclass
class RunContext:
    """Everything one workflow invocation needs, passed explicitly down the call chain.

    ``report`` delivers user-facing progress messages; it must not affect logic.
    """

    sheets: SheetGateway
    config: AppConfig
    report: Callable[[str], None] = _log_report


@dataclass
class RfiScanSummary:
    groups: List[MarkerGroup] = field(default_factory=list)
    general_count: int = 0
    specific_count: int = 0
    write_report: Optional[WriteReport] = None
    client_workbook: Optional[Dict[str, str]] = None


@dataclass
class ResponsesRunSummary:
    records: List[ResponseRecord] = field(default_factory=list)
    address: Optional[str] = None
    payload: List[List[str]] = field(default_factory=list)
    written: bool = False


def find_rfi_groups(grid: Sequence[Sequence[Any]], layout: ScanLayoutConfig) -> List[MarkerGroup]:
    records = scan_cells(
        grid,
        layout.marker,
        layout.excluded_column,
        header_rows=layout.header_rows,
        identifier_column=layout.identifier_column,
    )
    return compose_groups(group_markers(records))


def update_rfi_worksheet(
    ctx: RunContext,
    workbook_id: str,
    groups: Sequence[MarkerGroup],
) -> WriteReport:
    """Write general and specific issues into the RFI sheet of ``workbook_id``.

    Both payloads are prepared before anything is written and both writes are
    attempted even when the first fails; any failure raises
    :class:`PartialWriteError` describing what was and was not written.
    """

    layout = ctx.config.testing
    sheet_name = ctx.config.sheets.rfi_sheet

    buckets = classify_groups(groups, layout.general_threshold)
    payloads = {
        IssueBucket.GENERAL: groups_to_rows(buckets.general),
        IssueBucket.SPECIFIC: groups_to_rows(buckets.specific),
    }
    capacities = {
        IssueBucket.GENERAL: layout.general_capacity,
        IssueBucket.SPECIFIC: layout.specific_capacity,
    }
    for bucket, rows in payloads.items():
        if len(rows) > capacities[bucket]:
            raise LayoutOverflowError(
                f"{len(rows)} {bucket.value} issues exceed the {capacities[bucket]} rows "
                f"available in '{sheet_name}'"
            )

    ranges = compute_ranges(
        layout.general_start_row,
        layout.specific_start_row,
        len(payloads[IssueBucket.GENERAL]),
        len(payloads[IssueBucket.SPECIFIC]),
    )
    LOGGER.info(
        "Update ranges: general=%s specific=%s",
        ranges[IssueBucket.GENERAL],
        ranges[IssueBucket.SPECIFIC],
    )

    ctx.sheets.clear_ranges(workbook_id, sheet_name, layout.clear_ranges)

    report = WriteReport()
    failures: Dict[str, Exception] = {}
    for bucket in (IssueBucket.GENERAL, IssueBucket.SPECIFIC):
        rows = payloads[bucket]
        address = ranges[bucket]
        if not rows:
            LOGGER.info("No %s issues; skipping write of %s", bucket.value, address)
            report.skipped.append(address)
            continue
        try:
            ctx.sheets.patch_range(workbook_id, sheet_name, address, rows)
        except RemoteWriteError as exc:
            LOGGER.error("Writing %s issues to %s failed: %s", bucket.value, address, exc)
            failures[address] = exc
            continue
        report.written.append(address)

    if failures:
        raise PartialWriteError(report.written, failures)
    return report


def copy_rfi_sheet_to_client_workbook(
    ctx: RunContext,
    workbook_id: str,
    client_name: str,
    folder_id: str,
) -> Dict[str, str]:
    """Copy the client template into ``folder_id`` and fill it with the RFI sheet."""

    sheets_conf = ctx.config.sheets
    if not sheets_conf.template_file_id:
        raise ValueError("sheets.template_file_id is not configured")
    if not client_name:
        raise ValueError("Client name is required")

    name = ctx.sheets.unique_file_name(folder_id, f"{CLIENT_WORKBOOK_PREFIX}{client_name}")
    new_file = ctx.sheets.copy_file(sheets_conf.template_file_id, name, folder_id)

    values = ctx.sheets.read_used_range(workbook_id, sheets_conf.rfi_sheet)
    if not values:
        LOGGER.warning("'%s' is empty; nothing to copy", sheets_conf.rfi_sheet)
        return new_file

    address = grid_range_address(values, "A1")
    try:
        ctx.sheets.patch_range(new_file["id"], sheets_conf.copy_target_sheet, address, values)
    except RemoteWriteError as exc:
        fallback = sheets_conf.copy_fallback_sheet
        if not fallback:
            raise
        LOGGER.warning(
            "Writing to '%s' failed (%s); trying '%s'",
            sheets_conf.copy_target_sheet,
            exc,
            fallback,
        )
        ctx.sheets.patch_range(new_file["id"], fallback, address, values)

    LOGGER.info("Copied %s rows into '%s'", len(values), new_file["name"])
    return new_file


def process_testing_workbook(
    ctx: RunContext,
    workbook_id: str,
    client_name: str,
    folder_id: str,
    *,
    workbook_name: str | None = None,
) -> RfiScanSummary:
    label = workbook_name or workbook_id
    sheets_conf = ctx.config.sheets

    ctx.report(f"Processing {sheets_conf.testing_sheet} worksheet in {label}...")
    grid = ctx.sheets.read_used_range(workbook_id, sheets_conf.testing_sheet)
    LOGGER.info("Fetched %s rows from '%s'", len(grid), sheets_conf.testing_sheet)

    groups = find_rfi_groups(grid, ctx.config.testing)
    buckets = classify_groups(groups, ctx.config.testing.general_threshold)
    summary = RfiScanSummary(
        groups=groups,
        general_count=len(buckets.general),
        specific_count=len(buckets.specific),
    )
    ctx.report(
        f"RFI data processed for {label}: {summary.general_count} general and "
        f"{summary.specific_count} specific issues"
    )

    if not groups:
        LOGGER.warning("No RFI data found in '%s'", sheets_conf.testing_sheet)
        return summary

    ctx.report(f"Updating {sheets_conf.rfi_sheet} in {label}...")
    summary.write_report = update_rfi_worksheet(ctx, workbook_id, groups)

    ctx.report(f"Copying {sheets_conf.rfi_sheet} to a new client workbook...")
    summary.client_workbook = copy_rfi_sheet_to_client_workbook(
        ctx, workbook_id, client_name, folder_id
    )
    ctx.report(f"{sheets_conf.rfi_sheet} copied to new workbook: {summary.client_workbook['name']}")
    return summary


def process_client_responses(
    ctx: RunContext,
    workbook_id: str,
    drafter: Drafter,
    knowledge_base: KnowledgeBase = (),
    *,
    workbook_name: str | None = None,
    dry_run: bool = False,
) -> ResponsesRunSummary:
    """Draft auditor notes for client responses and write them back in one range write."""

    label = workbook_name or workbook_id
    layout = ctx.config.responses
    sheet_name = ctx.config.sheets.responses_sheet

    ctx.report(f"Processing {label}...")
    grid = ctx.sheets.read_used_range(workbook_id, sheet_name)
    records = extract_responses(
        grid,
        layout.row_windows,
        id_column=layout.id_column,
        filter_column=layout.filter_column,
        issue_column=layout.issue_column,
        response_column=layout.response_column,
    )
    summary = ResponsesRunSummary()
    if not records:
        ctx.report(f"No client responses found in {label}")
        return summary

    def _on_progress(completed: int, total: int) -> None:
        ctx.report(f"Processing client responses batch {completed}/{total}...")

    ctx.report(f"Generating auditor notes for {label}")
    summary.records = draft_all(
        records,
        ctx.config.drafting.batch_size,
        drafter,
        knowledge_base,
        on_progress=_on_progress,
    )

    entries = notes_by_row(
        summary.records,
        layout.notes_first_row,
        layout.notes_last_row,
        general_offset=layout.general_row_offset,
        specific_offset=layout.specific_row_offset,
        general_limit=layout.general_capacity,
        specific_limit=layout.specific_capacity,
    )
    summary.payload = build_column(entries, layout.notes_first_row, layout.notes_last_row)
    summary.address = range_address(
        layout.notes_column, layout.notes_first_row, layout.notes_column, layout.notes_last_row
    )

    if dry_run:
        LOGGER.info("Dry run enabled; skipping write of %s", summary.address)
        return summary

    ctx.report(f"Writing {len(entries)} auditor notes back to {label}")
    ctx.sheets.patch_range(workbook_id, sheet_name, summary.address, summary.payload)
    summary.written = True
    ctx.report(f"Auditor notes added to {label}")
    return summary
