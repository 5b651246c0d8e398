import pytest

from rfi_workflow.models import AffectedRecord, IssueBucket, MarkerGroup, MarkerRecord
from rfi_workflow.scanning import (
    ACTION_CLARIFY,
    bucket_for,
    classify_groups,
    compose_groups,
    compose_note,
    compute_ranges,
    group_markers,
    groups_to_rows,
    scan_cells,
)


def _row(identifier, *cells, width=6):
    row = ["", "", identifier, *cells]
    return row + [""] * (width - len(row))


def _group(text: str, count: int) -> MarkerGroup:
    return MarkerGroup(
        marker_text=text,
        affected_records=[AffectedRecord(f"D{idx + 3}", f"ID{idx}") for idx in range(count)],
    )


def test_scan_skips_header_rows_and_builds_references() -> None:
    grid = [
        ["RFI header", "", "", ""],
        ["", "RFI header 2", "", ""],
        _row("ITEM1", "RFI - missing invoice", "ok"),
        _row("ITEM2", "fine", "RFI - missing photo"),
    ]

    rows = scan_cells(grid, "RFI")

    assert rows == [
        [MarkerRecord("RFI - missing invoice", "D3", "ITEM1")],
        [MarkerRecord("RFI - missing photo", "E4", "ITEM2")],
    ]


def test_scan_never_reports_excluded_column() -> None:
    grid = [["h"] * 4, ["h"] * 4] + [["", "", f"ID{n}", "RFI label"] for n in range(5)]

    assert scan_cells(grid, "RFI", excluded_column=3) == []
    assert len(scan_cells(grid, "RFI", excluded_column=None)) == 5


def test_scan_default_exclusion_matches_column_aj() -> None:
    row = [""] * 37
    row[2] = "ITEM9"
    row[35] = "RFI Notes"
    row[36] = "RFI - check"
    rows = scan_cells([[], [], row], "RFI", excluded_column=35)

    assert rows == [[MarkerRecord("RFI - check", "AK3", "ITEM9")]]


def test_scan_keeps_marker_cells_without_identifier_and_ignores_non_strings() -> None:
    grid = [[], [], ["", "", "", "RFI - x", 123, None]]

    assert scan_cells(grid, "RFI") == [[MarkerRecord("RFI - x", "D3", None)]]


def test_scan_is_case_sensitive_and_skips_malformed_rows(caplog) -> None:
    grid = [[], [], "not a row", _row("A", "rfi - lower"), _row("B", "xRFIx")]

    rows = scan_cells(grid, "RFI")

    assert rows == [[MarkerRecord("xRFIx", "D5", "B")]]
    assert "Row 3 is not a list" in caplog.text


def test_scan_converts_numeric_identifiers_to_text() -> None:
    grid = [[], [], ["", "", 207494, "RFI - x"]]

    assert scan_cells(grid, "RFI")[0][0].row_identifier == "207494"


def test_group_markers_keeps_first_seen_order_and_merges() -> None:
    records = [
        [MarkerRecord("RFI - b", "D3", "ID1"), MarkerRecord("RFI - a", "E3", "ID1")],
        [MarkerRecord("RFI - b", "D4", "ID2")],
        [MarkerRecord("RFI - c", "D5", None), MarkerRecord("RFI - a", "E5", None)],
    ]

    groups = group_markers(records)

    assert [group.marker_text for group in groups] == ["RFI - b", "RFI - a", "RFI - c"]
    assert groups[0].affected_records == [AffectedRecord("D3", "ID1"), AffectedRecord("D4", "ID2")]
    assert groups[1].affected_records == [AffectedRecord("E3", "ID1"), AffectedRecord("E5", None)]


def test_group_markers_uses_exact_text() -> None:
    groups = group_markers(
        [
            MarkerRecord("RFI - a", "D3", "1"),
            MarkerRecord("RFI - a ", "D4", "2"),
            MarkerRecord("RFI - A", "D5", "3"),
        ]
    )

    assert len(groups) == 3


def test_grouping_ignores_unrelated_row_reordering() -> None:
    first = [MarkerRecord("RFI - a", "D3", "1")]
    second = [MarkerRecord("RFI - b", "D4", "2")]
    third = [MarkerRecord("RFI - a", "D5", "3")]

    forward = group_markers([first, second, third])
    swapped = group_markers([first, third, second])

    assert [g.marker_text for g in forward] == [g.marker_text for g in swapped]
    assert [g.affected_records for g in forward] == [g.affected_records for g in swapped]


@pytest.mark.parametrize(
    "marker, expected",
    [
        (
            "RFI - The file has not been provided",
            "The auditor noted that The file has not been provided. "
            "Can you please provide this documentation?",
        ),
        (
            "RFI- invoice missing",
            "The auditor noted that invoice missing. "
            "Can you please review and provide clarification?",
        ),
        (
            "rfi  -  Installer DECLARATION unsigned",
            "The auditor noted that Installer DECLARATION unsigned. "
            "Can you please review and provide clarification?",
        ),
        (
            "RFI - Photos have NOT BEEN UPLOADED for the invoice",
            "The auditor noted that Photos have NOT BEEN UPLOADED for the invoice. "
            "Can you please provide this documentation?",
        ),
    ],
)
def test_compose_note_selects_action_item(marker: str, expected: str) -> None:
    assert compose_note(marker) == expected


def test_compose_note_defaults_to_clarify_and_handles_empty_text() -> None:
    assert compose_note("RFI - something else").endswith(ACTION_CLARIFY)
    assert compose_note("RFI - ") == f"The auditor noted that . {ACTION_CLARIFY}"
    assert compose_note("RFI without dash") == f"The auditor noted that RFI without dash. {ACTION_CLARIFY}"


def test_classification_boundary_is_inclusive_for_general() -> None:
    assert bucket_for(_group("four", 4)) is IssueBucket.GENERAL
    assert bucket_for(_group("three", 3)) is IssueBucket.SPECIFIC

    buckets = classify_groups([_group("a", 5), _group("b", 1), _group("c", 4), _group("d", 2)])

    assert [g.marker_text for g in buckets.general] == ["a", "c"]
    assert [g.marker_text for g in buckets.specific] == ["b", "d"]


def test_compute_ranges() -> None:
    ranges = compute_ranges(14, 42, 3, 1)

    assert ranges[IssueBucket.GENERAL] == "C14:D16"
    assert ranges[IssueBucket.SPECIFIC] == "C42:D42"
    assert compute_ranges(14, 42, 0, 2)[IssueBucket.GENERAL] == "C14:D13"
    with pytest.raises(ValueError):
        compute_ranges(0, 42, 1, 1)
    with pytest.raises(ValueError):
        compute_ranges(14, 42, -1, 1)


def test_groups_to_rows_joins_identifiers() -> None:
    group = MarkerGroup(
        marker_text="RFI - x",
        affected_records=[AffectedRecord("D3", "ID1"), AffectedRecord("D4", None), AffectedRecord("D5", "ID3")],
    )
    compose_groups([group])

    assert groups_to_rows([group]) == [["The auditor noted that x. Can you please clarify?", "ID1, ID3"]]


def test_groups_to_rows_requires_composed_note() -> None:
    with pytest.raises(ValueError):
        groups_to_rows([_group("RFI - x", 1)])


def test_end_to_end_scan_group_classify_compose() -> None:
    grid = [
        ["Header 1"],
        ["Header 2"],
        ["", "", "ITEM1", "RFI - not been uploaded", ""],
        ["", "", "ITEM2", "RFI - not been uploaded", ""],
    ]

    records = scan_cells(grid, "RFI")
    flat = [record for row in records for record in row]
    groups = compose_groups(group_markers(records))
    buckets = classify_groups(groups)

    assert len(flat) == 2
    assert flat[0].marker_text == flat[1].marker_text
    assert len(groups) == 1
    assert groups[0].affected_records == [AffectedRecord("D3", "ITEM1"), AffectedRecord("D4", "ITEM2")]
    assert buckets.general == []
    assert buckets.specific == groups
    assert groups[0].composed_note == (
        "The auditor noted that not been uploaded. Can you please provide this documentation?"
    )
