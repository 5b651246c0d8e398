import pytest

from rfi_workflow.addressing import (
    cell_reference,
    column_index,
    column_letter,
    grid_range_address,
    pad_rows,
    parse_range_rows,
    split_cell_reference,
)


@pytest.mark.parametrize(
    "index, letters",
    [(0, "A"), (2, "C"), (25, "Z"), (26, "AA"), (35, "AJ"), (51, "AZ"), (701, "ZZ"), (702, "AAA")],
)
def test_column_letter_known_values(index: int, letters: str) -> None:
    assert column_letter(index) == letters
    assert column_index(letters) == index


def test_column_letter_round_trips_first_thousand_columns() -> None:
    for index in range(1000):
        assert column_index(column_letter(index)) == index


def test_column_letter_rejects_negative_and_non_integer() -> None:
    with pytest.raises(ValueError):
        column_letter(-1)
    with pytest.raises(TypeError):
        column_letter(1.5)


def test_column_index_is_case_insensitive_and_validates() -> None:
    assert column_index("aj") == 35
    with pytest.raises(ValueError):
        column_index("A1")
    with pytest.raises(ValueError):
        column_index("")


def test_cell_reference_and_split() -> None:
    assert cell_reference(5, 4) == "E5"
    assert split_cell_reference("E5") == (5, 4)
    assert split_cell_reference("$AA$10") == (10, 26)
    with pytest.raises(ValueError):
        cell_reference(0, 1)
    with pytest.raises(ValueError):
        split_cell_reference("5E")


def test_parse_range_rows_handles_sheet_prefix_and_single_cell() -> None:
    assert parse_range_rows("'RFI Spreadsheet'!C14:D20") == (14, 20)
    assert parse_range_rows("F13") == (13, 13)
    assert parse_range_rows("") is None
    assert parse_range_rows("C:D") is None


def test_grid_range_address_uses_widest_row() -> None:
    assert grid_range_address([["a", "b"], ["c"]]) == "A1:B2"
    assert grid_range_address([["x"]], "B5") == "B5:B5"
    with pytest.raises(ValueError):
        grid_range_address([])


def test_pad_rows_makes_grid_rectangular() -> None:
    assert pad_rows([["a"], [], ["b", "c"]]) == [["a", ""], ["", ""], ["b", "c"]]
