from __future__ import annotations

from typing import Any, Dict, List, Sequence

import pytest

from rfi_workflow.config import AppConfig
from rfi_workflow.errors import RemoteWriteError


class FakeSheets:
    """In-memory stand-in for GoogleSheetsClient that records every call."""

    def __init__(self, sheets: Dict[tuple, List[List[Any]]] | None = None) -> None:
        self.sheets = dict(sheets or {})
        self.writes: List[tuple] = []
        self.clears: List[tuple] = []
        self.copies: List[tuple] = []
        self.fail_addresses: set[str] = set()
        self.fail_sheets: set[str] = set()
        self.existing_names: set[str] = set()

    def read_used_range(self, spreadsheet_id: str, sheet_name: str) -> List[List[Any]]:
        return [list(row) for row in self.sheets[(spreadsheet_id, sheet_name)]]

    def patch_range(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        address: str,
        values: Sequence[Sequence[Any]],
    ) -> None:
        if address in self.fail_addresses or sheet_name in self.fail_sheets:
            raise RemoteWriteError(f"write {address}", "HTTP 400: boom")
        self.writes.append((spreadsheet_id, sheet_name, address, [list(row) for row in values]))

    def clear_ranges(self, spreadsheet_id: str, sheet_name: str, ranges: Sequence[str]) -> None:
        self.clears.append((spreadsheet_id, sheet_name, list(ranges)))

    def unique_file_name(self, folder_id: str, base_name: str) -> str:
        name = base_name
        counter = 0
        while name in self.existing_names:
            counter += 1
            name = f"{base_name} ({counter})"
        return name

    def copy_file(self, file_id: str, name: str, folder_id: str) -> Dict[str, str]:
        self.copies.append((file_id, name, folder_id))
        return {"id": "copy-1", "name": name}


@pytest.fixture
def fake_sheets() -> FakeSheets:
    return FakeSheets()


def build_config(**overrides: Any) -> AppConfig:
    data: Dict[str, Any] = {
        "sheets": {
            "credentials_file": "creds.json",
            "template_file_id": "template-1",
        },
        "responses": {"row_windows": [[14, 34], [42, 141]]},
        "drafting": {"batch_size": 6},
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key] = {**data[key], **value}
        else:
            data[key] = value
    return AppConfig.model_validate(data)


@pytest.fixture
def app_config() -> AppConfig:
    return build_config()
