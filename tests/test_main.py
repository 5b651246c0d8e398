import json

import pytest

from rfi_workflow import main as cli
from rfi_workflow.errors import PartialWriteError, RemoteWriteError

from conftest import FakeSheets

CONFIG = """
sheets:
  credentials_file: creds.json
  template_file_id: template-1
responses:
  row_windows: [[14, 34], [42, 141]]
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


@pytest.fixture
def sheets(monkeypatch) -> FakeSheets:
    fake = FakeSheets()
    fake.list_files = lambda folder_id, pattern=None: [{"id": "1", "name": f"{folder_id}:{pattern}"}]
    monkeypatch.setattr(cli, "GoogleSheetsClient", lambda conf: fake)
    return fake


def test_files_command_prints_listing(config_file, sheets, capsys) -> None:
    assert cli.main(["--config", str(config_file), "files", "folder-1", "--pattern", "Testing"]) == 0

    assert json.loads(capsys.readouterr().out) == [{"id": "1", "name": "folder-1:Testing"}]


def test_responses_requires_llm_section(config_file, sheets) -> None:
    assert cli.main(["--config", str(config_file), "responses", "wb"]) == 2


def test_testing_command_reports_partial_writes(config_file, sheets, monkeypatch) -> None:
    def _fail(*args, **kwargs):
        raise PartialWriteError(["C42:D42"], {"C14:D14": RemoteWriteError("write", "boom")})

    monkeypatch.setattr(cli, "process_testing_workbook", _fail)

    args = ["--config", str(config_file), "testing", "wb", "--client", "Acme", "--folder", "f"]
    assert cli.main(args) == 1


def test_testing_command_without_rfis_succeeds(config_file, sheets) -> None:
    sheets.sheets[("wb", "Testing")] = [["h"], ["h"], ["", "", "ID1", "ok"]]

    args = ["--config", str(config_file), "testing", "wb", "--client", "Acme", "--folder", "f"]
    assert cli.main(args) == 0
    assert sheets.writes == []


def test_missing_knowledge_base_exits_with_error(tmp_path, sheets) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        CONFIG
        + "llm:\n  providers:\n    1:\n      model: gpt-4o\n      api_key: key\n"
        + "drafting:\n  knowledge_base_path: missing.yaml\n",
        encoding="utf-8",
    )

    assert cli.main(["--config", str(path), "responses", "wb"]) == 1


def test_missing_template_exits_with_error(tmp_path, sheets) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG.replace("  template_file_id: template-1\n", ""), encoding="utf-8")
    sheets.sheets[("wb", "Testing")] = [["h"], ["h"], ["", "", "ID1", "RFI - x"]]
    sheets.sheets[("wb", "RFI Spreadsheet")] = [["copied"]]

    args = ["--config", str(path), "testing", "wb", "--client", "Acme", "--folder", "f"]
    assert cli.main(args) == 1
    assert sheets.copies == []
