from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Type

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import Resource
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest
from httplib2 import HttpLib2Error

from .addressing import pad_rows, parse_range_rows
from .config import SheetsConfig
from .errors import RemoteReadError, RemoteWriteError, RfiWorkflowError

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"

LOGGER = logging.getLogger(__name__)

_MAX_NAME_ATTEMPTS = 100


def qualified_range(sheet_name: str, address: str | None = None) -> str:
    """A1 notation with the sheet name quoted, e.g. ``'RFI Spreadsheet'!C14:D20``."""

    quoted = "'" + sheet_name.replace("'", "''") + "'"
    return f"{quoted}!{address}" if address else quoted


class GoogleSheetsClient:
    """Thin wrapper around the Google Sheets and Drive APIs for this project.

    Calls are not retried: any failure is raised as :class:`RemoteReadError`
    or :class:`RemoteWriteError` and aborts the run.
    """

    def __init__(self, conf: SheetsConfig) -> None:
        self._conf = conf
        self._credentials: Credentials | None = None
        self._service: Resource | None = None
        self._drive: Resource | None = None

    def _creds(self) -> Credentials:
        if self._credentials is None:
            self._credentials = Credentials.from_service_account_file(
                str(self._conf.credentials_file), scopes=SCOPES
            )
        return self._credentials

    def _service_client(self) -> Resource:
        if self._service is None:
            self._service = build("sheets", "v4", credentials=self._creds())
        return self._service

    def _drive_client(self) -> Resource:
        if self._drive is None:
            self._drive = build("drive", "v3", credentials=self._creds())
        return self._drive

    # Reading -----------------------------------------------------------------
    def read_used_range(self, spreadsheet_id: str, sheet_name: str) -> List[List[Any]]:
        """Load every value of a sheet as a rectangular grid; row 0 is sheet row 1."""

        def _build_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=spreadsheet_id,
                    range=qualified_range(sheet_name),
                    valueRenderOption="UNFORMATTED_VALUE",
                )
            )

        operation = f"read '{sheet_name}'"
        result = self._execute(_build_request, operation=operation, error_cls=RemoteReadError)
        values = result.get("values") if isinstance(result, dict) else None
        if values is None:
            raise RemoteReadError(operation, "sheet returned no values")
        return pad_rows(values)

    def list_files(
        self,
        folder_id: str,
        name_contains: str | None = None,
    ) -> List[Dict[str, str]]:
        """List ``{"id", "name"}`` of the spreadsheets directly inside a folder."""

        query = (
            f"'{folder_id}' in parents and trashed = false "
            f"and mimeType = '{SPREADSHEET_MIME_TYPE}'"
        )
        if name_contains:
            escaped = name_contains.replace("\\", "\\\\").replace("'", "\\'")
            query += f" and name contains '{escaped}'"

        files: List[Dict[str, str]] = []
        page_token: Optional[str] = None
        while True:

            def _build_request(token: Optional[str] = page_token) -> HttpRequest:
                drive = self._drive_client()
                return drive.files().list(
                    q=query,
                    fields="nextPageToken, files(id, name)",
                    orderBy="name",
                    pageToken=token,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                )

            result = self._execute(
                _build_request, operation=f"list folder {folder_id}", error_cls=RemoteReadError
            )
            files.extend(
                {"id": item["id"], "name": item["name"]} for item in result.get("files", [])
            )
            page_token = result.get("nextPageToken")
            if not page_token:
                return files

    # Writing -----------------------------------------------------------------
    def patch_range(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        address: str,
        values: Sequence[Sequence[Any]],
    ) -> None:
        """Replace the rectangle at ``address`` with ``values``."""

        operation = f"write '{sheet_name}'!{address}"
        rows = [list(row) for row in values]
        span = parse_range_rows(address)
        if span is None or span[1] < span[0]:
            raise RemoteWriteError(operation, "range address is malformed or empty")
        expected_rows = span[1] - span[0] + 1
        if expected_rows != len(rows):
            raise RemoteWriteError(
                operation,
                f"payload has {len(rows)} rows but the range spans {expected_rows}",
            )

        def _update_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .update(
                    spreadsheetId=spreadsheet_id,
                    range=qualified_range(sheet_name, address),
                    valueInputOption="RAW",
                    body={"majorDimension": "ROWS", "values": rows},
                )
            )

        self._execute(_update_request, operation=operation, error_cls=RemoteWriteError)
        LOGGER.info("Updated %s rows at '%s'!%s", len(rows), sheet_name, address)

    def clear_ranges(self, spreadsheet_id: str, sheet_name: str, ranges: Sequence[str]) -> None:
        if not ranges:
            return

        def _clear_request() -> HttpRequest:
            service = self._service_client()
            return (
                service.spreadsheets()
                .values()
                .batchClear(
                    spreadsheetId=spreadsheet_id,
                    body={"ranges": [qualified_range(sheet_name, rng) for rng in ranges]},
                )
            )

        self._execute(
            _clear_request,
            operation=f"clear '{sheet_name}' {', '.join(ranges)}",
            error_cls=RemoteWriteError,
        )
        LOGGER.info("Cleared %s in '%s'", ", ".join(ranges), sheet_name)

    def unique_file_name(self, folder_id: str, base_name: str) -> str:
        """Return ``base_name`` or ``"base_name (n)"`` so it is unused in the folder."""

        existing = {
            item["name"]
            for item in self.list_files(folder_id, base_name)
        }
        if base_name not in existing:
            return base_name
        for counter in range(1, _MAX_NAME_ATTEMPTS + 1):
            candidate = f"{base_name} ({counter})"
            if candidate not in existing:
                return candidate
        raise RemoteWriteError(
            f"name copy of '{base_name}'",
            f"no free name after {_MAX_NAME_ATTEMPTS} attempts",
        )

    def copy_file(self, file_id: str, name: str, folder_id: str) -> Dict[str, str]:
        """Copy a Drive file into ``folder_id`` and return the new ``{"id", "name"}``."""

        def _copy_request() -> HttpRequest:
            drive = self._drive_client()
            return drive.files().copy(
                fileId=file_id,
                body={"name": name, "parents": [folder_id]},
                fields="id, name",
                supportsAllDrives=True,
            )

        operation = f"copy file {file_id}"
        result = self._execute(_copy_request, operation=operation, error_cls=RemoteWriteError)
        if not isinstance(result, dict) or not result.get("id"):
            raise RemoteWriteError(operation, "copy returned no file id")
        LOGGER.info("Copied template to '%s'", result.get("name", name))
        return {"id": result["id"], "name": result.get("name", name)}

    # Helpers -----------------------------------------------------------------
    @staticmethod
    def build_file_url(spreadsheet_id: str) -> str:
        return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit"

    # Internal ----------------------------------------------------------------
    def _execute(
        self,
        request_builder: Callable[[], HttpRequest],
        *,
        operation: str,
        error_cls: Type[RfiWorkflowError],
    ) -> dict:
        """Execute an API request, translating transport failures into ``error_cls``."""

        try:
            return request_builder().execute()
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            LOGGER.error("Google API %s failed with status %s", operation, status)
            raise error_cls(operation, f"HTTP {status}: {exc}") from exc
        except (HttpLib2Error, OSError) as exc:
            LOGGER.error("Google API %s failed: %s", operation, exc)
            raise error_cls(operation, str(exc)) from exc
