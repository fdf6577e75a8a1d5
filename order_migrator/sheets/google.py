from __future__ import annotations

import base64
import json
import logging
import os
from pathlib import Path
from typing import Any

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .source import SheetRows, SourceAuthError, SourceFetchError, cell_to_str

"""Google Sheets API v4 source (service account).

Credentials are resolved from, in order:
    GOOGLE_SERVICE_ACCOUNT_KEY   service account JSON as a string
    GOOGLE_SERVICE_ACCOUNT_B64   the same JSON, base64 encoded
    GOOGLE_APPLICATION_CREDENTIALS  path to the JSON key file
The token exchange happens on the first request, so auth failures surface from
get_rows() as SourceAuthError.
"""

__all__ = [
    "SHEETS_SCOPES",
    "GoogleSheetsSource",
    "load_service_account_info",
]

logger = logging.getLogger(__name__)

SHEETS_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets.readonly",
]


def load_service_account_info() -> dict[str, Any]:
    """Read the service account key from the environment."""
    try:
        raw = os.getenv("GOOGLE_SERVICE_ACCOUNT_KEY")
        if raw:
            return json.loads(raw)
        b64 = os.getenv("GOOGLE_SERVICE_ACCOUNT_B64")
        if b64:
            return json.loads(base64.b64decode(b64).decode("utf-8"))
        path = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if path:
            return json.loads(Path(path).read_text(encoding="utf-8"))
    except (ValueError, OSError) as e:
        raise SourceAuthError(f"invalid service account key: {e}") from e
    raise SourceAuthError("Google service account key is not configured")


def _a1_sheet(sheet_name: str) -> str:
    # 以整張工作表為範圍 (單引號需跳脫)
    return "'" + sheet_name.replace("'", "''") + "'"


class GoogleSheetsSource:
    """Reads whole sheets of one spreadsheet through the Sheets API."""

    def __init__(
        self,
        spreadsheet_id: str,
        credentials: Credentials | None = None,
        service: Any = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self._credentials = credentials
        self._service = service

    @property
    def service(self) -> Any:
        if self._service is None:
            creds = self._credentials
            if creds is None:
                info = load_service_account_info()
                try:
                    creds = Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
                except (ValueError, KeyError) as e:
                    raise SourceAuthError(f"invalid service account key: {e}") from e
            self._service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        return self._service

    def get_rows(self, sheet_name: str) -> SheetRows:
        try:
            resp = (
                self.service.spreadsheets()
                .values()
                .get(spreadsheetId=self.spreadsheet_id, range=_a1_sheet(sheet_name))
                .execute()
            )
        except GoogleAuthError as e:
            raise SourceAuthError(f"Google auth failed: {e}") from e
        except HttpError as e:
            status = getattr(e, "status_code", None) or getattr(e.resp, "status", None)
            if status in (401, 403):
                raise SourceAuthError(f"Google Sheets API {status}: {e}") from e
            raise SourceFetchError(f"Google Sheets API {status}: {e}") from e
        except httplib2.HttpLib2Error as e:
            # DNS / 連線層錯誤 (ServerNotFoundError 等)
            raise SourceFetchError(f"Google Sheets request failed: {e}") from e
        except OSError as e:
            raise SourceFetchError(f"Google Sheets request failed: {e}") from e

        values = resp.get("values", [])
        logger.debug("sheet=%s fetched_rows=%d", sheet_name, len(values))
        return [[cell_to_str(v) for v in row] for row in values]
