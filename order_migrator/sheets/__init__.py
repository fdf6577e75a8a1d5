"""Sheet sources: Google Sheets API and exported workbooks."""

from __future__ import annotations

from pathlib import Path

from .google import GoogleSheetsSource
from .source import SheetRows, SheetSource, SourceAuthError, SourceError, SourceFetchError
from .workbook import WorkbookSource

__all__ = [
    "GoogleSheetsSource",
    "SheetRows",
    "SheetSource",
    "SourceAuthError",
    "SourceError",
    "SourceFetchError",
    "WorkbookSource",
    "open_sheet_source",
]


def open_sheet_source(sheet_id: str, workbook: Path | str | None = None) -> SheetSource:
    """Workbook source when a file is given, otherwise the Sheets API."""
    if workbook is not None:
        return WorkbookSource(workbook)
    return GoogleSheetsSource(sheet_id)
