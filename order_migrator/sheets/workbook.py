from __future__ import annotations

import zipfile
from pathlib import Path

import pandas as pd

from .source import SheetRows, SourceFetchError, cell_to_str

"""Workbook source: an .xlsx export of the order spreadsheet.

Used for offline dry runs and --inspect-data. Sheets are read without a header
(the first row stays a data row, as with the Sheets API) and every cell as
text; "NA"/"N/A" strings are kept as-is instead of turning into NaN.

Row positions are preserved (blank rows included) because order identity is
the row index.
"""

__all__ = [
    "WorkbookSource",
    "read_sheet_rows",
]


def read_sheet_rows(xls: pd.ExcelFile, sheet_name: str) -> SheetRows:
    """Read one sheet as a list of string rows, trailing empty cells trimmed."""
    df = xls.parse(sheet_name, header=None, dtype=str, keep_default_na=False)
    rows: SheetRows = []
    for raw in df.itertuples(index=False, name=None):
        cells = [cell_to_str(v) for v in raw]
        while cells and cells[-1].strip() == "":
            cells.pop()
        rows.append(cells)
    return rows


class WorkbookSource:
    """Sheet source backed by a local .xlsx file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._xls: pd.ExcelFile | None = None

    @property
    def sheet_names(self) -> list[str]:
        return [str(n) for n in self._open().sheet_names]

    def _open(self) -> pd.ExcelFile:
        if self._xls is None:
            if not self.path.exists():
                raise SourceFetchError(f"workbook not found: {self.path}")
            try:
                self._xls = pd.ExcelFile(self.path)
            except (ValueError, OSError, zipfile.BadZipFile) as e:
                raise SourceFetchError(f"unreadable workbook {self.path.name}: {e}") from e
        return self._xls

    def get_rows(self, sheet_name: str) -> SheetRows:
        if sheet_name not in self.sheet_names:
            raise SourceFetchError(f"sheet '{sheet_name}' not found in {self.path.name}")
        return read_sheet_rows(self._open(), sheet_name)
