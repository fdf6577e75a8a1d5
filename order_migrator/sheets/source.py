from __future__ import annotations

from typing import Any, Protocol

"""Sheet source interface and errors.

A source returns the raw rows of one named sheet as lists of strings; the
first row is the header. Failures here are run-level (fatal) for the orders
sheet and best effort for the customers sheet.
"""

__all__ = [
    "SheetRows",
    "SheetSource",
    "SourceError",
    "SourceAuthError",
    "SourceFetchError",
    "cell_to_str",
]

SheetRows = list[list[str]]


class SourceError(Exception):
    """Base class for sheet source failures."""


class SourceAuthError(SourceError):
    """Credentials missing/invalid or token exchange rejected."""


class SourceFetchError(SourceError):
    """Sheet could not be read (HTTP error, missing sheet, unreadable file)."""


class SheetSource(Protocol):
    def get_rows(self, sheet_name: str) -> SheetRows: ...


def cell_to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
