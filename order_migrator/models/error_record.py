from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

One record per recoverable row-level failure (parse, upsert, delete, item
write). Sheet-level failures use row=-1 as sentinel.

Serialized as one JSON object per line with a fixed key set.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        sheet: Sheet name being migrated (e.g. "Sheet1", "客戶名單")
        row: Spreadsheet row number (1-based, header = 1). -1 when unknown
        entity: Human readable identity of the record (order number, phone)
        error_type: Error classification in UPPER_SNAKE_CASE format
        message: Error message from parser or store
    """
    timestamp: str  # ISO8601 UTC
    sheet: str
    row: int  # 行號, 未知時 -1
    entity: str
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(sheet: str, row: int, entity: str, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            sheet=sheet,
            row=row,
            entity=entity,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize to a single JSON line (no extra keys)."""
        return json.dumps(asdict(self), ensure_ascii=False)
