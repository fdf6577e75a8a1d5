from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from order_migrator.models.error_record import ErrorRecord

"""Error log buffering module.

Row-level failures are buffered in memory during a run and written once at the
end as JSON Lines to `<directory>/errors-YYYYMMDD-HHMMSS.log` (UTC).
The file is only created when at least one record was buffered.
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer for error records. Flush writes JSON Lines.

    - flush() 時才建立檔案並一次追加寫入
    - 檔案路徑於第一次需要時決定, 之後的 flush 追加到同一檔案
    - 不需執行緒安全 (單一 run 內循序處理)
    """
    def __init__(self, directory: Path | str | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._directory = Path(directory) if directory is not None else LOGS_DIR
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._directory.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._directory / f"errors-{stamp}.log"
        return self._file_path

    @property
    def records(self) -> tuple[ErrorRecord, ...]:
        return tuple(self._records)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:  # pragma: no cover (trivial)
        return len(self._records)

    def flush(self) -> Path | None:
        """Write buffered records; returns the log path or None when empty."""
        if not self._records:
            return self._file_path
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
