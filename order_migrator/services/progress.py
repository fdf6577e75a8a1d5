from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm

"""Row progress display with tqdm (TTY only).

One bar per pass (customers, orders). In non-TTY environments (CI, the HTTP
trigger under a process manager) no bar is created so the log output stays
free of ANSI control sequences.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """tqdm wrapper counting processed rows of one sheet."""

    def __init__(self, total_rows: int, *, description: str = "rows") -> None:
        self.total_rows = total_rows
        self.description = description
        self.current_row = 0
        self.enabled = is_tty_enabled()
        self.pbar: Any | None = None
        if self.enabled:
            self.pbar = tqdm(
                total=total_rows,
                desc=description,
                unit="row",
                leave=True,
                ncols=80,
                ascii=True,
            )

    def advance(self, n: int = 1) -> None:
        self.current_row += n
        if self.pbar is not None:
            self.pbar.update(n)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
