from __future__ import annotations

import logging
from typing import Any, Protocol

"""Write-back seam towards the source spreadsheet.

Changes made by the importer (currently: reconciliation deletions) are
announced here. The default notifier only logs; nothing is written back to
Google Sheets.
"""

__all__ = [
    "SourceNotifier",
    "LoggingSourceNotifier",
]

logger = logging.getLogger(__name__)


class SourceNotifier(Protocol):
    def notify_source_of_change(self, entity: str, change: dict[str, Any]) -> None: ...


class LoggingSourceNotifier:
    def notify_source_of_change(self, entity: str, change: dict[str, Any]) -> None:
        logger.debug("source change %s: %s", entity, change)
