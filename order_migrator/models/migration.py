from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

"""Migration options and result models.

Each pass (customers / orders) returns its own immutable PassStats; the
orchestrator merges them into MigrationStats once both passes are done.
MigrationResult.to_dict() renders the JSON shape returned to the operator.
"""

__all__ = [
    "MigrationOptions",
    "PassStats",
    "MigrationStats",
    "MigrationResult",
]


@dataclass(frozen=True)
class MigrationOptions:
    """Flags for a single migration run."""
    dry_run: bool = False
    skip_existing: bool = True  # 已存在則跳過 (first write wins)
    sync_orders: bool = True
    sync_customers: bool = True


@dataclass(frozen=True)
class PassStats:
    """Counters returned by one pass."""
    processed: int = 0  # 寫入 (dry run 時為預計寫入) 筆數
    skipped: int = 0  # skip_existing 時已存在而跳過
    items_processed: int = 0
    deleted: int = 0
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class MigrationStats:
    orders_processed: int = 0
    customers_processed: int = 0
    products_processed: int = 0  # order_items 筆數
    orders_deleted: int = 0
    skipped: int = 0
    errors: tuple[str, ...] = ()

    @classmethod
    def merge(cls, customers: PassStats, orders: PassStats) -> MigrationStats:
        return cls(
            orders_processed=orders.processed,
            customers_processed=customers.processed,
            products_processed=orders.items_processed,
            orders_deleted=orders.deleted,
            skipped=customers.skipped + orders.skipped,
            errors=orders.errors + customers.errors,
        )


@dataclass(frozen=True)
class MigrationResult:
    """Summary of one run.

    `success` is False whenever any row-level error was recorded, even though
    other rows may have been written.
    """
    success: bool
    message: str
    stats: MigrationStats
    sheet_id: str = ""
    dry_run: bool = False
    start_time: datetime | None = None
    end_time: datetime | None = None
    error_log_path: str | None = field(default=None, compare=False)

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "stats": {
                "ordersProcessed": self.stats.orders_processed,
                "customersProcessed": self.stats.customers_processed,
                "productsProcessed": self.stats.products_processed,
                "ordersDeleted": self.stats.orders_deleted,
                "errors": list(self.stats.errors),
            },
        }

    @classmethod
    def failure(cls, message: str) -> MigrationResult:
        """Result body for a run that aborted before any pass completed."""
        return cls(
            success=False,
            message=message,
            stats=MigrationStats(errors=(message,)),
        )
