from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..config.loader import default_config
from ..db.store import Store
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.config_models import MigrationConfig
from ..models.migration import MigrationOptions, MigrationResult, MigrationStats, PassStats
from ..models.records import OrderItem, Product
from ..parsing import (
    build_header_map,
    is_blank_order_row,
    normalize_phone,
    parse_customer_row,
    parse_items_string,
    parse_order_row,
)
from ..sheets.source import SheetRows, SheetSource, SourceError
from .notifier import LoggingSourceNotifier, SourceNotifier
from .progress import ProgressTracker
from .retry import RetryPolicy

"""Reconciling importer: Google Sheets -> customers / orders / order_items.

run_migration() performs one run:

1. fetch the orders sheet (fatal on failure) and the customers sheet (best
   effort)
2. customers pass: upsert on normalized phone
3. orders pass: delete orders whose row disappeared from the sheet, then
   upsert every non-blank row on google_sheet_id and fully replace its items

Every store call goes through RetryPolicy. Row-level failures are recorded in
the result's error list and the JSON Lines error log; they never abort the
run. A dry run issues no mutating store call at all.
"""

__all__ = [
    "MigrationError",
    "run_migration",
    "load_catalog",
    "CUSTOMERS_TABLE",
    "ORDERS_TABLE",
    "ORDER_ITEMS_TABLE",
    "PRODUCTS_TABLE",
]

logger = logging.getLogger(__name__)

CUSTOMERS_TABLE = "customers"
ORDERS_TABLE = "orders"
ORDER_ITEMS_TABLE = "order_items"
PRODUCTS_TABLE = "products"

SYNC_LOG_TABLE_NAME = "migrate_sheets"

# error_type per stage of a row
_ERROR_TYPES = {
    "parse": "PARSE_ERROR",
    "lookup": "LOOKUP_ERROR",
    "upsert": "UPSERT_ERROR",
    "items": "ORDER_ITEMS_ERROR",
    "delete": "DELETE_ERROR",
}


class MigrationError(Exception):
    """Run-level failure (invalid invocation)."""
    pass


@dataclass(frozen=True)
class _PassContext:
    """Collaborators and settings shared by both passes of one run."""
    options: MigrationOptions
    config: MigrationConfig
    store: Store | None
    retry: RetryPolicy
    error_log: ErrorLogBuffer
    notifier: SourceNotifier
    imported_at: datetime

    def record(self, sheet: str, row: int, entity: str, stage: str, message: str) -> None:
        self.error_log.append(
            ErrorRecord.create(
                sheet=sheet,
                row=row,
                entity=entity,
                error_type=_ERROR_TYPES.get(stage, "PROCESSING_ERROR"),
                message=message,
            )
        )


def run_migration(
    sheet_id: str,
    options: MigrationOptions | None = None,
    *,
    source: SheetSource,
    store: Store | None = None,
    config: MigrationConfig | None = None,
    error_log: ErrorLogBuffer | None = None,
    notifier: SourceNotifier | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> MigrationResult:
    """Run one migration of the given spreadsheet.

    Args:
        sheet_id: Google spreadsheet id (also recorded in the SUMMARY line)
        options: Run flags (dry run, skip existing, pass toggles)
        source: Sheet reader
        store: Database store. None is accepted for dry runs only
            (offline dry run: no lookups, no catalog)
        config: Migration config (defaults when omitted)
        error_log: Error log buffer (created from config when omitted)
        notifier: Write-back seam, called after each reconciliation deletion
        sleep: Injected for tests (retry backoff)

    Returns:
        MigrationResult; success is False whenever any row error was recorded

    Raises:
        MigrationError: Blank sheet id or no store for a live run
        SourceError: The orders sheet could not be fetched
    """
    options = options or MigrationOptions()
    config = config or default_config()
    if not sheet_id or not str(sheet_id).strip():
        raise MigrationError("sheet id is required")
    if store is None and not options.dry_run:
        raise MigrationError("a database store is required unless dry_run is set")

    start_time = datetime.now(UTC)
    ctx = _PassContext(
        options=options,
        config=config,
        store=store,
        retry=RetryPolicy.from_config(config.retry, sleep=sleep),
        error_log=error_log if error_log is not None else ErrorLogBuffer(config.error_log_directory),
        notifier=notifier if notifier is not None else LoggingSourceNotifier(),
        imported_at=start_time,
    )
    logger.info(
        "migration start sheet=%s mode=%s skip_existing=%s orders=%s customers=%s",
        sheet_id,
        "dry-run" if options.dry_run else "live",
        options.skip_existing,
        options.sync_orders,
        options.sync_customers,
    )
    _record_sync_event(ctx, "MIGRATION_START", "pending", {
        "sheetId": sheet_id,
        "skipExisting": options.skip_existing,
        "timestamp": start_time.isoformat(),
    })

    try:
        order_rows, customer_rows = _fetch_sheets(source, ctx)
    except SourceError as e:
        _record_sync_event(ctx, "MIGRATION_ERROR", "failed", {"sheetId": sheet_id}, error=str(e))
        raise

    customers = _migrate_customers(customer_rows, ctx) if options.sync_customers else PassStats()
    orders = _migrate_orders(order_rows, ctx) if options.sync_orders else PassStats()
    stats = MigrationStats.merge(customers, orders)

    success = not stats.errors
    if options.dry_run:
        message = "dry run completed"
    elif success:
        message = "migration completed"
    else:
        message = "migration completed with errors"

    # 錯誤日誌於 run 結束時一次寫出
    log_path = None
    try:
        log_path = ctx.error_log.flush()
    except OSError as e:
        logger.warning("failed to write error log: %s", e)
    if log_path is not None:
        logger.info("error log written: %s", log_path)

    end_time = datetime.now(UTC)
    result = MigrationResult(
        success=success,
        message=message,
        stats=stats,
        sheet_id=str(sheet_id),
        dry_run=options.dry_run,
        start_time=start_time,
        end_time=end_time,
        error_log_path=str(log_path) if log_path is not None else None,
    )
    _record_sync_event(
        ctx,
        "MIGRATION_COMPLETE",
        "completed" if success else "failed",
        {"sheetId": sheet_id, **result.to_dict()},
    )
    return result


def _fetch_sheets(source: SheetSource, ctx: _PassContext) -> tuple[SheetRows, SheetRows]:
    sheets_cfg = ctx.config.spreadsheet
    order_rows: SheetRows = []
    customer_rows: SheetRows = []
    if ctx.options.sync_orders:
        order_rows = source.get_rows(sheets_cfg.orders_sheet)
        logger.info("fetched %d rows from '%s'", len(order_rows), sheets_cfg.orders_sheet)
    if ctx.options.sync_customers:
        try:
            customer_rows = source.get_rows(sheets_cfg.customers_sheet)
            logger.info("fetched %d rows from '%s'", len(customer_rows), sheets_cfg.customers_sheet)
        except SourceError as e:
            # 客戶名單不存在也可以繼續 (只匯入訂單)
            logger.warning("customers sheet '%s' unavailable: %s", sheets_cfg.customers_sheet, e)
    return order_rows, customer_rows


def _migrate_customers(rows: SheetRows, ctx: _PassContext) -> PassStats:
    """Customers pass. Row 0 is the header; identity is the normalized phone."""
    if len(rows) <= 1:
        return PassStats()
    sheet = ctx.config.spreadsheet.customers_sheet
    header_map = build_header_map(rows[0])
    missing = [f for f in ("name", "phone") if f not in header_map]
    if missing:
        logger.warning("customers sheet header lacks %s; every row will be skipped", missing)

    store = ctx.store
    processed = 0
    skipped = 0
    errors: list[str] = []

    with ProgressTracker(len(rows) - 1, description="customers") as progress:
        for sheet_row, row in enumerate(rows[1:], start=2):
            progress.advance()
            stage = "parse"
            entity = ""
            try:
                customer = parse_customer_row(row, header_map, ctx.imported_at)
                if customer is None:
                    continue
                entity = customer.phone

                if ctx.options.dry_run or store is None:
                    logger.debug("dry run customer: %s", customer)
                    processed += 1
                    continue

                if ctx.options.skip_existing:
                    stage = "lookup"
                    existing = ctx.retry.call(
                        lambda: store.select(CUSTOMERS_TABLE, ["id"], phone=customer.phone),
                        label="customer lookup",
                    )
                    if existing:
                        logger.debug("customer exists: %s", customer.phone)
                        skipped += 1
                        continue

                stage = "upsert"
                ctx.retry.call(
                    lambda: store.upsert(CUSTOMERS_TABLE, customer.to_row(), on_conflict="phone"),
                    label="customer upsert",
                )
                processed += 1
            except Exception as e:
                message = f"customer row {sheet_row}: {e}"
                logger.error(message)
                errors.append(message)
                ctx.record(sheet, sheet_row, entity, stage, str(e))
            progress.set_postfix(ok=processed, err=len(errors))

    logger.info(
        "customers pass done processed=%d skipped=%d errors=%d", processed, skipped, len(errors)
    )
    return PassStats(processed=processed, skipped=skipped, errors=tuple(errors))


def load_catalog(store: Store, retry: RetryPolicy) -> dict[str, Product]:
    """Product catalog keyed by trimmed name (later duplicates win)."""
    rows = retry.call(
        lambda: store.select(PRODUCTS_TABLE, ["id", "name", "price"]), label="catalog load"
    )
    catalog: dict[str, Product] = {}
    for r in rows:
        name = str(r.get("name") or "").strip()
        if not name:
            continue
        catalog[name] = Product(id=r.get("id"), name=name, price=float(r.get("price") or 0))
    return catalog


def _migrate_orders(rows: SheetRows, ctx: _PassContext) -> PassStats:
    """Orders pass: reconciliation deletions, then per-row upsert + item replace."""
    if not rows:
        # 連 header 都沒有 (空白工作表) 時不做刪除比對
        return PassStats()
    sheet = ctx.config.spreadsheet.orders_sheet
    data_rows = rows[1:]
    store = ctx.store

    catalog: dict[str, Product] = {}
    if store is not None:
        try:
            catalog = load_catalog(store, ctx.retry)
        except Exception as e:
            # 商品表讀取失敗時, 單價改由訂單總額分攤
            logger.warning("product catalog unavailable, price backfill limited: %s", e)

    deleted = 0
    errors: list[str] = []
    if not ctx.options.dry_run and store is not None:
        deleted, delete_errors = _reconcile_deleted_orders(data_rows, store, ctx)
        errors.extend(delete_errors)

    processed = 0
    skipped = 0
    items_processed = 0
    defaults = ctx.config.defaults

    with ProgressTracker(len(data_rows), description="orders") as progress:
        for index, row in enumerate(data_rows, start=1):
            progress.advance()
            if is_blank_order_row(row):
                continue
            sheet_row = index + 1
            stage = "parse"
            entity = f"ORD-{index:03d}"
            try:
                order = parse_order_row(index, row, ctx.imported_at, defaults)
                if order is None:
                    continue
                entity = order.order_number

                if ctx.options.dry_run or store is None:
                    items = parse_items_string(order.items_raw, catalog, order.total_amount)
                    logger.debug("dry run order: %s items=%d", order.order_number, len(items))
                    items_processed += len(items)
                    processed += 1
                    continue

                if ctx.options.skip_existing:
                    stage = "lookup"
                    existing = ctx.retry.call(
                        lambda: store.select(
                            ORDERS_TABLE, ["id"], google_sheet_id=order.google_sheet_id
                        ),
                        label="order lookup",
                    )
                    if existing:
                        logger.debug("order exists: %s", order.order_number)
                        skipped += 1
                        continue

                customer_id = _resolve_customer_id(order.customer_phone, store, ctx.retry)

                stage = "upsert"
                stored = ctx.retry.call(
                    lambda: store.upsert(
                        ORDERS_TABLE, order.to_row(customer_id), on_conflict="google_sheet_id"
                    ),
                    label="order upsert",
                )
                order_id = stored.get("id")
                if order_id is None:
                    raise RuntimeError("upsert returned no order id")
                processed += 1

                # 訂單已寫入; 明細失敗只記錄錯誤, 訂單仍計入 processed
                stage = "items"
                items = parse_items_string(order.items_raw, catalog, order.total_amount)
                ctx.retry.call(
                    lambda: _replace_order_items(store, order_id, items),
                    label="order_items replace",
                )
                items_processed += len(items)
            except Exception as e:
                if stage == "items":
                    message = f"order {entity} (row {sheet_row}): order_items write failed: {e}"
                else:
                    message = f"order {entity} (row {sheet_row}): {e}"
                logger.error(message)
                errors.append(message)
                ctx.record(sheet, sheet_row, entity, stage, str(e))
            progress.set_postfix(ok=processed, err=len(errors))

    logger.info(
        "orders pass done processed=%d skipped=%d items=%d deleted=%d errors=%d",
        processed, skipped, items_processed, deleted, len(errors),
    )
    return PassStats(
        processed=processed,
        skipped=skipped,
        items_processed=items_processed,
        deleted=deleted,
        errors=tuple(errors),
    )


def _resolve_customer_id(phone: str, store: Store, retry: RetryPolicy) -> Any:
    """customers.id for the order's phone, or None (unknown phone / lookup failure)."""
    normalized = normalize_phone(phone)
    if not normalized:
        return None
    try:
        found = retry.call(
            lambda: store.select(CUSTOMERS_TABLE, ["id"], phone=normalized),
            label="customer link",
        )
    except Exception as e:
        logger.warning("customer link lookup failed for %s: %s", normalized, e)
        return None
    return found[0]["id"] if found else None


def _replace_order_items(store: Store, order_id: Any, items: Sequence[OrderItem]) -> None:
    # 全量替換: 明細為空時也會刪除舊明細
    with store.transaction():
        store.delete(ORDER_ITEMS_TABLE, order_id=order_id)
        if items:
            store.insert_many(ORDER_ITEMS_TABLE, [it.to_row(order_id) for it in items])


def _delete_order(store: Store, order_id: Any) -> None:
    with store.transaction():
        store.delete(ORDER_ITEMS_TABLE, order_id=order_id)
        store.delete(ORDERS_TABLE, id=order_id)


def _reconcile_deleted_orders(
    data_rows: SheetRows, store: Store, ctx: _PassContext
) -> tuple[int, list[str]]:
    """Delete stored orders whose sheet row no longer exists.

    Present ids are the 1-based indices of all non-blank data rows, so an
    order survives as long as its row is non-blank, even if it fails to parse.
    """
    sheet = ctx.config.spreadsheet.orders_sheet
    present = {
        index for index, row in enumerate(data_rows, start=1) if not is_blank_order_row(row)
    }
    try:
        existing = ctx.retry.call(
            lambda: store.select(
                ORDERS_TABLE,
                ["id", "google_sheet_id", "order_number"],
                not_null=("google_sheet_id",),
            ),
            label="order reconciliation lookup",
        )
    except Exception as e:
        message = f"order reconciliation: {e}"
        logger.error(message)
        ctx.record(sheet, -1, "", "lookup", str(e))
        return 0, [message]

    stale = [o for o in existing if int(o["google_sheet_id"]) not in present]
    if stale:
        logger.info("%d stored orders no longer in sheet; deleting", len(stale))

    deleted = 0
    errors: list[str] = []
    for o in stale:
        order_id = o["id"]
        sheet_index = int(o["google_sheet_id"])
        entity = str(o.get("order_number") or f"ORD-{sheet_index:03d}")
        try:
            ctx.retry.call(lambda: _delete_order(store, order_id), label="order delete")
        except Exception as e:
            message = f"order {entity} (google_sheet_id={sheet_index}): delete failed: {e}"
            logger.error(message)
            errors.append(message)
            ctx.record(sheet, sheet_index + 1, entity, "delete", str(e))
            continue
        deleted += 1
        logger.debug("deleted order %s (google_sheet_id=%d)", entity, sheet_index)
        try:
            ctx.notifier.notify_source_of_change(
                ORDERS_TABLE,
                {"action": "deleted", "id": order_id, "google_sheet_id": sheet_index},
            )
        except Exception as e:
            logger.warning("source notification failed for %s: %s", entity, e)
    return deleted, errors


def _record_sync_event(
    ctx: _PassContext,
    operation: str,
    status: str,
    data: dict[str, Any],
    *,
    error: str | None = None,
) -> None:
    """Append one row to sync_logs (live runs only; failures are only logged)."""
    if ctx.options.dry_run or ctx.store is None or not ctx.config.sync_log.enabled:
        return
    row = {
        "operation": operation,
        "table_name": SYNC_LOG_TABLE_NAME,
        "sync_status": status,
        "new_data": json.dumps(data, ensure_ascii=False, default=str),
        "error_message": error,
    }
    store = ctx.store
    try:
        store.insert_many(ctx.config.sync_log.table, [row])
    except Exception as e:
        logger.warning("sync log %s not recorded: %s", operation, e)
