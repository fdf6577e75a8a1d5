from __future__ import annotations

import argparse
import os
import sys
from contextlib import ExitStack
from datetime import UTC, datetime
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from order_migrator.config.loader import DEFAULT_CONFIG_PATH, ConfigError, default_config, load_config
from order_migrator.db.connection import open_connection
from order_migrator.db.store import PostgresStore
from order_migrator.logging.init import log_summary, set_debug, setup_logging
from order_migrator.models.config_models import MigrationConfig
from order_migrator.models.migration import MigrationOptions
from order_migrator.parsing import build_header_map, is_blank_order_row, parse_items_string, parse_order_row
from order_migrator.services.orchestrator import MigrationError, run_migration
from order_migrator.services.summary import render_summary_line
from order_migrator.sheets import SheetSource, SourceError, open_sheet_source

"""CLI entrypoint: python -m order_migrator.cli

Flow:
- Load .env (python-dotenv, .env wins over the process environment)
- Load config (--config, else config/migration.yml when present, else defaults)
- Open the sheet source (Google Sheets API, or --workbook for an exported .xlsx)
- Connect to Postgres; a dry run falls back to an offline dry run when the
  connection fails
- Run the migration, print the SUMMARY line, exit with the contract code
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv.

    override=True 讓 .env 的值覆蓋既有環境變數 (DB / Google 連線資訊以 .env 為準)。
    """
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Google Sheets -> Supabase order migrator")
    p.add_argument("--sheet-id", help="Google spreadsheet id (default: GOOGLE_SHEET_ID or config)")
    p.add_argument("--config", type=Path, help=f"Config YAML (default: {DEFAULT_CONFIG_PATH} if present)")
    p.add_argument("--dry-run", action="store_true", help="Parse and count only; no database writes")
    skip = p.add_mutually_exclusive_group()
    skip.add_argument(
        "--skip-existing", dest="skip_existing", action="store_true", default=None,
        help="Skip rows whose record already exists (default)",
    )
    skip.add_argument(
        "--no-skip-existing", dest="skip_existing", action="store_false",
        help="Refresh existing records from the sheet",
    )
    p.add_argument("--no-orders", action="store_true", help="Skip the orders pass")
    p.add_argument("--no-customers", action="store_true", help="Skip the customers pass")
    p.add_argument("--workbook", type=Path, help="Read sheets from an exported .xlsx instead of the API")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet headers & first rows then exit")
    return p.parse_args(argv)


def _load_run_config(path: Path | None) -> MigrationConfig:
    if path is not None:
        return load_config(path)
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _inspect_data(source: SheetSource, cfg: MigrationConfig) -> int:
    sheets = cfg.spreadsheet
    for name in (sheets.orders_sheet, sheets.customers_sheet):
        try:
            rows = source.get_rows(name)
        except SourceError as e:
            print(f"SHEET: {name} read_error={e}")
            continue
        data_rows = rows[1:]
        print(f"SHEET: {name} rows={len(data_rows)}")
        if not rows:
            continue
        print(f"  header={rows[0]}")
        if name == sheets.customers_sheet:
            print(f"  header_map={dict(build_header_map(rows[0]))}")
            for row in data_rows[:INSPECT_SAMPLE_ROWS]:
                print(f"  row={row}")
            continue
        shown = 0
        for index, row in enumerate(data_rows, start=1):
            if shown >= INSPECT_SAMPLE_ROWS:
                break
            if is_blank_order_row(row):
                continue
            shown += 1
            try:
                order = parse_order_row(index, row, datetime.now(UTC), cfg.defaults)
            except Exception as e:  # pragma: no cover
                print(f"  row {index + 1}: parse_error={e}")
                continue
            if order is None:  # pragma: no cover (blank rows filtered above)
                continue
            items = parse_items_string(order.items_raw, order_total=order.total_amount)
            print(
                f"  {order.order_number} name={order.customer_name} phone={order.customer_phone} "
                f"total={order.total_amount} items={[(it.product, it.quantity, it.price) for it in items]}"
            )
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 只有 None 時讀取系統參數 (測試以 [] 呼叫時不混入 pytest 參數)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    try:
        cfg = _load_run_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.debug:
        set_debug(logger)
        logger.debug("debug mode enabled")

    sheet_id = args.sheet_id or os.getenv("GOOGLE_SHEET_ID") or cfg.spreadsheet.id
    if not sheet_id and args.workbook is not None:
        sheet_id = args.workbook.stem
    if not sheet_id:
        logger.error("sheet id missing: pass --sheet-id, set GOOGLE_SHEET_ID or spreadsheet.id")
        return EXIT_FATAL

    source = open_sheet_source(sheet_id, args.workbook)
    if args.inspect_data:
        return _inspect_data(source, cfg)

    options = MigrationOptions(
        dry_run=args.dry_run,
        skip_existing=cfg.defaults.skip_existing if args.skip_existing is None else args.skip_existing,
        sync_orders=not args.no_orders,
        sync_customers=not args.no_customers,
    )

    # DB 連線控制: 測試等需完全停用時設 DISABLE_DB_CONNECT=1
    disable_db = os.getenv("DISABLE_DB_CONNECT") == "1"
    with ExitStack() as stack:
        store = None
        if disable_db:
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1")
        else:
            try:
                conn = stack.enter_context(open_connection(cfg.database))
                store = PostgresStore(conn)
            except psycopg2.Error as db_e:
                if not options.dry_run:
                    logger.error(f"database connection failed: {db_e}")
                    return EXIT_FATAL
                logger.info(f"DB connection failed -> offline dry run: {db_e}")

        try:
            result = run_migration(sheet_id, options, source=source, store=store, config=cfg)
        except MigrationError as e:
            logger.error(f"migration: {e}")
            return EXIT_FATAL
        except SourceError as e:
            logger.error(f"source: {e}")
            return EXIT_FATAL

    logger.info(f"mode={'dry-run' if options.dry_run else 'live'} db={'online' if store is not None else 'offline'}")
    for err in result.stats.errors:
        logger.debug(f"row error: {err}")

    summary_line = render_summary_line(result)
    # log_summary 會加上 "SUMMARY " 前綴
    log_summary(summary_line[len("SUMMARY "):])

    if result.success:
        return EXIT_SUCCESS_ALL
    return EXIT_PARTIAL_FAILURE


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
