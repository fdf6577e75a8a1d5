from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, ExitStack, contextmanager

import psycopg2
from fastapi import FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from order_migrator import __version__
from order_migrator.config.loader import load_config_from_env
from order_migrator.db.connection import open_connection
from order_migrator.db.store import PostgresStore, Store
from order_migrator.logging.init import log_summary, setup_logging
from order_migrator.models.config_models import MigrationConfig
from order_migrator.models.migration import MigrationOptions, MigrationResult
from order_migrator.services.orchestrator import MigrationError, run_migration
from order_migrator.services.summary import render_summary_line
from order_migrator.sheets import GoogleSheetsSource, SheetSource, SourceError

"""HTTP trigger for the migration (admin dashboard "import from Google Sheets").

POST /migrate-sheets-data
    Authorization: Bearer <HS256 JWT signed with JWT_SECRET>
    {"sheetId": "...", "dryRun": false, "skipExisting": true,
     "syncOrders": true, "syncCustomers": true}

Responses:
    200  MigrationResult (also when rows failed: success=false)
    400  {"success": false, "message": ...} for a missing sheetId / bad body
    401  missing or invalid token
    500  MigrationResult-shaped body for source failures and unexpected errors

Run with: uvicorn order_migrator.api.app:app
"""

__all__ = [
    "MigrationRequest",
    "create_app",
    "app",
]

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"

SourceFactory = Callable[[str], SheetSource]
StoreFactory = Callable[[MigrationConfig, bool], AbstractContextManager["Store | None"]]


class MigrationRequest(BaseModel):
    sheetId: str | None = None
    dryRun: bool = False
    skipExisting: bool = True
    syncOrders: bool = True
    syncCustomers: bool = True


def _message(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@contextmanager
def _postgres_store(cfg: MigrationConfig, dry_run: bool) -> Iterator[Store | None]:
    """Store for one request; a dry run continues offline when the DB is unreachable."""
    with ExitStack() as stack:
        try:
            conn = stack.enter_context(open_connection(cfg.database))
        except psycopg2.Error as e:
            if not dry_run:
                raise
            logger.info("DB connection failed -> offline dry run: %s", e)
            conn = None
        yield PostgresStore(conn) if conn is not None else None


def create_app(
    config: MigrationConfig | None = None,
    source_factory: SourceFactory | None = None,
    store_factory: StoreFactory | None = None,
    jwt_secret: str | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        config: Migration config ($MIGRATOR_CONFIG or defaults when omitted)
        source_factory: sheet id -> SheetSource (Google Sheets API by default)
        store_factory: (config, dry_run) -> context manager yielding a Store
        jwt_secret: HS256 secret (JWT_SECRET at request time when omitted)
    """
    setup_logging()
    cfg = config if config is not None else load_config_from_env()
    make_source: SourceFactory = source_factory or GoogleSheetsSource
    make_store: StoreFactory = store_factory or _postgres_store

    app = FastAPI(title="order-migrator", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 管理後台 (不同網域) 直接呼叫
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _authorize(authorization: str | None) -> JSONResponse | None:
        secret = jwt_secret or os.getenv("JWT_SECRET")
        if not secret:
            logger.error("JWT_SECRET is not configured")
            return _message(500, "server auth is not configured")
        if not authorization or not authorization.startswith("Bearer "):
            return _message(401, "missing bearer token")
        token = authorization[len("Bearer "):].strip()
        try:
            jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except JWTError as e:
            logger.info("rejected token: %s", e)
            return _message(401, "invalid token")
        return None

    def _migrate(sheet_id: str, options: MigrationOptions) -> MigrationResult:
        with make_store(cfg, options.dry_run) as store:
            return run_migration(
                sheet_id, options, source=make_source(sheet_id), store=store, config=cfg
            )

    @app.get("/")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": "order-migrator", "version": __version__}

    @app.post("/migrate-sheets-data")
    async def migrate_sheets_data(
        request: Request, authorization: str | None = Header(default=None)
    ) -> JSONResponse:
        denied = _authorize(authorization)
        if denied is not None:
            return denied

        try:
            body = await request.json()
        except ValueError:
            return _message(400, "request body must be JSON")
        try:
            req = MigrationRequest.model_validate(body)
        except ValidationError as e:
            return _message(400, f"invalid request: {e.errors()[0].get('msg', 'validation error')}")
        sheet_id = (req.sheetId or "").strip()
        if not sheet_id:
            return _message(400, "sheetId is required")

        options = MigrationOptions(
            dry_run=req.dryRun,
            skip_existing=req.skipExisting,
            sync_orders=req.syncOrders,
            sync_customers=req.syncCustomers,
        )
        logger.info("migration requested sheet=%s dry_run=%s", sheet_id, options.dry_run)
        try:
            result = await run_in_threadpool(_migrate, sheet_id, options)
        except MigrationError as e:
            return _message(400, str(e))
        except SourceError as e:
            logger.error("source: %s", e)
            return JSONResponse(status_code=500, content=MigrationResult.failure(str(e)).to_dict())
        except Exception as e:
            logger.exception("migration failed")
            return JSONResponse(status_code=500, content=MigrationResult.failure(str(e)).to_dict())

        log_summary(render_summary_line(result)[len("SUMMARY "):])
        return JSONResponse(status_code=200, content=result.to_dict())

    return app


app = create_app()
