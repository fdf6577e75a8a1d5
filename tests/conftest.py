# Shared pytest fixtures
from __future__ import annotations

import copy
import logging
from collections import defaultdict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from order_migrator.logging.init import APP_LOGGER_NAME, reset_logging
from order_migrator.sheets.source import SourceFetchError

ORDER_HEADER = [
    "訂單時間", "姓名", "電話", "取貨方式", "地址", "到貨日期", "宅配時段", "備註",
    "購買項目", "金額", "", "", "付款方式", "", "訂單狀態", "款項狀態",
]
CUSTOMER_HEADER = ["訂單時間", "姓名", "電話", "取貨方式", "地址", "透過什麼聯繫賣家", "社交軟體名字"]


def make_order_row(
    name: str,
    phone: str = "0912-345-678",
    items: str = "",
    total: str = "",
    *,
    order_time: str = "2024/1/5 下午 3:20:00",
    due: str = "2024/1/10",
    payment: str = "轉帳",
    status: str = "",
    payment_status: str = "",
) -> list[str]:
    return [
        order_time, name, phone, "宅配", "台北市信義區", due, "上午", "",
        items, total, "", "", payment, "", status, payment_status,
    ]


def make_customer_row(name: str, phone: str, *, contact: str = "LINE", social: str = "") -> list[str]:
    return ["2024/1/5 下午 3:20:00", name, phone, "宅配", "台北市信義區", contact, social]


@dataclass
class _Failure:
    op: str
    table: str
    times: int | None  # None = 永遠失敗
    when: Callable[[dict[str, Any]], bool] | None
    exc: Exception


class FakeStore:
    """In-memory Store. Records every mutating call as (op, table)."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []
        self.select_calls: list[tuple[str, dict[str, Any]]] = []
        self._failures: list[_Failure] = []
        self._next_id = 1

    # --- test helpers -------------------------------------------------
    def seed(self, table: str, *rows: dict[str, Any]) -> None:
        for r in rows:
            self.tables[table].append({"id": self._new_id(), **r})

    def fail_on(
        self,
        op: str,
        table: str,
        *,
        times: int | None = None,
        when: Callable[[dict[str, Any]], bool] | None = None,
        exc: Exception | None = None,
    ) -> None:
        self._failures.append(_Failure(op, table, times, when, exc or RuntimeError(f"{op} {table} failed")))

    def mutating_calls(self, table: str | None = None) -> list[tuple[str, str]]:
        return [c for c in self.calls if table is None or c[1] == table]

    def _new_id(self) -> int:
        nid = self._next_id
        self._next_id += 1
        return nid

    def _check(self, op: str, table: str, payload: dict[str, Any]) -> None:
        for f in self._failures:
            if f.op != op or f.table != table:
                continue
            if f.when is not None and not f.when(payload):
                continue
            if f.times is not None:
                if f.times <= 0:
                    continue
                f.times -= 1
            raise f.exc

    # --- Store protocol -----------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[FakeStore]:
        snapshot = copy.deepcopy(self.tables)
        try:
            yield self
        except BaseException:
            self.tables = snapshot
            raise

    def select(self, table, columns=None, *, not_null=(), **filters):
        self.select_calls.append((table, dict(filters)))
        self._check("select", table, dict(filters))
        out = []
        for r in self.tables[table]:
            if any(r.get(k) != v for k, v in filters.items()):
                continue
            if any(r.get(c) is None for c in not_null):
                continue
            out.append({c: r.get(c) for c in columns} if columns else dict(r))
        return out

    def upsert(self, table, row, *, on_conflict):
        self.calls.append(("upsert", table))
        self._check("upsert", table, dict(row))
        for existing in self.tables[table]:
            if existing.get(on_conflict) == row[on_conflict]:
                existing.update(row)
                return dict(existing)
        stored = {"id": self._new_id(), **row}
        self.tables[table].append(stored)
        return dict(stored)

    def delete(self, table, **filters):
        self.calls.append(("delete", table))
        self._check("delete", table, dict(filters))
        keep = [r for r in self.tables[table] if any(r.get(k) != v for k, v in filters.items())]
        removed = len(self.tables[table]) - len(keep)
        self.tables[table] = keep
        return removed

    def insert_many(self, table, rows):
        self.calls.append(("insert", table))
        for r in rows:
            self._check("insert", table, dict(r))
        for r in rows:
            self.tables[table].append({"id": self._new_id(), **r})
        return len(rows)


class ListSheetSource:
    """SheetSource backed by in-memory rows."""

    def __init__(self, sheets: dict[str, list[list[str]]], errors: dict[str, Exception] | None = None) -> None:
        self.sheets = sheets
        self.errors = errors or {}
        self.requested: list[str] = []

    def get_rows(self, sheet_name: str) -> list[list[str]]:
        self.requested.append(sheet_name)
        if sheet_name in self.errors:
            raise self.errors[sheet_name]
        if sheet_name not in self.sheets:
            raise SourceFetchError(f"Unable to parse range: {sheet_name}")
        return [list(r) for r in self.sheets[sheet_name]]


def _detach_app_logger() -> None:
    reset_logging()
    # 前一個測試 (或 import 時的 create_app) 的 handler 綁在舊的 stdout 上
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    for h in app_logger.handlers[:]:
        app_logger.removeHandler(h)
    app_logger.setLevel(logging.NOTSET)
    app_logger.propagate = True


@pytest.fixture(autouse=True)
def _fresh_logging() -> Iterator[None]:
    _detach_app_logger()
    yield
    _detach_app_logger()


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    for var in (
        "DATABASE_URL", "PGDSN", "GOOGLE_SHEET_ID", "JWT_SECRET", "MIGRATOR_CONFIG", "DISABLE_DB_CONNECT",
        "GOOGLE_SERVICE_ACCOUNT_KEY", "GOOGLE_SERVICE_ACCOUNT_B64", "GOOGLE_APPLICATION_CREDENTIALS",
    ):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """spreadsheet:
  id: sheet-from-config
  orders_sheet: Sheet1
  customers_sheet: 客戶名單
defaults:
  skip_existing: true
retry:
  max_attempts: 3
  base_delay_ms: 0
error_log:
  directory: ./logs
sync_log:
  enabled: false
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "migration.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def order_row() -> Callable[..., list[str]]:
    return make_order_row


@pytest.fixture()
def customer_row() -> Callable[..., list[str]]:
    return make_customer_row


@pytest.fixture()
def sheet_source() -> Callable[..., ListSheetSource]:
    """Factory: sheet_source(orders=[...data rows], customers=[...data rows] | None)."""
    def _make(
        orders: list[list[str]] | None = None,
        customers: list[list[str]] | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> ListSheetSource:
        sheets: dict[str, list[list[str]]] = {"Sheet1": [ORDER_HEADER, *(orders or [])]}
        if customers is not None:
            sheets["客戶名單"] = [CUSTOMER_HEADER, *customers]
        return ListSheetSource(sheets, errors)
    return _make


@pytest.fixture()
def no_sleep() -> list[float]:
    """Collects retry delays instead of sleeping (pass .append as sleep=)."""
    return []


@pytest.fixture()
def migration_config(temp_workdir: Path):
    """Defaults with sync_log off and the error log under the temp workdir."""
    from order_migrator.models.config_models import MigrationConfig, SyncLogConfig

    return MigrationConfig(
        error_log_directory=str(temp_workdir / "logs"),
        sync_log=SyncLogConfig(enabled=False),
    )


def write_workbook(path: Path, sheets: dict[str, list[list[str]]]) -> Path:
    """Write rows to an .xlsx (no header row added, no index column)."""
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=name, header=False, index=False)
    return path


@pytest.fixture()
def sample_workbook(temp_workdir: Path) -> Path:
    """orders.xlsx: 2 orders around a blank row, 1 customer."""
    blank = make_order_row("", phone="")  # 訂單時間仍有值, 讀取時不會被略過
    return write_workbook(
        temp_workdir / "orders.xlsx",
        {
            "Sheet1": [
                ORDER_HEADER,
                make_order_row("王小明", items="原味蘿蔔糕 x 2", total="700"),
                blank,
                make_order_row("李小華", phone="0987654321", status="已出貨"),
            ],
            "客戶名單": [CUSTOMER_HEADER, make_customer_row("王小明", "0912-345-678")],
        },
    )
