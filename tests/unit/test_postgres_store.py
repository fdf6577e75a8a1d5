from __future__ import annotations

from unittest.mock import MagicMock

import pytest

import order_migrator.db.store as store_mod
from order_migrator.db.batch_insert import InsertResult
from order_migrator.db.store import PostgresStore


@pytest.fixture()
def conn():
    return MagicMock()


@pytest.fixture()
def cur(conn):
    # `with conn.cursor(...) as cur` 取得的 cursor
    return conn.cursor.return_value.__enter__.return_value


def test_select_with_filters_and_not_null(conn, cur):
    cur.fetchall.return_value = [{"id": 1, "google_sheet_id": 3}]
    store = PostgresStore(conn)

    rows = store.select("orders", ["id", "google_sheet_id"], not_null=("google_sheet_id",), status=None)

    sql, params = cur.execute.call_args.args
    assert sql == (
        'SELECT "id", "google_sheet_id" FROM "orders" '
        'WHERE "status" IS NULL AND "google_sheet_id" IS NOT NULL'
    )
    assert params == []
    assert rows == [{"id": 1, "google_sheet_id": 3}]
    conn.commit.assert_called_once()


def test_select_all_columns_equality(conn, cur):
    cur.fetchall.return_value = []
    PostgresStore(conn).select("customers", phone="0912345678")
    sql, params = cur.execute.call_args.args
    assert sql == 'SELECT * FROM "customers" WHERE "phone" = %s'
    assert params == ["0912345678"]


def test_upsert_builds_on_conflict_update(conn, cur):
    cur.fetchone.return_value = {"id": 7, "name": "王小明", "phone": "0912345678"}
    store = PostgresStore(conn)

    stored = store.upsert("customers", {"name": "王小明", "phone": "0912345678"}, on_conflict="phone")

    sql, params = cur.execute.call_args.args
    assert sql == (
        'INSERT INTO "customers" ("name", "phone") VALUES (%s, %s) '
        'ON CONFLICT ("phone") DO UPDATE SET "name" = EXCLUDED."name" RETURNING *'
    )
    assert params == ["王小明", "0912345678"]
    assert stored["id"] == 7


def test_delete_returns_rowcount(conn, cur):
    cur.rowcount = 2
    assert PostgresStore(conn).delete("order_items", order_id=5) == 2
    sql, params = cur.execute.call_args.args
    assert sql == 'DELETE FROM "order_items" WHERE "order_id" = %s'
    assert params == [5]


def test_delete_without_filters_refused(conn, cur):
    with pytest.raises(ValueError):
        PostgresStore(conn).delete("orders")
    cur.execute.assert_not_called()


def test_nested_transaction_commits_once(conn, cur):
    store = PostgresStore(conn)
    with store.transaction():
        store.delete("order_items", order_id=1)
        store.delete("orders", id=1)
    conn.commit.assert_called_once()
    conn.rollback.assert_not_called()


def test_transaction_rolls_back_on_error(conn, cur):
    store = PostgresStore(conn)
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.delete("order_items", order_id=1)
            raise RuntimeError("insert failed")
    conn.rollback.assert_called_once()
    conn.commit.assert_not_called()


def test_insert_many_uses_batch_insert(conn, cur, monkeypatch):
    captured = {}

    def fake_batch_insert(cursor, table, columns, rows):
        captured.update(cursor=cursor, table=table, columns=columns, rows=rows)
        return InsertResult(inserted_rows=len(rows))

    monkeypatch.setattr(store_mod, "batch_insert", fake_batch_insert)
    n = PostgresStore(conn).insert_many(
        "order_items",
        [{"order_id": 1, "quantity": 2}, {"order_id": 1, "quantity": 1}],
    )
    assert n == 2
    assert captured["cursor"] is cur
    assert captured["table"] == "order_items"
    assert captured["columns"] == ["order_id", "quantity"]
    assert captured["rows"] == [(1, 2), (1, 1)]


def test_insert_many_empty_is_noop(conn):
    assert PostgresStore(conn).insert_many("order_items", []) == 0
    conn.cursor.assert_not_called()
