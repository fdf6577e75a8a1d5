from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Protocol

from psycopg2.extras import RealDictCursor

from .batch_insert import batch_insert

"""Relational store used by the migration passes.

The importer only needs a handful of table operations (select by equality,
upsert on a unique key, delete by equality, bulk insert) plus a transaction
scope for replacing an order's items. `PostgresStore` implements them over a
psycopg2 connection to the Supabase database.

Table and column names always come from code, never from sheet content.
Values are passed as query parameters.
"""

__all__ = [
    "Store",
    "PostgresStore",
]


class Store(Protocol):
    def select(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        *,
        not_null: Sequence[str] = (),
        **filters: Any,
    ) -> list[dict[str, Any]]: ...

    def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> dict[str, Any]: ...

    def delete(self, table: str, **filters: Any) -> int: ...

    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int: ...

    def transaction(self) -> Any: ...


def _ident(name: str) -> str:
    return f'"{name}"'


def _where(filters: Mapping[str, Any], not_null: Sequence[str] = ()) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    for col, value in filters.items():
        if value is None:
            clauses.append(f"{_ident(col)} IS NULL")
        else:
            clauses.append(f"{_ident(col)} = %s")
            params.append(value)
    clauses.extend(f"{_ident(col)} IS NOT NULL" for col in not_null)
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


class PostgresStore:
    """Store over a psycopg2 connection (autocommit off).

    Every call outside `transaction()` commits on its own. Nested
    `transaction()` scopes join the outermost one, which commits on success
    and rolls back on any exception.
    """

    def __init__(self, conn: Any) -> None:
        self.conn = conn
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[PostgresStore]:
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.conn.commit()

    def _cursor(self) -> Any:
        return self.conn.cursor(cursor_factory=RealDictCursor)

    def select(
        self,
        table: str,
        columns: Sequence[str] | None = None,
        *,
        not_null: Sequence[str] = (),
        **filters: Any,
    ) -> list[dict[str, Any]]:
        cols_sql = ", ".join(_ident(c) for c in columns) if columns else "*"
        where_sql, params = _where(filters, not_null)
        sql = f"SELECT {cols_sql} FROM {_ident(table)}{where_sql}"
        with self.transaction(), self._cursor() as cur:
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()]

    def upsert(self, table: str, row: Mapping[str, Any], *, on_conflict: str) -> dict[str, Any]:
        """INSERT .. ON CONFLICT (key) DO UPDATE, returning the stored row."""
        columns = list(row.keys())
        cols_sql = ", ".join(_ident(c) for c in columns)
        placeholders = ", ".join(["%s"] * len(columns))
        updates = ", ".join(
            f"{_ident(c)} = EXCLUDED.{_ident(c)}" for c in columns if c != on_conflict
        )
        sql = (
            f"INSERT INTO {_ident(table)} ({cols_sql}) VALUES ({placeholders}) "
            f"ON CONFLICT ({_ident(on_conflict)}) DO UPDATE SET {updates} RETURNING *"
        )
        with self.transaction(), self._cursor() as cur:
            cur.execute(sql, [row[c] for c in columns])
            stored = cur.fetchone()
        return dict(stored) if stored is not None else {}

    def delete(self, table: str, **filters: Any) -> int:
        if not filters:
            # 不允許無條件刪除整張表
            raise ValueError(f"delete from {table} requires at least one filter")
        where_sql, params = _where(filters)
        with self.transaction(), self._cursor() as cur:
            cur.execute(f"DELETE FROM {_ident(table)}{where_sql}", params)
            return cur.rowcount

    def insert_many(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        if not rows:
            return 0
        columns = list(rows[0].keys())
        values = [tuple(r.get(c) for c in columns) for r in rows]
        with self.transaction(), self._cursor() as cur:
            result = batch_insert(cur, table, columns, values)
        return result.inserted_rows
