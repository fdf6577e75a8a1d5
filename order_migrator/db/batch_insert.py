from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT via psycopg2.extras.execute_values.

Used for order_items: one order's parsed items are written in a single
statement inside the item-replacement transaction.
"""


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
) -> InsertResult:
    """Perform batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: 目標資料表 (由程式碼決定, 非使用者輸入)
    columns: 寫入欄位
    rows: 資料列 (與 columns 順序相同)
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    base_sql = f'INSERT INTO "{table}" ({cols_sql}) VALUES %s'

    try:
        execute_values(cursor, base_sql, rows_list)
    except Exception as e:
        raise BatchInsertError(f"{table}: {e}") from e

    return InsertResult(inserted_rows=len(rows_list))
