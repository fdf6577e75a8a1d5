"""Postgres (Supabase) access: connection, batch insert and the Store."""

# batch_insert 函式不在此匯出, 以免遮蔽同名子模組
from .batch_insert import BatchInsertError, InsertResult
from .connection import open_connection, resolve_dsn
from .store import PostgresStore, Store

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "PostgresStore",
    "Store",
    "open_connection",
    "resolve_dsn",
]
