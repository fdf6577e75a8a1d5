from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the order migrator.

Built by order_migrator.config.loader from config/migration.yml (or from
defaults when no file is used, e.g. under the HTTP trigger). Environment
variables take precedence over the database section at connect time.
"""

DEFAULT_ORDERS_SHEET = "Sheet1"
DEFAULT_CUSTOMERS_SHEET = "客戶名單"
DEFAULT_ORDER_STATUS = "訂單確認中"
DEFAULT_PAYMENT_STATUS = "未收費"


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback configuration.

    Used only when DATABASE_URL / PGDSN / PG* environment variables are unset.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class SpreadsheetConfig:
    id: str | None = None  # 預設 Sheet ID (CLI 未指定時使用)
    orders_sheet: str = DEFAULT_ORDERS_SHEET
    customers_sheet: str = DEFAULT_CUSTOMERS_SHEET


@dataclass(frozen=True)
class OrderDefaults:
    """Fallback values for empty order cells and the default run mode."""
    skip_existing: bool = True
    order_status: str = DEFAULT_ORDER_STATUS
    payment_status: str = DEFAULT_PAYMENT_STATUS


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_ms: int = 200


@dataclass(frozen=True)
class SyncLogConfig:
    enabled: bool = True
    table: str = "sync_logs"


@dataclass(frozen=True)
class MigrationConfig:
    """Root configuration object for a migration run."""
    spreadsheet: SpreadsheetConfig = field(default_factory=SpreadsheetConfig)
    defaults: OrderDefaults = field(default_factory=OrderDefaults)
    retry: RetryConfig = field(default_factory=RetryConfig)
    error_log_directory: str = "./logs"
    sync_log: SyncLogConfig = field(default_factory=SyncLogConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
