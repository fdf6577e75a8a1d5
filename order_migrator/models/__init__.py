"""Domain models for the Sheets -> Supabase order migrator."""

from .config_models import (
    DatabaseConfig,
    MigrationConfig,
    OrderDefaults,
    RetryConfig,
    SpreadsheetConfig,
    SyncLogConfig,
)
from .error_record import ErrorRecord
from .migration import MigrationOptions, MigrationResult, MigrationStats, PassStats
from .records import Customer, Order, OrderItem, Product

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "MigrationConfig",
    "OrderDefaults",
    "RetryConfig",
    "SpreadsheetConfig",
    "SyncLogConfig",
    # Records
    "Customer",
    "Order",
    "OrderItem",
    "Product",
    # Run models
    "ErrorRecord",
    "MigrationOptions",
    "MigrationResult",
    "MigrationStats",
    "PassStats",
]
