from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from order_migrator.models.config_models import (
    DatabaseConfig,
    MigrationConfig,
    OrderDefaults,
    RetryConfig,
    SpreadsheetConfig,
    SyncLogConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/migration.yml)
- Validate against the bundled JSON schema (unknown keys rejected)
- Apply defaults for every omitted section / key
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/migration.yml")
CONFIG_PATH_ENV = "MIGRATOR_CONFIG"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or the
            config data fails schema validation (wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def default_config() -> MigrationConfig:
    return MigrationConfig()


def load_config(path: Path) -> MigrationConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    sheet_raw = data.get("spreadsheet") or {}
    defaults_raw = data.get("defaults") or {}
    retry_raw = data.get("retry") or {}
    sync_raw = data.get("sync_log") or {}
    db_raw = data.get("database") or {}
    base = MigrationConfig()

    return MigrationConfig(
        spreadsheet=SpreadsheetConfig(
            id=sheet_raw.get("id"),
            orders_sheet=sheet_raw.get("orders_sheet", base.spreadsheet.orders_sheet),
            customers_sheet=sheet_raw.get("customers_sheet", base.spreadsheet.customers_sheet),
        ),
        defaults=OrderDefaults(
            skip_existing=defaults_raw.get("skip_existing", base.defaults.skip_existing),
            order_status=defaults_raw.get("order_status", base.defaults.order_status),
            payment_status=defaults_raw.get("payment_status", base.defaults.payment_status),
        ),
        retry=RetryConfig(
            max_attempts=retry_raw.get("max_attempts", base.retry.max_attempts),
            base_delay_ms=retry_raw.get("base_delay_ms", base.retry.base_delay_ms),
        ),
        error_log_directory=(data.get("error_log") or {}).get("directory", base.error_log_directory),
        sync_log=SyncLogConfig(
            enabled=sync_raw.get("enabled", base.sync_log.enabled),
            table=sync_raw.get("table", base.sync_log.table),
        ),
        database=DatabaseConfig(
            host=db_raw.get("host"),
            port=db_raw.get("port"),
            user=db_raw.get("user"),
            password=db_raw.get("password"),
            database=db_raw.get("database"),
            dsn=db_raw.get("dsn"),
        ),
    )


def load_config_from_env() -> MigrationConfig:
    """Config for long-running hosts: $MIGRATOR_CONFIG when set, else defaults."""
    raw = os.getenv(CONFIG_PATH_ENV)
    if raw:
        return load_config(Path(raw))
    return default_config()
