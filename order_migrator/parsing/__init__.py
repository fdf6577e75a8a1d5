"""Row parser: spreadsheet rows and item strings -> typed records (no I/O)."""

from .items import parse_items_string
from .rows import (
    CUSTOMER_HEADER_LABELS,
    OrderColumn,
    build_header_map,
    is_blank_order_row,
    parse_customer_row,
    parse_order_row,
)
from .values import extract_numbers, normalize_phone, parse_amount, parse_date, to_half_width_digits

__all__ = [
    "CUSTOMER_HEADER_LABELS",
    "OrderColumn",
    "build_header_map",
    "extract_numbers",
    "is_blank_order_row",
    "normalize_phone",
    "parse_amount",
    "parse_customer_row",
    "parse_date",
    "parse_items_string",
    "parse_order_row",
    "to_half_width_digits",
]
