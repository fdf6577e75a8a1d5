from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from enum import IntEnum
from types import MappingProxyType
from typing import Any

from order_migrator.models.config_models import OrderDefaults
from order_migrator.models.records import Customer, Order

from .values import cell_text, normalize_phone, parse_amount, parse_date

"""Row parser: one spreadsheet row -> Customer / Order.

The customer sheet is read through a header map (labels in its first row);
the order sheet is read through fixed column offsets. The two sheets are
maintained differently, so the access styles stay separate.
"""

__all__ = [
    "CUSTOMER_HEADER_LABELS",
    "OrderColumn",
    "build_header_map",
    "is_blank_order_row",
    "parse_customer_row",
    "parse_order_row",
]

SheetRow = Sequence[Any]
HeaderMap = Mapping[str, int]

# 客戶名單 header label -> field
CUSTOMER_HEADER_LABELS: dict[str, str] = {
    "姓名": "name",
    "電話": "phone",
    "取貨方式": "deliveryMethod",
    "地址": "address",
    "透過什麼聯繫賣家": "contactMethod",
    "社交軟體名字": "socialId",
    "訂單時間": "orderTime",
}


class OrderColumn(IntEnum):
    """Fixed column offsets of the order sheet (Sheet1)."""
    ORDER_TIME = 0
    CUSTOMER_NAME = 1
    CUSTOMER_PHONE = 2
    DELIVERY_METHOD = 3
    CUSTOMER_ADDRESS = 4
    DUE_DATE = 5
    DELIVERY_TIME = 6
    NOTES = 7
    ITEMS = 8
    TOTAL_AMOUNT = 9
    PAYMENT_METHOD = 12
    STATUS = 14
    PAYMENT_STATUS = 15


def _cell(row: SheetRow, index: int | None) -> str:
    # Sheets API 不回傳列尾的空白儲存格, 超出範圍視為空字串
    if index is None or index < 0 or index >= len(row):
        return ""
    return cell_text(row[index])


def build_header_map(header_row: SheetRow) -> HeaderMap:
    """Map known header labels to their column index.

    Unknown labels are ignored. The returned mapping is read-only so one map
    can be shared by every row of the sheet.
    """
    mapping: dict[str, int] = {}
    for idx, title in enumerate(header_row):
        field = CUSTOMER_HEADER_LABELS.get(cell_text(title))
        if field is not None:
            mapping[field] = idx
    return MappingProxyType(mapping)


def parse_customer_row(
    row: SheetRow, header_map: HeaderMap, imported_at: datetime
) -> Customer | None:
    """Parse one customer row; None when name or phone is empty."""
    name = _cell(row, header_map.get("name"))
    phone = normalize_phone(_cell(row, header_map.get("phone")))
    if not name or not phone:
        return None

    created = parse_date(_cell(row, header_map.get("orderTime"))) or imported_at
    return Customer(
        name=name,
        phone=phone,
        address=_cell(row, header_map.get("address")),
        delivery_method=_cell(row, header_map.get("deliveryMethod")),
        contact_method=_cell(row, header_map.get("contactMethod")),
        social_id=_cell(row, header_map.get("socialId")),
        created_at=created.isoformat(),
    )


def is_blank_order_row(row: SheetRow) -> bool:
    return _cell(row, OrderColumn.CUSTOMER_NAME) == ""


def parse_order_row(
    row_index: int,
    row: SheetRow,
    imported_at: datetime,
    defaults: OrderDefaults | None = None,
) -> Order | None:
    """Parse one order row.

    Args:
        row_index: 1-based data row index (header excluded); becomes
            google_sheet_id and the ORD-xxx number
        row: Raw cells
        imported_at: Fallback for an empty/unparsable order time
        defaults: Fallback status / payment status for empty cells

    Returns:
        Order, or None for a blank row (empty customer name)
    """
    if is_blank_order_row(row):
        return None
    defaults = defaults or OrderDefaults()

    due = parse_date(_cell(row, OrderColumn.DUE_DATE))
    created = parse_date(_cell(row, OrderColumn.ORDER_TIME)) or imported_at
    return Order(
        order_number=f"ORD-{row_index:03d}",
        customer_name=_cell(row, OrderColumn.CUSTOMER_NAME),
        customer_phone=_cell(row, OrderColumn.CUSTOMER_PHONE),
        delivery_method=_cell(row, OrderColumn.DELIVERY_METHOD),
        customer_address=_cell(row, OrderColumn.CUSTOMER_ADDRESS),
        due_date=due.date().isoformat() if due is not None else None,
        delivery_time=_cell(row, OrderColumn.DELIVERY_TIME),
        notes=_cell(row, OrderColumn.NOTES),
        payment_method=_cell(row, OrderColumn.PAYMENT_METHOD),
        status=_cell(row, OrderColumn.STATUS) or defaults.order_status,
        payment_status=_cell(row, OrderColumn.PAYMENT_STATUS) or defaults.payment_status,
        total_amount=parse_amount(_cell(row, OrderColumn.TOTAL_AMOUNT)),
        google_sheet_id=row_index,
        created_at=created.isoformat(),
        items_raw=_cell(row, OrderColumn.ITEMS),
    )
