from __future__ import annotations

from datetime import UTC, datetime

import pytest

from order_migrator.models.config_models import OrderDefaults
from order_migrator.parsing import (
    OrderColumn,
    build_header_map,
    is_blank_order_row,
    parse_customer_row,
    parse_order_row,
)

IMPORTED_AT = datetime(2024, 2, 1, 8, 0, tzinfo=UTC)


def test_build_header_map_resolves_known_labels():
    header = ["訂單時間", "姓名", "電話", "取貨方式", "地址", "透過什麼聯繫賣家", "社交軟體名字", "備考"]
    hm = build_header_map(header)
    assert dict(hm) == {
        "orderTime": 0,
        "name": 1,
        "phone": 2,
        "deliveryMethod": 3,
        "address": 4,
        "contactMethod": 5,
        "socialId": 6,
    }


def test_build_header_map_is_read_only():
    hm = build_header_map(["姓名", "電話"])
    with pytest.raises(TypeError):
        hm["name"] = 5  # type: ignore[index]


def test_build_header_map_trims_labels_and_last_duplicate_wins():
    hm = build_header_map([" 姓名 ", "電話", "姓名"])
    assert hm["name"] == 2
    assert hm["phone"] == 1


def test_parse_customer_row(customer_row):
    hm = build_header_map(["訂單時間", "姓名", "電話", "取貨方式", "地址", "透過什麼聯繫賣家", "社交軟體名字"])
    c = parse_customer_row(customer_row("王小明", "09-1234-5678", social="ming"), hm, IMPORTED_AT)
    assert c is not None
    assert c.name == "王小明"
    assert c.phone == "0912345678"
    assert c.contact_method == "LINE"
    assert c.social_id == "ming"
    assert c.created_at == "2024-01-05T15:20:00"


def test_parse_customer_row_missing_name_or_phone():
    hm = build_header_map(["姓名", "電話"])
    assert parse_customer_row(["", "0912345678"], hm, IMPORTED_AT) is None
    assert parse_customer_row(["王小明", ""], hm, IMPORTED_AT) is None
    # 只有符號的電話正規化後為空
    assert parse_customer_row(["王小明", "--"], hm, IMPORTED_AT) is None


def test_parse_customer_row_unresolved_fields_read_as_empty():
    hm = build_header_map(["姓名", "電話"])
    c = parse_customer_row(["王小明", "0912345678"], hm, IMPORTED_AT)
    assert c is not None
    assert c.address == ""
    assert c.social_id == ""
    assert c.created_at == IMPORTED_AT.isoformat()


def test_parse_order_row_fixed_columns(order_row):
    row = order_row("王小明", items="原味蘿蔔糕 x 2", total="1,050", status="已出貨", payment_status="已收費")
    o = parse_order_row(3, row, IMPORTED_AT)
    assert o is not None
    assert o.order_number == "ORD-003"
    assert o.google_sheet_id == 3
    assert o.customer_name == "王小明"
    assert o.customer_phone == "0912-345-678"
    assert o.delivery_method == "宅配"
    assert o.due_date == "2024-01-10"
    assert o.delivery_time == "上午"
    assert o.payment_method == "轉帳"
    assert o.status == "已出貨"
    assert o.payment_status == "已收費"
    assert o.total_amount == 1050.0
    assert o.items_raw == "原味蘿蔔糕 x 2"
    assert o.created_at == "2024-01-05T15:20:00"


def test_parse_order_row_defaults_for_empty_cells(order_row):
    o = parse_order_row(1, order_row("王小明", order_time="", due=""), IMPORTED_AT)
    assert o is not None
    assert o.status == "訂單確認中"
    assert o.payment_status == "未收費"
    assert o.due_date is None
    assert o.created_at == IMPORTED_AT.isoformat()
    assert o.total_amount == 0.0


def test_parse_order_row_custom_defaults(order_row):
    defaults = OrderDefaults(order_status="待處理", payment_status="未付款")
    o = parse_order_row(1, order_row("王小明"), IMPORTED_AT, defaults)
    assert o is not None
    assert (o.status, o.payment_status) == ("待處理", "未付款")


def test_parse_order_row_short_row():
    # Sheets API 省略列尾空白儲存格
    o = parse_order_row(12, ["", "王小明", "0912345678"], IMPORTED_AT)
    assert o is not None
    assert o.order_number == "ORD-012"
    assert o.payment_method == ""
    assert o.items_raw == ""
    assert o.status == "訂單確認中"


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_order_row(order_row, name: str):
    row = order_row(name)
    assert is_blank_order_row(row)
    assert parse_order_row(1, row, IMPORTED_AT) is None


def test_order_columns_are_fixed():
    assert OrderColumn.CUSTOMER_NAME == 1
    assert OrderColumn.ITEMS == 8
    assert OrderColumn.PAYMENT_STATUS == 15


def test_order_to_row_links_customer_only_when_known(order_row):
    o = parse_order_row(1, order_row("王小明"), IMPORTED_AT)
    assert o is not None
    assert "customer_id" not in o.to_row()
    assert o.to_row(customer_id=7)["customer_id"] == 7
    assert "items_raw" not in o.to_row()
