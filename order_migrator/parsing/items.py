from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass

from order_migrator.models.records import OrderItem, Product

from .values import extract_numbers, to_half_width_digits

"""Free-text item list parser.

Order rows carry their items as typed text, e.g.

    原味蘿蔔糕 x 2, 芋頭粿 x1 350
    港式蘿蔔糕 NT$280 × 3、蘿蔔絲餅

Entries are separated by , ， 、 or newlines; each entry is
"<name> x <quantity>[ <unit price>]". Missing unit prices are backfilled from
the product catalog, then from the order total.
"""

__all__ = [
    "parse_items_string",
]

logger = logging.getLogger(__name__)

_ITEM_SEPARATORS = re.compile(r"[,，、\n]")
_QUANTITY_MARKER = re.compile(r"\s*[xX×]\s*")
_TRAILING_PRICE = re.compile(r"(?:NT\$|\$)?\s*\d+(?:\.\d+)?\s*$")


@dataclass(frozen=True)
class _Token:
    product: str
    quantity: int
    price: float


def _parse_token(token: str) -> _Token:
    parts = _QUANTITY_MARKER.split(token)
    left = parts[0].strip()
    right = parts[1].strip() if len(parts) > 1 else ""

    # 右側: [數量] [單價]
    right_nums = extract_numbers(right)
    quantity = max(1, math.floor(right_nums[0])) if right_nums else 1
    price = max(0.0, right_nums[1]) if len(right_nums) >= 2 else 0.0

    # 右側沒有單價時, 取左側名稱尾端的數字 (NT$280 等) 並從名稱移除
    if not price:
        m = _TRAILING_PRICE.search(to_half_width_digits(left))
        if m is not None:
            price = max(0.0, extract_numbers(m.group())[0])
            left = left[: m.start()].strip()

    return _Token(product=left, quantity=quantity, price=price)


def parse_items_string(
    raw: str | None,
    known_products: Mapping[str, Product] | None = None,
    order_total: float = 0.0,
) -> list[OrderItem]:
    """Parse a free-text item list into OrderItems.

    Unit price precedence: explicit price in the entry, catalog price by exact
    (trimmed) name, order_total apportioned by quantity over all parsed items,
    then 0.

    Args:
        raw: Item cell text
        known_products: Catalog keyed by trimmed product name
        order_total: Order total amount (0 when unknown)

    Returns:
        Items in entry order; entries without a product name are dropped
    """
    if not raw or not raw.strip():
        return []
    catalog = known_products or {}

    tokens: list[_Token] = []
    for s in _ITEM_SEPARATORS.split(raw):
        if not s.strip():
            continue
        token = _parse_token(s.strip())
        if not token.product:
            # 名稱以 x / X / × 開頭 (如 XO醬) 會被當成數量符號切開
            logger.warning("item entry dropped (no product name): %r", s.strip())
            continue
        tokens.append(token)
    total_quantity = sum(t.quantity for t in tokens)

    items: list[OrderItem] = []
    for t in tokens:
        price = t.price
        product_id = None
        matched = catalog.get(t.product.strip())
        if matched is not None:
            product_id = matched.id
            if price == 0:
                price = float(matched.price or 0)
        elif price == 0 and order_total > 0 and total_quantity > 0:
            price = round(order_total / total_quantity, 2)
        price = max(0.0, price)
        items.append(
            OrderItem(
                product=t.product,
                quantity=t.quantity,
                price=price,
                subtotal=round(price * t.quantity, 2),
                product_id=product_id,
            )
        )
    return items
