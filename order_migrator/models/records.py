from __future__ import annotations

from dataclasses import dataclass
from typing import Any

"""Record models produced by the row parser.

Customer / Order / OrderItem mirror the rows written to the `customers`,
`orders` and `order_items` tables. `to_row()` returns the column dict handed to
the store; Python attribute names already follow the table column names.
"""

__all__ = [
    "Customer",
    "Order",
    "OrderItem",
    "Product",
]


@dataclass(frozen=True)
class Customer:
    """One customer parsed from the customer sheet.

    Identity key is the normalized (digits only) phone number.
    """
    name: str
    phone: str  # digits only
    address: str
    delivery_method: str
    contact_method: str
    social_id: str
    created_at: str  # ISO8601

    def to_row(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "delivery_method": self.delivery_method,
            "contact_method": self.contact_method,
            "social_id": self.social_id,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class Order:
    """One order parsed from a non-blank order sheet row.

    `google_sheet_id` is the 1-based data row index and the identity key used
    for upsert and for reconciliation against the source sheet.
    """
    order_number: str  # ORD-001
    customer_name: str
    customer_phone: str  # 原始值 (僅 trim)
    delivery_method: str
    customer_address: str
    due_date: str | None  # YYYY-MM-DD
    delivery_time: str
    notes: str
    payment_method: str
    status: str
    payment_status: str
    total_amount: float
    google_sheet_id: int
    created_at: str  # ISO8601
    items_raw: str = ""  # 購買項目 (未解析的自由文字)

    def to_row(self, customer_id: Any = None) -> dict[str, Any]:
        row: dict[str, Any] = {
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "delivery_method": self.delivery_method,
            "customer_address": self.customer_address,
            "due_date": self.due_date,
            "delivery_time": self.delivery_time,
            "notes": self.notes,
            "payment_method": self.payment_method,
            "status": self.status,
            "payment_status": self.payment_status,
            "total_amount": self.total_amount,
            "google_sheet_id": self.google_sheet_id,
            "created_at": self.created_at,
        }
        if customer_id is not None:
            row["customer_id"] = customer_id
        return row


@dataclass(frozen=True)
class OrderItem:
    """A structured line item parsed from an order's free-text item string."""
    product: str
    quantity: int  # >= 1
    price: float  # unit price, >= 0
    subtotal: float  # price * quantity
    product_id: Any = None  # products.id when matched by name

    def to_row(self, order_id: Any) -> dict[str, Any]:
        return {
            "order_id": order_id,
            "product_id": self.product_id,
            "product_name": self.product,
            "quantity": self.quantity,
            "unit_price": self.price,
            "total_price": self.subtotal,
        }


@dataclass(frozen=True)
class Product:
    """Catalog entry used for item price backfill."""
    id: Any
    name: str
    price: float
