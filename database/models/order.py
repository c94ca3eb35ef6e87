# database/models/order.py

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

import asyncpg


class OrderStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"


@dataclass
class Order:
    doc_id: UUID
    order_id: str  # ORD-DR-1001
    name: str
    number: str
    order_items: str
    address: str
    amount: Decimal
    reference: str
    status: OrderStatus
    tracking_code: Optional[str]
    notes: str
    created_at: datetime
    updated_at: datetime

    # Courier-side status from the last lookup, never stored
    delivery_status: Optional[str] = field(default=None, compare=False)

    @classmethod
    def from_record(cls, record: asyncpg.Record) -> Optional["Order"]:
        if not record:
            return None

        return cls(
            doc_id=record["doc_id"],
            order_id=record["order_id"],
            name=record["name"],
            number=record["number"],
            order_items=record["order_items"],
            address=record["address"],
            amount=record["amount"],
            reference=record.get("reference") or "",
            status=OrderStatus(record["status"]),
            tracking_code=record.get("tracking_code") or None,
            notes=record.get("notes") or "",
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )

    def with_changes(self, **changes) -> "Order":
        return replace(self, **changes)
