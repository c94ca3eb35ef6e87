from math import ceil
from typing import Iterable, Optional
from uuid import UUID

from database.async_db import AsyncDatabase
from database.models.order import Order, OrderStatus
from utils.logger import get_logger

log = get_logger("[OrderManager]")

ORDER_ID_PREFIX = "ORD-DR-"
FIRST_ORDER_NUMBER = 1001

# Columns staff may change through the edit form
EDITABLE_COLUMNS = ("name", "number", "order_items", "address", "amount", "reference", "notes")


def next_order_id(last_order_id: Optional[str]) -> str:
    """
    ORD-DR-1001 for the very first order, otherwise the numeric suffix of the
    newest order plus one. Unparsable ids restart the sequence.
    """
    next_number = FIRST_ORDER_NUMBER
    if last_order_id and last_order_id.startswith(ORDER_ID_PREFIX):
        suffix = last_order_id[len(ORDER_ID_PREFIX):]
        if suffix.isdigit():
            next_number = int(suffix) + 1
    return f"{ORDER_ID_PREFIX}{next_number}"


class OrderManager:
    def __init__(self, db: AsyncDatabase):
        self.db = db

    async def generate_order_id(self) -> str:
        # Not collision-free when two staff members create orders at the same moment
        last = await self.db.fetchval("SELECT order_id FROM orders ORDER BY created_at DESC LIMIT 1")
        return next_order_id(last)

    async def create_order(self, data: dict) -> Order:
        """
        Stores a new order. Status is always Pending and the tracking code empty.
        """
        order_id = await self.generate_order_id()
        rec = await self.db.fetchrow(
            """
            INSERT INTO orders (order_id, name, number, order_items, address, amount, reference, status,
                                tracking_code, notes)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, NULL, $9)
            RETURNING *
            """,
            order_id, data["name"], data["number"], data["order_items"], data["address"], data["amount"],
            data.get("reference", ""), OrderStatus.PENDING.value, data.get("notes", ""),
        )
        log.info(f"Order {order_id} created.")
        return Order.from_record(rec)

    async def list_orders(self, page: int = 1, page_size: int = 10) -> tuple[list[Order], int]:
        """
        Newest first. Returns (orders of the page, total number of pages).
        """
        total = int(await self.db.fetchval("SELECT COUNT(*) FROM orders"))
        total_pages = max(1, ceil(total / page_size))
        page = max(1, min(page, total_pages))

        recs = await self.db.fetch(
            "SELECT * FROM orders ORDER BY created_at DESC, order_id DESC LIMIT $1 OFFSET $2",
            page_size, (page - 1) * page_size,
        )
        return [Order.from_record(r) for r in recs], total_pages

    async def list_tracked_orders(self) -> list[Order]:
        """Orders already handed to the courier."""
        recs = await self.db.fetch(
            "SELECT * FROM orders WHERE tracking_code IS NOT NULL AND tracking_code <> '' "
            "ORDER BY created_at DESC"
        )
        return [Order.from_record(r) for r in recs]

    async def get_order(self, doc_id: UUID) -> Optional[Order]:
        rec = await self.db.fetchrow("SELECT * FROM orders WHERE doc_id = $1", doc_id)
        return Order.from_record(rec) if rec else None

    async def get_order_by_order_id(self, order_id: str) -> Optional[Order]:
        rec = await self.db.fetchrow("SELECT * FROM orders WHERE order_id = $1", order_id)
        return Order.from_record(rec) if rec else None

    async def update_order(self, doc_id: UUID, changes: dict) -> Optional[Order]:
        columns = [c for c in EDITABLE_COLUMNS if c in changes]
        if not columns:
            return await self.get_order(doc_id)

        assignments = ", ".join(f"{c} = ${i}" for i, c in enumerate(columns, start=2))
        values = [changes[c] for c in columns]
        rec = await self.db.fetchrow(
            f"UPDATE orders SET {assignments}, updated_at = now() WHERE doc_id = $1 RETURNING *",
            doc_id, *values,
        )
        if rec:
            log.info(f"Order {rec['order_id']} updated: {', '.join(columns)}.")
        return Order.from_record(rec) if rec else None

    async def delete_order(self, doc_id: UUID) -> bool:
        result = await self.db.execute("DELETE FROM orders WHERE doc_id = $1", doc_id)
        deleted = result.upper() == "DELETE 1"
        if deleted:
            log.info(f"Order {doc_id} deleted.")
        return deleted

    async def batch_confirm(self, confirmations: Iterable[tuple[UUID, str]]) -> None:
        """
        Marks orders Confirmed with their tracking codes in one transaction.
        """
        rows = [(doc_id, tracking_code) for doc_id, tracking_code in confirmations]
        if not rows:
            return
        await self.db.executemany(
            "UPDATE orders SET status = 'Confirmed', tracking_code = $2, updated_at = now() WHERE doc_id = $1",
            rows,
        )
        log.info(f"{len(rows)} orders confirmed with tracking codes.")

    async def batch_set_status(self, changes: Iterable[tuple[UUID, str]]) -> None:
        """
        Writes new statuses for several orders in one transaction.
        """
        rows = [(doc_id, str(OrderStatus(status).value)) for doc_id, status in changes]
        if not rows:
            return
        await self.db.executemany(
            "UPDATE orders SET status = $2, updated_at = now() WHERE doc_id = $1",
            rows,
        )
        log.info(f"Status updated for {len(rows)} orders.")
