"""
Shared fixtures and fakes for the order desk test suite.
"""

import itertools
import uuid
from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import Dict, List, Optional

import pytest

from api.steadfast import BulkItemResult, Consignment
from database.models.order import Order, OrderStatus
from utils.errors import SteadfastError

_order_numbers = itertools.count(1001)


def make_order(
    order_id: Optional[str] = None,
    name: str = "Rahim Uddin",
    number: str = "01712345678",
    order_items: str = "2x Cotton Saree",
    address: str = "House 12, Road 5, Dhanmondi, Dhaka",
    amount="1250.00",
    status: OrderStatus = OrderStatus.PENDING,
    tracking_code: Optional[str] = None,
    **overrides,
) -> Order:
    """Build an Order without touching the database."""
    now = datetime(2024, 5, 1, 12, 30)
    fields = dict(
        doc_id=uuid.uuid4(),
        order_id=order_id if order_id is not None else f"ORD-DR-{next(_order_numbers)}",
        name=name,
        number=number,
        order_items=order_items,
        address=address,
        amount=Decimal(str(amount)),
        reference="",
        status=status,
        tracking_code=tracking_code,
        notes="",
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return Order(**fields)


# ============================================================================
# Fakes
# ============================================================================


class FakeOrderManager:
    """In-memory stand-in for OrderManager, newest order first."""

    def __init__(self, orders: Optional[List[Order]] = None):
        self.orders: List[Order] = list(orders or [])
        self.confirm_calls: List[list] = []
        self.status_calls: List[list] = []
        self.fail_confirm = False
        self._next = itertools.count(2001)

    async def list_orders(self, page: int = 1, page_size: int = 10):
        total_pages = max(1, ceil(len(self.orders) / page_size))
        page = max(1, min(page, total_pages))
        start = (page - 1) * page_size
        # Copies, so tests can tell local list updates from stored ones
        return [o.with_changes() for o in self.orders[start:start + page_size]], total_pages

    async def list_tracked_orders(self):
        return [o.with_changes() for o in self.orders if o.tracking_code]

    async def get_order(self, doc_id):
        return next((o.with_changes() for o in self.orders if o.doc_id == doc_id), None)

    async def create_order(self, data: dict) -> Order:
        order = make_order(
            order_id=f"ORD-DR-{next(self._next)}",
            name=data["name"],
            number=data["number"],
            order_items=data["order_items"],
            address=data["address"],
            amount=data["amount"],
            reference=data.get("reference", ""),
            notes=data.get("notes", ""),
        )
        self.orders.insert(0, order)
        return order

    async def update_order(self, doc_id, changes: dict):
        for i, o in enumerate(self.orders):
            if o.doc_id == doc_id:
                self.orders[i] = o.with_changes(**changes)
                return self.orders[i].with_changes()
        return None

    async def delete_order(self, doc_id) -> bool:
        before = len(self.orders)
        self.orders = [o for o in self.orders if o.doc_id != doc_id]
        return len(self.orders) != before

    async def batch_confirm(self, confirmations):
        confirmations = list(confirmations)
        self.confirm_calls.append(confirmations)
        if self.fail_confirm:
            raise RuntimeError("connection to the database was lost")
        codes = dict(confirmations)
        for i, o in enumerate(self.orders):
            if o.doc_id in codes:
                self.orders[i] = o.with_changes(status=OrderStatus.CONFIRMED, tracking_code=codes[o.doc_id])

    async def batch_set_status(self, changes):
        changes = list(changes)
        self.status_calls.append(changes)
        statuses = dict(changes)
        for i, o in enumerate(self.orders):
            if o.doc_id in statuses:
                self.orders[i] = o.with_changes(status=OrderStatus(statuses[o.doc_id]))


class FakeSteadfast:
    """
    Records every call in `calls` as (method, argument).
    `statuses` maps an invoice or tracking code to a delivery status or an
    exception to raise; `bulk_errors` maps an invoice to a rejection message.
    """

    def __init__(self, statuses: Optional[Dict[str, object]] = None, balance: float = 1500.0):
        self.statuses: Dict[str, object] = dict(statuses or {})
        self.balance = balance
        self.bulk_errors: Dict[str, str] = {}
        self.bulk_missing: set = set()
        self.calls: List[tuple] = []

    def _status(self, method: str, key: str) -> str:
        self.calls.append((method, key))
        value = self.statuses.get(key)
        if value is None:
            raise SteadfastError("Failed to get status")
        if isinstance(value, BaseException):
            raise value
        return value

    async def status_by_invoice(self, invoice: str) -> str:
        return self._status("invoice", invoice)

    async def status_by_tracking_code(self, tracking_code: str) -> str:
        return self._status("tracking", tracking_code)

    async def get_balance(self) -> float:
        self.calls.append(("balance", None))
        return self.balance

    async def create_order(self, payload: dict) -> Consignment:
        self.calls.append(("create_order", payload["invoice"]))
        return Consignment(consignment_id=1, invoice=payload["invoice"], tracking_code=f"TRK-{payload['invoice']}")

    async def create_bulk_orders(self, payloads: list) -> List[BulkItemResult]:
        self.calls.append(("bulk", [p["invoice"] for p in payloads]))
        results = []
        for i, p in enumerate(payloads):
            invoice = p["invoice"]
            if invoice in self.bulk_missing:
                continue
            if invoice in self.bulk_errors:
                results.append(BulkItemResult(invoice=invoice, tracking_code=None, consignment_id=None,
                                              status="error", error=self.bulk_errors[invoice]))
            else:
                results.append(BulkItemResult(invoice=invoice, tracking_code=f"TRK-{invoice}",
                                              consignment_id=100 + i, status="success"))
        return results


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def steadfast():
    return FakeSteadfast()
