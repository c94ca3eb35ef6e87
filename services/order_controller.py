# services/order_controller.py
from dataclasses import dataclass, field
from typing import Dict, List, Optional
from uuid import UUID

from api.steadfast import SteadfastClient, build_consignment_payload
from database.managers.order_manager import OrderManager
from database.models.order import Order, OrderStatus
from services.balance_cache import BalanceCache
from services.status_queue import StatusQueue, StatusResult
from utils.errors import OrderDeskError, PersistenceError, ValidationError
from utils.logger import get_logger
from utils.validation import consignment_error, validate_order_data

log = get_logger("[OrderController]")

ALL_STATUSES = "All"


@dataclass
class ConsignmentOutcome:
    sent: List[Order] = field(default_factory=list)
    # order_id -> reason reported by Steadfast
    failed: Dict[str, str] = field(default_factory=dict)
    # failed subset, kept open for a retry
    pending: List[Order] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


class OrderListController:
    """
    State of the order table for one staff member: the current page,
    search and status filter, the selection and the courier confirmation
    batch. `orders` is shared with the status queue and is only ever
    mutated in place.
    """

    def __init__(self, order_manager: OrderManager, steadfast: SteadfastClient,
                 page_size: int = 10, balance_ttl: float = 300):
        self.order_manager = order_manager
        self.steadfast = steadfast
        self.page_size = page_size

        self.orders: List[Order] = []
        self.page = 1
        self.total_pages = 1
        self.search = ""
        self.status_filter = ALL_STATUSES
        self.selected: set[UUID] = set()
        self.courier_batch: List[Order] = []

        self.status_queue = StatusQueue(steadfast, self.orders)
        self.balance_cache = BalanceCache(steadfast.get_balance, ttl=balance_ttl)

    # --- page & filters ---

    async def load_page(self, page: Optional[int] = None) -> List[Order]:
        page = page or self.page
        orders, total_pages = await self.order_manager.list_orders(page, self.page_size)
        self.orders[:] = orders
        self.total_pages = total_pages
        self.page = max(1, min(page, total_pages))
        visible = {o.doc_id for o in orders}
        self.selected &= visible
        return self.orders

    def set_search(self, term: str) -> None:
        self.search = (term or "").strip()

    def set_status_filter(self, status: str) -> None:
        if status != ALL_STATUSES:
            status = OrderStatus(status).value
        self.status_filter = status

    def filtered_orders(self) -> List[Order]:
        term = self.search.lower()
        result = []
        for o in self.orders:
            if self.status_filter != ALL_STATUSES and o.status.value != self.status_filter:
                continue
            if term and not (term in o.name.lower() or term in o.number or term in o.order_id.lower()):
                continue
            result.append(o)
        return result

    def find(self, doc_id: UUID) -> Optional[Order]:
        return next((o for o in self.orders if o.doc_id == doc_id), None)

    # --- selection ---

    def toggle_selected(self, doc_id: UUID) -> bool:
        if doc_id in self.selected:
            self.selected.discard(doc_id)
            return False
        self.selected.add(doc_id)
        return True

    def select_all(self) -> None:
        self.selected = {o.doc_id for o in self.filtered_orders()}

    def clear_selection(self) -> None:
        self.selected.clear()

    def selected_orders(self) -> List[Order]:
        return [o for o in self.orders if o.doc_id in self.selected]

    # --- CRUD ---

    async def create_order(self, data: dict) -> Order:
        cleaned = validate_order_data(data)
        order = await self.order_manager.create_order(cleaned)
        await self.load_page(1)
        return order

    async def update_order(self, doc_id: UUID, data: dict) -> Order:
        cleaned = validate_order_data(data, partial=True)
        updated = await self.order_manager.update_order(doc_id, cleaned)
        if updated is None:
            raise OrderDeskError("Order document not found.")
        self._replace(updated)
        return updated

    async def delete_order(self, doc_id: UUID) -> None:
        if not await self.order_manager.delete_order(doc_id):
            raise OrderDeskError("Order document not found.")
        self.orders[:] = [o for o in self.orders if o.doc_id != doc_id]
        self.selected.discard(doc_id)

    def _replace(self, order: Order) -> None:
        for i, o in enumerate(self.orders):
            if o.doc_id == order.doc_id:
                order.delivery_status = o.delivery_status
                self.orders[i] = order

    # --- courier ---

    def open_courier_batch(self, orders: List[Order]) -> List[Order]:
        if not orders:
            raise ValidationError({"orders": "Please select orders"})
        self.courier_batch = list(orders)
        return self.courier_batch

    def discard_from_batch(self, order_id: str) -> None:
        self.courier_batch = [o for o in self.courier_batch if o.order_id != order_id]

    async def send_to_courier(self, orders: Optional[List[Order]] = None) -> ConsignmentOutcome:
        """
        Creates Steadfast consignments for the orders (a single call for one
        order, the bulk endpoint for several) and confirms the accepted ones
        locally in one batch. Orders Steadfast rejected stay in the batch.
        """
        orders = list(orders if orders is not None else self.courier_batch)
        if not orders:
            raise ValidationError({"orders": "Please select orders"})

        errors = {}
        for o in orders:
            reason = consignment_error(o)
            if reason:
                errors[o.order_id or str(o.doc_id)] = reason
        if errors:
            raise ValidationError(errors, "Validation failed for one or more orders")

        outcome = ConsignmentOutcome()
        accepted: list[tuple[Order, str]] = []

        if len(orders) == 1:
            consignment = await self.steadfast.create_order(build_consignment_payload(orders[0]))
            accepted.append((orders[0], consignment.tracking_code))
        else:
            by_invoice = {o.order_id: o for o in orders}
            results = await self.steadfast.create_bulk_orders([build_consignment_payload(o) for o in orders])
            for item in results:
                order = by_invoice.get(item.invoice)
                if order is None:
                    continue
                if item.ok:
                    accepted.append((order, item.tracking_code))
                else:
                    outcome.failed[item.invoice] = item.error or item.status or "Unknown error"
            answered = {o.order_id for o, _ in accepted} | set(outcome.failed)
            for o in orders:
                if o.order_id not in answered:
                    outcome.failed[o.order_id] = "No response from Steadfast"

        # Rejected orders stay open for a retry even if the store write below fails
        outcome.pending = [o for o in orders if o.order_id in outcome.failed]
        self.courier_batch = list(outcome.pending)

        if accepted:
            self.balance_cache.invalidate()
            await self._confirm(accepted, outcome.failed)
            outcome.sent = [o.with_changes(status=OrderStatus.CONFIRMED, tracking_code=code) for o, code in accepted]

        log.info(f"Courier: {len(outcome.sent)} of {len(orders)} orders sent to Steadfast.")
        return outcome

    async def _confirm(self, accepted: list[tuple[Order, str]], failed: Dict[str, str]) -> None:
        try:
            await self.order_manager.batch_confirm([(o.doc_id, code) for o, code in accepted])
        except Exception as e:
            codes = ", ".join(f"{o.order_id}={code}" for o, code in accepted)
            log.exception(f"Orders were sent to Steadfast but the local update failed ({codes}): {e}")
            raise PersistenceError(
                f"Orders were sent to Steadfast but failed to update in database: {e}",
                accepted=accepted,
                failed=failed,
            ) from e

        codes = {o.doc_id: code for o, code in accepted}
        for o in self.orders:
            if o.doc_id in codes:
                o.status = OrderStatus.CONFIRMED
                o.tracking_code = codes[o.doc_id]

    # --- delivery status ---

    async def check_status(self, order: Order) -> str:
        if not order.order_id and not order.tracking_code:
            raise ValidationError({order.order_id or str(order.doc_id):
                                   "No invoice ID or tracking ID available for this order"})
        return await self.status_queue.enqueue(order)

    async def check_all_statuses(self) -> List[StatusResult]:
        candidates = [o for o in self.orders if o.order_id or o.tracking_code]
        if not candidates:
            raise ValidationError({"orders": "No orders with invoice IDs or tracking IDs found."})
        return await self.status_queue.check_all(candidates)

    async def reconcile_statuses(self) -> List[Order]:
        return await self.status_queue.reconcile(self.orders, self.order_manager)

    async def balance(self, force: bool = False) -> float:
        return await self.balance_cache.get(force=force)


class SessionRegistry:
    """One controller per staff member, created on first use."""

    def __init__(self, order_manager: OrderManager, steadfast: SteadfastClient,
                 page_size: int = 10, balance_ttl: float = 300):
        self._order_manager = order_manager
        self._steadfast = steadfast
        self._page_size = page_size
        self._balance_ttl = balance_ttl
        self._sessions: Dict[int, OrderListController] = {}

    def get(self, tg_user_id: int) -> OrderListController:
        controller = self._sessions.get(tg_user_id)
        if controller is None:
            controller = OrderListController(
                self._order_manager, self._steadfast,
                page_size=self._page_size, balance_ttl=self._balance_ttl,
            )
            self._sessions[tg_user_id] = controller
        return controller

    def drop(self, tg_user_id: int) -> None:
        self._sessions.pop(tg_user_id, None)
