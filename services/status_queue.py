# services/status_queue.py
import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional, Protocol

from database.models.order import Order, OrderStatus
from utils.errors import SteadfastError
from utils.logger import get_logger
from utils.statuses import map_delivery_status

log = get_logger("[StatusQueue]")


class StatusLookup(Protocol):
    async def status_by_invoice(self, invoice: str) -> str: ...

    async def status_by_tracking_code(self, tracking_code: str) -> str: ...


class StatusWriter(Protocol):
    async def batch_set_status(self, changes) -> None: ...


@dataclass
class StatusQueueItem:
    order: Order
    future: asyncio.Future


@dataclass
class StatusResult:
    order: Order
    status: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.status)


class StatusQueue:
    """
    Serializes delivery status lookups against Steadfast.

    Requests are served strictly in submission order by a single drain task,
    so at most one lookup is in flight no matter how many callers enqueue
    at once. A failed lookup only fails its own future.

    `orders` is the order list shown to staff; a successful lookup writes
    the delivery status into the matching entry of that list in place.
    """

    def __init__(self, client: StatusLookup, orders: Optional[List[Order]] = None):
        self._client = client
        self.orders: List[Order] = orders if orders is not None else []
        self._pending: Deque[StatusQueueItem] = deque()
        self._worker: Optional[asyncio.Task] = None

    @property
    def processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def __len__(self) -> int:
        return len(self._pending)

    def enqueue(self, order: Order) -> asyncio.Future:
        """
        Queues a status check. The returned future resolves with the raw
        delivery status or fails with the lookup error.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append(StatusQueueItem(order=order, future=future))
        if not self.processing:
            self._worker = loop.create_task(self._drain())
        return future

    async def join(self) -> None:
        """Waits until everything queued so far has been processed."""
        while self.processing:
            await asyncio.shield(self._worker)

    async def _drain(self) -> None:
        while self._pending:
            item = self._pending.popleft()
            try:
                status = await self._lookup(item.order)
            except Exception as e:
                log.warning(f"Status check for {item.order.order_id} failed: {e}")
                if not item.future.done():
                    item.future.set_exception(e)
                continue

            self._apply(item.order, status)
            if not item.future.done():
                item.future.set_result(status)

    async def _lookup(self, order: Order) -> str:
        # Invoice (our order id) first, the tracking code is the only fallback
        if not order.order_id:
            if not order.tracking_code:
                raise SteadfastError("No invoice ID or tracking ID available for this order")
            return await self._client.status_by_tracking_code(order.tracking_code)

        try:
            return await self._client.status_by_invoice(order.order_id)
        except Exception as invoice_error:
            if not order.tracking_code:
                raise
            log.debug(f"Invoice lookup for {order.order_id} failed, trying tracking code {order.tracking_code}")
            try:
                return await self._client.status_by_tracking_code(order.tracking_code)
            except Exception as tracking_error:
                log.debug(f"Tracking code lookup for {order.order_id} failed too: {tracking_error}")
                raise invoice_error

    def _apply(self, order: Order, status: str) -> None:
        order.delivery_status = status
        for o in self.orders:
            if o.doc_id == order.doc_id:
                o.delivery_status = status
        log.debug(f"{order.order_id}: delivery status {status}")

    async def check_all(self, orders: List[Order]) -> List[StatusResult]:
        """
        Enqueues every order that has an invoice or tracking id and waits for
        all of them. Failures are collected, not raised.
        """
        eligible = [o for o in orders if o.order_id or o.tracking_code]
        futures = [self.enqueue(o) for o in eligible]

        results: List[StatusResult] = []
        for order, future in zip(eligible, futures):
            try:
                results.append(StatusResult(order=order, status=await future))
            except Exception as e:
                results.append(StatusResult(order=order, error=e))

        ok = sum(r.ok for r in results)
        log.info(f"Status check finished: {ok} of {len(results)} succeeded.")
        return results

    async def reconcile(self, orders: List[Order], writer: StatusWriter) -> List[Order]:
        """
        Maps each known delivery status to the local status and writes, in
        one batch, only the orders whose status actually changes.
        Confirmed orders are never moved back to Pending: they keep their
        consignment, and in-transit statuses map to Pending too.
        Returns the changed orders.
        """
        changes = []
        for order in orders:
            if not order.delivery_status:
                continue
            mapped = OrderStatus(map_delivery_status(order.delivery_status))
            if mapped == order.status:
                continue
            if order.status == OrderStatus.CONFIRMED:
                log.debug(f"{order.order_id}: courier reports {order.delivery_status}, kept Confirmed")
                continue
            changes.append((order, mapped))

        if not changes:
            log.debug("Reconciliation: nothing to write.")
            return []

        await writer.batch_set_status([(order.doc_id, mapped.value) for order, mapped in changes])
        for order, mapped in changes:
            order.status = mapped
        log.info(f"Reconciliation: {len(changes)} orders updated.")
        return [order for order, _ in changes]
