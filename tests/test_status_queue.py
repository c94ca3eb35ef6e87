"""
Tests for the Steadfast status queue: ordering, failure isolation,
the tracking code fallback and reconciliation with the store.
"""

import asyncio

import pytest

from conftest import FakeOrderManager, FakeSteadfast, make_order
from database.models.order import OrderStatus
from services.status_queue import StatusQueue
from utils.errors import SteadfastError


class SlowSteadfast(FakeSteadfast):
    """Tracks how many lookups run at the same time."""

    def __init__(self, statuses):
        super().__init__(statuses)
        self.in_flight = 0
        self.max_in_flight = 0

    async def status_by_invoice(self, invoice):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return self._status("invoice", invoice)
        finally:
            self.in_flight -= 1


# ============================================================================
# Ordering
# ============================================================================


class TestOrdering:

    @pytest.mark.asyncio
    async def test_lookups_run_in_submission_order(self):
        orders = [make_order(order_id=f"ORD-DR-{n}") for n in (3001, 3002, 3003)]
        client = SlowSteadfast({o.order_id: "pending" for o in orders})
        queue = StatusQueue(client, list(orders))

        futures = [queue.enqueue(o) for o in orders]
        await asyncio.gather(*futures)

        assert [key for _, key in client.calls] == ["ORD-DR-3001", "ORD-DR-3002", "ORD-DR-3003"]

    @pytest.mark.asyncio
    async def test_one_lookup_in_flight(self):
        orders = [make_order() for _ in range(5)]
        client = SlowSteadfast({o.order_id: "delivered" for o in orders})
        queue = StatusQueue(client, list(orders))

        await asyncio.gather(*(queue.enqueue(o) for o in orders))

        assert client.max_in_flight == 1
        assert not queue.processing
        assert len(queue) == 0

    @pytest.mark.asyncio
    async def test_enqueue_while_draining_is_served(self):
        first, second = make_order(), make_order()
        client = SlowSteadfast({first.order_id: "hold", second.order_id: "delivered"})
        queue = StatusQueue(client, [first, second])

        f1 = queue.enqueue(first)
        await asyncio.sleep(0)
        f2 = queue.enqueue(second)

        assert await f1 == "hold"
        assert await f2 == "delivered"


# ============================================================================
# Failure handling
# ============================================================================


class TestFailures:

    @pytest.mark.asyncio
    async def test_failure_only_rejects_its_own_future(self):
        bad, good = make_order(), make_order()
        client = FakeSteadfast({good.order_id: "delivered"})
        queue = StatusQueue(client, [bad, good])

        f_bad, f_good = queue.enqueue(bad), queue.enqueue(good)

        with pytest.raises(SteadfastError):
            await f_bad
        assert await f_good == "delivered"
        assert good.delivery_status == "delivered"
        assert bad.delivery_status is None

    @pytest.mark.asyncio
    async def test_tracking_code_fallback_used_once(self):
        order = make_order(tracking_code="SF123")
        client = FakeSteadfast({"SF123": "partial_delivered"})
        queue = StatusQueue(client, [order])

        assert await queue.enqueue(order) == "partial_delivered"
        assert client.calls == [("invoice", order.order_id), ("tracking", "SF123")]

    @pytest.mark.asyncio
    async def test_both_lookups_fail_with_invoice_error(self):
        invoice_error = SteadfastError("Consignment not found", http_status=404)
        order = make_order(tracking_code="SF404")
        client = FakeSteadfast({order.order_id: invoice_error, "SF404": SteadfastError("Unknown tracking")})
        queue = StatusQueue(client, [order])

        with pytest.raises(SteadfastError) as exc:
            await queue.enqueue(order)

        assert exc.value is invoice_error
        assert client.calls == [("invoice", order.order_id), ("tracking", "SF404")]

    @pytest.mark.asyncio
    async def test_no_identifiers(self):
        order = make_order(order_id="")
        queue = StatusQueue(FakeSteadfast(), [order])

        with pytest.raises(SteadfastError, match="No invoice ID or tracking ID"):
            await queue.enqueue(order)

    @pytest.mark.asyncio
    async def test_tracking_code_only(self):
        order = make_order(order_id="", tracking_code="SF777")
        client = FakeSteadfast({"SF777": "in_review"})
        queue = StatusQueue(client, [order])

        assert await queue.enqueue(order) == "in_review"
        assert client.calls == [("tracking", "SF777")]

    @pytest.mark.asyncio
    async def test_unknown_invoice_without_tracking_code_leaves_list_unchanged(self):
        order = make_order(order_id="ORD-DR-1001")
        listed = [order]
        client = FakeSteadfast({"ORD-DR-1001": SteadfastError("Not Found", http_status=404)})
        queue = StatusQueue(client, listed)

        with pytest.raises(SteadfastError):
            await queue.enqueue(order)

        assert client.calls == [("invoice", "ORD-DR-1001")]
        assert listed[0].delivery_status is None
        assert listed[0].status == OrderStatus.PENDING


# ============================================================================
# Local list updates
# ============================================================================


class TestListUpdates:

    @pytest.mark.asyncio
    async def test_matching_list_entry_updated_in_place(self):
        order = make_order()
        shown = order.with_changes()
        listed = [make_order(), shown]
        queue = StatusQueue(FakeSteadfast({order.order_id: "cancelled"}), listed)

        await queue.enqueue(order)

        assert listed[1] is shown
        assert shown.delivery_status == "cancelled"
        assert listed[0].delivery_status is None

    @pytest.mark.asyncio
    async def test_check_all_collects_results(self):
        ok, failing, skipped = make_order(), make_order(), make_order(order_id="")
        queue = StatusQueue(FakeSteadfast({ok.order_id: "delivered"}))

        results = await queue.check_all([ok, failing, skipped])

        assert [r.order for r in results] == [ok, failing]
        assert results[0].ok and results[0].status == "delivered"
        assert not results[1].ok
        assert isinstance(results[1].error, SteadfastError)


# ============================================================================
# Reconciliation
# ============================================================================


class TestReconcile:

    @pytest.mark.asyncio
    async def test_delivered_confirms_with_one_write(self):
        order = make_order(order_id="ORD-DR-1002", tracking_code="SF1002")
        store = FakeOrderManager([order.with_changes()])
        queue = StatusQueue(FakeSteadfast({"ORD-DR-1002": "delivered"}), [order])

        await queue.enqueue(order)
        changed = await queue.reconcile([order], store)

        assert changed == [order]
        assert order.status == OrderStatus.CONFIRMED
        assert store.status_calls == [[(order.doc_id, "Confirmed")]]
        assert store.orders[0].status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_second_run_writes_nothing(self):
        orders = [make_order(), make_order()]
        orders[0].delivery_status = "delivered_approval_pending"
        orders[1].delivery_status = "partial_delivered"
        store = FakeOrderManager([o.with_changes() for o in orders])
        queue = StatusQueue(FakeSteadfast(), orders)

        first = await queue.reconcile(orders, store)
        second = await queue.reconcile(orders, store)

        assert len(first) == 2
        assert second == []
        assert len(store.status_calls) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("courier_status", ["in_review", "pending", "hold", "cancelled"])
    async def test_confirmed_order_is_never_moved_back(self, courier_status):
        order = make_order(order_id="ORD-DR-1500", status=OrderStatus.CONFIRMED, tracking_code="SF1500")
        order.delivery_status = courier_status
        store = FakeOrderManager([order.with_changes()])

        changed = await StatusQueue(FakeSteadfast()).reconcile([order], store)

        assert changed == []
        assert store.status_calls == []
        assert order.status == OrderStatus.CONFIRMED
        assert order.tracking_code == "SF1500"

    @pytest.mark.asyncio
    async def test_orders_without_delivery_status_are_skipped(self):
        orders = [make_order(), make_order()]
        store = FakeOrderManager(orders)

        assert await StatusQueue(FakeSteadfast()).reconcile(orders, store) == []
        assert store.status_calls == []
