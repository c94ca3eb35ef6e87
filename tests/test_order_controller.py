"""
OrderListController with an in-memory store and a fake Steadfast gateway.
"""

from decimal import Decimal

import pytest

from conftest import FakeOrderManager, FakeSteadfast, make_order
from database.models.order import OrderStatus
from services.order_controller import ALL_STATUSES, OrderListController, SessionRegistry
from utils.errors import OrderDeskError, PersistenceError, ValidationError


def make_controller(orders=None, steadfast=None, page_size=10):
    store = FakeOrderManager(orders)
    gateway = steadfast or FakeSteadfast()
    return OrderListController(store, gateway, page_size=page_size), store, gateway


# ============================================================================
# Page, search & filters
# ============================================================================


class TestListing:

    @pytest.mark.asyncio
    async def test_page_is_clamped(self):
        controller, _, _ = make_controller([make_order() for _ in range(25)])

        await controller.load_page(7)

        assert controller.page == 3
        assert controller.total_pages == 3
        assert len(controller.orders) == 5

    @pytest.mark.asyncio
    async def test_search_matches_name_phone_and_order_id(self):
        orders = [
            make_order(order_id="ORD-DR-1101", name="Nusrat Jahan", number="01811111111"),
            make_order(order_id="ORD-DR-1102", name="Tanvir Hasan", number="01922222222"),
            make_order(order_id="ORD-DR-1103", name="Sadia Islam", number="01533333333"),
        ]
        controller, _, _ = make_controller(orders)
        await controller.load_page()

        controller.set_search("nusrat")
        assert [o.order_id for o in controller.filtered_orders()] == ["ORD-DR-1101"]
        controller.set_search("0192222")
        assert [o.order_id for o in controller.filtered_orders()] == ["ORD-DR-1102"]
        controller.set_search("ord-dr-1103")
        assert [o.order_id for o in controller.filtered_orders()] == ["ORD-DR-1103"]
        controller.set_search("   ")
        assert len(controller.filtered_orders()) == 3

    @pytest.mark.asyncio
    async def test_status_filter(self):
        orders = [make_order(), make_order(status=OrderStatus.CONFIRMED, tracking_code="SF1")]
        controller, _, _ = make_controller(orders)
        await controller.load_page()

        controller.set_status_filter("Confirmed")
        assert [o.status for o in controller.filtered_orders()] == [OrderStatus.CONFIRMED]
        controller.set_status_filter(ALL_STATUSES)
        assert len(controller.filtered_orders()) == 2

        with pytest.raises(ValueError):
            controller.set_status_filter("Shipped")

    @pytest.mark.asyncio
    async def test_selection_follows_the_page(self):
        orders = [make_order() for _ in range(12)]
        controller, _, _ = make_controller(orders)
        await controller.load_page(1)

        controller.select_all()
        assert len(controller.selected) == 10
        controller.toggle_selected(orders[0].doc_id)
        assert len(controller.selected_orders()) == 9

        await controller.load_page(2)
        assert controller.selected == set()


# ============================================================================
# CRUD
# ============================================================================


class TestCrud:

    @pytest.mark.asyncio
    async def test_create_validates_and_reloads(self):
        controller, store, _ = make_controller([make_order()])

        order = await controller.create_order({
            "name": "Mitu Akter", "number": "+8801712345678", "order_items": "Bag",
            "address": "Sylhet", "amount": "800",
        })

        assert order.status == OrderStatus.PENDING
        assert order.tracking_code is None
        assert order.number == "01712345678"
        assert order.amount == Decimal("800.00")
        assert controller.orders[0].doc_id == order.doc_id
        assert len(store.orders) == 2

    @pytest.mark.asyncio
    async def test_create_rejects_bad_form(self):
        controller, store, _ = make_controller()
        with pytest.raises(ValidationError):
            await controller.create_order({"name": "X"})
        assert store.orders == []

    @pytest.mark.asyncio
    async def test_update_keeps_delivery_status(self):
        order = make_order()
        controller, _, _ = make_controller([order])
        await controller.load_page()
        controller.orders[0].delivery_status = "hold"

        updated = await controller.update_order(order.doc_id, {"address": "Khulna"})

        assert updated.address == "Khulna"
        assert controller.orders[0].address == "Khulna"
        assert controller.orders[0].delivery_status == "hold"

    @pytest.mark.asyncio
    async def test_update_and_delete_missing_order(self):
        controller, _, _ = make_controller()
        missing = make_order().doc_id

        with pytest.raises(OrderDeskError, match="not found"):
            await controller.update_order(missing, {"notes": "x"})
        with pytest.raises(OrderDeskError, match="not found"):
            await controller.delete_order(missing)

    @pytest.mark.asyncio
    async def test_delete_drops_from_list_and_selection(self):
        order = make_order()
        controller, store, _ = make_controller([order, make_order()])
        await controller.load_page()
        controller.toggle_selected(order.doc_id)

        await controller.delete_order(order.doc_id)

        assert order.doc_id not in {o.doc_id for o in controller.orders}
        assert controller.selected == set()
        assert len(store.orders) == 1


# ============================================================================
# Courier
# ============================================================================


class TestSendToCourier:

    @pytest.mark.asyncio
    async def test_single_order_uses_single_endpoint(self):
        order = make_order(order_id="ORD-DR-1201")
        controller, store, gateway = make_controller([order])
        await controller.load_page()

        outcome = await controller.send_to_courier([controller.orders[0]])

        assert outcome.complete
        assert gateway.calls == [("create_order", "ORD-DR-1201")]
        assert store.confirm_calls == [[(order.doc_id, "TRK-ORD-DR-1201")]]
        assert controller.orders[0].status == OrderStatus.CONFIRMED
        assert controller.orders[0].tracking_code == "TRK-ORD-DR-1201"
        assert controller.courier_batch == []

    @pytest.mark.asyncio
    async def test_bulk_with_one_duplicate(self):
        orders = [make_order(order_id=f"ORD-DR-130{n}") for n in (1, 2, 3)]
        gateway = FakeSteadfast()
        gateway.bulk_errors["ORD-DR-1302"] = "The invoice has already been taken."
        controller, store, _ = make_controller(orders, gateway)
        await controller.load_page()
        controller.open_courier_batch(list(controller.orders))

        outcome = await controller.send_to_courier()

        assert [c[0] for c in gateway.calls] == ["bulk"]
        assert [o.order_id for o in outcome.sent] == ["ORD-DR-1301", "ORD-DR-1303"]
        assert outcome.failed == {"ORD-DR-1302": "The invoice has already been taken."}
        assert not outcome.complete
        assert len(store.confirm_calls) == 1
        assert {o.order_id: o.status for o in store.orders} == {
            "ORD-DR-1301": OrderStatus.CONFIRMED,
            "ORD-DR-1302": OrderStatus.PENDING,
            "ORD-DR-1303": OrderStatus.CONFIRMED,
        }
        assert [o.order_id for o in controller.courier_batch] == ["ORD-DR-1302"]

    @pytest.mark.asyncio
    async def test_orders_missing_from_response_fail(self):
        orders = [make_order(order_id="ORD-DR-1401"), make_order(order_id="ORD-DR-1402")]
        gateway = FakeSteadfast()
        gateway.bulk_missing.add("ORD-DR-1402")
        controller, _, _ = make_controller(orders, gateway)

        outcome = await controller.send_to_courier(orders)

        assert outcome.failed == {"ORD-DR-1402": "No response from Steadfast"}

    @pytest.mark.asyncio
    async def test_invalid_order_blocks_the_whole_batch(self):
        orders = [make_order(), make_order(order_id="ORD-DR-1501", number="12345")]
        controller, store, gateway = make_controller(orders)

        with pytest.raises(ValidationError) as exc:
            await controller.send_to_courier(orders)

        assert exc.value.errors == {"ORD-DR-1501": "Phone number must be 11 digits"}
        assert gateway.calls == []
        assert store.confirm_calls == []

    @pytest.mark.asyncio
    async def test_store_failure_after_gateway_success(self):
        orders = [make_order(), make_order()]
        controller, store, gateway = make_controller(orders)
        store.fail_confirm = True
        await controller.load_page()

        with pytest.raises(PersistenceError) as exc:
            await controller.send_to_courier(list(controller.orders))

        assert [o.doc_id for o in exc.value.orders] == [o.doc_id for o in orders]
        assert all(o.status == OrderStatus.PENDING for o in controller.orders)
        assert gateway.calls[0][0] == "bulk"

    @pytest.mark.asyncio
    async def test_store_failure_keeps_codes_and_rejected_orders(self):
        orders = [make_order(order_id=f"ORD-DR-135{n}") for n in (1, 2, 3)]
        gateway = FakeSteadfast()
        gateway.bulk_errors["ORD-DR-1352"] = "The invoice has already been taken."
        controller, store, _ = make_controller(orders, gateway)
        store.fail_confirm = True
        await controller.load_page()
        controller.open_courier_batch(list(controller.orders))

        with pytest.raises(PersistenceError) as exc:
            await controller.send_to_courier()

        assert [(o.order_id, code) for o, code in exc.value.accepted] == [
            ("ORD-DR-1351", "TRK-ORD-DR-1351"),
            ("ORD-DR-1353", "TRK-ORD-DR-1353"),
        ]
        assert exc.value.failed == {"ORD-DR-1352": "The invoice has already been taken."}
        assert [o.order_id for o in controller.courier_batch] == ["ORD-DR-1352"]

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        controller, _, _ = make_controller()
        with pytest.raises(ValidationError):
            await controller.send_to_courier()
        with pytest.raises(ValidationError):
            controller.open_courier_batch([])

    @pytest.mark.asyncio
    async def test_discard_from_batch(self):
        orders = [make_order(order_id="ORD-DR-1601"), make_order(order_id="ORD-DR-1602")]
        controller, _, _ = make_controller(orders)
        controller.open_courier_batch(orders)

        controller.discard_from_batch("ORD-DR-1601")

        assert [o.order_id for o in controller.courier_batch] == ["ORD-DR-1602"]


# ============================================================================
# Delivery status & balance
# ============================================================================


class TestStatusAndBalance:

    @pytest.mark.asyncio
    async def test_check_all_then_reconcile(self):
        orders = [
            make_order(order_id="ORD-DR-1701"),
            make_order(order_id="ORD-DR-1702", status=OrderStatus.CONFIRMED, tracking_code="SF2"),
        ]
        gateway = FakeSteadfast({"ORD-DR-1701": "delivered", "ORD-DR-1702": "cancelled"})
        controller, store, _ = make_controller(orders, gateway)
        await controller.load_page()

        results = await controller.check_all_statuses()
        changed = await controller.reconcile_statuses()

        assert all(r.ok for r in results)
        assert [o.order_id for o in changed] == ["ORD-DR-1701"]
        assert store.status_calls == [[(orders[0].doc_id, "Confirmed")]]
        assert controller.orders[0].status == OrderStatus.CONFIRMED
        assert controller.orders[1].status == OrderStatus.CONFIRMED
        assert await controller.reconcile_statuses() == []

    @pytest.mark.asyncio
    async def test_check_status_updates_shown_order(self):
        order = make_order(order_id="ORD-DR-1801")
        controller, _, _ = make_controller([order], FakeSteadfast({"ORD-DR-1801": "hold"}))
        await controller.load_page()

        assert await controller.check_status(order) == "hold"
        assert controller.orders[0].delivery_status == "hold"

    @pytest.mark.asyncio
    async def test_check_all_without_candidates(self):
        controller, _, _ = make_controller()
        with pytest.raises(ValidationError):
            await controller.check_all_statuses()

    @pytest.mark.asyncio
    async def test_balance_is_cached_until_a_send(self):
        order = make_order()
        controller, _, gateway = make_controller([order])

        assert await controller.balance() == 1500.0
        assert await controller.balance() == 1500.0
        await controller.send_to_courier([order])
        gateway.balance = 250.0
        assert await controller.balance() == 250.0
        assert [c for c in gateway.calls if c[0] == "balance"] == [("balance", None), ("balance", None)]


class TestSessionRegistry:

    def test_one_controller_per_user(self):
        registry = SessionRegistry(FakeOrderManager(), FakeSteadfast())

        first = registry.get(42)
        assert registry.get(42) is first
        assert registry.get(43) is not first

        registry.drop(42)
        assert registry.get(42) is not first
