import asyncio
from html import escape
from uuid import UUID

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery, BufferedInputFile, InlineKeyboardMarkup, InlineKeyboardButton

from api.fraud_check import FraudCheckClient
from database.models.order import Order
from database.models.staff import Staff
from handlers.fraud import format_courier_ratio
from keyboards.orders import get_orders_list_kb, order_detail_kb, order_delete_confirm_kb, form_cancel_kb
from services.courier_ratio import aggregate_courier_ratio
from services.invoice import render_invoices
from services.order_controller import OrderListController, ALL_STATUSES
from utils.decorators import handle_telegram_error, staff_only
from utils.errors import InvoiceError, OrderDeskError, SteadfastError, ValidationError
from utils.logger import get_logger
from utils.statuses import delivery_status_label

log = get_logger("[Bot.Orders]")

orders_router = Router()


class OrderSearch(StatesGroup):
    waiting_term = State()


def format_order_line(o: Order) -> str:
    line = f"<code>{o.order_id}</code> · {escape(o.name)} · {o.number} · {o.amount:.2f} Tk · {o.status.value}"
    if o.delivery_status:
        line += f" · {delivery_status_label(o.delivery_status)}"
    return line


def format_orders_page(controller: OrderListController) -> str:
    visible = controller.filtered_orders()
    lines = [f"📦 <b>Orders</b> · page {controller.page}/{controller.total_pages}"]
    filters = [f"Status: {controller.status_filter}"]
    if controller.search:
        filters.append(f"Search: «{escape(controller.search)}»")
    if controller.selected:
        filters.append(f"Selected: {len(controller.selected)}")
    lines.append(" · ".join(filters))
    lines.append("")
    if not visible:
        lines.append("No orders found.")
    lines.extend(format_order_line(o) for o in visible)
    return "\n".join(lines)


def format_order_details(o: Order) -> str:
    return (
        f"<b>Order {o.order_id}</b>\n"
        f"<b>Customer:</b> {escape(o.name)}\n"
        f"<b>Phone:</b> <code>{o.number}</code>\n"
        f"<b>Items:</b> {escape(o.order_items)}\n"
        f"<b>Address:</b> {escape(o.address)}\n"
        f"<b>Amount:</b> {o.amount:.2f} Tk\n"
        f"<b>Reference:</b> {escape(o.reference) or '—'}\n"
        f"<b>Status:</b> {o.status.value}\n"
        f"<b>Tracking code:</b> <code>{escape(o.tracking_code or '—')}</code>\n"
        f"<b>Delivery:</b> {delivery_status_label(o.delivery_status)}\n"
        f"<b>Notes:</b> {escape(o.notes) or '—'}\n"
        f"<b>Created:</b> {o.created_at:%d.%m.%Y %H:%M}\n"
        f"<b>Updated:</b> {o.updated_at:%d.%m.%Y %H:%M}"
    )


def _doc_id(call: CallbackQuery) -> UUID | None:
    try:
        return UUID(call.data.split(":")[1])
    except (IndexError, ValueError):
        return None


async def show_orders(call: CallbackQuery, controller: OrderListController, reload: bool = True,
                      answer: bool = True):
    if reload:
        await controller.load_page()
    kb = get_orders_list_kb(
        controller.filtered_orders(), controller.selected, controller.page, controller.total_pages,
        controller.status_filter, searching=bool(controller.search),
    )
    try:
        await call.message.edit_text(format_orders_page(controller), parse_mode="HTML", reply_markup=kb)
        if answer:
            await call.answer()
    except TelegramBadRequest as e:
        log.error(f"[Bot.Orders] Could not edit the order list: {e}")
        await handle_telegram_error(e, call=call)


async def _order_or_alert(call: CallbackQuery, controller: OrderListController) -> Order | None:
    doc_id = _doc_id(call)
    order = controller.find(doc_id) if doc_id else None
    if order is None and doc_id:
        order = await controller.order_manager.get_order(doc_id)
    if order is None:
        await call.answer("Order not found. Refresh the list.", show_alert=True)
    return order


@orders_router.callback_query(F.data == "orders")
@staff_only
async def cb_orders(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    await state.clear()
    await show_orders(call, controller)


@orders_router.callback_query(F.data.startswith("ord-page:"))
@staff_only
async def cb_orders_page(call: CallbackQuery, controller: OrderListController):
    try:
        page = int(call.data.split(":")[-1])
    except ValueError:
        page = 1
    await controller.load_page(page)
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data.startswith("ord-filter:"))
@staff_only
async def cb_orders_filter(call: CallbackQuery, controller: OrderListController):
    value = call.data.split(":", 1)[1]
    try:
        controller.set_status_filter(value)
    except ValueError:
        controller.set_status_filter(ALL_STATUSES)
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data == "ord-search")
@staff_only
async def cb_orders_search(call: CallbackQuery, state: FSMContext):
    await state.set_state(OrderSearch.waiting_term)
    await call.message.answer("Type a name, phone or order id to search:", reply_markup=form_cancel_kb())
    await call.answer()


@orders_router.message(OrderSearch.waiting_term)
@staff_only
async def msg_orders_search(message: Message, state: FSMContext, controller: OrderListController):
    controller.set_search(message.text or "")
    await state.clear()
    if not controller.orders:
        await controller.load_page()
    kb = get_orders_list_kb(
        controller.filtered_orders(), controller.selected, controller.page, controller.total_pages,
        controller.status_filter, searching=bool(controller.search),
    )
    await message.answer(format_orders_page(controller), parse_mode="HTML", reply_markup=kb)


@orders_router.callback_query(F.data == "ord-search-clear")
@staff_only
async def cb_orders_search_clear(call: CallbackQuery, controller: OrderListController):
    controller.set_search("")
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data.startswith("ord-sel:"))
@staff_only
async def cb_orders_toggle(call: CallbackQuery, controller: OrderListController):
    doc_id = _doc_id(call)
    if doc_id is None:
        await call.answer()
        return
    controller.toggle_selected(doc_id)
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data == "ord-sel-all")
@staff_only
async def cb_orders_select_all(call: CallbackQuery, controller: OrderListController):
    controller.select_all()
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data == "ord-sel-clear")
@staff_only
async def cb_orders_select_clear(call: CallbackQuery, controller: OrderListController):
    controller.clear_selection()
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data.startswith("ord:"))
@staff_only
async def cb_order_detail(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    await state.clear()
    order = await _order_or_alert(call, controller)
    if order is None:
        return
    try:
        await call.message.edit_text(format_order_details(order), parse_mode="HTML",
                                     reply_markup=order_detail_kb(order))
        await call.answer()
    except TelegramBadRequest as e:
        log.error(f"[Bot.Orders] Could not show order {order.order_id}: {e}")
        await handle_telegram_error(e, call=call, state=state)


@orders_router.callback_query(F.data.startswith("ord-del:"))
@staff_only
async def cb_order_delete(call: CallbackQuery, controller: OrderListController):
    order = await _order_or_alert(call, controller)
    if order is None:
        return
    await call.message.edit_text(
        f"Delete order <b>{order.order_id}</b> ({escape(order.name)})? This cannot be undone.",
        parse_mode="HTML",
        reply_markup=order_delete_confirm_kb(order),
    )
    await call.answer()


@orders_router.callback_query(F.data.startswith("ord-del-yes:"))
@staff_only
async def cb_order_delete_yes(call: CallbackQuery, controller: OrderListController, staff: Staff):
    doc_id = _doc_id(call)
    try:
        await controller.delete_order(doc_id)
    except OrderDeskError as e:
        await call.answer(str(e), show_alert=True)
        return
    log.info(f"[Bot.Orders] Order {doc_id} deleted by {staff.tg_user_id}")
    await call.answer("Order deleted successfully")
    await show_orders(call, controller, answer=False)


@orders_router.callback_query(F.data.startswith("ord-check:"))
@staff_only
async def cb_order_check(call: CallbackQuery, controller: OrderListController):
    order = await _order_or_alert(call, controller)
    if order is None:
        return
    try:
        status = await controller.check_status(order)
    except (SteadfastError, ValidationError) as e:
        log.warning(f"[Bot.Orders] Status check for {order.order_id} failed: {e}")
        await call.answer(f"Failed to check delivery status: {e}", show_alert=True)
        return

    await call.answer(f"{order.order_id}: {delivery_status_label(status)}")
    try:
        await call.message.edit_text(format_order_details(order), parse_mode="HTML",
                                     reply_markup=order_detail_kb(order))
    except TelegramBadRequest as e:
        await handle_telegram_error(e, call=call)


@orders_router.callback_query(F.data == "ord-check-all")
@staff_only
async def cb_orders_check_all(call: CallbackQuery, controller: OrderListController):
    if not controller.orders:
        await controller.load_page()
    await call.answer("Checking delivery statuses…")
    try:
        results = await controller.check_all_statuses()
    except ValidationError as e:
        await call.message.answer(next(iter(e.errors.values())))
        return

    ok = sum(r.ok for r in results)
    text = f"📡 Successfully checked {ok} of {len(results)} order delivery statuses."
    failed = [r for r in results if not r.ok]
    if failed:
        text += "\n" + "\n".join(f"• {r.order.order_id}: {escape(str(r.error))}" for r in failed[:10])
    kb = InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="💾 Save mapped statuses", callback_data="ord-reconcile")],
        [InlineKeyboardButton(text="📦 Back to orders", callback_data="orders-keep")],
    ])
    await call.message.answer(text, parse_mode="HTML", reply_markup=kb)


@orders_router.callback_query(F.data == "orders-keep")
@staff_only
async def cb_orders_keep(call: CallbackQuery, controller: OrderListController):
    # Shows the list without reloading so checked delivery statuses stay visible
    await show_orders(call, controller, reload=False)


@orders_router.callback_query(F.data == "ord-reconcile")
@staff_only
async def cb_orders_reconcile(call: CallbackQuery, controller: OrderListController):
    try:
        changed = await controller.reconcile_statuses()
    except Exception as e:
        log.exception(f"[Bot.Orders] Saving mapped statuses failed: {e}")
        await call.answer("Failed to save statuses, try again later.", show_alert=True)
        return

    if not changed:
        await call.answer("All statuses are up to date.", show_alert=True)
        return
    await call.answer(f"{len(changed)} orders updated.")
    await show_orders(call, controller, reload=False, answer=False)


@orders_router.callback_query(F.data.startswith("ord-invoice:"))
@staff_only
async def cb_order_invoice(call: CallbackQuery, controller: OrderListController):
    order = await _order_or_alert(call, controller)
    if order is None:
        return
    await _send_invoices(call, [order])


@orders_router.callback_query(F.data == "ord-invoice-selected")
@staff_only
async def cb_orders_invoice_selected(call: CallbackQuery, controller: OrderListController):
    orders = controller.selected_orders()
    if not orders:
        await call.answer("Please select orders", show_alert=True)
        return
    await _send_invoices(call, orders)


async def _send_invoices(call: CallbackQuery, orders: list[Order]):
    await call.answer("Generating invoices…")
    try:
        files = await asyncio.to_thread(render_invoices, orders)
    except InvoiceError as e:
        log.error(f"Invoice rendering failed: {e}")
        await call.message.answer(f"❌ {escape(str(e))}")
        return
    for f in files:
        await call.message.answer_document(BufferedInputFile(f.content, filename=f.filename))
    await call.message.answer(f"{len(files)} invoice{'s' if len(files) > 1 else ''} downloaded")


@orders_router.callback_query(F.data == "ord-ratio-selected")
@staff_only
async def cb_orders_ratio(call: CallbackQuery, controller: OrderListController,
                          fraud_check_client: FraudCheckClient):
    phones = list(dict.fromkeys(o.number for o in controller.selected_orders()))
    try:
        await call.answer(f"Checking {len(phones)} phone{'s' if len(phones) != 1 else ''}…")
        ratio = await aggregate_courier_ratio(fraud_check_client, phones)
    except ValidationError:
        await call.message.answer("No phone numbers found. Select orders first.")
        return

    if ratio.empty:
        await call.message.answer("No courier data found for the given numbers.")
        return
    await call.message.answer(format_courier_ratio(ratio), parse_mode="HTML")
