from html import escape
from uuid import UUID

from aiogram import Router, F
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext
from aiogram.types import CallbackQuery

from database.models.order import Order, OrderStatus
from database.models.staff import Staff
from keyboards.common import back_main_kb
from keyboards.orders import courier_batch_kb
from services.order_controller import OrderListController
from utils.decorators import handle_telegram_error, staff_only
from utils.errors import PersistenceError, SteadfastError, ValidationError
from utils.logger import get_logger

log = get_logger("[Bot.Courier]")

courier_router = Router()


def format_courier_batch(orders: list[Order], errors: dict[str, str]) -> str:
    title = "🚚 <b>Send to Steadfast</b>" if not errors else "⚠️ <b>Some orders were not accepted</b>"
    lines = [title, ""]
    for o in orders:
        line = f"<code>{o.order_id}</code> · {escape(o.name)} · {o.number} · {o.amount:.2f} Tk"
        if o.order_id in errors:
            line += f"\n    ❌ {escape(errors[o.order_id])}"
        lines.append(line)
    total = sum(o.amount for o in orders)
    lines.append("")
    lines.append(f"Orders: {len(orders)} · COD total: {total:.2f} Tk")
    return "\n".join(lines)


async def _show_batch(call: CallbackQuery, controller: OrderListController, errors: dict[str, str]):
    batch = controller.courier_batch
    try:
        await call.message.edit_text(
            format_courier_batch(batch, errors),
            parse_mode="HTML",
            reply_markup=courier_batch_kb(batch, errors),
        )
    except TelegramBadRequest as e:
        await handle_telegram_error(e, call=call)


async def _open(call: CallbackQuery, state: FSMContext, controller: OrderListController, orders: list[Order]):
    # Confirmed orders already have a consignment
    orders = [o for o in orders if o.status == OrderStatus.PENDING]
    try:
        controller.open_courier_batch(orders)
    except ValidationError:
        await call.answer("Please select pending orders", show_alert=True)
        return
    await state.update_data(courier_errors={})
    await call.answer()
    await _show_batch(call, controller, {})


@courier_router.callback_query(F.data.startswith("ord-courier:"))
@staff_only
async def cb_courier_single(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    doc_id = UUID(call.data.split(":")[1])
    order = controller.find(doc_id) or await controller.order_manager.get_order(doc_id)
    if order is None:
        await call.answer("Order not found. Refresh the list.", show_alert=True)
        return
    await _open(call, state, controller, [order])


@courier_router.callback_query(F.data == "ord-courier-selected")
@staff_only
async def cb_courier_selected(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    await _open(call, state, controller, controller.selected_orders())


@courier_router.callback_query(F.data.startswith("courier-drop:"))
@staff_only
async def cb_courier_drop(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    order_id = call.data.split(":", 1)[1]
    controller.discard_from_batch(order_id)
    errors = (await state.get_data()).get("courier_errors", {})
    errors.pop(order_id, None)
    await state.update_data(courier_errors=errors)

    if not controller.courier_batch:
        await call.answer("Batch closed")
        await _close(call, state, controller)
        return
    await call.answer(f"{order_id} discarded")
    await _show_batch(call, controller, errors)


@courier_router.callback_query(F.data == "courier-send")
@staff_only
async def cb_courier_send(call: CallbackQuery, state: FSMContext, controller: OrderListController, staff: Staff):
    if not controller.courier_batch:
        await call.answer("Please select orders", show_alert=True)
        return

    await call.answer("Sending to Steadfast…")
    try:
        outcome = await controller.send_to_courier()
    except ValidationError as e:
        await state.update_data(courier_errors=e.errors)
        await call.message.answer(f"⚠️ {escape(e.args[0])}. Fix the orders below or discard them.")
        await _show_batch(call, controller, e.errors)
        return
    except SteadfastError as e:
        log.warning(f"[Bot.Courier] Steadfast rejected the batch ({e.category.value}): {e.message}")
        await call.message.answer(f"❌ {escape(e.hint)}\n<i>{escape(e.message)}</i>", parse_mode="HTML")
        return
    except PersistenceError as e:
        log.error(f"[Bot.Courier] {staff.tg_user_id}: {len(e.accepted)} consignments not stored locally")
        codes = "\n".join(f"{escape(o.order_id)} → <code>{escape(code)}</code>" for o, code in e.accepted)
        await call.message.answer(
            f"⚠️ Orders were sent to Steadfast but failed to update in database.\n"
            f"Record these tracking codes manually:\n{codes}",
            parse_mode="HTML",
            reply_markup=None if e.failed else back_main_kb(),
        )
        await state.update_data(courier_errors=e.failed)
        if controller.courier_batch:
            await _show_batch(call, controller, e.failed)
        return

    log.info(f"[Bot.Courier] {staff.tg_user_id} sent {len(outcome.sent)} orders to Steadfast")
    sent_lines = "\n".join(f"✅ {o.order_id} → <code>{escape(o.tracking_code)}</code>" for o in outcome.sent)

    if outcome.complete:
        await state.update_data(courier_errors={})
        text = f"{len(outcome.sent)} order{'s' if len(outcome.sent) != 1 else ''} sent to Steadfast successfully"
        await call.message.edit_text(f"{text}\n\n{sent_lines}", parse_mode="HTML", reply_markup=back_main_kb())
        return

    await state.update_data(courier_errors=outcome.failed)
    if sent_lines:
        await call.message.answer(f"{len(outcome.sent)} orders sent.\n\n{sent_lines}", parse_mode="HTML")
    await _show_batch(call, controller, outcome.failed)


@courier_router.callback_query(F.data == "courier-close")
@staff_only
async def cb_courier_close(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    await call.answer()
    await _close(call, state, controller)


async def _close(call: CallbackQuery, state: FSMContext, controller: OrderListController):
    controller.courier_batch = []
    await state.update_data(courier_errors={})
    try:
        await call.message.edit_text("Courier batch closed.", reply_markup=back_main_kb())
    except TelegramBadRequest as e:
        await handle_telegram_error(e, call=call)
