from html import escape
from uuid import UUID

from aiogram import Router, F
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton

from database.models.staff import Staff
from handlers.orders import format_order_details
from keyboards.common import get_main_inline_keyboard
from keyboards.orders import EDITABLE_FIELDS, form_cancel_kb, form_skip_kb, order_detail_kb, order_edit_fields_kb
from services.order_controller import OrderListController
from utils.decorators import staff_only
from utils.errors import OrderDeskError, ValidationError
from utils.logger import get_logger
from utils.validation import validate_order_data

log = get_logger("[Bot.OrderForm]")

order_form_router = Router()


class NewOrder(StatesGroup):
    name = State()
    number = State()
    order_items = State()
    address = State()
    amount = State()
    reference = State()
    notes = State()
    confirm = State()


class EditOrder(StatesGroup):
    value = State()


PROMPTS = {
    "name": "Enter the <b>customer name</b>:",
    "number": "Enter the <b>phone number</b> (11 digits, e.g. <code>01712345678</code>):",
    "order_items": "Enter the <b>order items</b>:",
    "address": "Enter the <b>delivery address</b>:",
    "amount": "Enter the <b>amount</b> in Tk (cash on delivery):",
    "reference": "Enter a <b>reference</b> (where the order came from), or skip:",
    "notes": "Enter <b>notes</b> for the courier, or skip:",
}

# Required steps are validated as they are typed, optional ones can be skipped
STEPS = [
    (NewOrder.name, "name"),
    (NewOrder.number, "number"),
    (NewOrder.order_items, "order_items"),
    (NewOrder.address, "address"),
    (NewOrder.amount, "amount"),
    (NewOrder.reference, "reference"),
    (NewOrder.notes, "notes"),
]
OPTIONAL_FIELDS = {"reference", "notes"}


def _confirm_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="✅ Create order", callback_data="ord-form-save")],
        [InlineKeyboardButton(text="✖️ Cancel", callback_data="ord-form-cancel")],
    ])


def _format_draft(data: dict) -> str:
    return (
        "<b>New order</b>\n"
        f"<b>Customer:</b> {escape(data['name'])}\n"
        f"<b>Phone:</b> <code>{data['number']}</code>\n"
        f"<b>Items:</b> {escape(data['order_items'])}\n"
        f"<b>Address:</b> {escape(data['address'])}\n"
        f"<b>Amount:</b> {data['amount']} Tk\n"
        f"<b>Reference:</b> {escape(data.get('reference') or '—')}\n"
        f"<b>Notes:</b> {escape(data.get('notes') or '—')}"
    )


async def _ask(message: Message, field: str):
    kb = form_skip_kb() if field in OPTIONAL_FIELDS else form_cancel_kb()
    await message.answer(PROMPTS[field], parse_mode="HTML", reply_markup=kb)


async def _next_step(message: Message, state: FSMContext, field: str):
    index = next(i for i, (_, name) in enumerate(STEPS) if name == field)
    if index + 1 < len(STEPS):
        next_state, next_field = STEPS[index + 1]
        await state.set_state(next_state)
        await _ask(message, next_field)
        return

    await state.set_state(NewOrder.confirm)
    await message.answer(_format_draft(await state.get_data()), parse_mode="HTML", reply_markup=_confirm_kb())


@order_form_router.callback_query(F.data == "ord-new")
@staff_only
async def cb_new_order(call: CallbackQuery, state: FSMContext):
    await state.clear()
    await state.set_state(NewOrder.name)
    await _ask(call.message, "name")
    await call.answer()


@order_form_router.message(NewOrder.name)
@order_form_router.message(NewOrder.number)
@order_form_router.message(NewOrder.order_items)
@order_form_router.message(NewOrder.address)
@order_form_router.message(NewOrder.amount)
@order_form_router.message(NewOrder.reference)
@order_form_router.message(NewOrder.notes)
@staff_only
async def msg_order_field(message: Message, state: FSMContext):
    current = await state.get_state()
    field = next(name for st, name in STEPS if st.state == current)

    try:
        cleaned = validate_order_data({field: message.text or ""}, partial=True)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.errors[field]}. Try again:", reply_markup=form_cancel_kb())
        return

    value = cleaned.get(field, "")
    await state.update_data({field: str(value)})
    await _next_step(message, state, field)


@order_form_router.callback_query(F.data == "ord-form-skip", NewOrder.reference)
@order_form_router.callback_query(F.data == "ord-form-skip", NewOrder.notes)
@staff_only
async def cb_order_field_skip(call: CallbackQuery, state: FSMContext):
    current = await state.get_state()
    field = next(name for st, name in STEPS if st.state == current)
    await state.update_data({field: ""})
    await call.answer()
    await _next_step(call.message, state, field)


@order_form_router.callback_query(F.data == "ord-form-save", NewOrder.confirm)
@staff_only
async def cb_order_save(call: CallbackQuery, state: FSMContext, controller: OrderListController, staff: Staff):
    data = await state.get_data()
    try:
        order = await controller.create_order(data)
    except ValidationError as e:
        await call.answer(str(e), show_alert=True)
        return

    await state.clear()
    log.info(f"[Bot.OrderForm] Order {order.order_id} created by {staff.tg_user_id}")
    await call.answer("Order created successfully")
    await call.message.edit_text(format_order_details(order), parse_mode="HTML",
                                 reply_markup=order_detail_kb(order))


@order_form_router.callback_query(F.data == "ord-form-cancel")
@staff_only
async def cb_order_form_cancel(call: CallbackQuery, state: FSMContext, staff: Staff):
    await state.clear()
    await call.answer("Cancelled")
    await call.message.edit_text("Choose an action:",
                                 reply_markup=get_main_inline_keyboard(staff.has_admin_permissions))


@order_form_router.callback_query(F.data.startswith("ord-edit:"))
@staff_only
async def cb_order_edit(call: CallbackQuery, controller: OrderListController):
    doc_id = UUID(call.data.split(":")[1])
    order = controller.find(doc_id) or await controller.order_manager.get_order(doc_id)
    if order is None:
        await call.answer("Order not found. Refresh the list.", show_alert=True)
        return
    await call.message.edit_text(f"Edit order <b>{order.order_id}</b>. Choose a field:",
                                 parse_mode="HTML", reply_markup=order_edit_fields_kb(order))
    await call.answer()


@order_form_router.callback_query(F.data.startswith("ord-edit-field:"))
@staff_only
async def cb_order_edit_field(call: CallbackQuery, state: FSMContext):
    _, doc_id, field = call.data.split(":", 2)
    if field not in EDITABLE_FIELDS:
        await call.answer()
        return

    await state.set_state(EditOrder.value)
    await state.update_data(doc_id=doc_id, field=field)
    await call.message.answer(PROMPTS[field], parse_mode="HTML", reply_markup=form_cancel_kb())
    await call.answer()


@order_form_router.message(EditOrder.value)
@staff_only
async def msg_order_edit_value(message: Message, state: FSMContext, controller: OrderListController):
    data = await state.get_data()
    field = data["field"]
    try:
        order = await controller.update_order(UUID(data["doc_id"]), {field: message.text or ""})
    except ValidationError as e:
        await message.answer(f"⚠️ {e.errors.get(field, str(e))}. Try again:", reply_markup=form_cancel_kb())
        return
    except OrderDeskError as e:
        await state.clear()
        await message.answer(str(e))
        return

    await state.clear()
    log.info(f"[Bot.OrderForm] Order {order.order_id}: {field} updated")
    await message.answer("Order updated successfully")
    await message.answer(format_order_details(order), parse_mode="HTML", reply_markup=order_detail_kb(order))
