from html import escape
from uuid import UUID

from aiogram import Router, F
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery

from api.fraud_check import FraudCheckClient
from keyboards.common import back_main_kb
from keyboards.orders import form_cancel_kb
from services.courier_ratio import CourierRatio
from services.order_controller import OrderListController
from utils.decorators import staff_only
from utils.errors import FraudCheckError
from utils.logger import get_logger
from utils.validation import clean_phone

log = get_logger("[Bot.Fraud]")

fraud_router = Router()

RISKY_STATUSES = {"fraud", "suspicious"}
SAFE_STATUSES = {"safe", "verified"}

RATIO_COURIERS = (
    ("pathao", "Pathao"),
    ("steadfast", "Steadfast"),
    ("redx", "Redx"),
    ("paperfly", "Paperfly"),
)


class FraudCheck(StatesGroup):
    waiting_phone = State()


def _status_icon(status: str | None) -> str:
    status = (status or "").lower()
    if status in SAFE_STATUSES:
        return "🟢"
    if status in RISKY_STATUSES:
        return "🔴"
    return "🟡"


def format_fraud_result(phone: str, data: dict) -> str:
    status = data.get("status") or "Unknown"
    lines = [
        f"🛡 <b>Fraud check</b> for <code>{phone}</code>",
        f"Status: {_status_icon(status)} {escape(str(status))}",
    ]
    if data.get("delivery_count") is not None:
        lines.append(f"Deliveries: {data['delivery_count']}")
    if data.get("risk_score") is not None:
        lines.append(f"Risk score: {data['risk_score']}/100")
    if data.get("last_delivery"):
        lines.append(f"Last delivery: {escape(str(data['last_delivery']))}")
    if data.get("notes"):
        lines.append(f"Notes: {escape(str(data['notes']))}")

    summary = (data.get("courierData") or {}).get("summary")
    if summary:
        lines.append(
            f"Parcels: {summary.get('total_parcel', 0)} total, "
            f"{summary.get('success_parcel', 0)} delivered, "
            f"{summary.get('cancelled_parcel', 0)} cancelled"
        )
    return "\n".join(lines)


def format_courier_ratio(ratio: CourierRatio) -> str:
    lines = [
        "📊 <b>Courier ratio</b>",
        f"Checked: {escape(', '.join(ratio.checked_phones))}",
        "",
        "<pre>Courier     Total  Success  Cancel",
    ]
    for key, label in RATIO_COURIERS:
        c = ratio.couriers.get(key)
        total, success, cancel = (c.total_parcel, c.success_parcel, c.cancelled_parcel) if c else (0, 0, 0)
        lines.append(f"{label:<10} {total:>6.0f} {success:>8.0f} {cancel:>7.0f}")
    lines[-1] += "</pre>"

    summary = ratio.couriers.get("summary")
    if summary:
        lines.append(
            f"Summary: Total Parcels: {summary.total_parcel:.0f}, "
            f"Success Parcels: {summary.success_parcel:.0f}, "
            f"Cancel Parcels: {summary.cancelled_parcel:.0f}"
        )
    return "\n".join(lines)


async def _run_check(target: Message, fraud_check_client: FraudCheckClient, phone: str):
    try:
        data = await fraud_check_client.check_phone(phone)
    except FraudCheckError as e:
        log.warning(f"[Bot.Fraud] Check for {phone} failed: {e}")
        await target.answer("Failed to check fraud status", reply_markup=back_main_kb())
        return
    await target.answer(format_fraud_result(phone, data), parse_mode="HTML", reply_markup=back_main_kb())


@fraud_router.callback_query(F.data == "fraud")
@staff_only
async def cb_fraud(call: CallbackQuery, state: FSMContext):
    await state.set_state(FraudCheck.waiting_phone)
    await call.message.answer("Send the customer's phone number (11 digits):", reply_markup=form_cancel_kb())
    await call.answer()


@fraud_router.message(FraudCheck.waiting_phone)
@staff_only
async def msg_fraud_phone(message: Message, state: FSMContext, fraud_check_client: FraudCheckClient):
    phone = clean_phone(message.text)
    if phone is None:
        await message.answer("Phone number must be 11 digits. Try again:", reply_markup=form_cancel_kb())
        return
    await state.clear()
    await _run_check(message, fraud_check_client, phone)


@fraud_router.callback_query(F.data.startswith("ord-fraud:"))
@staff_only
async def cb_order_fraud(call: CallbackQuery, controller: OrderListController,
                         fraud_check_client: FraudCheckClient):
    try:
        doc_id = UUID(call.data.split(":")[1])
    except ValueError:
        await call.answer()
        return

    order = controller.find(doc_id) or await controller.order_manager.get_order(doc_id)
    if order is None:
        await call.answer("Order not found. Refresh the list.", show_alert=True)
        return
    await call.answer("Checking…")
    await _run_check(call.message, fraud_check_client, order.number)
