from html import escape

from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import StatesGroup, State
from aiogram.types import Message, CallbackQuery

from database.managers.staff_manager import StaffManager
from database.models.staff import Staff
from keyboards.common import get_main_inline_keyboard, back_main_kb
from services.order_controller import OrderListController
from utils.decorators import handle_telegram_error, staff_only
from utils.errors import SteadfastError
from utils.logger import get_logger
from utils.notifications import notify_admins, format_signup_for_admin
from utils.validation import clean_phone

log = get_logger("[Bot.Common]")

common_router = Router()


class Registration(StatesGroup):
    full_name = State()
    phone = State()


@common_router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext, staff: Staff | None):
    log.info(f"[Bot.Common] /start from {message.from_user.id}")
    await state.clear()

    if staff is None:
        await message.answer(
            "Welcome to the order desk! Staff accounts need an admin's approval.\n"
            "Enter your <b>full name</b>:",
            parse_mode="HTML",
        )
        await state.set_state(Registration.full_name)
        return

    if not staff.is_verified:
        await message.answer("Your account is waiting for admin verification.")
        return

    await message.answer(
        f"Hello, {escape(staff.name)}! Choose an action:",
        parse_mode="HTML",
        reply_markup=get_main_inline_keyboard(staff.has_admin_permissions),
    )


@common_router.message(Registration.full_name)
async def reg_full_name(message: Message, state: FSMContext):
    full_name = " ".join((message.text or "").split())
    if not full_name or len(full_name) > 100:
        await message.answer("Please enter your name (up to 100 characters).")
        return

    await state.update_data(full_name=full_name)
    await state.set_state(Registration.phone)
    await message.answer("Enter your <b>phone number</b> (11 digits, e.g. <code>01712345678</code>):",
                         parse_mode="HTML")


@common_router.message(Registration.phone)
async def reg_phone(message: Message, state: FSMContext, bot: Bot, staff_manager: StaffManager):
    phone = clean_phone(message.text)
    if phone is None:
        await message.answer("Phone number must be 11 digits. Try again (e.g. 01712345678):")
        return

    data = await state.get_data()
    staff = await staff_manager.register(
        tg_user_id=message.from_user.id,
        name=data["full_name"],
        number=phone,
    )
    await state.clear()

    await message.answer("Thanks! Your account was created and is waiting for admin verification. 🙌")
    log.info(f"[Bot.Common] User {message.from_user.id} signed up, waiting for verification")

    await notify_admins(
        bot,
        await staff_manager.list_admin_ids(),
        format_signup_for_admin(staff, message.from_user.username),
    )


@common_router.callback_query(F.data == "back-main")
@staff_only
async def cb_back_main(call: CallbackQuery, state: FSMContext, staff: Staff):
    await state.clear()
    try:
        await call.message.edit_text(
            "Choose an action:",
            reply_markup=get_main_inline_keyboard(staff.has_admin_permissions),
        )
        await call.answer()
    except TelegramBadRequest as e:
        log.error(f"[Bot.Common] Could not edit message: {e}")
        await handle_telegram_error(e, call=call, state=state, staff=staff)


@common_router.callback_query(F.data == "balance")
@staff_only
async def cb_balance(call: CallbackQuery, controller: OrderListController):
    try:
        balance = await controller.balance()
    except SteadfastError as e:
        await call.answer(f"Failed to fetch balance: {e.message}", show_alert=True)
        return

    await call.answer()
    await call.message.answer(
        f"💰 Steadfast balance: <b>{balance:,.2f} Tk</b>",
        parse_mode="HTML",
        reply_markup=back_main_kb(),
    )


@common_router.callback_query(F.data == "noop")
async def cb_noop(call: CallbackQuery):
    await call.answer()
