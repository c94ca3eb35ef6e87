from contextlib import suppress
from html import escape

from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.types import CallbackQuery

from database.managers.staff_manager import StaffManager
from database.models.staff import Staff, StaffRole, StaffStatus
from keyboards.admin import staff_list_kb, staff_detail_kb, staff_delete_confirm_kb
from keyboards.common import get_main_inline_keyboard
from services.order_controller import SessionRegistry
from utils.decorators import admin_only, handle_telegram_error
from utils.logger import get_logger

log = get_logger("[Bot.Admin]")

admin_router = Router()


def format_staff_info(member: Staff) -> str:
    return (
        f"<b>{escape(member.name)}</b>\n"
        f"ID: <code>{member.tg_user_id}</code>\n"
        f"Phone: <code>{member.number or '—'}</code>\n"
        f"Email: {escape(member.email or '—')}\n"
        f"Role: {member.role.value}\n"
        f"Status: {member.status.value}\n"
        f"Joined: {member.created_at:%d.%m.%Y}"
    )


def _target_id(call: CallbackQuery) -> int | None:
    try:
        return int(call.data.split(":")[1])
    except (IndexError, ValueError):
        return None


async def _show_staff_list(call: CallbackQuery, staff_manager: StaffManager):
    members = await staff_manager.list_all()
    pending = sum(not m.is_verified for m in members)
    text = f"👥 <b>Staff</b>: {len(members)} accounts"
    if pending:
        text += f", {pending} waiting for verification"
    try:
        await call.message.edit_text(text, parse_mode="HTML", reply_markup=staff_list_kb(members))
    except TelegramBadRequest as e:
        await handle_telegram_error(e, call=call)


async def _show_member(call: CallbackQuery, staff_manager: StaffManager, staff: Staff, tg_user_id: int) -> bool:
    member = await staff_manager.get(tg_user_id)
    if member is None:
        await call.answer("This account no longer exists.", show_alert=True)
        await _show_staff_list(call, staff_manager)
        return False
    try:
        await call.message.edit_text(
            format_staff_info(member),
            parse_mode="HTML",
            reply_markup=staff_detail_kb(member, is_self=member.tg_user_id == staff.tg_user_id),
        )
    except TelegramBadRequest as e:
        await handle_telegram_error(e, call=call, staff=staff)
    return True


@admin_router.callback_query(F.data == "staff")
@admin_only
async def cb_staff_list(call: CallbackQuery, staff_manager: StaffManager):
    await call.answer()
    await _show_staff_list(call, staff_manager)


@admin_router.callback_query(F.data.startswith("staff:"))
@admin_only
async def cb_staff_member(call: CallbackQuery, staff_manager: StaffManager, staff: Staff):
    tg_user_id = _target_id(call)
    if tg_user_id is None:
        await call.answer("Bad data.", show_alert=True)
        return
    if await _show_member(call, staff_manager, staff, tg_user_id):
        await call.answer()


@admin_router.callback_query(F.data.startswith("staff-verify:") | F.data.startswith("staff-unverify:"))
@admin_only
async def cb_staff_verify(call: CallbackQuery, bot: Bot, staff_manager: StaffManager,
                          sessions: SessionRegistry, staff: Staff):
    tg_user_id = _target_id(call)
    if tg_user_id is None or tg_user_id == staff.tg_user_id:
        await call.answer("You can't change your own account.", show_alert=True)
        return

    verify = call.data.startswith("staff-verify:")
    status = StaffStatus.VERIFIED if verify else StaffStatus.NON_VERIFIED
    if not await staff_manager.set_status(tg_user_id, status):
        await call.answer("This account no longer exists.", show_alert=True)
        return
    sessions.drop(tg_user_id)
    log.info(f"[Bot.Admin] {staff.tg_user_id} set {tg_user_id} to {status.value}")

    if verify:
        member = await staff_manager.get(tg_user_id)
        with suppress(TelegramAPIError):
            await bot.send_message(
                tg_user_id,
                "✅ Your account was verified. Choose an action:",
                reply_markup=get_main_inline_keyboard(member.has_admin_permissions),
            )
    if await _show_member(call, staff_manager, staff, tg_user_id):
        await call.answer()


@admin_router.callback_query(F.data.startswith("staff-role:"))
@admin_only
async def cb_staff_role(call: CallbackQuery, staff_manager: StaffManager, staff: Staff):
    try:
        _, raw_id, raw_role = call.data.split(":")
        tg_user_id, role = int(raw_id), StaffRole(raw_role)
    except ValueError:
        await call.answer("Bad data.", show_alert=True)
        return

    if tg_user_id == staff.tg_user_id:
        await call.answer("You can't change your own role.", show_alert=True)
        return

    await staff_manager.set_role(tg_user_id, role)
    log.info(f"[Bot.Admin] {staff.tg_user_id} made {tg_user_id} {role.value}")
    if await _show_member(call, staff_manager, staff, tg_user_id):
        await call.answer()


@admin_router.callback_query(F.data.startswith("staff-del:"))
@admin_only
async def cb_staff_delete(call: CallbackQuery, staff: Staff):
    tg_user_id = _target_id(call)
    if tg_user_id is None or tg_user_id == staff.tg_user_id:
        await call.answer("You can't remove yourself.", show_alert=True)
        return
    await call.message.edit_text(
        f"Remove the account <code>{tg_user_id}</code>? They will lose access to the desk.",
        parse_mode="HTML",
        reply_markup=staff_delete_confirm_kb(tg_user_id),
    )
    await call.answer()


@admin_router.callback_query(F.data.startswith("staff-del-yes:"))
@admin_only
async def cb_staff_delete_yes(call: CallbackQuery, staff_manager: StaffManager, sessions: SessionRegistry):
    tg_user_id = _target_id(call)
    if tg_user_id is not None and await staff_manager.delete(tg_user_id):
        sessions.drop(tg_user_id)
        await call.answer("Account removed.", show_alert=True)
    else:
        await call.answer("This account no longer exists.", show_alert=True)
    await _show_staff_list(call, staff_manager)
