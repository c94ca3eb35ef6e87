from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from database.models.staff import Staff, StaffRole

ROLE_ICONS = {
    StaffRole.ADMIN: "👑",
    StaffRole.MODERATOR: "🧑‍💼",
}


def staff_list_kb(members: list[Staff]) -> InlineKeyboardMarkup:
    """One button per staff member, unverified accounts first."""
    builder = InlineKeyboardBuilder()
    for s in sorted(members, key=lambda m: (m.is_verified, m.name.lower())):
        mark = "✅" if s.is_verified else "⏳"
        builder.button(text=f"{mark} {ROLE_ICONS[s.role]} {s.name}", callback_data=f"staff:{s.tg_user_id}")
    builder.button(text="⬅️ Back", callback_data="back-main")
    builder.adjust(1)
    return builder.as_markup()


def staff_detail_kb(member: Staff, is_self: bool) -> InlineKeyboardMarkup:
    builder = InlineKeyboardBuilder()
    if not is_self:
        if member.is_verified:
            builder.button(text="🚫 Revoke verification", callback_data=f"staff-unverify:{member.tg_user_id}")
        else:
            builder.button(text="✅ Verify", callback_data=f"staff-verify:{member.tg_user_id}")

        if member.role == StaffRole.ADMIN:
            builder.button(text="Make moderator", callback_data=f"staff-role:{member.tg_user_id}:Moderator")
        else:
            builder.button(text="Make admin", callback_data=f"staff-role:{member.tg_user_id}:Admin")

        builder.button(text="❌ Remove", callback_data=f"staff-del:{member.tg_user_id}")
    builder.button(text="⬅️ Back to staff", callback_data="staff")
    builder.adjust(1)
    return builder.as_markup()


def staff_delete_confirm_kb(tg_user_id: int) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="YES, remove", callback_data=f"staff-del-yes:{tg_user_id}")],
        [InlineKeyboardButton(text="KEEP", callback_data=f"staff:{tg_user_id}")],
    ])
