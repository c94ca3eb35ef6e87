from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup


def get_main_inline_keyboard(is_admin: bool):
    buttons = [
        [InlineKeyboardButton(text="📦 Orders", callback_data="orders")],
        [InlineKeyboardButton(text="➕ New order", callback_data="ord-new")],
        [InlineKeyboardButton(text="🛡 Fraud check", callback_data="fraud")],
        [InlineKeyboardButton(text="💰 Steadfast balance", callback_data="balance")],
    ]
    if is_admin:
        buttons.append([InlineKeyboardButton(text="👥 Staff management", callback_data="staff")])
    return InlineKeyboardMarkup(inline_keyboard=buttons)


def back_main_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="⬅️ Back", callback_data="back-main")]
    ])
