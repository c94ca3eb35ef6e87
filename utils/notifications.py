# utils/notifications.py
import logging
from typing import Iterable, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup

from database.models.staff import Staff

log = logging.getLogger(__name__)


async def notify_admins(bot: Bot, admin_ids: Iterable[int], text: str,
                        reply_markup: Optional[InlineKeyboardMarkup] = None):
    """
    Sends a message to every verified admin.
    """
    admin_ids = list(admin_ids)
    if not admin_ids:
        log.warning("No verified admins, notification is not sent.")
        return

    for admin_id in admin_ids:
        try:
            await bot.send_message(chat_id=admin_id, text=text, parse_mode="HTML", reply_markup=reply_markup)
        except TelegramAPIError as e:
            # Admin blocked the bot, wrong id and so on
            log.error(f"Could not notify admin {admin_id}: {e}")


def format_signup_for_admin(staff: Staff, username: Optional[str]) -> str:
    lines = [
        "🆕 <b>New staff sign-up</b>",
        f"Name: {staff.name}",
        f"Phone: <code>{staff.number or '—'}</code>",
        f"Telegram: @{username}" if username else "Telegram: not set",
        f"ID: <code>{staff.tg_user_id}</code>",
        "",
        "Verify the account in 👥 Staff management.",
    ]
    return "\n".join(lines)
