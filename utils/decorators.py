import inspect
import logging
from typing import Callable

from aiogram import types
from aiogram.exceptions import TelegramBadRequest
from aiogram.fsm.context import FSMContext

from database.models.staff import Staff
from keyboards.common import get_main_inline_keyboard

log = logging.getLogger("[Bot.Decorator]")

NO_ACCOUNT_TEXT = "You are not registered yet. Send /start to request access."
NOT_VERIFIED_TEXT = "Your account is waiting for admin verification."
NO_RIGHTS_TEXT = "Sorry, you don't have permission for this action."


async def handle_telegram_error(
        e: TelegramBadRequest,
        message: types.Message = None,
        call: types.CallbackQuery = None,
        state: FSMContext = None,
        staff: Staff = None,
) -> bool:
    error_text = str(e).lower()

    if "message is not modified" in error_text:
        log.debug("[Bot.Decorator] Message is not modified")
        return True

    if (
            "message to delete not found" in error_text
            or "message can't be deleted" in error_text
            or "message to edit not found" in error_text
    ):
        if state:
            await state.clear()
            log.debug("[Bot.Decorator] FSM state cleared after a Telegram error")

        target = call.message if call else message if message else None
        if target:
            await target.answer(
                text="Could not update the previous message. Choose an action:",
                reply_markup=get_main_inline_keyboard(bool(staff and staff.has_admin_permissions))
            )
        return True

    log.warning(f"[Bot.Decorator] [UNHANDLED TelegramBadRequest] {e}")
    return False


async def _deny(event, state: FSMContext, text: str) -> None:
    if state:
        await state.clear()
    if isinstance(event, types.CallbackQuery):
        await event.answer(text, show_alert=True)
    elif isinstance(event, types.Message):
        await event.answer(text)


def _staff_required(check: Callable[[Staff], bool]):
    """
    Lets the handler run only for staff passing `check`.

    The wrapper takes **data so aiogram hands it everything the middleware
    injected (`staff` included); the handler itself still gets only the
    arguments it declares.
    """

    def decorator(handler):
        params = inspect.signature(handler).parameters
        takes_all = any(p.kind == inspect.Parameter.VAR_KEYWORD for p in params.values())

        async def wrapper(event, **data):
            staff: Staff | None = data.get("staff")
            user_id = event.from_user.id if getattr(event, "from_user", None) else None

            if staff is None:
                reason = NO_ACCOUNT_TEXT
            elif not staff.is_verified:
                reason = NOT_VERIFIED_TEXT
            elif not check(staff):
                reason = NO_RIGHTS_TEXT
            else:
                kwargs = data if takes_all else {k: v for k, v in data.items() if k in params}
                return await handler(event, **kwargs)

            log.warning(f"[Bot.Decorator] User {user_id} was denied access to {handler.__name__}")
            await _deny(event, data.get("state"), reason)

        wrapper.__name__ = handler.__name__
        wrapper.__qualname__ = handler.__qualname__
        wrapper.__doc__ = handler.__doc__
        return wrapper

    return decorator


staff_only = _staff_required(lambda s: s.has_moderator_permissions)
admin_only = _staff_required(lambda s: s.has_admin_permissions)
