from aiogram import BaseMiddleware, Bot

from api.fraud_check import FraudCheckClient
from api.steadfast import SteadfastClient
from database.async_db import AsyncDatabase
from database.managers.order_manager import OrderManager
from database.managers.staff_manager import StaffManager
from database.models.staff import StaffRole, StaffStatus
from services.order_controller import SessionRegistry
from utils.logger import get_logger

log = get_logger("[Bot.Middleware]")


class ManagerMiddleware(BaseMiddleware):
    def __init__(
            self,
            db: AsyncDatabase,
            order_manager: OrderManager,
            staff_manager: StaffManager,
            steadfast_client: SteadfastClient,
            fraud_check_client: FraudCheckClient,
            sessions: SessionRegistry,
            bot: Bot,
            admin_ids: list[int],
    ):
        super().__init__()
        self.db = db
        self.order_manager = order_manager
        self.staff_manager = staff_manager
        self.steadfast_client = steadfast_client
        self.fraud_check_client = fraud_check_client
        self.sessions = sessions
        self.bot = bot
        self.admin_ids = set(admin_ids)

    async def _resolve_staff(self, user):
        if user is None:
            return None
        staff = await self.staff_manager.get(user.id)
        if staff is None and user.id in self.admin_ids:
            staff = await self.staff_manager.register(
                tg_user_id=user.id, name=user.full_name,
                role=StaffRole.ADMIN, status=StaffStatus.VERIFIED,
            )
            log.info(f"Bootstrap admin {user.id} registered [✓]")
        return staff

    async def __call__(self, handler, event, data):
        user = data.get("event_from_user")
        staff = await self._resolve_staff(user)

        data["db"] = self.db
        data["order_manager"] = self.order_manager
        data["staff_manager"] = self.staff_manager
        data["steadfast_client"] = self.steadfast_client
        data["fraud_check_client"] = self.fraud_check_client
        data["bot"] = self.bot
        data["sessions"] = self.sessions
        data["staff"] = staff
        data["controller"] = self.sessions.get(user.id) if user else None

        return await handler(event, data)
