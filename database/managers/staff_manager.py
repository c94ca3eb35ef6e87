from typing import Optional

from database.async_db import AsyncDatabase
from database.models.staff import Staff, StaffRole, StaffStatus
from utils.logger import get_logger

log = get_logger("[StaffManager]")


class StaffManager:
    def __init__(self, db: AsyncDatabase):
        self.db = db

    async def get(self, tg_user_id: int) -> Optional[Staff]:
        rec = await self.db.fetchrow("SELECT * FROM staff WHERE tg_user_id = $1", tg_user_id)
        return Staff.from_record(rec) if rec else None

    async def register(
            self,
            tg_user_id: int,
            name: str,
            number: Optional[str] = None,
            email: Optional[str] = None,
            role: StaffRole = StaffRole.MODERATOR,
            status: StaffStatus = StaffStatus.NON_VERIFIED,
    ) -> Staff:
        """
        Creates a staff record; an existing one is returned untouched.
        New accounts wait for an admin to verify them.
        """
        rec = await self.db.fetchrow(
            """
            INSERT INTO staff (tg_user_id, name, number, email, role, status)
            VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (tg_user_id) DO NOTHING
            RETURNING *
            """,
            tg_user_id, name, number, email, role.value, status.value,
        )
        if rec:
            log.info(f"Staff member {tg_user_id} registered as {role.value}/{status.value}.")
            return Staff.from_record(rec)
        return await self.get(tg_user_id)

    async def list_all(self) -> list[Staff]:
        recs = await self.db.fetch("SELECT * FROM staff ORDER BY created_at")
        return [Staff.from_record(r) for r in recs]

    async def list_admin_ids(self) -> list[int]:
        rows = await self.db.fetch(
            "SELECT tg_user_id FROM staff WHERE role = $1 AND status = $2",
            StaffRole.ADMIN.value, StaffStatus.VERIFIED.value,
        )
        return [int(r["tg_user_id"]) for r in rows]

    async def set_status(self, tg_user_id: int, status: StaffStatus) -> bool:
        result = await self.db.execute(
            "UPDATE staff SET status = $2, updated_at = now() WHERE tg_user_id = $1",
            tg_user_id, status.value,
        )
        return result.upper() == "UPDATE 1"

    async def set_role(self, tg_user_id: int, role: StaffRole) -> bool:
        result = await self.db.execute(
            "UPDATE staff SET role = $2, updated_at = now() WHERE tg_user_id = $1",
            tg_user_id, role.value,
        )
        return result.upper() == "UPDATE 1"

    async def delete(self, tg_user_id: int) -> bool:
        result = await self.db.execute("DELETE FROM staff WHERE tg_user_id = $1", tg_user_id)
        deleted = result.upper() == "DELETE 1"
        if deleted:
            log.info(f"Staff member {tg_user_id} removed.")
        return deleted
