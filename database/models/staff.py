from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import asyncpg


class StaffRole(str, Enum):
    ADMIN = "Admin"
    MODERATOR = "Moderator"


class StaffStatus(str, Enum):
    VERIFIED = "Verified"
    NON_VERIFIED = "Non-Verified"


@dataclass
class Staff:
    tg_user_id: int
    name: str
    email: Optional[str]
    number: Optional[str]
    status: StaffStatus
    role: StaffRole
    created_at: datetime
    updated_at: datetime

    @property
    def is_verified(self) -> bool:
        return self.status == StaffStatus.VERIFIED

    @property
    def has_admin_permissions(self) -> bool:
        return self.role == StaffRole.ADMIN and self.is_verified

    @property
    def has_moderator_permissions(self) -> bool:
        return self.role in (StaffRole.ADMIN, StaffRole.MODERATOR) and self.is_verified

    @classmethod
    def from_record(cls, record: asyncpg.Record) -> Optional["Staff"]:
        if not record:
            return None
        return cls(
            tg_user_id=record["tg_user_id"],
            name=record["name"],
            email=record.get("email"),
            number=record.get("number"),
            status=StaffStatus(record["status"]),
            role=StaffRole(record["role"]),
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )
