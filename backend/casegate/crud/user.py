import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth.rbac_contract import ADMIN_ROLES
from ..models.user import User


def format_admin_contact(name: str | None, email: str) -> str:
    return f"{name} ({email})" if name else email


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        return await self.session.get(User, user_id)

    async def get_org_admin_contact(self, org_id: uuid.UUID) -> str | None:
        result = await self.session.execute(
            select(User)
            .where(
                User.org_id == org_id,
                User.is_active.is_(True),
                User.role.in_([role.value for role in ADMIN_ROLES]),
            )
            .order_by(User.created_at.asc())
            .limit(1)
        )
        admin = result.scalar_one_or_none()
        if admin is None:
            return None
        return format_admin_contact(admin.name, admin.email)
