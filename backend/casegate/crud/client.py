import uuid
from datetime import datetime, timezone

from sqlalchemy import exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.call import Call
from ..models.client import Client, ClientShare


class ClientRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, client_id: uuid.UUID) -> Client | None:
        return await self.session.get(Client, client_id)

    async def is_client_assigned_to_user(
        self, client_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        result = await self.session.execute(
            select(
                exists().where(Client.id == client_id, Client.assigned_to == user_id)
            )
        )
        return bool(result.scalar())

    async def is_client_shared_with_user(
        self,
        client_id: uuid.UUID,
        user_id: uuid.UUID,
        now: datetime | None = None,
    ) -> bool:
        current = now or datetime.now(timezone.utc)
        result = await self.session.execute(
            select(
                exists().where(
                    ClientShare.client_id == client_id,
                    ClientShare.shared_with_user_id == user_id,
                    ClientShare.revoked_at.is_(None),
                    or_(ClientShare.expires_at.is_(None), ClientShare.expires_at > current),
                )
            )
        )
        return bool(result.scalar())

    async def get_call(self, call_id: uuid.UUID) -> Call | None:
        return await self.session.get(Call, call_id)
