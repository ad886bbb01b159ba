import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.settings_delegation import SettingsDelegation


class SettingsDelegationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, org_id: uuid.UUID, user_id: uuid.UUID) -> SettingsDelegation | None:
        result = await self.session.execute(
            select(SettingsDelegation).where(
                SettingsDelegation.org_id == org_id,
                SettingsDelegation.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        *,
        delegated_by_id: uuid.UUID,
        can_manage_billing: bool,
        can_manage_team: bool,
        can_manage_integrations: bool,
        can_manage_branding: bool,
        expires_at: datetime | None = None,
        delegated_at: datetime | None = None,
    ) -> SettingsDelegation:
        values = {
            "delegated_by_id": delegated_by_id,
            "can_manage_billing": can_manage_billing,
            "can_manage_team": can_manage_team,
            "can_manage_integrations": can_manage_integrations,
            "can_manage_branding": can_manage_branding,
            "expires_at": expires_at,
        }
        if delegated_at is not None:
            values["delegated_at"] = delegated_at

        try:
            return await self._write(org_id, user_id, values)
        except IntegrityError:
            # A concurrent grant inserted the row first; overwrite it
            await self.session.rollback()
            return await self._write(org_id, user_id, values)

    async def _write(
        self, org_id: uuid.UUID, user_id: uuid.UUID, values: dict
    ) -> SettingsDelegation:
        delegation = await self.get(org_id, user_id)
        if delegation is None:
            delegation = SettingsDelegation(org_id=org_id, user_id=user_id, **values)
            self.session.add(delegation)
        else:
            for key, value in values.items():
                setattr(delegation, key, value)
        await self.session.flush()
        return delegation

    async def delete(self, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(SettingsDelegation).where(
                SettingsDelegation.org_id == org_id,
                SettingsDelegation.user_id == user_id,
            )
        )
        return bool(result.rowcount)

    async def list_by_org(self, org_id: uuid.UUID) -> list[SettingsDelegation]:
        result = await self.session.execute(
            select(SettingsDelegation)
            .where(SettingsDelegation.org_id == org_id)
            .order_by(SettingsDelegation.delegated_at.desc())
        )
        return list(result.scalars().all())

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
