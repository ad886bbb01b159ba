import uuid
from datetime import datetime

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.permission_denial_log import PermissionDenialLog


class PermissionDenialLogRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        *,
        org_id: uuid.UUID,
        user_id: uuid.UUID,
        resource: str,
        action: str,
        resource_id: str | None,
        reason: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> PermissionDenialLog:
        denial_log = PermissionDenialLog(
            org_id=org_id,
            user_id=user_id,
            resource=resource,
            action=action,
            resource_id=resource_id,
            reason=reason,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.session.add(denial_log)
        await self.session.commit()
        return denial_log

    def _filters(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID | None,
        resource: str | None,
        action: str | None,
        from_date: datetime | None,
        to_date: datetime | None,
    ) -> list:
        conditions = [PermissionDenialLog.org_id == org_id]
        if user_id is not None:
            conditions.append(PermissionDenialLog.user_id == user_id)
        if resource is not None:
            conditions.append(PermissionDenialLog.resource == resource)
        if action is not None:
            conditions.append(PermissionDenialLog.action == action)
        if from_date is not None:
            conditions.append(PermissionDenialLog.created_at >= from_date)
        if to_date is not None:
            conditions.append(PermissionDenialLog.created_at <= to_date)
        return conditions

    async def list_by_filters(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
        resource: str | None = None,
        action: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[PermissionDenialLog]:
        conditions = self._filters(org_id, user_id, resource, action, from_date, to_date)
        query = (
            select(PermissionDenialLog)
            .where(and_(*conditions))
            .order_by(PermissionDenialLog.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_by_filters(
        self,
        org_id: uuid.UUID,
        user_id: uuid.UUID | None = None,
        resource: str | None = None,
        action: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> int:
        conditions = self._filters(org_id, user_id, resource, action, from_date, to_date)
        result = await self.session.execute(
            select(func.count()).select_from(PermissionDenialLog).where(and_(*conditions))
        )
        return int(result.scalar_one())
