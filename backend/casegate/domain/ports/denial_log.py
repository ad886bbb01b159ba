from __future__ import annotations

from typing import AsyncContextManager, Callable
from datetime import datetime
import uuid
from typing import Protocol


class DenialLogData(Protocol):
    id: uuid.UUID
    org_id: uuid.UUID
    user_id: uuid.UUID
    resource: str
    action: str
    resource_id: str | None
    reason: str
    ip_address: str | None
    user_agent: str | None
    created_at: datetime


class DenialLogPort(Protocol):
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
    ) -> DenialLogData:
        ...


DenialLogRepositoryFactory = Callable[[], AsyncContextManager[DenialLogPort]]
