from __future__ import annotations

from datetime import datetime
import uuid
from typing import Protocol


class DelegationData(Protocol):
    org_id: uuid.UUID
    user_id: uuid.UUID
    can_manage_billing: bool
    can_manage_team: bool
    can_manage_integrations: bool
    can_manage_branding: bool
    delegated_by_id: uuid.UUID
    delegated_at: datetime
    expires_at: datetime | None


class DelegationPort(Protocol):
    async def get(self, org_id: uuid.UUID, user_id: uuid.UUID) -> DelegationData | None:
        ...

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
    ) -> DelegationData:
        ...

    async def delete(self, org_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        ...

    async def list_by_org(self, org_id: uuid.UUID) -> list[DelegationData]:
        ...
