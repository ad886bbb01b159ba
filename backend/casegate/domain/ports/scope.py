from __future__ import annotations

import uuid
from typing import Protocol


class ProgramMembershipPort(Protocol):
    async def get_user_program_ids(self, user_id: uuid.UUID) -> frozenset[uuid.UUID]:
        ...


class EnrollmentPort(Protocol):
    async def get_client_program_ids(self, client_id: uuid.UUID) -> frozenset[uuid.UUID]:
        ...


class ClientAccessPort(Protocol):
    async def is_client_assigned_to_user(
        self, client_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        ...

    async def is_client_shared_with_user(
        self, client_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        ...


class SessionActivityPort(Protocol):
    async def has_active_session_with_client(
        self, user_id: uuid.UUID, client_id: uuid.UUID
    ) -> bool:
        ...


class AdminContactPort(Protocol):
    async def get_org_admin_contact(self, org_id: uuid.UUID) -> str | None:
        ...
