import uuid

from sqlalchemy import exists, select, union
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.program import (
    Program,
    ProgramEnrollment,
    ProgramMember,
    SCOPED_ENROLLMENT_STATUSES,
)


class ProgramRepository:
    """Program membership and enrollment lookups used by scope resolution."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_program_ids(self, user_id: uuid.UUID) -> frozenset[uuid.UUID]:
        # Legacy facilitators count as members until the data migration has run.
        # Archived programs grant nothing through either path.
        members = (
            select(ProgramMember.program_id)
            .join(Program, Program.id == ProgramMember.program_id)
            .where(
                ProgramMember.user_id == user_id,
                Program.archived_at.is_(None),
            )
        )
        facilitated = select(Program.id).where(
            Program.facilitator_id == user_id,
            Program.archived_at.is_(None),
        )
        result = await self.session.execute(union(members, facilitated))
        return frozenset(result.scalars().all())

    async def get_client_program_ids(self, client_id: uuid.UUID) -> frozenset[uuid.UUID]:
        result = await self.session.execute(
            select(ProgramEnrollment.program_id).where(
                ProgramEnrollment.client_id == client_id,
                ProgramEnrollment.status.in_(SCOPED_ENROLLMENT_STATUSES),
            )
        )
        return frozenset(result.scalars().all())

    async def has_active_session_with_client(
        self, user_id: uuid.UUID, client_id: uuid.UUID
    ) -> bool:
        user_program_ids = await self.get_user_program_ids(user_id)
        if not user_program_ids:
            return False
        result = await self.session.execute(
            select(
                exists().where(
                    ProgramEnrollment.client_id == client_id,
                    ProgramEnrollment.status == "ENROLLED",
                    ProgramEnrollment.program_id.in_(user_program_ids),
                )
            )
        )
        return bool(result.scalar())

    async def is_member(self, program_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    ProgramMember.program_id == program_id,
                    ProgramMember.user_id == user_id,
                )
            )
        )
        return bool(result.scalar())

    async def add_member(self, program_id: uuid.UUID, user_id: uuid.UUID) -> ProgramMember:
        member = ProgramMember(program_id=program_id, user_id=user_id)
        self.session.add(member)
        await self.session.flush()
        return member

    async def list_active_programs(self) -> list[Program]:
        result = await self.session.execute(
            select(Program).where(Program.archived_at.is_(None))
        )
        return list(result.scalars().all())
