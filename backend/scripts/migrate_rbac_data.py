"""
Backfill program membership for the program-scoped permission checks.

Legacy programs record a single facilitator (and their creator) on the
program row. Scope resolution reads program_members, so each of those
users gets a membership row. Safe to run repeatedly: existing members are
skipped.

Usage:
    python -m scripts.migrate_rbac_data
"""
import asyncio
import os
import sys

# Add parent directory to path to import casegate modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from casegate.crud.program import ProgramRepository  # noqa: E402
from casegate.database import AsyncSessionLocal  # noqa: E402


async def migrate_program_members(repo: ProgramRepository) -> tuple[int, int]:
    """Return (created, skipped) membership counts."""
    created = 0
    skipped = 0
    for program in await repo.list_active_programs():
        candidates = {program.facilitator_id, program.created_by_id} - {None}
        for user_id in sorted(candidates, key=str):
            if await repo.is_member(program.id, user_id):
                skipped += 1
                continue
            await repo.add_member(program.id, user_id)
            created += 1
            print(f"  ✓ Added member user={user_id} program={program.name}")
    return created, skipped


async def main() -> None:
    async with AsyncSessionLocal() as session:
        print("Backfilling program members from legacy facilitators and creators...")
        created, skipped = await migrate_program_members(ProgramRepository(session))
        await session.commit()
        print(f"\nDone: {created} created, {skipped} already present")


if __name__ == "__main__":
    asyncio.run(main())
