"""Scope-context extractors for ``require_access``.

Each extractor takes ``(request, db)`` and returns the ScopeContext for the
resource named in the path. A missing or malformed id yields an empty
context, which the checker treats as a fail-closed denial.
"""
import uuid

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..crud.client import ClientRepository
from ..domain.access import EMPTY_SCOPE_CONTEXT, ScopeContext


def _path_uuid(request: Request, name: str) -> uuid.UUID | None:
    raw = request.path_params.get(name)
    if raw is None:
        return None
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def path_resource_id(name: str):
    def get_resource_id(request: Request, db: AsyncSession | None = None) -> str | None:
        value = request.path_params.get(name)
        return None if value is None else str(value)

    return get_resource_id


async def client_scope_from_path(
    request: Request, db: AsyncSession | None = None, *, param: str = "client_id"
) -> ScopeContext:
    client_id = _path_uuid(request, param)
    if client_id is None:
        return EMPTY_SCOPE_CONTEXT
    return ScopeContext.for_client(client_id)


async def program_scope_from_path(
    request: Request, db: AsyncSession | None = None, *, param: str = "program_id"
) -> ScopeContext:
    program_id = _path_uuid(request, param)
    if program_id is None:
        return EMPTY_SCOPE_CONTEXT
    return ScopeContext.for_program(program_id)


async def call_scope_from_path(
    request: Request, db: AsyncSession, *, param: str = "call_id"
) -> ScopeContext:
    call_id = _path_uuid(request, param)
    if call_id is None:
        return EMPTY_SCOPE_CONTEXT
    call = await ClientRepository(db).get_call(call_id)
    if call is None:
        return EMPTY_SCOPE_CONTEXT
    return ScopeContext(client_id=call.client_id, resource_owner_id=call.case_manager_id)
