from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...auth.dependencies import require_access
from ...auth.middleware import AccessContext
from ...auth.rbac_contract import Action, Resource
from ...crud.permission_denial_log import PermissionDenialLogRepository
from ...dependencies import get_db
from ...schemas.denial_log import (
    PermissionDenialLogFilter,
    PermissionDenialLogPage,
    PermissionDenialLogResponse,
)


router = APIRouter(prefix="/admin/permission-denials", tags=["admin-audit"])


@router.get("", response_model=PermissionDenialLogPage)
async def list_permission_denials(
    user_id: UUID | None = Query(None, description="Filter by denied user"),
    resource: str | None = Query(None, description="Filter by resource"),
    action: str | None = Query(None, description="Filter by action"),
    from_date: datetime | None = Query(None, description="Earliest denial time"),
    to_date: datetime | None = Query(None, description="Latest denial time"),
    limit: int = Query(50, ge=1, le=200, description="Results per page"),
    offset: int = Query(0, ge=0, description="Offset for pagination"),
    access: AccessContext = Depends(require_access(Resource.ADMIN, Action.READ)),
    db: AsyncSession = Depends(get_db),
):
    """
    List persisted denial patterns for the caller's organization.

    Only repeated denials are stored, so every row marks a pattern rather
    than a single refused request.
    """
    filters = PermissionDenialLogFilter(
        user_id=user_id,
        resource=resource,
        action=action,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )
    repo = PermissionDenialLogRepository(db)
    criteria = filters.model_dump(exclude={"limit", "offset"})
    items = await repo.list_by_filters(
        access.user.org_id, limit=filters.limit, offset=filters.offset, **criteria
    )
    total = await repo.count_by_filters(access.user.org_id, **criteria)
    return PermissionDenialLogPage(
        items=[PermissionDenialLogResponse.model_validate(item) for item in items],
        total=total,
        limit=filters.limit,
        offset=filters.offset,
    )
