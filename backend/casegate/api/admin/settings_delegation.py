"""
Admin API endpoints for settings delegation.

Admins hand individual settings areas (billing, team, integrations,
branding) to non-admin users. A PUT replaces the whole delegation; a
DELETE revokes it immediately.
"""
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...auth.dependencies import require_access
from ...auth.middleware import AccessContext
from ...auth.rbac_contract import Action, Resource, is_admin_role
from ...crud.user import UserRepository
from ...dependencies import get_db, get_delegation_service
from ...domain.access import DelegationGrants
from ...errors import NotFoundError, ValidationError
from ...schemas.delegation import (
    SettingsDelegationList,
    SettingsDelegationResponse,
    SettingsDelegationUpdate,
)
from ...services.rbac.delegation_service import DelegationService, is_expired


router = APIRouter(prefix="/admin/settings-delegations", tags=["admin-delegations"])


def _to_response(delegation) -> SettingsDelegationResponse:
    response = SettingsDelegationResponse.model_validate(delegation)
    return response.model_copy(update={"is_expired": is_expired(delegation)})


@router.get("", response_model=SettingsDelegationList)
async def list_delegations(
    access: AccessContext = Depends(require_access(Resource.ADMIN, Action.READ)),
    delegations: DelegationService = Depends(get_delegation_service),
):
    """List every delegation in the caller's organization, expired ones included."""
    items = await delegations.list_for_org(access.user.org_id)
    return SettingsDelegationList(items=[_to_response(item) for item in items], total=len(items))


@router.put("/{user_id}", response_model=SettingsDelegationResponse)
async def put_delegation(
    user_id: UUID,
    payload: SettingsDelegationUpdate,
    access: AccessContext = Depends(require_access(Resource.ADMIN, Action.UPDATE)),
    delegations: DelegationService = Depends(get_delegation_service),
    db: AsyncSession = Depends(get_db),
):
    target = await UserRepository(db).get_by_id(user_id)
    if target is None or target.org_id != access.user.org_id:
        raise NotFoundError("User not found")
    if is_admin_role(target.role):
        raise ValidationError("Admin users already have access to all settings")

    delegation = await delegations.grant(
        access.user.org_id,
        user_id,
        access.user.id,
        DelegationGrants(
            can_manage_billing=payload.can_manage_billing,
            can_manage_team=payload.can_manage_team,
            can_manage_integrations=payload.can_manage_integrations,
            can_manage_branding=payload.can_manage_branding,
        ),
        expires_at=payload.expires_at,
    )
    await db.commit()
    return _to_response(delegation)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_delegation(
    user_id: UUID,
    access: AccessContext = Depends(require_access(Resource.ADMIN, Action.UPDATE)),
    delegations: DelegationService = Depends(get_delegation_service),
    db: AsyncSession = Depends(get_db),
):
    removed = await delegations.revoke(access.user.org_id, user_id)
    if not removed:
        raise NotFoundError("Delegation not found")
    await db.commit()
