from fastapi import APIRouter, Depends

from ..auth.dependencies import require_access
from ..auth.middleware import AccessContext
from ..auth.rbac_contract import Action, Resource
from ..dependencies import get_delegation_service
from ..schemas.capabilities import CapabilitiesResponse
from ..security.capabilities import ClientCapabilityView
from ..services.rbac.delegation_service import DelegationService


router = APIRouter(prefix="/me", tags=["me"])


@router.get("/capabilities", response_model=CapabilitiesResponse)
async def get_capabilities(
    # Every authenticated user may read their own capabilities
    access: AccessContext = Depends(require_access(Resource.SETTINGS, Action.READ, skip=True)),
    delegations: DelegationService = Depends(get_delegation_service),
):
    user = access.user
    snapshot = await delegations.snapshot_for(user.role, user.id, user.org_id)
    return ClientCapabilityView(user.role, snapshot).to_payload()
