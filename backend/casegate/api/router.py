from fastapi import APIRouter

from . import me
from .admin import denial_logs as admin_denial_logs
from .admin import settings_delegation as admin_settings_delegation

router = APIRouter(prefix="/api")

_admin_routers = [
    admin_settings_delegation.router,
    admin_denial_logs.router,
]

_user_routers = [
    me.router,
]

for _router in [*_admin_routers, *_user_routers]:
    router.include_router(_router)
