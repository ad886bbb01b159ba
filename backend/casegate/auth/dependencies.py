"""
Access dependencies - the FastAPI face of AccessMiddleware.

Usage:

    @router.get("/clients/{client_id}")
    async def get_client(
        access: AccessContext = Depends(
            require_access(
                Resource.CLIENTS,
                Action.READ,
                get_resource_id=path_resource_id("client_id"),
                get_scope=client_scope_from_path,
            )
        ),
    ): ...

Unauthenticated requests get 401, denied requests get 403 with the
user-facing message and an admin contact.
"""
from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..dependencies import get_access_middleware, get_current_user_optional, get_db
from ..domain.access import AuthenticatedUser
from .middleware import (
    AccessContext,
    AccessMiddleware,
    AccessOptions,
    ResourceIdGetter,
    ScopeGetter,
)
from .rbac_contract import Action, Resource, SettingsArea


def require_access(
    resource: Resource,
    action: Action,
    *,
    get_resource_id: ResourceIdGetter | None = None,
    get_scope: ScopeGetter | None = None,
    setting: SettingsArea | None = None,
    skip: bool = False,
) -> Callable:
    options = AccessOptions(
        resource=resource,
        action=action,
        get_resource_id=get_resource_id,
        get_scope=get_scope,
        setting=setting,
        skip=skip,
    )

    async def dependency(
        request: Request,
        user: AuthenticatedUser | None = Depends(get_current_user_optional),
        db: AsyncSession = Depends(get_db),
        middleware: AccessMiddleware = Depends(get_access_middleware),
    ) -> AccessContext:
        return await middleware.authorize(request, user, options, db)

    return dependency
