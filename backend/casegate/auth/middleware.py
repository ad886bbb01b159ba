"""
Access middleware - the single enforcement point for authorization.

Every protected handler goes through ``AccessMiddleware.authorize``, either
via the ``require_access`` FastAPI dependency or the framework-agnostic
``AccessMiddleware.wrap``. Handlers never check permissions themselves.

Denials are audited as tracked background tasks so a slow or failing
audit write never delays or changes the response.
"""
from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Request

from ..domain.access import (
    EMPTY_SCOPE_CONTEXT,
    AuthenticatedUser,
    CheckRequest,
    DenialReason,
    PermissionCheckResult,
    RequestMeta,
    ScopeContext,
)
from ..errors import AuthError, ForbiddenError
from ..services.audit.denial_auditor import DenialAuditor
from ..services.rbac.permission_service import PermissionChecker, generic_denial_message
from .rbac_contract import Action, Resource, SettingsArea

logger = logging.getLogger("casegate.rbac")

ResourceIdGetter = Callable[[Request, Any], Awaitable[str | None] | str | None]
ScopeGetter = Callable[[Request, Any], Awaitable[ScopeContext] | ScopeContext]


@dataclass(frozen=True)
class AccessOptions:
    resource: Resource
    action: Action
    get_resource_id: ResourceIdGetter | None = None
    get_scope: ScopeGetter | None = None
    setting: SettingsArea | None = None
    # Escape hatch: authentication only, no authorization
    skip: bool = False


@dataclass(frozen=True)
class AccessContext:
    user: AuthenticatedUser
    permission_result: PermissionCheckResult
    resource_id: str | None = None


def request_meta(request: Request | None) -> RequestMeta:
    if request is None:
        return RequestMeta()
    headers = request.headers
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip() or None
    else:
        ip_address = headers.get("x-real-ip")
    if not ip_address and request.client is not None:
        ip_address = request.client.host
    return RequestMeta(ip_address=ip_address, user_agent=headers.get("user-agent"))


async def _maybe_await(value):
    if inspect.isawaitable(value):
        return await value
    return value


class AccessMiddleware:
    def __init__(
        self,
        checker: PermissionChecker,
        auditor: DenialAuditor,
        *,
        pending: set[asyncio.Task] | None = None,
    ) -> None:
        self._checker = checker
        self._auditor = auditor
        # Shared across per-request instances so shutdown can drain them all
        self._pending: set[asyncio.Task] = pending if pending is not None else set()

    async def authorize(
        self,
        request: Request | None,
        user: AuthenticatedUser | None,
        options: AccessOptions,
        db: Any = None,
    ) -> AccessContext:
        """Authorize one request or raise AuthError / ForbiddenError."""
        if user is None:
            raise AuthError()
        if options.skip:
            return AccessContext(user=user, permission_result=PermissionCheckResult(allowed=True))

        resource_id: str | None = None
        try:
            if options.get_resource_id is not None:
                resource_id = await _maybe_await(options.get_resource_id(request, db))
            scope_context = EMPTY_SCOPE_CONTEXT
            if options.get_scope is not None:
                scope_context = await _maybe_await(options.get_scope(request, db))
        except Exception as exc:
            logger.error(
                "access_context_failed user_id=%s resource=%s action=%s",
                user.id,
                options.resource.value,
                options.action.value,
                exc_info=exc,
            )
            check_request = CheckRequest(
                resource=options.resource,
                action=options.action,
                resource_id=None if resource_id is None else str(resource_id),
                setting=options.setting,
            )
            result = await self._checker.deny(
                user,
                check_request,
                DenialReason.LOOKUP_FAILED,
                generic_denial_message(options.resource, options.action),
                detail=type(exc).__name__,
            )
        else:
            check_request = CheckRequest(
                resource=options.resource,
                action=options.action,
                resource_id=None if resource_id is None else str(resource_id),
                scope_context=scope_context or EMPTY_SCOPE_CONTEXT,
                setting=options.setting,
            )
            result = await self._checker.check(user, check_request)

        if not result.allowed:
            self._record_denial(user, check_request, result, request_meta(request))
            raise ForbiddenError(
                result.user_message,
                admin_contact=result.admin_contact,
                reason=result.reason.value if result.reason else None,
            )

        return AccessContext(
            user=user, permission_result=result, resource_id=check_request.resource_id
        )

    def wrap(self, handler: Callable[..., Awaitable[Any]], options: AccessOptions):
        """Wrap ``handler(context, *args, **kwargs)`` behind authorization.

        The wrapped callable takes ``(request, user, *args, db=None, **kwargs)``.
        """

        @functools.wraps(handler)
        async def wrapped(request, user, *args, db=None, **kwargs):
            context = await self.authorize(request, user, options, db)
            return await handler(context, *args, **kwargs)

        return wrapped

    def _record_denial(
        self,
        user: AuthenticatedUser,
        check_request: CheckRequest,
        result: PermissionCheckResult,
        meta: RequestMeta,
    ) -> None:
        task = asyncio.create_task(
            self._auditor.record_denial(
                user,
                check_request.resource,
                check_request.action,
                check_request.resource_id,
                result.reason or DenialReason.NO_GRANT,
                meta,
            )
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    @property
    def pending_audits(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for outstanding denial audits (shutdown and tests)."""
        await drain_pending(self._pending)


async def drain_pending(pending: set[asyncio.Task]) -> None:
    while pending:
        await asyncio.gather(*list(pending), return_exceptions=True)
