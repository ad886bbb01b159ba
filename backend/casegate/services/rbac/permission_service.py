import asyncio
import logging

from ...auth.rbac_contract import (
    Action,
    Resource,
    Scope,
    format_role,
    is_admin_role,
    scope_for,
)
from ...domain.access import (
    AuthenticatedUser,
    CheckRequest,
    DenialReason,
    PermissionCheckResult,
)
from ...domain.ports.scope import AdminContactPort
from .delegation_service import DelegationService
from .scope_resolver import DEFAULT_LOOKUP_TIMEOUT_SECONDS, ScopeResolver

logger = logging.getLogger("casegate.rbac")

DEFAULT_ADMIN_CONTACT = "your organization administrator"

SCOPE_DENIAL_MESSAGES: dict[Scope, str] = {
    Scope.PROGRAM: "You can only access resources in programs you are assigned to.",
    Scope.ASSIGNED: "You can only access clients assigned to you.",
    Scope.SESSION: (
        "You can only access client information during program sessions "
        "or for enrolled clients."
    ),
    Scope.NONE: "You do not have access to this resource type.",
}
OWNER_DENIAL_MESSAGE = "You can only access your own resources."


def no_grant_message(role) -> str:
    return f"Your {format_role(role)} role does not allow this action."


def _value(member) -> str:
    return getattr(member, "value", member)


def generic_denial_message(resource: Resource | str, action: Action | str) -> str:
    return f"You do not have permission to {_value(action)} {_value(resource)}."


def delegation_denial_message(setting) -> str:
    return f"You do not have delegated permission to manage {_value(setting)} settings."


class PermissionChecker:
    """The single allow/deny decision function.

    Order of evaluation, stopping at the first conclusive step:
    admin role, matrix tuple, settings delegation (only when the matrix has
    no tuple and the request names a settings area), scope=all, then the
    scope resolver. ``check`` never raises; every failure becomes a deny.
    """

    def __init__(
        self,
        scope_resolver: ScopeResolver,
        delegations: DelegationService,
        admin_contacts: AdminContactPort,
        *,
        default_admin_contact: str = DEFAULT_ADMIN_CONTACT,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self._scope_resolver = scope_resolver
        self._delegations = delegations
        self._admin_contacts = admin_contacts
        self.default_admin_contact = default_admin_contact
        self.lookup_timeout = lookup_timeout

    async def check(
        self, user: AuthenticatedUser, request: CheckRequest
    ) -> PermissionCheckResult:
        try:
            return await self._check(user, request)
        except Exception as exc:
            logger.error(
                "permission_check_failed user_id=%s resource=%s action=%s",
                user.id,
                _value(request.resource),
                _value(request.action),
                exc_info=exc,
            )
            return await self.deny(
                user,
                request,
                DenialReason.LOOKUP_FAILED,
                generic_denial_message(request.resource, request.action),
                detail=type(exc).__name__,
            )

    async def _check(
        self, user: AuthenticatedUser, request: CheckRequest
    ) -> PermissionCheckResult:
        if is_admin_role(user.role):
            return PermissionCheckResult(allowed=True, scope=Scope.ALL)

        scope = scope_for(user.role, request.resource, request.action)
        if scope is None:
            if request.setting is not None:
                return await self._check_delegation(user, request)
            return await self.deny(
                user, request, DenialReason.NO_GRANT, no_grant_message(user.role)
            )

        if scope is Scope.ALL:
            return PermissionCheckResult(allowed=True, scope=scope)

        decision = await self._scope_resolver.resolve(
            scope, user.role, user.id, request.scope_context
        )
        if decision.allowed:
            return PermissionCheckResult(allowed=True, scope=scope)

        if decision.reason is DenialReason.SCOPE_DENIED:
            message = self._scope_message(user, request, scope)
        else:
            message = generic_denial_message(request.resource, request.action)
        return await self.deny(
            user,
            request,
            decision.reason or DenialReason.SCOPE_DENIED,
            message,
            scope=scope,
            detail=decision.detail,
        )

    async def _check_delegation(
        self, user: AuthenticatedUser, request: CheckRequest
    ) -> PermissionCheckResult:
        try:
            delegated = await asyncio.wait_for(
                self._delegations.has_settings_access(
                    user.role, user.id, user.org_id, request.setting
                ),
                timeout=self.lookup_timeout,
            )
        except asyncio.TimeoutError:
            return await self.deny(
                user,
                request,
                DenialReason.LOOKUP_TIMEOUT,
                generic_denial_message(request.resource, request.action),
                detail=f"lookup=settings_delegation timeout={self.lookup_timeout}s",
            )
        except Exception as exc:
            return await self.deny(
                user,
                request,
                DenialReason.LOOKUP_FAILED,
                generic_denial_message(request.resource, request.action),
                detail=f"lookup=settings_delegation error={type(exc).__name__}",
            )
        if delegated:
            return PermissionCheckResult(allowed=True, scope=Scope.ALL)
        return await self.deny(
            user,
            request,
            DenialReason.NO_GRANT,
            delegation_denial_message(request.setting),
            detail=f"setting={_value(request.setting)}",
        )

    @staticmethod
    def _scope_message(
        user: AuthenticatedUser, request: CheckRequest, scope: Scope
    ) -> str:
        context = request.scope_context
        if (
            scope is Scope.ASSIGNED
            and context.client_id is None
            and context.resource_owner_id is not None
        ):
            return OWNER_DENIAL_MESSAGE
        return SCOPE_DENIAL_MESSAGES.get(
            scope, generic_denial_message(request.resource, request.action)
        )

    async def deny(
        self,
        user: AuthenticatedUser,
        request: CheckRequest,
        reason: DenialReason,
        message: str,
        *,
        scope: Scope | None = None,
        detail: str | None = None,
    ) -> PermissionCheckResult:
        log_args = (
            reason.value,
            user.id,
            _value(user.role),
            _value(request.resource),
            _value(request.action),
            request.resource_id,
            detail,
        )
        log_format = (
            "permission_denied reason=%s user_id=%s role=%s resource=%s "
            "action=%s resource_id=%s detail=%s"
        )
        if reason is DenialReason.INSUFFICIENT_CONTEXT:
            logger.error("engineering_defect " + log_format, *log_args)
        elif reason.is_engineering_defect:
            logger.error(log_format, *log_args)
        else:
            logger.info(log_format, *log_args)

        return PermissionCheckResult(
            allowed=False,
            scope=scope,
            reason=reason,
            user_message=message,
            admin_contact=await self._admin_contact(user),
            detail=detail,
        )

    async def _admin_contact(self, user: AuthenticatedUser) -> str:
        try:
            contact = await asyncio.wait_for(
                self._admin_contacts.get_org_admin_contact(user.org_id),
                timeout=self.lookup_timeout,
            )
        except Exception as exc:
            logger.warning(
                "admin_contact_lookup_failed org_id=%s error=%s", user.org_id, exc
            )
            return self.default_admin_contact
        return contact or self.default_admin_contact
