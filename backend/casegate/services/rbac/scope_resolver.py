import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ...auth.rbac_contract import Role, Scope, is_admin_role
from ...domain.access import DenialReason, ScopeContext, ScopeDecision
from ...domain.ports.scope import (
    ClientAccessPort,
    EnrollmentPort,
    ProgramMembershipPort,
    SessionActivityPort,
)

logger = logging.getLogger("casegate.rbac.scope")

T = TypeVar("T")

DEFAULT_LOOKUP_TIMEOUT_SECONDS = 2.0


class ScopeLookupError(Exception):
    """Raised when a collaborator lookup fails during scope resolution."""

    def __init__(self, lookup: str):
        super().__init__(lookup)
        self.lookup = lookup


class ScopeLookupTimeout(ScopeLookupError):
    """Raised when a collaborator lookup does not answer in time."""


class _InsufficientContext(Exception):
    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class _Evaluation:
    """State for a single resolve() call.

    The caller's program set is fetched at most once, and only if a branch
    actually needs it.
    """

    def __init__(self, resolver: "ScopeResolver", user_id: uuid.UUID, context: ScopeContext):
        self.resolver = resolver
        self.user_id = user_id
        self.context = context
        self._user_program_ids: frozenset[uuid.UUID] | None = None

    async def user_program_ids(self) -> frozenset[uuid.UUID]:
        if self._user_program_ids is None:
            self._user_program_ids = await self.resolver._lookup(
                "program_membership",
                lambda: self.resolver._memberships.get_user_program_ids(self.user_id),
            )
        return self._user_program_ids

    def require_program_context(self, scope: Scope) -> None:
        if not self.context.program_ids and self.context.client_id is None:
            raise _InsufficientContext(
                f"scope={scope.value} requires program_ids or client_id"
            )

    async def program_overlap(self) -> bool:
        context = self.context
        if context.program_ids:
            if context.program_ids & await self.user_program_ids():
                return True
        if context.client_id is None:
            return False

        client_program_ids = await self.resolver._lookup(
            "client_enrollments",
            lambda: self.resolver._enrollments.get_client_program_ids(context.client_id),
        )
        if not client_program_ids:
            if self.resolver.allow_unenrolled_clients:
                logger.warning(
                    "unenrolled_client_allowed user_id=%s client_id=%s",
                    self.user_id,
                    context.client_id,
                )
                return True
            return False
        return bool(client_program_ids & await self.user_program_ids())


class ScopeResolver:
    """Decides whether a scoped permission applies to a concrete resource.

    Every collaborator call goes through ``_lookup`` so a slow or failing
    dependency turns into a deny value instead of an exception.
    """

    def __init__(
        self,
        memberships: ProgramMembershipPort,
        enrollments: EnrollmentPort,
        client_access: ClientAccessPort,
        sessions: SessionActivityPort,
        *,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
        allow_unenrolled_clients: bool = False,
    ) -> None:
        self._memberships = memberships
        self._enrollments = enrollments
        self._client_access = client_access
        self._sessions = sessions
        self.lookup_timeout = lookup_timeout
        self.allow_unenrolled_clients = allow_unenrolled_clients

    async def _lookup(self, name: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(call(), timeout=self.lookup_timeout)
        except asyncio.TimeoutError as exc:
            raise ScopeLookupTimeout(name) from exc
        except Exception as exc:
            raise ScopeLookupError(name) from exc

    async def allowed(
        self,
        scope: Scope,
        role: Role | str,
        user_id: uuid.UUID,
        context: ScopeContext,
    ) -> bool:
        decision = await self.resolve(scope, role, user_id, context)
        return decision.allowed

    async def resolve(
        self,
        scope: Scope,
        role: Role | str,
        user_id: uuid.UUID,
        context: ScopeContext,
    ) -> ScopeDecision:
        if scope is Scope.ALL or is_admin_role(role):
            return ScopeDecision.allow()
        if scope is Scope.NONE:
            return ScopeDecision.deny(DenialReason.SCOPE_DENIED, "scope=none")

        evaluation = _Evaluation(self, user_id, context)
        try:
            if scope is Scope.PROGRAM:
                allowed = await self._program(evaluation)
            elif scope is Scope.ASSIGNED:
                allowed = await self._assigned(evaluation)
            elif scope is Scope.SESSION:
                allowed = await self._session(evaluation)
            else:
                return ScopeDecision.deny(
                    DenialReason.INSUFFICIENT_CONTEXT, f"unknown scope={scope}"
                )
        except _InsufficientContext as exc:
            return ScopeDecision.deny(DenialReason.INSUFFICIENT_CONTEXT, exc.detail)
        except ScopeLookupTimeout as exc:
            logger.error(
                "scope_lookup_timeout lookup=%s user_id=%s timeout=%s",
                exc.lookup,
                user_id,
                self.lookup_timeout,
            )
            return ScopeDecision.deny(DenialReason.LOOKUP_TIMEOUT, f"lookup={exc.lookup}")
        except ScopeLookupError as exc:
            logger.error(
                "scope_lookup_failed lookup=%s user_id=%s",
                exc.lookup,
                user_id,
                exc_info=exc.__cause__,
            )
            return ScopeDecision.deny(DenialReason.LOOKUP_FAILED, f"lookup={exc.lookup}")

        if allowed:
            return ScopeDecision.allow()
        return ScopeDecision.deny(DenialReason.SCOPE_DENIED, f"scope={scope.value}")

    async def _program(self, evaluation: _Evaluation) -> bool:
        evaluation.require_program_context(Scope.PROGRAM)
        return await evaluation.program_overlap()

    async def _assigned(self, evaluation: _Evaluation) -> bool:
        context = evaluation.context
        if context.client_id is None and context.resource_owner_id is None:
            raise _InsufficientContext(
                "scope=assigned requires client_id or resource_owner_id"
            )

        if context.resource_owner_id is not None and context.resource_owner_id != evaluation.user_id:
            return False
        if context.client_id is None:
            return True

        user_id, client_id = evaluation.user_id, context.client_id
        if await self._lookup(
            "client_assignment",
            lambda: self._client_access.is_client_assigned_to_user(client_id, user_id),
        ):
            return True
        if await self._lookup(
            "client_share",
            lambda: self._client_access.is_client_shared_with_user(client_id, user_id),
        ):
            return True
        return await evaluation.program_overlap()

    async def _session(self, evaluation: _Evaluation) -> bool:
        context = evaluation.context
        evaluation.require_program_context(Scope.SESSION)
        if context.session_active is None and context.client_id is None:
            raise _InsufficientContext(
                "scope=session requires session_active or client_id"
            )

        if not await evaluation.program_overlap():
            return False
        if context.session_active is not None:
            return context.session_active

        user_id, client_id = evaluation.user_id, context.client_id
        return await self._lookup(
            "session_activity",
            lambda: self._sessions.has_active_session_with_client(user_id, client_id),
        )
