"""Value types that flow through an authorization decision.

All of these are immutable. A decision is always returned as a
PermissionCheckResult; nothing in the decision path signals a denial by
raising.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from ..auth.rbac_contract import Action, Resource, Role, Scope, SettingsArea


@dataclass(frozen=True)
class AuthenticatedUser:
    id: uuid.UUID
    org_id: uuid.UUID
    role: Role
    email: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class ScopeContext:
    """Runtime facts about the resource under evaluation.

    program_ids are the programs the target resource belongs to. The
    caller's own programs always come from the membership lookup.
    session_active is an externally supplied predicate; None means
    "ask the session lookup".
    """

    program_ids: frozenset[uuid.UUID] = field(default_factory=frozenset)
    client_id: uuid.UUID | None = None
    resource_owner_id: uuid.UUID | None = None
    session_active: bool | None = None

    @classmethod
    def for_program(cls, program_id: uuid.UUID) -> "ScopeContext":
        return cls(program_ids=frozenset({program_id}))

    @classmethod
    def for_client(cls, client_id: uuid.UUID, **kwargs) -> "ScopeContext":
        return cls(client_id=client_id, **kwargs)

    @property
    def is_empty(self) -> bool:
        return (
            not self.program_ids
            and self.client_id is None
            and self.resource_owner_id is None
        )


EMPTY_SCOPE_CONTEXT = ScopeContext()


@dataclass(frozen=True)
class CheckRequest:
    resource: Resource
    action: Action
    resource_id: str | None = None
    scope_context: ScopeContext = EMPTY_SCOPE_CONTEXT
    setting: SettingsArea | None = None


class DenialReason(str, Enum):
    NO_GRANT = "no_grant"
    SCOPE_DENIED = "scope_denied"
    INSUFFICIENT_CONTEXT = "insufficient_context"
    LOOKUP_TIMEOUT = "lookup_timeout"
    LOOKUP_FAILED = "lookup_failed"

    @property
    def is_engineering_defect(self) -> bool:
        return self is not DenialReason.NO_GRANT and self is not DenialReason.SCOPE_DENIED


@dataclass(frozen=True)
class ScopeDecision:
    allowed: bool
    reason: DenialReason | None = None
    detail: str | None = None

    @classmethod
    def allow(cls) -> "ScopeDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, detail: str | None = None) -> "ScopeDecision":
        return cls(allowed=False, reason=reason, detail=detail)


@dataclass(frozen=True)
class PermissionCheckResult:
    allowed: bool
    scope: Scope | None = None
    reason: DenialReason | None = None
    user_message: str | None = None
    admin_contact: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class RequestMeta:
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class DelegationGrants:
    can_manage_billing: bool = False
    can_manage_team: bool = False
    can_manage_integrations: bool = False
    can_manage_branding: bool = False

    def allows(self, setting: SettingsArea | str) -> bool:
        area = SettingsArea(setting)
        return bool(getattr(self, f"can_manage_{area.value}"))

    def as_dict(self) -> dict[str, bool]:
        return {area.value: self.allows(area) for area in SettingsArea}


NO_GRANTS = DelegationGrants()


@dataclass(frozen=True)
class DelegationSnapshot:
    """Settings access for one user, captured at a point in time."""

    is_admin: bool
    grants: DelegationGrants = NO_GRANTS
    expires_at: datetime | None = None

    def allows(self, setting: SettingsArea | str) -> bool:
        if self.is_admin:
            return True
        try:
            return self.grants.allows(setting)
        except ValueError:
            return False
