"""Read-side capability view for UI gating.

Answers "should this control be rendered" from the role matrix and a
delegation snapshot fetched ahead of time. It never performs a lookup and
is never an enforcement point: the server re-checks every request.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..auth.enforcement_matrix import NAV_PERMISSIONS, can_access_route
from ..auth.rbac_contract import (
    ROLE_PERMISSIONS,
    Action,
    Resource,
    Role,
    Scope,
    SettingsArea,
    is_admin_role,
    scope_for,
)
from ..domain.access import DelegationGrants, DelegationSnapshot


@dataclass(frozen=True)
class ScopedCapability:
    allowed: bool
    scope: Scope | None = None


class ClientCapabilityView:
    def __init__(self, role: Role | str, delegation: DelegationSnapshot | None = None) -> None:
        self.role = Role(role)
        self.delegation = delegation or DelegationSnapshot(is_admin=is_admin_role(self.role))

    @property
    def is_admin(self) -> bool:
        return is_admin_role(self.role)

    def can(self, resource: Resource | str, action: Action | str) -> bool:
        return scope_for(self.role, resource, action) is not None

    def can_with_scope(self, resource: Resource | str, action: Action | str) -> ScopedCapability:
        scope = scope_for(self.role, resource, action)
        return ScopedCapability(allowed=scope is not None, scope=scope)

    def has_settings_access(self, setting: SettingsArea | str) -> bool:
        if self.is_admin:
            return True
        return self.delegation.allows(setting)

    def can_access_route(self, route: str) -> bool:
        return can_access_route(self.role, route)

    def to_payload(self) -> dict[str, Any]:
        permissions = sorted(
            (
                {
                    "resource": permission.resource.value,
                    "action": permission.action.value,
                    "scope": permission.scope.value,
                }
                for permission in ROLE_PERMISSIONS[self.role]
            ),
            key=lambda item: (item["resource"], item["action"]),
        )
        return {
            "role": self.role.value,
            "isAdmin": self.is_admin,
            "permissions": permissions,
            "settingsAccess": {
                area.value: self.has_settings_access(area) for area in SettingsArea
            },
            "routes": [route for route in NAV_PERMISSIONS if self.can_access_route(route)],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ClientCapabilityView":
        """Rebuild a view from the capabilities endpoint response.

        Permissions are recomputed from the local matrix; only the role and
        the settings snapshot are taken from the payload.
        """
        role = Role(payload["role"])
        settings_access = payload.get("settingsAccess") or {}
        grants = DelegationGrants(
            can_manage_billing=bool(settings_access.get(SettingsArea.BILLING.value)),
            can_manage_team=bool(settings_access.get(SettingsArea.TEAM.value)),
            can_manage_integrations=bool(settings_access.get(SettingsArea.INTEGRATIONS.value)),
            can_manage_branding=bool(settings_access.get(SettingsArea.BRANDING.value)),
        )
        return cls(role, DelegationSnapshot(is_admin=is_admin_role(role), grants=grants))
