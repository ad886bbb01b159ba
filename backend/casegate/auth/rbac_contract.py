"""
RBAC contract - the static role to permission matrix.

Roles are flat, fully enumerated tables. There is no inheritance between
roles: SUPER_ADMIN and ADMIN carry identical rows as separate entries.

The matrix is validated once at import time:
- every role has an entry (possibly empty)
- a role holds at most one scope per (resource, action) pair

ALL changes to this table must go through security review.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Final


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PROGRAM_MANAGER = "PROGRAM_MANAGER"
    CASE_MANAGER = "CASE_MANAGER"
    FACILITATOR = "FACILITATOR"
    VIEWER = "VIEWER"


class Resource(str, Enum):
    CLIENTS = "clients"
    PROGRAMS = "programs"
    FORMS = "forms"
    CALLS = "calls"
    GOALS = "goals"
    SETTINGS = "settings"
    BILLING = "billing"
    ADMIN = "admin"
    EXPORTS = "exports"
    ATTENDANCE = "attendance"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    PUBLISH = "publish"
    USE = "use"


class Scope(str, Enum):
    """Breadth of data a permission reaches, widest first."""

    ALL = "all"
    PROGRAM = "program"
    ASSIGNED = "assigned"
    SESSION = "session"
    NONE = "none"


class SettingsArea(str, Enum):
    """Settings areas an admin can delegate to a non-admin user."""

    BILLING = "billing"
    TEAM = "team"
    INTEGRATIONS = "integrations"
    BRANDING = "branding"


ADMIN_ROLES: Final[frozenset[Role]] = frozenset({Role.SUPER_ADMIN, Role.ADMIN})

# Ordered by breadth, used when callers compare two scopes.
SCOPE_BREADTH: Final[Mapping[Scope, int]] = MappingProxyType(
    {
        Scope.ALL: 3,
        Scope.PROGRAM: 2,
        Scope.ASSIGNED: 1,
        Scope.SESSION: 1,
        Scope.NONE: 0,
    }
)


@dataclass(frozen=True)
class Permission:
    resource: Resource
    action: Action
    scope: Scope


def _grants(resource: Resource, scope: Scope, *actions: Action) -> list[Permission]:
    return [Permission(resource, action, scope) for action in actions]


_C, _R, _U, _D = Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE

_RAW_MATRIX: dict[Role, Iterable[Permission]] = {
    Role.SUPER_ADMIN: (
        *_grants(Resource.CLIENTS, Scope.ALL, _C, _R, _U, _D, Action.EXPORT),
        *_grants(Resource.PROGRAMS, Scope.ALL, _C, _R, _U, _D),
        *_grants(Resource.FORMS, Scope.ALL, _C, _R, _U, _D, Action.PUBLISH, Action.USE),
        *_grants(Resource.CALLS, Scope.ALL, _C, _R, _U, _D),
        *_grants(Resource.GOALS, Scope.ALL, _C, _R, _U, _D),
        *_grants(Resource.ADMIN, Scope.ALL, _R, _U),
        *_grants(Resource.SETTINGS, Scope.ALL, _R, _U),
        *_grants(Resource.BILLING, Scope.ALL, _R, _U),
        *_grants(Resource.EXPORTS, Scope.ALL, _C, _R),
        *_grants(Resource.ATTENDANCE, Scope.ALL, _C, _R, _U),
    ),
    Role.ADMIN: (
        *_grants(Resource.CLIENTS, Scope.ALL, _C, _R, _U, _D, Action.EXPORT),
        *_grants(Resource.PROGRAMS, Scope.ALL, _C, _R, _U, _D),
        *_grants(Resource.FORMS, Scope.ALL, _C, _R, _U, _D, Action.PUBLISH, Action.USE),
        *_grants(Resource.CALLS, Scope.ALL, _C, _R, _U, _D),
        *_grants(Resource.GOALS, Scope.ALL, _C, _R, _U, _D),
        *_grants(Resource.ADMIN, Scope.ALL, _R, _U),
        *_grants(Resource.SETTINGS, Scope.ALL, _R, _U),
        *_grants(Resource.BILLING, Scope.ALL, _R, _U),
        *_grants(Resource.EXPORTS, Scope.ALL, _C, _R),
        *_grants(Resource.ATTENDANCE, Scope.ALL, _C, _R, _U),
    ),
    Role.PROGRAM_MANAGER: (
        *_grants(Resource.CLIENTS, Scope.PROGRAM, _C, _U, Action.EXPORT),
        *_grants(Resource.CLIENTS, Scope.ALL, _R),
        *_grants(Resource.PROGRAMS, Scope.ALL, _C, _R),
        *_grants(Resource.PROGRAMS, Scope.PROGRAM, _U, _D),
        *_grants(Resource.FORMS, Scope.ALL, _C, _R, _U, Action.USE),
        *_grants(Resource.CALLS, Scope.PROGRAM, _R),
        *_grants(Resource.GOALS, Scope.ALL, _R),
        *_grants(Resource.EXPORTS, Scope.PROGRAM, _C, _R),
        *_grants(Resource.ATTENDANCE, Scope.PROGRAM, _C, _R, _U),
    ),
    Role.CASE_MANAGER: (
        *_grants(Resource.CLIENTS, Scope.ASSIGNED, _C, _R, _U, _D),
        *_grants(Resource.PROGRAMS, Scope.PROGRAM, _R),
        *_grants(Resource.FORMS, Scope.ALL, _R, Action.USE),
        *_grants(Resource.CALLS, Scope.ASSIGNED, _C, _R, _U),
        *_grants(Resource.ATTENDANCE, Scope.PROGRAM, _R),
    ),
    Role.FACILITATOR: (
        *_grants(Resource.CLIENTS, Scope.SESSION, _R),
        *_grants(Resource.PROGRAMS, Scope.PROGRAM, _R, _U),
        *_grants(Resource.FORMS, Scope.ALL, _R),
        *_grants(Resource.FORMS, Scope.PROGRAM, Action.USE),
        *_grants(Resource.ATTENDANCE, Scope.PROGRAM, _C, _R, _U),
    ),
    Role.VIEWER: (
        *_grants(Resource.CLIENTS, Scope.PROGRAM, _R),
        *_grants(Resource.PROGRAMS, Scope.PROGRAM, _R),
        *_grants(Resource.FORMS, Scope.ALL, _R),
        *_grants(Resource.GOALS, Scope.PROGRAM, _R),
        *_grants(Resource.ATTENDANCE, Scope.PROGRAM, _R),
    ),
}


def _build_matrix(
    raw: Mapping[Role, Iterable[Permission]],
) -> Mapping[Role, frozenset[Permission]]:
    missing = set(Role) - set(raw)
    if missing:
        raise ValueError(
            f"Permission matrix missing roles: {', '.join(sorted(r.value for r in missing))}"
        )

    built: dict[Role, frozenset[Permission]] = {}
    for role, permissions in raw.items():
        seen: dict[tuple[Resource, Action], Scope] = {}
        for permission in permissions:
            key = (permission.resource, permission.action)
            if key in seen:
                raise ValueError(
                    f"Role {role.value} grants {key[0].value}:{key[1].value} "
                    "with more than one scope"
                )
            seen[key] = permission.scope
        built[role] = frozenset(permissions)
    return MappingProxyType(built)


ROLE_PERMISSIONS: Final[Mapping[Role, frozenset[Permission]]] = _build_matrix(_RAW_MATRIX)

# (role, resource, action) -> scope, derived once for O(1) lookups.
_SCOPE_INDEX: Final[Mapping[tuple[Role, Resource, Action], Scope]] = MappingProxyType(
    {
        (role, permission.resource, permission.action): permission.scope
        for role, permissions in ROLE_PERMISSIONS.items()
        for permission in permissions
    }
)


def is_admin_role(role: Role | str) -> bool:
    try:
        return Role(role) in ADMIN_ROLES
    except ValueError:
        return False


def scope_for(role: Role | str, resource: Resource | str, action: Action | str) -> Scope | None:
    """Return the scope a role holds for (resource, action), or None.

    Unknown role/resource/action values never match: the lookup fails closed.
    """
    try:
        key = (Role(role), Resource(resource), Action(action))
    except ValueError:
        return None
    return _SCOPE_INDEX.get(key)


def has_permission(role: Role | str, resource: Resource | str, action: Action | str) -> bool:
    return scope_for(role, resource, action) is not None


def permitted_actions(role: Role | str, resource: Resource | str) -> list[Action]:
    try:
        role_value, resource_value = Role(role), Resource(resource)
    except ValueError:
        return []
    return [
        action
        for action in Action
        if (role_value, resource_value, action) in _SCOPE_INDEX
    ]


def accessible_resources(role: Role | str, action: Action | str = Action.READ) -> list[Resource]:
    try:
        role_value, action_value = Role(role), Action(action)
    except ValueError:
        return []
    return [
        resource
        for resource in Resource
        if (role_value, resource, action_value) in _SCOPE_INDEX
    ]


def format_role(role: Role | str) -> str:
    """Human readable role name, e.g. CASE_MANAGER -> 'case manager'."""
    value = role.value if isinstance(role, Role) else str(role)
    return value.replace("_", " ").lower()
