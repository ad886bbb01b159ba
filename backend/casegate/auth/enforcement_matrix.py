"""Declarative mapping of navigation routes to the permission that unlocks them.

Each key is a top-level route, and the value is the (resource, action) pair a
role must hold for the route to be shown. Scope is not considered here: a
route is visible when the role has the tuple at any scope, and the data shown
on it is filtered server-side.
"""
from .rbac_contract import (
    Action,
    Resource,
    Role,
    accessible_resources,
    has_permission,
)

DASHBOARD_ROUTE = "/dashboard"

NAV_PERMISSIONS: dict[str, tuple[Resource, Action]] = {
    DASHBOARD_ROUTE: (Resource.CLIENTS, Action.READ),
    "/forms": (Resource.FORMS, Action.READ),
    "/clients": (Resource.CLIENTS, Action.READ),
    "/programs": (Resource.PROGRAMS, Action.READ),
    "/calls": (Resource.CALLS, Action.READ),
    "/goals": (Resource.GOALS, Action.READ),
    "/admin": (Resource.ADMIN, Action.READ),
    "/billing": (Resource.BILLING, Action.READ),
    "/settings": (Resource.SETTINGS, Action.READ),
    "/exports": (Resource.EXPORTS, Action.READ),
}


def _route_key(route: str) -> str:
    # "/clients/123/edit" is gated by "/clients"
    segments = [segment for segment in route.split("/") if segment]
    return f"/{segments[0]}" if segments else "/"


def can_access_route(role: Role | str, route: str) -> bool:
    key = _route_key(route)
    if key == DASHBOARD_ROUTE:
        return bool(accessible_resources(role, Action.READ))
    required = NAV_PERMISSIONS.get(key)
    if required is None:
        return True
    resource, action = required
    return has_permission(role, resource, action)


def accessible_routes(role: Role | str) -> list[str]:
    return [route for route in NAV_PERMISSIONS if can_access_route(role, route)]
