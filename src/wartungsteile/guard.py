"""Role hierarchy and route guard.

Roles form a single total order ``Viewer < Technician < Admin``. A route names
the minimum role it needs; every role at or above it passes.
"""

from __future__ import annotations

import enum
from typing import Optional

from wartungsteile.session import SessionStore


class Role(enum.IntEnum):
    VIEWER = 0
    TECHNICIAN = 1
    ADMIN = 2

    @property
    def api_name(self) -> str:
        return {Role.VIEWER: "Viewer", Role.TECHNICIAN: "Technician", Role.ADMIN: "Admin"}[self]


_ALIASES = {
    "viewer": Role.VIEWER,
    "readonly": Role.VIEWER,
    "read-only": Role.VIEWER,
    "technician": Role.TECHNICIAN,
    "techniker": Role.TECHNICIAN,
    "admin": Role.ADMIN,
    "administrator": Role.ADMIN,
}


def parse_role(value: object) -> Optional[Role]:
    """Map a backend role name onto :class:`Role`; unknown names give ``None``.

    >>> parse_role("ReadOnly")
    <Role.VIEWER: 0>
    >>> parse_role("Administrator")
    <Role.ADMIN: 2>
    >>> parse_role("guest") is None
    True
    """
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    return _ALIASES.get(value.strip().lower())


def has_access(user_role: object, required_role: object) -> bool:
    """``True`` iff ``user_role`` is ``required_role`` or above it.

    >>> has_access("Admin", "Technician")
    True
    >>> has_access("Viewer", "Technician")
    False
    """
    user = parse_role(user_role)
    required = parse_role(required_role)
    if user is None or required is None:
        return False
    return user >= required


class Decision(str, enum.Enum):
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect-login"
    REDIRECT_HOME = "redirect-home"

    @property
    def location(self) -> Optional[str]:
        return {Decision.ALLOW: None, Decision.REDIRECT_LOGIN: "/login", Decision.REDIRECT_HOME: "/"}[self]


def check_route(authenticated: bool, user_role: object, required_role: Optional[object] = None) -> Decision:
    """Decide whether a route may be entered.

    Unauthenticated users go to the login page, authenticated users without
    the required role go to the home route.
    """
    if not authenticated:
        return Decision.REDIRECT_LOGIN
    if required_role is None:
        return Decision.ALLOW
    if has_access(user_role, required_role):
        return Decision.ALLOW
    return Decision.REDIRECT_HOME


def check_session(
    store: Optional[SessionStore], is_authenticated: bool, required_role: Optional[object] = None
) -> Decision:
    """:func:`check_route` for the user held in ``store``.

    A caller without a store (no session cookie) is never authenticated.
    """
    if store is None:
        return check_route(False, None, required_role)
    return check_route(is_authenticated, store.role, required_role)


# Minimum role per page of the web front end.
ROUTES = {
    "/": Role.VIEWER,
    "/machines": Role.VIEWER,
    "/machines/{id}": Role.VIEWER,
    "/machines/new": Role.TECHNICIAN,
    "/machines/{id}/edit": Role.TECHNICIAN,
    "/machines/import": Role.TECHNICIAN,
    "/parts": Role.VIEWER,
    "/parts/{id}": Role.VIEWER,
    "/parts/new": Role.TECHNICIAN,
    "/parts/{id}/edit": Role.TECHNICIAN,
    "/profile": Role.VIEWER,
    "/admin/users": Role.ADMIN,
    "/admin/backups": Role.ADMIN,
    "/admin/models": Role.ADMIN,
}


def _template_matches(template: str, path: str) -> bool:
    parts = template.strip("/").split("/")
    actual = path.strip("/").split("/")
    if len(parts) != len(actual):
        return False
    return all(p == a or (p.startswith("{") and p.endswith("}")) for p, a in zip(parts, actual))


def required_role_for(path: str) -> Optional[Role]:
    """Minimum role of a page path; literal segments win over ``{id}``.

    >>> required_role_for("/machines/new")
    <Role.TECHNICIAN: 1>
    >>> required_role_for("/machines/42")
    <Role.VIEWER: 0>
    >>> required_role_for("/login") is None
    True
    """
    if path in ROUTES:
        return ROUTES[path]
    for template, role in ROUTES.items():
        if _template_matches(template, path):
            return role
    return None
