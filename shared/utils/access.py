"""
shared/utils/access.py
Role router: decides which top-level view a session may see.

Used by the client (to pick a screen) and by the API's RoleRequired
dependency (to refuse requests that would not reach a dashboard), so both
sides apply the same gating order.

Order of checks:
    loading → no identity/profile → blocked → mitra pending verification
    → invalid role → dashboard (with path canonicalisation / access denied)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Screen(str, Enum):
    LOADING = "loading"
    AUTH = "auth"
    BLOCKED = "blocked"
    PENDING_VERIFICATION = "pending_verification"
    INVALID_ROLE = "invalid_role"
    DASHBOARD = "dashboard"
    ACCESS_DENIED = "access_denied"


DASHBOARD_PATHS = {
    "user": "/dashboard",
    "mitra": "/mitra",
    "admin": "/admin",
}

# Screens that offer a sign-out escape instead of any navigation
SIGN_OUT_SCREENS = frozenset({Screen.BLOCKED, Screen.PENDING_VERIFICATION, Screen.INVALID_ROLE})


@dataclass(frozen=True)
class ViewDecision:
    screen: Screen
    role: Optional[str] = None
    path: Optional[str] = None       # canonical dashboard path for the role
    redirect: Optional[str] = None   # set when the requested path must be replaced

    @property
    def can_sign_out(self) -> bool:
        return self.screen in SIGN_OUT_SCREENS

    @property
    def allowed(self) -> bool:
        return self.screen == Screen.DASHBOARD


def role_value(role: Any) -> Optional[str]:
    """Normalise a role that may be a str-enum member or a raw string."""
    if role is None:
        return None
    if isinstance(role, Enum):
        return role.value
    return str(role)


def resolve_view(
    profile: Any,
    loading: bool = False,
    path: Optional[str] = None,
    identity: Any = True,
) -> ViewDecision:
    """
    Pick the view for a session.

    `profile` is anything with role / is_verified / is_blocked attributes
    (ORM row, API schema). `identity` is falsy when there is no session.
    """
    if loading:
        return ViewDecision(Screen.LOADING)

    if not identity or profile is None:
        return ViewDecision(Screen.AUTH)

    role = role_value(getattr(profile, "role", None))

    if getattr(profile, "is_blocked", False):
        return ViewDecision(Screen.BLOCKED, role=role)

    if role == "mitra" and not getattr(profile, "is_verified", False):
        return ViewDecision(Screen.PENDING_VERIFICATION, role=role)

    if role not in DASHBOARD_PATHS:
        return ViewDecision(Screen.INVALID_ROLE, role=role)

    canonical = DASHBOARD_PATHS[role]
    if path is None or path in ("", "/"):
        return ViewDecision(Screen.DASHBOARD, role=role, path=canonical, redirect=canonical)

    if path == canonical or path.startswith(canonical + "/"):
        return ViewDecision(Screen.DASHBOARD, role=role, path=canonical)

    if any(path == p or path.startswith(p + "/") for p in DASHBOARD_PATHS.values()):
        return ViewDecision(Screen.ACCESS_DENIED, role=role, path=canonical)

    # Unknown path: send the session home
    return ViewDecision(Screen.DASHBOARD, role=role, path=canonical, redirect=canonical)
