"""
client/router.py
Location-aware wrapper around the role router.
"""

from typing import Optional

from client.session import SessionResolver
from shared.utils.access import DASHBOARD_PATHS, ViewDecision


class RoleRouter:
    """
    Keeps the current path and applies redirects from the resolver's view,
    so a session never lingers on `/` or on another role's dashboard.
    """

    def __init__(self, resolver: SessionResolver, path: str = "/"):
        self.resolver = resolver
        self.path = path

    def navigate(self, path: Optional[str] = None) -> ViewDecision:
        if path is not None:
            self.path = path
        decision = self.resolver.view(self.path)
        if decision.redirect:
            self.path = decision.redirect
        return decision

    def home(self) -> Optional[str]:
        """Canonical dashboard path for the signed-in role, if any."""
        profile = self.resolver.state.profile
        return DASHBOARD_PATHS.get(profile.role) if profile else None
