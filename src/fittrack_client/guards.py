# src/fittrack_client/guards.py
"""
Navigation guards.

The decide_* functions are pure. RouteGuard adds the only side effects allowed:
the one-time lazy initialization of AuthState and recording the attempted route.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .auth_state import AuthState
from .session import SessionMonitor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Routes:
    home: str = "/"
    login: str = "/login"


DEFAULT_ROUTES = Routes()


@dataclass(frozen=True)
class AuthSnapshot:
    is_authenticated: bool
    is_admin: bool = False
    is_loading: bool = False


@dataclass(frozen=True)
class GuardDecision:
    allowed: bool
    redirect_to: Optional[str] = None
    reason: str = ""

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(True)


def decide_require_auth(snapshot: AuthSnapshot, routes: Routes = DEFAULT_ROUTES) -> GuardDecision:
    if snapshot.is_authenticated:
        return GuardDecision.allow()
    return GuardDecision(False, routes.login, "not-authenticated")


def decide_require_admin(snapshot: AuthSnapshot, routes: Routes = DEFAULT_ROUTES) -> GuardDecision:
    if not snapshot.is_authenticated:
        return GuardDecision(False, routes.login, "not-authenticated")
    if not snapshot.is_admin:
        # Home, not login: an admin-only route must not look like an auth failure
        return GuardDecision(False, routes.home, "not-admin")
    return GuardDecision.allow()


def decide_guest_only(snapshot: AuthSnapshot, routes: Routes = DEFAULT_ROUTES) -> GuardDecision:
    if snapshot.is_authenticated:
        return GuardDecision(False, routes.home, "already-authenticated")
    return GuardDecision.allow()


class RouteGuard:
    def __init__(self, auth: AuthState, session: SessionMonitor, routes: Routes = DEFAULT_ROUTES):
        self.auth = auth
        self.session = session
        self.routes = routes

    async def snapshot(self) -> AuthSnapshot:
        await self.auth.ensure_initialized()
        return AuthSnapshot(self.auth.is_authenticated, self.auth.is_admin, self.auth.is_loading)

    def _login_redirect(self, decision: GuardDecision, route: str) -> GuardDecision:
        if decision.redirect_to != self.routes.login:
            return decision
        self.session.set_attempted_route(route)
        if self.session.expired:
            return GuardDecision(False, f"{self.routes.login}?session=expired", decision.reason)
        return decision

    async def require_auth(self, route: str) -> GuardDecision:
        decision = decide_require_auth(await self.snapshot(), self.routes)
        if not decision.allowed:
            logger.info(f"RouteGuard: {route} requires authentication, redirecting to {decision.redirect_to}")
        return self._login_redirect(decision, route)

    async def require_admin(self, route: str) -> GuardDecision:
        decision = decide_require_admin(await self.snapshot(), self.routes)
        if not decision.allowed:
            logger.info(f"RouteGuard: {route} denied ({decision.reason}), redirecting to {decision.redirect_to}")
        return self._login_redirect(decision, route)

    async def guest_only(self, route: str) -> GuardDecision:
        return decide_guest_only(await self.snapshot(), self.routes)

    def after_login(self, default: Optional[str] = None) -> str:
        """The route the user was denied before logging in, replayed once."""
        return self.session.pop_attempted_route() or default or self.routes.home
