# src/fittrack_client/auth_state.py

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .auth_api import AuthApi
from .errors import AllTiersExhausted, AuthFailure
from .models import UserProfile
from .resources import DataAccess

logger = logging.getLogger(__name__)

Listener = Callable[[], Any]


class AuthState:
    """
    Process-wide authentication state. The only owner of the user identity record.

    At most one status check runs at a time: concurrent callers (a route guard and
    app boot, say) await the same in-flight check instead of starting their own.
    A login and a status check never overlap, so neither can overwrite the identity
    the other one has just settled.
    """

    def __init__(self, auth_api: AuthApi, data: DataAccess):
        self.auth_api = auth_api
        self.data = data
        self.user: Optional[Dict[str, Any]] = None
        self.is_loading = False
        self.auth_error: Optional[str] = None
        # True once the first status check (or a login) has finished, either way
        self.settled = False
        self.last_result_degraded = False
        self._status_task: Optional[asyncio.Task] = None
        self._identity_lock = asyncio.Lock()
        self._on_authenticated: List[Listener] = []
        self._on_cleared: List[Listener] = []

    # --- Getters ---

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def is_admin(self) -> bool:
        return bool(self.user and self.user.get("isAdmin"))

    @property
    def full_name(self) -> str:
        if not self.user:
            return ""
        return f"{self.user['firstName']} {self.user['lastName']}".strip()

    @property
    def user_role(self) -> str:
        return self.user.get("role") or "guest" if self.user else "guest"

    def add_listener(self, on_authenticated: Optional[Listener] = None, on_cleared: Optional[Listener] = None) -> None:
        if on_authenticated is not None:
            self._on_authenticated.append(on_authenticated)
        if on_cleared is not None:
            self._on_cleared.append(on_cleared)

    # --- Actions ---

    async def login(self, email: str, password: str) -> bool:
        async with self._identity_lock:
            return await self._login(email, password)

    async def _login(self, email: str, password: str) -> bool:
        self.is_loading = True
        self.auth_error = None
        try:
            result = await self.auth_api.login(email, password)
        except AuthFailure as e:
            self.auth_error = e.message
            logger.info(f"AuthState: login rejected for {email}: {e.message}")
            return False
        except AllTiersExhausted as e:
            self.auth_error = "Login service is unavailable. Please try again later."
            logger.error(f"AuthState: login impossible, {e}")
            raise
        finally:
            self.is_loading = False

        self._set_user(result.value, result.degraded)
        self.settled = True
        logger.info(f"AuthState: {email} logged in via {result.tier_name}")
        self._notify(self._on_authenticated)
        return True

    async def check_auth_status(self) -> bool:
        if self._status_task is None or self._status_task.done():
            self._status_task = asyncio.ensure_future(self._check_auth_status())
        return await asyncio.shield(self._status_task)

    async def ensure_initialized(self) -> bool:
        """Runs the status check once. Later calls return at once, whatever its outcome was."""
        if self.settled:
            return self.is_authenticated
        return await self.check_auth_status()

    async def _check_auth_status(self) -> bool:
        async with self._identity_lock:
            return await self._run_status_check()

    async def _run_status_check(self) -> bool:
        was_authenticated = self.is_authenticated
        self.is_loading = True
        try:
            result = await self.data.current_user()
        except AuthFailure as e:
            logger.info(f"AuthState: no valid session ({e.message})")
            self.clear()
            return False
        except AllTiersExhausted as e:
            # An outage is not a logout: keep whatever identity we already had
            self.auth_error = "Unable to verify your session right now."
            logger.warning(f"AuthState: error checking auth status: {e}")
            return self.is_authenticated
        finally:
            self.is_loading = False
            self.settled = True

        if result.value is None:
            if was_authenticated:
                self.clear()
            return False

        self._set_user(result.value, result.degraded)
        if not was_authenticated:
            self._notify(self._on_authenticated)
        return True

    async def logout(self) -> None:
        self.is_loading = True
        try:
            await self.auth_api.logout()
        finally:
            self.clear()
            self.is_loading = False

    def clear(self) -> None:
        """Drops the local identity without any network call. Also the interceptor's logout signal."""
        had_user = self.user is not None
        self.user = None
        self.last_result_degraded = False
        if had_user:
            logger.info("AuthState: local session cleared")
        self._notify(self._on_cleared)

    def _set_user(self, profile: UserProfile, degraded: bool) -> None:
        self.user = profile.to_identity()
        self.last_result_degraded = degraded
        self.auth_error = None

    @staticmethod
    def _notify(listeners: List[Listener]) -> None:
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"AuthState: listener {listener!r} raised: {e}", exc_info=True)
