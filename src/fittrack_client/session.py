# src/fittrack_client/session.py

import enum
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from .scheduler import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30 * 60
DEFAULT_CHECK_INTERVAL = 60
EXPIRED_LOGIN_ROUTE = "/login?session=expired"


class SessionState(enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class SessionMonitor:
    """
    Idle-timeout monitor.

    ACTIVE -> ACTIVE   on update_activity()
    ACTIVE -> EXPIRED  when a periodic check sees more than `timeout` seconds of inactivity
    EXPIRED -> ACTIVE  only through mark_authenticated() after a fresh login

    On expiry it logs out exactly once, stops its own timer and navigates to the
    login route with a session=expired marker.
    """

    def __init__(
        self,
        logout: Callable[[], Awaitable[Any]],
        navigate: Optional[Callable[[str], Any]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        check_interval: float = DEFAULT_CHECK_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._logout = logout
        self._navigate = navigate
        self.timeout = timeout
        self._clock = clock
        self.last_activity_at = clock()
        self.expired = False
        self.attempted_route = ""
        self.logout_count = 0
        self._timer = PeriodicTask(check_interval, self._tick, name="session-timer")

    # --- Getters ---

    @property
    def state(self) -> SessionState:
        return SessionState.EXPIRED if self.expired else SessionState.ACTIVE

    @property
    def timer_running(self) -> bool:
        return self._timer.running

    @property
    def check_interval(self) -> float:
        return self._timer.interval

    @property
    def time_until_expiry(self) -> float:
        return max(0.0, self.timeout - (self._clock() - self.last_activity_at))

    @property
    def formatted_time_remaining(self) -> str:
        remaining = int(self.time_until_expiry)
        return f"{remaining // 60}:{remaining % 60:02d}"

    # --- Actions ---

    def update_activity(self) -> None:
        # Last write wins; only "recent enough" matters
        if self.expired:
            return
        self.last_activity_at = self._clock()

    def mark_authenticated(self) -> None:
        self.expired = False
        self.last_activity_at = self._clock()
        self.start_session_timer()

    async def check_session(self) -> bool:
        if self.expired:
            return False
        if self._clock() - self.last_activity_at > self.timeout:
            await self.expire_session()
            return False
        return True

    async def expire_session(self) -> None:
        if self.expired:
            return
        self.expired = True
        logger.info(f"SessionMonitor: session idle for more than {self.timeout}s, expiring")
        try:
            self.logout_count += 1
            await self._logout()
        finally:
            self.stop_session_timer()
            if self._navigate is not None:
                self._navigate(EXPIRED_LOGIN_ROUTE)

    def start_session_timer(self) -> None:
        """Idempotent: a running timer is replaced, never duplicated."""
        self._timer.start()
        self.update_activity()

    def stop_session_timer(self) -> None:
        self._timer.stop()

    @asynccontextmanager
    async def running(self) -> AsyncIterator["SessionMonitor"]:
        self.start_session_timer()
        try:
            yield self
        finally:
            self.stop_session_timer()

    def set_attempted_route(self, route: str) -> None:
        self.attempted_route = route

    def pop_attempted_route(self) -> str:
        route, self.attempted_route = self.attempted_route, ""
        return route

    async def _tick(self) -> None:
        await self.check_session()
