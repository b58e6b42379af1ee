# src/fittrack_client/context.py

import logging
from typing import Callable, List, Optional

import httpx

from .auth_api import AuthApi
from .auth_state import AuthState
from .config import Settings
from .credentials import Credentials
from .fallback import FallbackChain
from .fallback_data import StaticFallbackData
from .guards import RouteGuard
from .health import HealthMonitor, default_targets
from .interceptor import ApiRequest, AuthInterceptor
from .resources import DataAccess
from .session import SessionMonitor
from .store import ResourceStore
from .transport import ApiResponse, DirectBackend, PrimaryApi

logger = logging.getLogger(__name__)


class AppContext:
    """
    Composition root. Builds every service once, in dependency order:
    transports -> AuthApi -> AuthInterceptor -> DataAccess -> AuthState ->
    SessionMonitor -> RouteGuard. HealthMonitor depends only on the primary transport.
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self.navigations: List[str] = []
        self._navigate = navigate

        self.api_client = httpx.AsyncClient(
            base_url=settings.api_base_url,
            timeout=settings.STRATEGY_TIMEOUT_SECONDS,
            transport=transport,
        )
        self.backend_client = httpx.AsyncClient(timeout=settings.STRATEGY_TIMEOUT_SECONDS, transport=transport)

        self.credentials = Credentials()
        self.primary = PrimaryApi(self.api_client, self.credentials)
        self.backend = DirectBackend(
            self.backend_client, settings.backend_url, settings.BACKEND_ANON_KEY, self.credentials
        )
        self.static = StaticFallbackData()
        self.chain = FallbackChain(default_timeout=settings.STRATEGY_TIMEOUT_SECONDS)
        self.store = ResourceStore()

        self.auth_api = AuthApi(
            self.primary,
            self.backend,
            self.static,
            self.credentials,
            self.chain,
            allow_offline_demo_login=settings.ALLOW_OFFLINE_DEMO_LOGIN,
        )
        # The logout signal is bound after AuthState exists
        self.interceptor = AuthInterceptor(self._send, self.auth_api.refresh, on_auth_failure=self._on_auth_failure)
        self.data = DataAccess(
            self.interceptor.send,
            self.backend,
            self.static,
            self.credentials,
            self.chain,
            self.store,
            demo_users_timeout=settings.DEMO_USERS_TIMEOUT_SECONDS,
        )
        self.auth = AuthState(self.auth_api, self.data)
        self.session = SessionMonitor(
            logout=self.auth.logout,
            navigate=self.navigate,
            timeout=settings.SESSION_TIMEOUT_SECONDS,
            check_interval=settings.SESSION_CHECK_INTERVAL_SECONDS,
        )
        self.auth.add_listener(
            on_authenticated=self.session.mark_authenticated,
            on_cleared=self.session.stop_session_timer,
        )
        self.guard = RouteGuard(self.auth, self.session)

        self.health = HealthMonitor(self.primary, default_targets(settings), ttl=settings.HEALTH_CACHE_TTL_SECONDS)

    async def _send(self, request: ApiRequest) -> ApiResponse:
        return await self.primary.request(
            request.method, request.path, json=request.json, params=request.params, timeout=request.timeout
        )

    def _on_auth_failure(self) -> None:
        self.auth.clear()

    def navigate(self, route: str) -> None:
        self.navigations.append(route)
        if self._navigate is not None:
            self._navigate(route)

    async def start(self) -> None:
        logger.info("AppContext: starting")
        # A restored session starts the idle timer through the on_authenticated listener
        await self.auth.ensure_initialized()

    async def aclose(self) -> None:
        try:
            await self.api_client.aclose()
            await self.backend_client.aclose()
        finally:
            self.session.stop_session_timer()
        logger.info("AppContext: closed")

    async def __aenter__(self) -> "AppContext":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
