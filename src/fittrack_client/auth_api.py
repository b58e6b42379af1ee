# src/fittrack_client/auth_api.py

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from .credentials import Credentials
from .errors import (
    AllTiersExhausted,
    FitTrackError,
    HardFailureStatus,
    InvalidCredentials,
    InvalidPayload,
    TransportFailure,
)
from .fallback import FallbackChain, Strategy
from .fallback_data import StaticFallbackData
from .models import FallbackResult, UserProfile
from .transport import ApiResponse, DirectBackend, PrimaryApi

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "id,first_name,last_name,email,role,created_at"


def parse_profile(payload: Any, source: str) -> UserProfile:
    if not isinstance(payload, dict):
        raise InvalidPayload(f"{source} returned {type(payload).__name__} for a user record")
    try:
        return UserProfile.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayload(f"{source} returned a malformed user record", cause=e) from e


def require_ok(response: ApiResponse, source: str) -> None:
    if not response.ok:
        raise HardFailureStatus(response.status, f"{source} returned HTTP {response.status}: {response.message}")


async def lookup_profile(backend: DirectBackend, email: str, timeout: float) -> UserProfile:
    rows = await backend.query("users", filters={"email": email}, select=PROFILE_COLUMNS, limit=1, timeout=timeout)
    if not rows:
        raise InvalidPayload(f"No profile row for {email}")
    return parse_profile(rows[0], "backend")


class AuthApi:
    """
    Login, logout and refresh calls. These bypass the AuthInterceptor: a 401 on
    login means bad credentials, and the refresh call is what the interceptor uses.
    """

    def __init__(
        self,
        primary: PrimaryApi,
        backend: DirectBackend,
        static: StaticFallbackData,
        credentials: Credentials,
        chain: FallbackChain,
        allow_offline_demo_login: bool = False,
    ):
        self.primary = primary
        self.backend = backend
        self.static = static
        self.credentials = credentials
        self.chain = chain
        self.allow_offline_demo_login = allow_offline_demo_login

    async def login(self, email: str, password: str) -> FallbackResult:
        async def via_api() -> UserProfile:
            response = await self.primary.request(
                "POST", "/auth/login", json={"email": email, "password": password}
            )
            if response.status in (400, 401):
                raise InvalidCredentials(response.message if response.data else "Invalid username or password")
            require_ok(response, "API login")
            data = response.data if isinstance(response.data, dict) else {}
            if data.get("success") is False:
                raise InvalidCredentials(data.get("message") or "Login failed")
            session = data.get("session") if isinstance(data.get("session"), dict) else data
            self.credentials.update(session)
            return parse_profile(data.get("user"), "API login")

        async def via_backend() -> UserProfile:
            tokens = await self.backend.sign_in_with_password(email, password)
            self.credentials.update(tokens)
            return await lookup_profile(self.backend, email, self.chain.default_timeout)

        async def via_static() -> UserProfile:
            record = self.static.get_user(email)
            if record is None:
                raise InvalidCredentials()
            logger.warning(f"AuthApi: offline demo login for {email}")
            return UserProfile.model_validate(record)

        strategies: List[Strategy] = [
            Strategy("api", via_api),
            Strategy("backend", via_backend),
        ]
        if self.allow_offline_demo_login:
            strategies.append(Strategy("offline-demo", via_static))
        return await self.chain.resolve(strategies, resource="login")

    async def refresh(self) -> bool:
        """Succeeds iff new credentials are usable."""

        async def via_api() -> bool:
            response = await self.primary.request("POST", "/auth/refresh")
            require_ok(response, "API refresh")
            if isinstance(response.data, dict):
                self.credentials.update(response.data.get("session") or response.data)
            return True

        async def via_backend() -> bool:
            if not self.credentials.refresh_token:
                raise TransportFailure("No refresh token held for the backend")
            tokens = await self.backend.refresh_session(self.credentials.refresh_token)
            self.credentials.update(tokens)
            return True

        try:
            await self.chain.resolve([Strategy("api", via_api), Strategy("backend", via_backend)], resource="refresh")
        except AllTiersExhausted as e:
            logger.warning(f"AuthApi: token refresh failed: {e}")
            return False
        return True

    async def logout(self) -> Dict[str, Any]:
        """Best effort on both sides; local credentials are always dropped."""
        result = {"success": True, "remote": True}
        try:
            response = await self.primary.request("POST", "/auth/logout")
            if not response.ok and response.status != 401:
                result["remote"] = False
        except TransportFailure as e:
            logger.warning(f"AuthApi: API logout failed: {e.reason}")
            result["remote"] = False

        if self.backend.configured and self.credentials.access_token:
            try:
                await self.backend.sign_out()
            except FitTrackError as e:
                logger.warning(f"AuthApi: backend sign-out failed: {e}")

        self.credentials.clear()
        self.primary.client.cookies.clear()
        return result
