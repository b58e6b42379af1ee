# src/fittrack_client/resources.py
"""
Typed data-source adapters: one ordered strategy list per logical resource.

Payload policy: the API and backend tiers always get a minimal structural check
(pydantic parse of the expected record or list). The static tier is trusted.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional

from pydantic import ValidationError

from .auth_api import PROFILE_COLUMNS, lookup_profile, parse_profile, require_ok
from .credentials import Credentials
from .errors import AuthFailure, InvalidPayload, TransportFailure
from .fallback import FallbackChain, Strategy
from .fallback_data import StaticFallbackData
from .interceptor import ApiRequest
from .models import Activity, DemoUser, FallbackResult, UserProfile
from .store import ResourceStore
from .transport import ApiResponse, DirectBackend

logger = logging.getLogger(__name__)

SendFunc = Callable[[ApiRequest], Awaitable[ApiResponse]]


def parse_list(payload: Any, model, source: str) -> List[Any]:
    if not isinstance(payload, list):
        raise InvalidPayload(f"{source} returned {type(payload).__name__}, expected a list")
    try:
        return [model.model_validate(item) for item in payload]
    except ValidationError as e:
        raise InvalidPayload(f"{source} returned malformed items", cause=e) from e


def unwrap_items(data: Any) -> Any:
    """The API wraps lists as {"items": [...]}, {"activities": [...]}, {"data": [...]} or serves them bare."""
    if isinstance(data, dict):
        for key in ("items", "activities", "data"):
            if key in data:
                return data[key]
    return data


class DataAccess:
    def __init__(
        self,
        send: SendFunc,
        backend: DirectBackend,
        static: StaticFallbackData,
        credentials: Credentials,
        chain: FallbackChain,
        store: ResourceStore,
        demo_users_timeout: Optional[float] = None,
    ):
        self.send = send
        self.backend = backend
        self.static = static
        self.credentials = credentials
        self.chain = chain
        self.store = store
        self.demo_users_timeout = demo_users_timeout

    async def _api_get(self, path: str, params: Optional[dict] = None, source: str = "API") -> Any:
        response = await self.send(ApiRequest("GET", path, params=params))
        if response.status == 403:
            raise AuthFailure(403, response.message)
        require_ok(response, source)
        return response.data

    async def current_user(self) -> FallbackResult:
        """API session lookup, then a direct profile query for the signed-in backend user."""

        async def via_api() -> Optional[UserProfile]:
            data = await self._api_get("/auth/me", source="API /auth/me")
            if not isinstance(data, dict):
                raise InvalidPayload(f"API /auth/me returned {type(data).__name__}")
            if data.get("success") is False or not data.get("user"):
                return None
            return parse_profile(data["user"], "API /auth/me")

        async def via_backend() -> Optional[UserProfile]:
            email = self.credentials.email
            if not email:
                raise TransportFailure("No backend session to look up")
            return await lookup_profile(self.backend, email, self.chain.default_timeout)

        return await self.store.with_loading(
            "current_user",
            lambda: self.chain.resolve(
                [Strategy("api", via_api), Strategy("backend", via_backend)],
                resource="current user",
            ),
        )

    async def demo_users(self) -> FallbackResult:
        async def via_api() -> List[DemoUser]:
            data = await self._api_get("/auth/demo-users", source="API /auth/demo-users")
            if not isinstance(data, dict) or not data.get("success"):
                message = data.get("message") if isinstance(data, dict) else None
                raise InvalidPayload(f"API returned unsuccessful response: {message or 'no message'}")
            users = parse_list(data.get("users"), DemoUser, "API /auth/demo-users")
            if not users:
                raise InvalidPayload("API returned empty users array")
            return users

        async def via_backend() -> List[DemoUser]:
            rows = await self.backend.query("users", select=PROFILE_COLUMNS, order="created_at.asc")
            profiles = parse_list(rows, UserProfile, "backend users")
            if not profiles:
                raise InvalidPayload("Backend returned no users")
            return [
                DemoUser(
                    username=p.email,
                    display_name=f"{p.full_name} (Administrator)" if p.is_admin else p.full_name or p.email,
                )
                for p in profiles
            ]

        async def via_static() -> List[DemoUser]:
            return [DemoUser.model_validate(u) for u in self.static.get("demo_users")]

        return await self.store.with_loading(
            "demo_users",
            lambda: self.chain.resolve(
                [
                    Strategy("api", via_api, timeout=self.demo_users_timeout),
                    Strategy("backend", via_backend),
                    Strategy("static", via_static),
                ],
                resource="demo users",
            ),
        )

    async def activity_feed(self, user_id: Optional[str] = None, limit: int = 20, page: int = 0) -> FallbackResult:
        async def via_api() -> List[Activity]:
            if user_id:
                data = await self._api_get(f"/data/users/{user_id}/activities", source="API activities")
            else:
                data = await self._api_get("/data/activities", params={"limit": limit, "page": page}, source="API activities")
            return parse_list(unwrap_items(data), Activity, "API activities")

        async def via_backend() -> List[Activity]:
            rows = await self.backend.query(
                "activities",
                filters={"user_id": user_id} if user_id else None,
                order="created_at.desc",
                limit=limit,
                offset=page * limit,
            )
            return parse_list(rows, Activity, "backend activities")

        async def via_static() -> List[Activity]:
            return [Activity.model_validate(a) for a in self.static.get("activities", user_id=user_id)][:limit]

        key = f"activities:{user_id}" if user_id else "activities"
        return await self.store.with_loading(
            key,
            lambda: self.chain.resolve(
                [Strategy("api", via_api), Strategy("backend", via_backend), Strategy("static", via_static)],
                resource="activity feed",
            ),
        )

    async def friend_activity(self, user_id: str, limit: int = 20) -> FallbackResult:
        async def via_api() -> List[Activity]:
            data = await self._api_get(
                f"/data/users/{user_id}/friends/activities", params={"limit": limit}, source="API friend activities"
            )
            return parse_list(unwrap_items(data), Activity, "API friend activities")

        async def via_static() -> List[Activity]:
            activities = self.static.get("activities", exclude_user_id=user_id)
            return [Activity.model_validate(a) for a in activities][:limit]

        return await self.store.with_loading(
            f"friend_activities:{user_id}",
            lambda: self.chain.resolve(
                [Strategy("api", via_api), Strategy("static", via_static)],
                resource="friend activity",
            ),
        )

    async def all_users(self) -> FallbackResult:
        """User list for the admin pages. No static tier: admins must not edit demo data."""

        async def via_api() -> List[UserProfile]:
            data = await self._api_get("/users", source="API users")
            if isinstance(data, dict):
                data = data.get("users")
            return parse_list(data, UserProfile, "API users")

        async def via_backend() -> List[UserProfile]:
            rows = await self.backend.query("users", select=PROFILE_COLUMNS, order="created_at.asc")
            return parse_list(rows, UserProfile, "backend users")

        return await self.store.with_loading(
            "users",
            lambda: self.chain.resolve(
                [Strategy("api", via_api), Strategy("backend", via_backend)],
                resource="users",
            ),
        )
