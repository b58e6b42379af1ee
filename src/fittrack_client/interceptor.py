# src/fittrack_client/interceptor.py

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import AuthFailure
from .transport import ApiResponse

logger = logging.getLogger(__name__)

SendFunc = Callable[["ApiRequest"], Awaitable[ApiResponse]]
RefreshFunc = Callable[[], Awaitable[bool]]


@dataclass
class ApiRequest:
    method: str
    path: str
    json: Optional[Any] = None
    params: Optional[Dict[str, Any]] = None
    timeout: Optional[float] = None
    retried: bool = field(default=False, compare=False)


class AuthInterceptor:
    """
    Wraps a request-send function with one silent token refresh per 401.

    A request is resent at most once. Concurrent 401s share a single refresh: the
    first one starts it, the others await the same task. A request that was sent
    before a refresh completed is simply resent with the refreshed credentials.
    """

    def __init__(
        self,
        send: SendFunc,
        refresh: RefreshFunc,
        on_auth_failure: Optional[Callable[[], Any]] = None,
    ):
        self._send = send
        self._refresh = refresh
        self._on_auth_failure = on_auth_failure
        self._refresh_task: Optional["asyncio.Task[bool]"] = None
        # Bumped on every successful refresh
        self._generation = 0
        self.refresh_count = 0

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def send(self, request: ApiRequest) -> ApiResponse:
        generation = self._generation
        response = await self._send(request)
        if response.status != 401:
            return response

        if request.retried:
            logger.warning(f"AuthInterceptor: {request.method} {request.path} still 401 after retry")
            self._signal_auth_failure()
            raise AuthFailure(401, response.message)

        request.retried = True
        if generation == self._generation:
            refreshed = await self._refresh_coalesced()
        else:
            # Someone else refreshed while this request was in flight
            refreshed = True

        if not refreshed:
            logger.warning(f"AuthInterceptor: refresh failed, propagating 401 for {request.method} {request.path}")
            self._signal_auth_failure()
            raise AuthFailure(401, response.message)

        retry_response = await self._send(request)
        if retry_response.status == 401:
            logger.warning(f"AuthInterceptor: {request.method} {request.path} still 401 after refresh")
            self._signal_auth_failure()
            raise AuthFailure(401, retry_response.message)
        return retry_response

    async def request(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        return await self.send(ApiRequest(method, path, **kwargs))

    async def _refresh_coalesced(self) -> bool:
        if self._refresh_task is None:
            task = asyncio.ensure_future(self._run_refresh())
            # The slot is freed by the task itself, even when every waiter was cancelled
            task.add_done_callback(self._release_refresh_task)
            self._refresh_task = task
        return await asyncio.shield(self._refresh_task)

    def _release_refresh_task(self, task: "asyncio.Task[bool]") -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _run_refresh(self) -> bool:
        self.refresh_count += 1
        logger.info("AuthInterceptor: refreshing credentials after 401")
        try:
            refreshed = bool(await self._refresh())
        except Exception as e:
            logger.warning(f"AuthInterceptor: refresh call raised: {e}")
            refreshed = False
        if refreshed:
            self._generation += 1
        return refreshed

    def _signal_auth_failure(self) -> None:
        if self._on_auth_failure is None:
            return
        try:
            self._on_auth_failure()
        except Exception as e:
            logger.error(f"AuthInterceptor: logout signal handler raised: {e}")
