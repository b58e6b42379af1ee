# src/fittrack_client/transport.py
"""
The two network data sources the resilience layer sits on top of:

* PrimaryApi    - the Express API (`/api/v1/...`), cookie and bearer authenticated.
* DirectBackend - PostgREST/GoTrue style queries straight against the hosted
                  Postgres service, only used as a fallback tier.

Both turn httpx transport errors into TransportFailure. PrimaryApi returns non-2xx
statuses instead of raising so callers can inspect them.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from .credentials import Credentials
from .errors import BackendQueryError, ConfigurationError, InvalidCredentials, InvalidPayload, TransportFailure

logger = logging.getLogger(__name__)


class ApiResponse:
    __slots__ = ("status", "data", "text")

    def __init__(self, status: int, data: Any = None, text: str = ""):
        self.status = status
        self.data = data
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def message(self) -> str:
        if isinstance(self.data, dict) and self.data.get("message"):
            return str(self.data["message"])
        return self.text or f"HTTP {self.status}"

    def __repr__(self) -> str:
        return f"ApiResponse(status={self.status})"

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "ApiResponse":
        try:
            data = response.json()
        except ValueError:
            data = None
        return cls(response.status_code, data, response.text)


def _describe(e: httpx.HTTPError) -> str:
    if isinstance(e, httpx.TimeoutException):
        return "Request timed out"
    return str(e) or e.__class__.__name__


class PrimaryApi:
    def __init__(self, client: httpx.AsyncClient, credentials: Credentials):
        self.client = client
        self.credentials = credentials

    @property
    def base_url(self) -> str:
        return str(self.client.base_url).rstrip("/")

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ApiResponse:
        headers = {"Content-Type": "application/json", **self.credentials.bearer_header()}
        kwargs: Dict[str, Any] = {"headers": headers, "params": params}
        if json is not None:
            kwargs["json"] = json
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"PrimaryApi: {method} {path} failed: {_describe(e)}")
            raise TransportFailure(_describe(e), cause=e) from e
        return ApiResponse.from_httpx(response)

    async def probe(self, method: str, url: str, timeout: float) -> int:
        """Status code of a bare liveness request. `url` may be relative to the API base or absolute."""
        try:
            response = await self.client.request(
                method,
                url,
                timeout=timeout,
                headers={"Cache-Control": "no-cache", "X-Requested-With": "XMLHttpRequest"},
            )
        except httpx.HTTPError as e:
            raise TransportFailure(_describe(e), cause=e) from e
        return response.status_code


class DirectBackend:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: Optional[str],
        anon_key: Optional[str],
        credentials: Credentials,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/") if base_url else None
        self.anon_key = anon_key
        self.credentials = credentials

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.anon_key)

    def _require_configured(self) -> str:
        if not self.configured:
            raise ConfigurationError("Direct backend access is not configured (BACKEND_URL / BACKEND_ANON_KEY).")
        return self.base_url

    def _headers(self, use_session: bool = True) -> Dict[str, str]:
        token = self.credentials.access_token if use_session and self.credentials.access_token else self.anon_key
        return {
            "apikey": self.anon_key or "",
            "Authorization": f"Bearer {token}",
            "x-application-name": "fittrack-client",
        }

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"DirectBackend: {method} {url} failed: {_describe(e)}")
            raise TransportFailure(_describe(e), cause=e) from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error_description") or body.get("msg") or body)
        return str(body)

    async def query(
        self,
        resource: str,
        filters: Optional[Dict[str, Any]] = None,
        select: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        base_url = self._require_configured()
        params: Dict[str, Any] = {"select": select}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        if offset:
            params["offset"] = offset

        kwargs: Dict[str, Any] = {"params": params, "headers": self._headers()}
        if timeout is not None:
            kwargs["timeout"] = timeout
        response = await self._send("GET", f"{base_url}/rest/v1/{resource}", **kwargs)
        if response.status_code >= 300:
            raise BackendQueryError(
                f"Backend query on '{resource}' failed: {self._error_message(response)}",
                status=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as e:
            raise InvalidPayload(f"Backend returned non-JSON for '{resource}'", cause=e) from e
        if not isinstance(data, list):
            raise InvalidPayload(f"Backend returned {type(data).__name__} for '{resource}', expected a list")
        return data

    async def sign_in_with_password(self, email: str, password: str) -> Dict[str, Any]:
        base_url = self._require_configured()
        response = await self._send(
            "POST",
            f"{base_url}/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(use_session=False),
        )
        if response.status_code in (400, 401):
            raise InvalidCredentials(self._error_message(response))
        if response.status_code >= 300:
            raise BackendQueryError(f"Backend sign-in failed: {self._error_message(response)}", response.status_code)
        return response.json()

    async def refresh_session(self, refresh_token: str) -> Dict[str, Any]:
        base_url = self._require_configured()
        response = await self._send(
            "POST",
            f"{base_url}/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
            headers=self._headers(use_session=False),
        )
        if response.status_code >= 300:
            raise BackendQueryError(f"Backend token refresh failed: {self._error_message(response)}", response.status_code)
        return response.json()

    async def sign_out(self) -> None:
        base_url = self._require_configured()
        response = await self._send("POST", f"{base_url}/auth/v1/logout", headers=self._headers())
        if response.status_code >= 300 and response.status_code != 401:
            raise BackendQueryError(f"Backend sign-out failed: {self._error_message(response)}", response.status_code)
