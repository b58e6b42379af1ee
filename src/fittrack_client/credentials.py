# src/fittrack_client/credentials.py

import time
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from pydantic import BaseModel


class Credentials(BaseModel):
    """
    Tokens held for the lifetime of the process.
    Cookies issued by the primary API live in the httpx cookie jar; this only keeps
    bearer tokens handed out by the API or the backend. Opaque to everything except
    the transport and AuthApi.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_in: Optional[int] = None
    token_acquired_at: Optional[int] = None

    def update(self, token_result: Dict[str, Any]) -> None:
        """Stores tokens from a login or refresh response (keys absent from the result are kept)."""
        if token_result.get("access_token"):
            self.access_token = token_result["access_token"]
        if token_result.get("refresh_token"):
            self.refresh_token = token_result["refresh_token"]
        if token_result.get("expires_in") is not None:
            self.token_expires_in = int(token_result["expires_in"])
        self.token_acquired_at = int(time.time())

    def clear(self) -> None:
        self.access_token = None
        self.refresh_token = None
        self.token_expires_in = None
        self.token_acquired_at = None

    def bearer_header(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def claims(self) -> Dict[str, Any]:
        """Claims of the access token, decoded without signature verification."""
        if not self.access_token:
            return {}
        try:
            return jwt.get_unverified_claims(self.access_token)
        except JWTError:
            return {}

    @property
    def email(self) -> Optional[str]:
        claims = self.claims()
        return claims.get("email") or claims.get("user_metadata", {}).get("email")
