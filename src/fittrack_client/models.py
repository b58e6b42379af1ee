# src/fittrack_client/models.py

from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")


class UserProfile(BaseModel):
    """A row of the users table, as served by the API, the backend or the static data."""
    model_config = ConfigDict(extra="ignore")

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str
    role: str = "user"
    created_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_id(cls, data: Any) -> Any:
        # The API serves integer ids, the backend serves uuids
        if isinstance(data, dict) and data.get("id") is not None:
            data = {**data, "id": str(data["id"])}
        return data

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_identity(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role,
            "isAdmin": self.is_admin,
        }


class DemoUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    username: str
    display_name: str = Field(alias="displayName")


class Activity(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    user_id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    type: Optional[str] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)
    likes: int = 0
    comments: int = 0
    created_at: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def coerce_ids(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            for key in ("id", "user_id"):
                if data.get(key) is not None:
                    data[key] = str(data[key])
            # comments is a count in the feed and a list in some API versions
            if isinstance(data.get("comments"), list):
                data["comments"] = len(data["comments"])
        return data


class HealthStatus(BaseModel):
    online: bool
    latency_ms: Optional[int] = None
    checked_at: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    limited: bool = False
    cached: bool = False


class TierFailure(BaseModel):
    tier: int
    name: str
    reason: str


class FallbackResult(BaseModel, Generic[T]):
    """
    The answer of a FallbackChain.
    degraded is True iff a non-primary tier answered, so callers can tell
    true data from best-effort data.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    value: T
    tier: int
    tier_name: str
    degraded: bool = False
    failures: List[TierFailure] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def derive_degraded(cls, data: Any) -> Any:
        if isinstance(data, dict) and "tier" in data:
            data = {**data, "degraded": data["tier"] > 0}
        return data

    def to_payload(self) -> Dict[str, Any]:
        value = self.value
        if isinstance(value, BaseModel):
            value = value.model_dump(by_alias=True)
        elif isinstance(value, list):
            value = [v.model_dump(by_alias=True) if isinstance(v, BaseModel) else v for v in value]
        return {
            "data": value,
            "tier": self.tier,
            "source": self.tier_name,
            "degraded": self.degraded,
        }
