# src/fittrack_client/fallback_data.py
"""
Static data served when neither the API nor the backend answers.
Lets users still see demo content while the backend services are down.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

DEMO_USERS: List[Dict[str, Any]] = [
    {"username": "admin@example.com", "displayName": "Admin User (Administrator)"},
    {"username": "user@example.com", "displayName": "Regular User"},
    {"username": "demo@example.com", "displayName": "Demo User"},
]

FALLBACK_USERS: List[Dict[str, Any]] = [
    {
        "id": "fallback-id-admin",
        "first_name": "Admin",
        "last_name": "User",
        "email": "admin@example.com",
        "role": "admin",
        "created_at": "2023-01-01T00:00:00Z",
    },
    {
        "id": "fallback-id-user",
        "first_name": "Regular",
        "last_name": "User",
        "email": "user@example.com",
        "role": "user",
        "created_at": "2023-01-02T00:00:00Z",
    },
    {
        "id": "fallback-id-demo",
        "first_name": "Demo",
        "last_name": "User",
        "email": "demo@example.com",
        "role": "user",
        "created_at": "2023-01-03T00:00:00Z",
    },
]


def _days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


def _fallback_activities() -> List[Dict[str, Any]]:
    return [
        {
            "id": "fb-1",
            "user_id": "fallback-id-admin",
            "title": "Morning Run",
            "description": "Started the day with a refreshing 5k run through the park.",
            "type": "workout",
            "metrics": {"distance": "5km", "duration": "28min", "pace": "5:36/km"},
            "likes": 12,
            "comments": 3,
            "created_at": _days_ago(1),
        },
        {
            "id": "fb-2",
            "user_id": "fallback-id-user",
            "title": "New Personal Best!",
            "description": "Just beat my deadlift record at the gym today! Feeling strong.",
            "type": "achievement",
            "metrics": {"weight": "140kg", "reps": "3", "sets": "1"},
            "likes": 24,
            "comments": 8,
            "created_at": _days_ago(2),
        },
        {
            "id": "fb-3",
            "user_id": "fallback-id-demo",
            "title": "Weekly Goal Set",
            "description": "Setting a goal to run 20km total this week. Who wants to join my challenge?",
            "type": "goal",
            "metrics": {"target": "20km", "timeframe": "7 days"},
            "likes": 7,
            "comments": 4,
            "created_at": _days_ago(3),
        },
    ]


class StaticFallbackData:
    """Pure, synchronous, always succeeds."""

    def get(self, resource: str, **filters: Any) -> Any:
        if resource == "demo_users":
            return [dict(u) for u in DEMO_USERS]
        if resource == "users":
            return [dict(u) for u in FALLBACK_USERS]
        if resource == "user":
            return self.get_user(filters.get("id_or_email", ""))
        if resource == "activities":
            activities = _fallback_activities()
            user_id = filters.get("user_id")
            exclude_user_id = filters.get("exclude_user_id")
            if user_id:
                activities = [a for a in activities if a["user_id"] == user_id]
            if exclude_user_id:
                activities = [a for a in activities if a["user_id"] != exclude_user_id]
            return activities
        return []

    def get_user(self, id_or_email: str) -> Optional[Dict[str, Any]]:
        needle = (id_or_email or "").lower()
        for user in FALLBACK_USERS:
            if user["id"] == id_or_email or user["email"].lower() == needle:
                return dict(user)
        return None

    @staticmethod
    def is_fallback_id(user_id: Optional[str]) -> bool:
        return bool(user_id) and user_id.startswith("fallback-id")
