# src/fittrack_client/errors.py
"""
Error taxonomy for the data-access and session layer.

Transport-level failures are recovered locally (next tier, next probe target).
Only AllTiersExhausted and an unrecovered AuthFailure reach UI state.
"""

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import TierFailure


class FitTrackError(Exception):
    """Base class for every error raised by fittrack_client."""


class ConfigurationError(FitTrackError):
    """Required external configuration is missing or invalid. Fatal, never retried."""


class TransportFailure(FitTrackError):
    """A single strategy or probe failed: network error, timeout, unusable response."""

    def __init__(self, reason: str, cause: Optional[BaseException] = None):
        self.reason = reason
        self.cause = cause
        super().__init__(reason)


class HardFailureStatus(TransportFailure):
    def __init__(self, status: int, reason: Optional[str] = None):
        self.status = status
        super().__init__(reason or f"HTTP {status}")


class InvalidPayload(TransportFailure):
    pass


class BackendQueryError(TransportFailure):
    def __init__(self, reason: str, status: Optional[int] = None):
        self.status = status
        super().__init__(reason)


class AuthFailure(FitTrackError):
    """A 401/403 that survived the one permitted refresh-and-retry."""

    def __init__(self, status: int = 401, message: Optional[str] = None):
        self.status = status
        self.message = message or f"Authentication failed (HTTP {status})"
        super().__init__(self.message)


class InvalidCredentials(AuthFailure):
    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(401, message)


class AllTiersExhausted(FitTrackError):
    def __init__(self, resource: str, failures: List["TierFailure"]):
        self.resource = resource
        self.failures = failures
        reasons = "; ".join(f"tier {f.tier} ({f.name}): {f.reason}" for f in failures)
        super().__init__(f"All {len(failures)} tiers failed for {resource}: {reasons}")

    @property
    def reasons(self) -> List[str]:
        return [f.reason for f in self.failures]
