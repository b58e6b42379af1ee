# src/fittrack_client/store.py

import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from .models import FallbackResult

logger = logging.getLogger(__name__)


class DataEnvelope(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    is_loading: bool = False
    error: Optional[str] = None
    data: Any = None
    tier: Optional[int] = None
    degraded: bool = False
    last_updated: Optional[float] = None


class ResourceStore:
    """Last known answer (and its provenance) for each logical resource."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.envelopes: Dict[str, DataEnvelope] = {}

    def get(self, key: str) -> DataEnvelope:
        if key not in self.envelopes:
            self.envelopes[key] = DataEnvelope()
        return self.envelopes[key]

    @property
    def is_any_loading(self) -> bool:
        return any(env.is_loading for env in self.envelopes.values())

    @property
    def has_any_error(self) -> bool:
        return any(env.error for env in self.envelopes.values())

    @property
    def error_messages(self) -> List[Dict[str, str]]:
        return [{"key": key, "error": env.error} for key, env in self.envelopes.items() if env.error]

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self.envelopes.clear()
        else:
            self.envelopes.pop(key, None)

    async def with_loading(self, key: str, factory: Callable[[], Awaitable[FallbackResult]]) -> FallbackResult:
        envelope = self.get(key)
        envelope.is_loading = True
        try:
            result = await factory()
        except Exception as e:
            envelope.error = str(e) or e.__class__.__name__
            logger.warning(f"ResourceStore: {key} failed: {envelope.error}")
            raise
        finally:
            envelope.is_loading = False

        envelope.data = result.value
        envelope.tier = result.tier
        envelope.degraded = result.degraded
        envelope.error = None
        envelope.last_updated = self._clock()
        return result
