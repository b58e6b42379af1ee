# src/fittrack_client/fallback.py
"""
Cascading fallback over an ordered list of data-source strategies.

Tiers run strictly in order, never concurrently: a lower tier may have side effects
that must only happen when the tiers above it are really unavailable.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from .errors import AllTiersExhausted, AuthFailure, InvalidPayload, TransportFailure
from .models import FallbackResult, TierFailure

logger = logging.getLogger(__name__)

DEFAULT_STRATEGY_TIMEOUT = 5.0


@dataclass
class Strategy:
    """
    One tier of a chain.
    `call` must not leave partial writes behind when it raises.
    `validate` is the tier's minimal structural check on the returned value.
    """
    name: str
    call: Callable[[], Awaitable[Any]]
    timeout: Optional[float] = None
    validate: Optional[Callable[[Any], bool]] = None


StrategyLike = Union[Strategy, Callable[[], Awaitable[Any]]]


def _as_strategy(item: StrategyLike, index: int) -> Strategy:
    if isinstance(item, Strategy):
        return item
    name = getattr(item, "__name__", None) or f"tier-{index}"
    return Strategy(name=name, call=item)


def _reason(e: BaseException) -> str:
    if isinstance(e, TransportFailure):
        return e.reason
    return f"{e.__class__.__name__}: {e}" if str(e) else e.__class__.__name__


class FallbackChain:
    def __init__(self, default_timeout: float = DEFAULT_STRATEGY_TIMEOUT):
        self.default_timeout = default_timeout

    async def resolve(self, strategies: Sequence[StrategyLike], resource: str = "resource") -> FallbackResult:
        """
        Returns the first tier's value that arrives in time and passes its check.
        AuthFailure is not a tier failure and propagates at once.
        Raises AllTiersExhausted listing one reason per tier when nothing answers.
        """
        if not strategies:
            raise ValueError("FallbackChain.resolve needs at least one strategy")

        failures: List[TierFailure] = []
        for tier, item in enumerate(strategies):
            strategy = _as_strategy(item, tier)
            timeout = strategy.timeout if strategy.timeout is not None else self.default_timeout
            try:
                value = await asyncio.wait_for(strategy.call(), timeout=timeout)
                if strategy.validate is not None and not strategy.validate(value):
                    raise InvalidPayload(f"Unexpected payload shape from {strategy.name}")
            except AuthFailure:
                raise
            except asyncio.TimeoutError:
                reason = f"timed out after {timeout}s"
                failures.append(TierFailure(tier=tier, name=strategy.name, reason=reason))
                logger.warning(f"FallbackChain: {resource} tier {tier} ({strategy.name}) {reason}")
                continue
            except Exception as e:
                reason = _reason(e)
                failures.append(TierFailure(tier=tier, name=strategy.name, reason=reason))
                logger.warning(f"FallbackChain: {resource} tier {tier} ({strategy.name}) failed: {reason}")
                continue

            if tier > 0:
                logger.info(f"FallbackChain: {resource} served by degraded tier {tier} ({strategy.name})")
            return FallbackResult(value=value, tier=tier, tier_name=strategy.name, failures=failures)

        logger.error(f"FallbackChain: all {len(failures)} tiers failed for {resource}")
        raise AllTiersExhausted(resource, failures)


async def resolve(strategies: Sequence[StrategyLike], resource: str = "resource") -> FallbackResult:
    return await FallbackChain().resolve(strategies, resource=resource)
