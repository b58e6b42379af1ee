# src/fittrack_client/health.py
"""
Backend liveness monitoring with a short-lived verdict cache.

Targets are probed in descending priority (dedicated health endpoint, a known-good
API path, the API root, a static asset). A target is alive on any status below 500.
Failed probes are cached too so a dead endpoint is not hammered.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx
from pydantic import BaseModel, Field

from .config import Settings
from .errors import ConfigurationError, TransportFailure
from .models import HealthStatus
from .transport import DirectBackend

logger = logging.getLogger(__name__)

STATIC_ASSET_SUFFIXES = (".ico", ".png", ".svg", ".txt", ".html", ".js", ".css")


class Prober(Protocol):
    async def probe(self, method: str, url: str, timeout: float) -> int: ...


@dataclass(frozen=True)
class ProbeTarget:
    name: str
    url: str
    method: str = "GET"
    timeout: float = 2.0
    # A static asset only proves the static server is up, not the API
    limited: bool = False


def default_targets(settings: Settings) -> List[ProbeTarget]:
    base = httpx.URL(settings.api_base_url)
    origin = f"{base.scheme}://{base.netloc.decode('ascii')}"
    targets = []
    for index, path in enumerate(settings.HEALTH_PROBE_PATHS):
        if index == 0:
            targets.append(ProbeTarget("health-endpoint", path, "GET", settings.HEALTH_PROBE_TIMEOUT_SECONDS))
        elif path.lower().endswith(STATIC_ASSET_SUFFIXES):
            targets.append(ProbeTarget(
                "static-asset",
                f"{origin}/{path.lstrip('/')}",
                "HEAD",
                settings.HEALTH_FALLBACK_PROBE_TIMEOUT_SECONDS,
                limited=True,
            ))
        elif path.strip("/") == "":
            targets.append(ProbeTarget("api-root", path, "HEAD", settings.HEALTH_FALLBACK_PROBE_TIMEOUT_SECONDS))
        else:
            targets.append(ProbeTarget(f"api-path:{path}", path, "HEAD", settings.HEALTH_FALLBACK_PROBE_TIMEOUT_SECONDS))
    return targets


class ConnectionDiagnosis(BaseModel):
    server_reachable: bool = False
    limited: bool = False
    status: Optional[HealthStatus] = None
    possible_issues: List[str] = Field(default_factory=list)


class ReachabilityReport(BaseModel):
    reachable: bool
    latency_ms: Optional[int] = None
    error: Optional[str] = None


class NetworkDiagnostics(BaseModel):
    api: ReachabilityReport
    backend: ReachabilityReport
    all_systems_operational: bool
    issues: List[str] = Field(default_factory=list)


class HealthMonitor:
    """
    Owns the HealthStatus cache. Nothing else writes to it.
    check() and probe_chain() never raise.
    """

    def __init__(
        self,
        prober: Prober,
        targets: Sequence[ProbeTarget],
        ttl: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not targets:
            raise ValueError("HealthMonitor needs at least one probe target")
        self.prober = prober
        self.targets = list(targets)
        self.ttl = ttl
        self._clock = clock
        self._cache: Dict[str, HealthStatus] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self.last_status: Optional[HealthStatus] = None
        self.probe_count = 0

    @property
    def is_online(self) -> bool:
        return bool(self.last_status and self.last_status.online)

    @property
    def latency_ms(self) -> Optional[int]:
        return self.last_status.latency_ms if self.last_status else None

    def invalidate(self) -> None:
        self._cache.clear()

    def _fresh(self, key: str) -> Optional[HealthStatus]:
        cached = self._cache.get(key)
        if cached is not None and self._clock() - cached.checked_at < self.ttl:
            return cached.model_copy(update={"cached": True})
        return None

    async def _coalesce(self, key: str, factory) -> HealthStatus:
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._inflight[key] = task
            task.add_done_callback(lambda _t, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(task)

    async def check(self, target: ProbeTarget) -> HealthStatus:
        cached = self._fresh(target.url)
        if cached is not None:
            return cached
        return await self._coalesce(target.url, lambda: self._probe_and_cache(target))

    async def _probe_and_cache(self, target: ProbeTarget) -> HealthStatus:
        status = await self._probe(target)
        self._cache[target.url] = status
        return status

    async def _probe(self, target: ProbeTarget) -> HealthStatus:
        self.probe_count += 1
        started = time.perf_counter()
        try:
            status_code = await self.prober.probe(target.method, target.url, target.timeout)
        except TransportFailure as e:
            logger.warning(f"HealthMonitor: probe {target.name} failed: {e.reason}")
            return HealthStatus(online=False, checked_at=self._clock(), source=target.name, error=e.reason)
        except Exception as e:
            logger.error(f"HealthMonitor: probe {target.name} raised: {e}")
            return HealthStatus(online=False, checked_at=self._clock(), source=target.name, error=str(e))

        latency = round((time.perf_counter() - started) * 1000)
        if status_code >= 500:
            logger.warning(f"HealthMonitor: {target.name} returned error status: {status_code}")
            return HealthStatus(
                online=False,
                latency_ms=latency,
                checked_at=self._clock(),
                source=target.name,
                status_code=status_code,
                error=f"Server error: {status_code}",
            )
        return HealthStatus(
            online=True,
            latency_ms=latency,
            checked_at=self._clock(),
            source=target.name,
            status_code=status_code,
            limited=target.limited,
        )

    async def probe_chain(self, targets: Optional[Sequence[ProbeTarget]] = None) -> HealthStatus:
        targets = list(targets) if targets is not None else self.targets
        key = "chain:" + "|".join(t.url for t in targets)
        cached = self._fresh(key)
        if cached is not None:
            self.last_status = cached
            return cached
        status = await self._coalesce(key, lambda: self._run_chain(key, targets))
        self.last_status = status
        return status

    async def _run_chain(self, key: str, targets: Sequence[ProbeTarget]) -> HealthStatus:
        errors: List[Tuple[str, str]] = []
        result: Optional[HealthStatus] = None
        for target in targets:
            status = await self.check(target)
            if status.online:
                # The chain verdict ages from now; `cached` still tells whether the target was probed
                result = status.model_copy(update={"checked_at": self._clock()})
                break
            errors.append((target.name, status.error or "offline"))

        if result is None:
            detail = "; ".join(f"{name}: {error}" for name, error in errors) or "no targets"
            result = HealthStatus(
                online=False,
                checked_at=self._clock(),
                source="all-checks-failed",
                error=f"All health probes failed ({detail})",
            )
        self._cache[key] = result
        return result

    async def diagnose(self) -> ConnectionDiagnosis:
        """Explains why the server might look offline."""
        primary = await self.check(self.targets[0])
        if primary.online:
            return ConnectionDiagnosis(server_reachable=True, status=primary)

        diagnosis = ConnectionDiagnosis(status=primary)
        if len(self.targets) == 1:
            diagnosis.possible_issues.append(
                "The server appears to be unreachable. It may be down for maintenance or experiencing issues."
            )
            return diagnosis

        fallback = await self.probe_chain(self.targets[1:])
        diagnosis.status = fallback
        if fallback.online and fallback.limited:
            diagnosis.limited = True
            diagnosis.possible_issues.append(
                "Static server is reachable, but API server seems to be experiencing issues. "
                "The application might have limited functionality."
            )
        elif fallback.online:
            diagnosis.server_reachable = True
            diagnosis.possible_issues.append(
                "The server is reachable using alternative methods, but the main health endpoint is returning errors. "
                "This suggests a server-side issue that administrators should investigate."
            )
        else:
            diagnosis.possible_issues.append(
                "Our server appears to be unreachable. The server may be down for maintenance or experiencing issues."
            )
        return diagnosis

    async def run_network_diagnostics(self, backend: DirectBackend, timeout: float = 3.0) -> NetworkDiagnostics:
        api_status = await self.probe_chain()
        api = ReachabilityReport(reachable=api_status.online, latency_ms=api_status.latency_ms, error=api_status.error)

        started = time.perf_counter()
        try:
            await backend.query("users", select="id", limit=1, timeout=timeout)
            backend_report = ReachabilityReport(
                reachable=True, latency_ms=round((time.perf_counter() - started) * 1000)
            )
        except (TransportFailure, ConfigurationError) as e:
            backend_report = ReachabilityReport(reachable=False, error=str(e))

        issues = []
        if not api.reachable:
            issues.append("API server unreachable")
        if not backend_report.reachable:
            issues.append("Backend connection failed")
        return NetworkDiagnostics(
            api=api,
            backend=backend_report,
            all_systems_operational=api.reachable and backend_report.reachable,
            issues=issues,
        )
