import asyncio

import pytest

from fittrack_client.errors import ConfigurationError, TransportFailure
from fittrack_client.health import HealthMonitor, ProbeTarget, default_targets

HEALTH = ProbeTarget("health-endpoint", "/health/ping", "GET", 2.0)
API_PATH = ProbeTarget("api-path:/auth/demo-users", "/auth/demo-users", "HEAD", 1.5)
ROOT = ProbeTarget("api-root", "/", "HEAD", 1.5)
FAVICON = ProbeTarget("static-asset", "http://api.test/favicon.ico", "HEAD", 1.5, limited=True)


class FakeProber:
    def __init__(self, **statuses):
        # url -> status code, or an exception to raise
        self.statuses = statuses
        self.calls = []

    async def probe(self, method, url, timeout):
        self.calls.append((method, url))
        await asyncio.sleep(0)
        outcome = self.statuses.get(url, TransportFailure("Connection refused"))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def monitor_for(prober, clock, targets=(HEALTH, API_PATH, ROOT, FAVICON)):
    return HealthMonitor(prober, list(targets), ttl=5.0, clock=clock)


async def test_two_checks_within_ttl_probe_once(clock):
    prober = FakeProber(**{"/health/ping": 200})
    monitor = monitor_for(prober, clock)

    first = await monitor.check(HEALTH)
    clock.advance(4.9)
    second = await monitor.check(HEALTH)

    assert first.online and second.online
    assert second.cached is True
    assert second.checked_at == first.checked_at
    assert monitor.probe_count == 1


async def test_check_after_ttl_probes_again(clock):
    prober = FakeProber(**{"/health/ping": 200})
    monitor = monitor_for(prober, clock)

    await monitor.check(HEALTH)
    clock.advance(5.0)
    status = await monitor.check(HEALTH)

    assert status.cached is False
    assert monitor.probe_count == 2


async def test_negative_results_are_cached(clock):
    prober = FakeProber()
    monitor = monitor_for(prober, clock)

    first = await monitor.check(HEALTH)
    second = await monitor.check(HEALTH)

    assert first.online is False
    assert first.error == "Connection refused"
    assert second.online is False
    assert len(prober.calls) == 1


async def test_server_errors_mean_offline_anything_below_500_means_alive(clock):
    prober = FakeProber(**{"/health/ping": 503, "/": 404})
    monitor = monitor_for(prober, clock)

    health = await monitor.check(HEALTH)
    root = await monitor.check(ROOT)

    assert health.online is False
    assert health.status_code == 503
    assert health.error == "Server error: 503"
    assert root.online is True
    assert root.status_code == 404


async def test_concurrent_checks_share_one_probe(clock):
    prober = FakeProber(**{"/health/ping": 200})
    monitor = monitor_for(prober, clock)

    results = await asyncio.gather(*(monitor.check(HEALTH) for _ in range(4)))

    assert all(r.online for r in results)
    assert len(prober.calls) == 1


async def test_chain_returns_first_live_target(clock):
    prober = FakeProber(**{"/health/ping": 500, "/": 200, "http://api.test/favicon.ico": 200})
    monitor = monitor_for(prober, clock)

    status = await monitor.probe_chain()

    assert status.online is True
    assert status.source == "api-root"
    assert status.limited is False
    assert monitor.is_online is True
    assert ("HEAD", "http://api.test/favicon.ico") not in prober.calls


async def test_static_asset_only_reports_limited(clock):
    prober = FakeProber(**{"http://api.test/favicon.ico": 200})
    monitor = monitor_for(prober, clock)

    status = await monitor.probe_chain()

    assert status.online is True
    assert status.limited is True
    assert status.source == "static-asset"


async def test_chain_never_raises_and_reports_all_failures(clock):
    prober = FakeProber(**{"/health/ping": RuntimeError("boom"), "/": 502})
    monitor = monitor_for(prober, clock)

    status = await monitor.probe_chain()

    assert status.online is False
    assert status.source == "all-checks-failed"
    assert "health-endpoint: boom" in status.error
    assert "api-root: Server error: 502" in status.error
    assert monitor.is_online is False


async def test_chain_verdict_is_cached_within_ttl(clock):
    prober = FakeProber(**{"/health/ping": 200})
    monitor = monitor_for(prober, clock)

    await monitor.probe_chain()
    cached = await monitor.probe_chain()

    assert cached.cached is True
    assert monitor.probe_count == 1

    monitor.invalidate()
    await monitor.probe_chain()
    assert monitor.probe_count == 2


async def test_diagnose_explains_limited_connectivity(clock):
    prober = FakeProber(**{"http://api.test/favicon.ico": 200})
    monitor = monitor_for(prober, clock)

    diagnosis = await monitor.diagnose()

    assert diagnosis.server_reachable is False
    assert diagnosis.limited is True
    assert "Static server is reachable" in diagnosis.possible_issues[0]


async def test_diagnose_reports_reachable_health_endpoint(clock):
    monitor = monitor_for(FakeProber(**{"/health/ping": 200}), clock)

    diagnosis = await monitor.diagnose()

    assert diagnosis.server_reachable is True
    assert diagnosis.possible_issues == []


class FakeBackend:
    def __init__(self, error=None):
        self.error = error

    async def query(self, resource, **kwargs):
        if self.error:
            raise self.error
        return [{"id": 1}]


async def test_network_diagnostics_reports_each_side(clock):
    monitor = monitor_for(FakeProber(**{"/health/ping": 200}), clock)

    healthy = await monitor.run_network_diagnostics(FakeBackend())
    assert healthy.all_systems_operational is True
    assert healthy.issues == []

    broken = await monitor.run_network_diagnostics(FakeBackend(ConfigurationError("not configured")))
    assert broken.all_systems_operational is False
    assert broken.backend.error == "not configured"
    assert broken.issues == ["Backend connection failed"]


def test_default_targets_follow_configured_paths(make_settings):
    targets = default_targets(make_settings())

    assert [t.name for t in targets] == ["health-endpoint", "api-path:/auth/demo-users", "api-root", "static-asset"]
    assert targets[0].method == "GET"
    assert targets[0].timeout == 2.0
    assert targets[3].url == "http://api.test/favicon.ico"
    assert targets[3].limited is True
    assert all(t.method == "HEAD" for t in targets[1:])


def test_monitor_needs_targets():
    with pytest.raises(ValueError):
        HealthMonitor(FakeProber(), [])


async def test_chain_verdict_ages_from_its_own_evaluation(clock):
    prober = FakeProber(**{"/health/ping": 200})
    monitor = monitor_for(prober, clock)
    await monitor.check(HEALTH)
    clock.advance(4.0)

    verdict = await monitor.probe_chain()

    assert verdict.cached is True
    assert verdict.checked_at == clock.now

    clock.advance(2.0)
    again = await monitor.probe_chain()

    assert again.cached is True
    assert again.checked_at == verdict.checked_at
    assert monitor.probe_count == 1
