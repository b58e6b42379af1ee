import asyncio

import pytest

from fittrack_client.scheduler import PeriodicTask
from fittrack_client.session import EXPIRED_LOGIN_ROUTE, SessionMonitor, SessionState


class Recorder:
    def __init__(self):
        self.logouts = 0
        self.routes = []

    async def logout(self):
        self.logouts += 1

    def navigate(self, route):
        self.routes.append(route)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def monitor(recorder, clock):
    monitor = SessionMonitor(recorder.logout, recorder.navigate, timeout=1800, check_interval=0.01, clock=clock)
    yield monitor
    monitor.stop_session_timer()


def _live_timers():
    return [t for t in asyncio.all_tasks() if t.get_name() == "session-timer" and not t.done()]


async def test_activity_keeps_session_alive(monitor, recorder, clock):
    clock.advance(1700)
    monitor.update_activity()
    clock.advance(1700)

    assert await monitor.check_session() is True
    assert monitor.state is SessionState.ACTIVE
    assert recorder.logouts == 0


async def test_idle_session_expires_and_logs_out_exactly_once(monitor, recorder, clock):
    clock.advance(1801)

    assert await monitor.check_session() is False
    assert await monitor.check_session() is False
    await monitor.expire_session()

    assert monitor.state is SessionState.EXPIRED
    assert recorder.logouts == 1
    assert monitor.logout_count == 1
    assert recorder.routes == [EXPIRED_LOGIN_ROUTE]


async def test_activity_does_not_revive_expired_session(monitor, clock):
    clock.advance(1801)
    await monitor.check_session()

    monitor.update_activity()

    assert monitor.expired is True
    assert monitor.time_until_expiry == 0


async def test_fresh_login_revives_expired_session(monitor, clock):
    clock.advance(1801)
    await monitor.check_session()

    monitor.mark_authenticated()

    assert monitor.state is SessionState.ACTIVE
    assert monitor.timer_running is True
    assert monitor.formatted_time_remaining == "30:00"


async def test_timer_expires_idle_session_and_stops_itself(monitor, recorder, clock):
    monitor.start_session_timer()
    clock.advance(1801)

    for _ in range(20):
        if recorder.logouts:
            break
        await asyncio.sleep(0.01)
    await asyncio.sleep(0.02)

    assert recorder.logouts == 1
    assert recorder.routes == [EXPIRED_LOGIN_ROUTE]
    assert monitor.timer_running is False
    assert _live_timers() == []


async def test_starting_twice_leaves_a_single_timer(monitor, recorder, clock):
    monitor.start_session_timer()
    monitor.start_session_timer()
    await asyncio.sleep(0)

    assert len(_live_timers()) == 1

    clock.advance(1801)
    await asyncio.sleep(0.05)

    assert recorder.logouts == 1


async def test_stop_timer_prevents_expiry(monitor, recorder, clock):
    monitor.start_session_timer()
    monitor.stop_session_timer()
    clock.advance(1801)
    await asyncio.sleep(0.03)

    assert monitor.timer_running is False
    assert recorder.logouts == 0


async def test_running_context_manager_stops_timer_on_error(monitor):
    with pytest.raises(RuntimeError):
        async with monitor.running():
            assert monitor.timer_running is True
            raise RuntimeError("page torn down")

    await asyncio.sleep(0)
    assert monitor.timer_running is False


async def test_failed_logout_still_navigates_and_stops(recorder, clock):
    async def broken_logout():
        raise RuntimeError("API down")

    monitor = SessionMonitor(broken_logout, recorder.navigate, timeout=60, check_interval=10, clock=clock)
    monitor.start_session_timer()

    with pytest.raises(RuntimeError):
        await monitor.expire_session()

    assert monitor.expired is True
    assert monitor.timer_running is False
    assert recorder.routes == [EXPIRED_LOGIN_ROUTE]


def test_formatted_time_remaining(recorder, clock):
    monitor = SessionMonitor(recorder.logout, timeout=1800, clock=clock)

    clock.advance(30)
    assert monitor.formatted_time_remaining == "29:30"
    clock.advance(1765)
    assert monitor.formatted_time_remaining == "0:05"


def test_attempted_route_is_replayed_once(recorder, clock):
    monitor = SessionMonitor(recorder.logout, clock=clock)

    monitor.set_attempted_route("/profile")

    assert monitor.pop_attempted_route() == "/profile"
    assert monitor.pop_attempted_route() == ""


async def test_periodic_task_can_stop_itself_from_its_callback():
    ticks = []

    async def tick():
        ticks.append(len(ticks))
        task.stop()

    task = PeriodicTask(0.001, tick, name="self-stopping")
    task.start()
    await asyncio.sleep(0.05)

    assert ticks == [0]
    assert task.running is False


async def test_periodic_task_survives_callback_errors():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("transient")

    task = PeriodicTask(0.001, flaky)
    task.start()
    for _ in range(50):
        if len(calls) >= 2:
            break
        await asyncio.sleep(0.005)
    task.stop()

    assert len(calls) >= 2
