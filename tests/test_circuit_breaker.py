# FILE: tests/test_circuit_breaker.py
"""
Tests for blender_agent/integrations/circuit_breaker.py
CLOSED / OPEN / HALF_OPEN transitions with an injected clock.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def _ok():
    return "ok"


async def _boom():
    raise RuntimeError("upstream down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    from blender_agent.integrations.circuit_breaker import CircuitBreaker

    return CircuitBreaker("sketchfab", threshold=5, timeout=60.0, half_open_successes=2, clock=clock)


async def _fail_times(breaker, n):
    for _ in range(n):
        with pytest.raises(RuntimeError):
            await breaker.execute(_boom)


class TestClosed:
    """Test behaviour while CLOSED."""

    @pytest.mark.asyncio
    async def test_success_passes_through(self, breaker):
        """Results are returned unchanged."""
        assert await breaker.execute(_ok) == "ok"

    @pytest.mark.asyncio
    async def test_trips_at_threshold(self, breaker):
        """Five consecutive failures open the breaker."""
        from blender_agent.integrations.circuit_breaker import BreakerState

        await _fail_times(breaker, 4)
        assert breaker.state == BreakerState.CLOSED
        await _fail_times(breaker, 1)
        assert breaker.state == BreakerState.OPEN

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        """Failures must be consecutive to trip."""
        from blender_agent.integrations.circuit_breaker import BreakerState

        await _fail_times(breaker, 4)
        await breaker.execute(_ok)
        await _fail_times(breaker, 4)
        assert breaker.state == BreakerState.CLOSED


class TestOpen:
    """Test fail-fast while OPEN."""

    @pytest.mark.asyncio
    async def test_rejects_without_calling(self, breaker, clock):
        """fn is not invoked and retry_after is reported."""
        from blender_agent.errors import BreakerOpenError, ErrorKind

        await _fail_times(breaker, 5)
        clock.now += 20
        called = []

        async def tracked():
            called.append(True)
            return "ok"

        with pytest.raises(BreakerOpenError) as excinfo:
            await breaker.execute(tracked)
        assert called == []
        assert excinfo.value.kind == ErrorKind.BREAKER_OPEN
        assert excinfo.value.retry_after == pytest.approx(40.0)
        assert "Retry after 40s" in excinfo.value.message


class TestHalfOpen:
    """Test recovery probing."""

    @pytest.mark.asyncio
    async def test_two_successes_close(self, breaker, clock):
        """After the timeout, two successes close the breaker."""
        from blender_agent.integrations.circuit_breaker import BreakerState

        await _fail_times(breaker, 5)
        clock.now += 60
        await breaker.execute(_ok)
        assert breaker.state == BreakerState.HALF_OPEN
        await breaker.execute(_ok)
        assert breaker.state == BreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_failure_reopens_with_new_deadline(self, breaker, clock):
        """A failure while HALF_OPEN reopens for another full timeout."""
        from blender_agent.integrations.circuit_breaker import BreakerState

        await _fail_times(breaker, 5)
        clock.now += 61
        await _fail_times(breaker, 1)
        assert breaker.state == BreakerState.OPEN
        assert breaker.next_attempt == pytest.approx(clock.now + 60)


class TestRegistry:
    """Test the shared breaker registry."""

    def test_same_name_same_instance(self):
        """get_breaker returns one breaker per name."""
        from blender_agent.integrations.circuit_breaker import get_breaker

        assert get_breaker("hyper3d") is get_breaker("hyper3d")
        assert get_breaker("hyper3d") is not get_breaker("polyhaven")

    def test_snapshots(self):
        """Snapshots are keyed by breaker name."""
        from blender_agent.integrations.circuit_breaker import breaker_snapshots, get_breaker

        get_breaker("polyhaven")
        snap = breaker_snapshots()["polyhaven"]
        assert snap["state"] == "CLOSED"
        assert snap["is_open"] is False
