# FILE: blender_agent/integrations/circuit_breaker.py
"""
Per-provider circuit breaker.

CLOSED --(threshold consecutive failures)--> OPEN
OPEN --(call at/after next_attempt)--> HALF_OPEN
HALF_OPEN --(half_open_successes successes)--> CLOSED
HALF_OPEN --(any failure)--> OPEN

One breaker per external provider, shared across requests. State changes are
plain attribute writes on the event loop thread; racing requests can only
delay a transition, never corrupt it.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from blender_agent import config
from blender_agent.errors import BreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        threshold: int = 5,
        timeout: float = 60.0,
        half_open_successes: int = 2,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.threshold = threshold
        self.timeout = timeout
        self.half_open_successes = half_open_successes
        self._clock = clock

        self.state = BreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.next_attempt: float = clock()

    def _before_call(self) -> None:
        if self.state != BreakerState.OPEN:
            return
        now = self._clock()
        if now < self.next_attempt:
            raise BreakerOpenError(self.name, self.next_attempt - now)
        self.state = BreakerState.HALF_OPEN
        self.success_count = 0
        logger.info("[breaker:%s] OPEN -> HALF_OPEN", self.name)

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run `fn` under breaker protection; raises BreakerOpenError without calling it when OPEN."""
        self._before_call()
        try:
            result = await fn()
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def record_success(self) -> None:
        self.failure_count = 0
        if self.state == BreakerState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.half_open_successes:
                self.state = BreakerState.CLOSED
                self.success_count = 0
                logger.info("[breaker:%s] HALF_OPEN -> CLOSED (service recovered)", self.name)
        elif self.state == BreakerState.OPEN:
            self.state = BreakerState.CLOSED

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == BreakerState.HALF_OPEN:
            self._trip("failure while HALF_OPEN")
        elif self.failure_count >= self.threshold:
            self._trip(f"{self.failure_count} consecutive failures")

    def _trip(self, reason: str) -> None:
        self.state = BreakerState.OPEN
        self.next_attempt = self._clock() + self.timeout
        self.success_count = 0
        logger.warning("[breaker:%s] -> OPEN (%s), retry in %gs", self.name, reason, self.timeout)

    def reset(self) -> None:
        self.state = BreakerState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.next_attempt = self._clock()

    def snapshot(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "next_attempt": self.next_attempt,
            "retry_after": max(0.0, self.next_attempt - self._clock()) if self.state == BreakerState.OPEN else 0.0,
            "is_open": self.state == BreakerState.OPEN,
        }


# ===== REGISTRY =====

_breakers: Dict[str, CircuitBreaker] = {}


def get_breaker(name: str, *, clock: Optional[Callable[[], float]] = None) -> CircuitBreaker:
    """Shared breaker for an upstream provider, created with the configured defaults."""
    breaker = _breakers.get(name)
    if breaker is None:
        breaker = CircuitBreaker(
            name,
            threshold=config.BREAKER_FAILURE_THRESHOLD,
            timeout=config.BREAKER_OPEN_TIMEOUT,
            half_open_successes=config.BREAKER_HALF_OPEN_SUCCESSES,
            clock=clock or time.monotonic,
        )
        _breakers[name] = breaker
    return breaker


def breaker_snapshots() -> Dict[str, Dict[str, Any]]:
    return {name: b.snapshot() for name, b in sorted(_breakers.items())}


def reset_breakers() -> None:
    _breakers.clear()


__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "get_breaker",
    "breaker_snapshots",
    "reset_breakers",
]
