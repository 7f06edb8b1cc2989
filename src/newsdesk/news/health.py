from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any

from newsdesk.core.config import Settings

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], float]


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    After ``reset_seconds`` in the open state a single probe request is let
    through (half-open); its outcome either closes the breaker or re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 2,
        reset_seconds: float = 300.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._state = BreakerState.CLOSED
        self._failures = 0
        self._opened_at: float | None = None

    @property
    def state(self) -> BreakerState:
        if self._state is BreakerState.OPEN and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.reset_seconds:
                self._state = BreakerState.HALF_OPEN
        return self._state

    def can_request(self) -> bool:
        return self.state is not BreakerState.OPEN

    def record_success(self) -> None:
        self._failures = 0
        self._opened_at = None
        self._state = BreakerState.CLOSED

    def record_failure(self) -> None:
        self._failures += 1
        if self.state is BreakerState.HALF_OPEN or self._failures >= self.failure_threshold:
            if self._state is not BreakerState.OPEN:
                LOGGER.warning("Circuit breaker %s opened after %d failures", self.name, self._failures)
            self._state = BreakerState.OPEN
            self._opened_at = self._clock()

    def snapshot(self) -> dict[str, Any]:
        return {"state": str(self.state), "failures": self._failures}


class CircuitBreakerRegistry:
    def __init__(
        self,
        failure_threshold: int = 2,
        reset_seconds: float = 300.0,
        clock: Clock = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.reset_seconds = reset_seconds
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, key: str) -> CircuitBreaker:
        breaker = self._breakers.get(key)
        if breaker is None:
            breaker = CircuitBreaker(key, self.failure_threshold, self.reset_seconds, self._clock)
            self._breakers[key] = breaker
        return breaker

    def status(self) -> dict[str, dict[str, Any]]:
        return {key: breaker.snapshot() for key, breaker in self._breakers.items()}


@dataclass(slots=True)
class FeedHealth:
    last_attempt_ms: int | None = None
    last_success_ms: int | None = None
    consecutive_failures: int = 0
    avg_response_time_ms: float = 0.0
    last_error: str | None = None
    total_requests: int = 0
    total_successes: int = 0


def _wall_ms() -> int:
    return int(time.time() * 1000)


class FeedHealthTracker:
    """Per (category, source) attempt bookkeeping plus the breakers guarding each feed."""

    def __init__(
        self,
        max_failures: int = 5,
        retry_after_seconds: int = 3600,
        breakers: CircuitBreakerRegistry | None = None,
        clock_ms: Callable[[], int] = _wall_ms,
    ) -> None:
        self.max_failures = max_failures
        self.retry_after_ms = retry_after_seconds * 1000
        self.breakers = breakers or CircuitBreakerRegistry()
        self._clock_ms = clock_ms
        self._feeds: dict[str, FeedHealth] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> FeedHealthTracker:
        return cls(
            max_failures=settings.feed_health_max_failures,
            retry_after_seconds=settings.feed_health_retry_after_seconds,
            breakers=CircuitBreakerRegistry(
                failure_threshold=settings.breaker_failure_threshold,
                reset_seconds=settings.breaker_reset_seconds,
            ),
        )

    @staticmethod
    def key(category: str, source: str) -> str:
        return f"{category}/{source}"

    def health(self, category: str, source: str) -> FeedHealth:
        return self._feeds.setdefault(self.key(category, source), FeedHealth())

    def breaker(self, category: str, source: str) -> CircuitBreaker:
        return self.breakers.get(f"feed:{category}:{source}")

    def should_skip(self, category: str, source: str) -> bool:
        if not self.breaker(category, source).can_request():
            return True
        health = self._feeds.get(self.key(category, source))
        if health is None or health.last_attempt_ms is None:
            return False
        if health.consecutive_failures < self.max_failures:
            return False
        return self._clock_ms() - health.last_attempt_ms < self.retry_after_ms

    def record(
        self,
        category: str,
        source: str,
        success: bool,
        response_time_ms: float,
        error: str | None = None,
    ) -> None:
        health = self.health(category, source)
        now = self._clock_ms()
        health.last_attempt_ms = now
        health.total_requests += 1
        breaker = self.breaker(category, source)

        if success:
            health.last_success_ms = now
            health.consecutive_failures = 0
            health.total_successes += 1
            health.last_error = None
            if health.total_successes == 1:
                health.avg_response_time_ms = response_time_ms
            else:
                health.avg_response_time_ms = health.avg_response_time_ms * 0.8 + response_time_ms * 0.2
            breaker.record_success()
        else:
            health.consecutive_failures += 1
            health.last_error = error or "Unknown error"
            breaker.record_failure()

    def get_all_feed_health(self) -> dict[str, dict[str, Any]]:
        return {key: asdict(health) for key, health in self._feeds.items()}

    def get_circuit_breaker_status(self) -> dict[str, dict[str, Any]]:
        return self.breakers.status()
