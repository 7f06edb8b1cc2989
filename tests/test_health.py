from __future__ import annotations

import pytest

from newsdesk.core.config import Settings
from newsdesk.news.health import BreakerState, CircuitBreaker, CircuitBreakerRegistry, FeedHealthTracker


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


def test_breaker_opens_after_threshold_and_half_opens_after_reset() -> None:
    clock = FakeClock()
    breaker = CircuitBreaker("feed:tech:a", failure_threshold=2, reset_seconds=300, clock=clock)

    breaker.record_failure()
    assert breaker.can_request()
    breaker.record_failure()
    assert breaker.state is BreakerState.OPEN
    assert not breaker.can_request()

    clock.now += 300
    assert breaker.state is BreakerState.HALF_OPEN
    assert breaker.can_request()

    breaker.record_failure()
    assert breaker.state is BreakerState.OPEN

    clock.now += 300
    breaker.record_success()
    assert breaker.state is BreakerState.CLOSED


def test_registry_reuses_breakers_and_reports_status() -> None:
    registry = CircuitBreakerRegistry(failure_threshold=1)
    registry.get("x").record_failure()

    assert registry.get("x") is registry.get("x")
    assert registry.status() == {"x": {"state": "open", "failures": 1}}


def test_tracker_skips_after_consecutive_failures_until_retry_window() -> None:
    clock = FakeClock(0)
    tracker = FeedHealthTracker(
        max_failures=3,
        retry_after_seconds=60,
        breakers=CircuitBreakerRegistry(failure_threshold=100),
        clock_ms=lambda: int(clock.now),
    )

    for _ in range(3):
        assert not tracker.should_skip("tech", "Wire")
        tracker.record("tech", "Wire", False, 10.0, "HTTP 500")

    assert tracker.should_skip("tech", "Wire")
    clock.now += 60_000
    assert not tracker.should_skip("tech", "Wire")


def test_tracker_records_response_time_average() -> None:
    tracker = FeedHealthTracker()
    tracker.record("intel", "Wire", True, 100.0)
    tracker.record("intel", "Wire", True, 200.0)
    tracker.record("intel", "Wire", False, 5.0, "timeout")

    health = tracker.get_all_feed_health()["intel/Wire"]
    assert health["avg_response_time_ms"] == pytest.approx(120.0)
    assert health["total_requests"] == 3
    assert health["total_successes"] == 2
    assert health["consecutive_failures"] == 1
    assert health["last_error"] == "timeout"


def test_open_breaker_skips_feed() -> None:
    tracker = FeedHealthTracker.from_settings(Settings(database_url="sqlite:///:memory:"))
    tracker.record("gov", "Wire", False, 1.0)
    tracker.record("gov", "Wire", False, 1.0)

    assert tracker.should_skip("gov", "Wire")
    assert tracker.get_circuit_breaker_status()["feed:gov:Wire"]["state"] == "open"
