"""
Tests for rate_limiter.py - sliding window per key.
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_limiter(clock):
    return RateLimiter(max_attempts=2, window_seconds=60, clock=clock)


def test_two_admits_then_reject():
    """Two attempts pass inside the window and the third is rejected."""
    clock = FakeClock()
    limiter = make_limiter(clock)

    assert limiter.check("session").admitted
    clock.advance(10)
    assert limiter.check("session").admitted
    clock.advance(10)
    decision = limiter.check("session")

    assert not decision.admitted
    assert decision.retry_after_seconds == 40


def test_window_slides():
    """Old attempts age out of the window."""
    clock = FakeClock()
    limiter = make_limiter(clock)
    limiter.check("session")
    clock.advance(30)
    limiter.check("session")

    clock.advance(30)  # first attempt is now exactly 60s old
    assert limiter.check("session").admitted
    assert not limiter.check("session").admitted


def test_rejections_do_not_extend_the_window():
    """Rejected attempts do not push back when the window reopens."""
    clock = FakeClock()
    limiter = make_limiter(clock)
    limiter.check("session")
    limiter.check("session")
    for _ in range(5):
        clock.advance(5)
        assert not limiter.check("session").admitted

    clock.advance(35)
    assert limiter.check("session").admitted


def test_keys_are_independent():
    """Each key has its own window."""
    clock = FakeClock()
    limiter = make_limiter(clock)
    limiter.check("a")
    limiter.check("a")

    assert not limiter.check("a").admitted
    assert limiter.check("a:model-x").admitted
    assert limiter.check("b").admitted


def test_retry_after_is_at_least_one_second():
    """Retry-after is never below one second."""
    clock = FakeClock()
    limiter = make_limiter(clock)
    limiter.check("k")
    limiter.check("k")
    clock.advance(59.9)

    decision = limiter.check("k")
    assert not decision.admitted
    assert decision.retry_after_seconds == 1


def test_reset():
    """reset forgets every key."""
    clock = FakeClock()
    limiter = make_limiter(clock)
    limiter.check("a")
    limiter.check("a")
    limiter.check("b")
    limiter.check("b")

    limiter.reset("a")
    assert limiter.check("a").admitted
    assert not limiter.check("b").admitted

    limiter.reset()
    assert limiter.check("b").admitted
