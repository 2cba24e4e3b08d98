"""Sliding-window limiter and its HTTP surface."""

from smartlab.core.rate_limit import SlidingWindowLimiter, reset_limiters
from conftest import login


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_limiter_blocks_after_limit_and_recovers():
    clock = FakeClock()
    limiter = SlidingWindowLimiter("t", limit=3, window=60, message="slow down", clock=clock)

    results = [limiter.hit("1.2.3.4") for _ in range(3)]
    assert [r.remaining for r in results] == [2, 1, 0]
    assert all(r.allowed for r in results)

    blocked = limiter.hit("1.2.3.4")
    assert not blocked.allowed
    assert blocked.headers["Retry-After"] == "60"

    # Other addresses have their own window
    assert limiter.hit("5.6.7.8").allowed

    clock.now += 60
    assert limiter.hit("1.2.3.4").allowed


def test_window_slides():
    clock = FakeClock()
    limiter = SlidingWindowLimiter("t", limit=2, window=10, message="slow down", clock=clock)

    limiter.hit("k")
    clock.now += 6
    limiter.hit("k")
    assert not limiter.hit("k").allowed

    # The first hit falls out of the window, the second is still in it
    clock.now += 4
    result = limiter.hit("k")
    assert result.allowed
    assert result.remaining == 0
    assert result.reset_after == 6


def test_reset_forgets_every_key():
    limiter = SlidingWindowLimiter("t", limit=1, window=60, message="slow down", clock=FakeClock())
    limiter.hit("a")
    limiter.reset()

    assert limiter.hit("a").allowed


def test_idle_addresses_are_forgotten():
    clock = FakeClock()
    limiter = SlidingWindowLimiter("t", limit=5, window=60, message="slow down", clock=clock)

    for octet in range(50):
        limiter.hit(f"10.0.0.{octet}")
    assert len(limiter) == 50

    clock.now += 30
    limiter.hit("10.0.0.1")
    clock.now += 31
    limiter.hit("192.168.0.1")

    # Only addresses seen inside the last window are still tracked
    assert len(limiter) == 2


async def test_sixth_login_attempt_is_rate_limited(client, patient):
    """Five wrong passwords are answered with 401; the sixth attempt never reaches the check."""
    reset_limiters()

    for _ in range(5):
        response = await login(client, "alice@example.com", "Wr0ng!Pass")
        assert response.status_code == 401

    response = await login(client, "alice@example.com", "Wr0ng!Pass")

    assert response.status_code == 429
    assert response.json()["status"] == "error"
    assert int(response.headers["Retry-After"]) > 0
    assert response.headers["RateLimit-Remaining"] == "0"
