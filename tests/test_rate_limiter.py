"""
Fixed-window limiter unit tests.
"""
from lookup_api.services.rate_limiter import FixedWindowRateLimiter, login_limiter, search_limiter


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestFixedWindowRateLimiter:

    def test_limit_then_reject(self):
        limiter = FixedWindowRateLimiter("t", 3, 60, "slow down", clock=FakeClock())

        results = [limiter.hit("1.2.3.4") for _ in range(4)]

        assert [r.allowed for r in results] == [True, True, True, False]
        assert [r.remaining for r in results] == [2, 1, 0, 0]

    def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("t", 1, 60, "slow down", clock=clock)
        limiter.hit("a")
        assert limiter.hit("a").allowed is False

        clock.now = 60
        result = limiter.hit("a")

        assert result.allowed is True
        assert result.reset_seconds == 60

    def test_keys_are_independent(self):
        limiter = FixedWindowRateLimiter("t", 1, 60, "slow down", clock=FakeClock())
        limiter.hit("a")

        assert limiter.hit("b").allowed is True

    def test_reset_seconds_counts_down(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("t", 5, 900, "slow down", clock=clock)
        limiter.hit("a")

        clock.now = 100.5
        result = limiter.hit("a")

        assert result.reset_seconds == 800
        assert result.headers() == {
            "RateLimit-Limit": "5",
            "RateLimit-Remaining": "3",
            "RateLimit-Reset": "800",
        }

    def test_reset(self):
        limiter = FixedWindowRateLimiter("t", 1, 60, "slow down", clock=FakeClock())
        limiter.hit("a")
        limiter.reset("a")

        assert limiter.hit("a").allowed is True


def test_configured_limits():
    login = login_limiter()
    search = search_limiter()

    assert (login.limit, login.window_seconds) == (10, 900)
    assert login.message == "Too many login attempts. Please try again later."
    assert (search.limit, search.window_seconds) == (30, 60)
    assert search.message == "Too many requests. Please slow down."


class TestWindowPruning:

    def test_rolled_over_windows_are_dropped(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("t", 5, 60, "slow down", clock=clock)

        for i in range(5000):
            limiter.hit(f"10.0.{i // 256}.{i % 256}")
            clock.now += 3600

        assert len(limiter) == 1

    def test_open_windows_survive_pruning(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter("t", 2, 60, "slow down", clock=clock)
        limiter.hit("a")
        clock.now = 30
        limiter.hit("b")

        clock.now = 70
        assert limiter.prune() == 1

        assert len(limiter) == 1
        assert limiter.hit("b").allowed is True
        assert limiter.hit("b").allowed is False
