import asyncio
import random

import pytest

from codebase_mirror.application.rate_limiter import TokenBucketRateLimiter


class FakeClock:
    """Monotonic clock that only moves when the limiter sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def make_limiter(clock: FakeClock, rate_per_minute=60, burst=1, jitter=(0.0, 0.0)):
    return TokenBucketRateLimiter(
        rate_per_minute=rate_per_minute,
        burst=burst,
        jitter=jitter,
        clock=clock,
        sleep=clock.sleep,
        rng=random.Random(7),
    )


async def test_burst_is_admitted_without_waiting():
    clock = FakeClock()
    limiter = make_limiter(clock, burst=3)

    for _ in range(3):
        assert await limiter.acquire() == 0.0
    assert clock.sleeps == []


async def test_waits_for_refill_when_bucket_is_empty():
    clock = FakeClock()
    limiter = make_limiter(clock, rate_per_minute=60)  # one token per second

    await limiter.acquire()
    waited = await limiter.acquire()

    assert waited == pytest.approx(1.0)
    assert clock.now == pytest.approx(1.0)


async def test_jitter_is_applied_before_each_admission():
    clock = FakeClock()
    limiter = make_limiter(clock, rate_per_minute=6000, burst=10, jitter=(0.5, 1.5))

    for _ in range(5):
        await limiter.acquire()

    assert len(clock.sleeps) == 5
    assert all(0.5 <= s <= 1.5 for s in clock.sleeps)


async def test_concurrent_callers_never_share_a_token():
    clock = FakeClock()
    limiter = make_limiter(clock, rate_per_minute=60)

    await asyncio.gather(*[limiter.acquire() for _ in range(5)])

    # 1 token up front, then one per second for the other four
    assert clock.now == pytest.approx(4.0)
    assert limiter.available_tokens < 1.0


async def test_refill_is_capped_at_burst():
    clock = FakeClock()
    limiter = make_limiter(clock, rate_per_minute=60, burst=2)

    await limiter.acquire()
    await limiter.acquire()
    clock.now += 100.0
    await limiter.acquire()

    assert limiter.available_tokens == pytest.approx(1.0)


@pytest.mark.parametrize("kwargs", [{"rate_per_minute": 0}, {"rate_per_minute": 10, "burst": 0},
                                    {"rate_per_minute": 10, "jitter": (2.0, 1.0)}])
def test_rejects_invalid_configuration(kwargs):
    with pytest.raises(ValueError):
        TokenBucketRateLimiter(**kwargs)
