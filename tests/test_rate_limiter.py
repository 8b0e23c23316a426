import pytest

from conftest import VirtualClock
from patchsync.api.rate_limiter import BandwidthLimiter
from patchsync.models.stats import SpeedMeter


def _limiter(clock: VirtualClock, rate: float) -> BandwidthLimiter:
    return BandwidthLimiter(rate, clock=clock, sleep=clock.sleep)


async def test_transfer_takes_at_least_bytes_over_cap(clock: VirtualClock) -> None:
    limiter = _limiter(clock, rate=1000)
    limiter.reset()
    start = clock()

    for _ in range(10):
        await limiter.consume(500)

    assert clock() - start >= 5000 / 1000
    assert limiter.bytes_in_session == 5000
    assert limiter.total_delay == pytest.approx(5.0)


async def test_no_delay_when_under_the_cap(clock: VirtualClock) -> None:
    limiter = _limiter(clock, rate=1000)
    limiter.reset()
    clock.advance(10)

    delay = await limiter.consume(2000)

    assert delay == 0.0
    assert clock.sleeps == []


async def test_average_allows_burst_after_slow_start(clock: VirtualClock) -> None:
    limiter = _limiter(clock, rate=100)
    limiter.reset()
    clock.advance(5)

    # 500 bytes are "owed" by the idle period, so only the excess is paced
    assert await limiter.consume(500) == 0.0
    assert await limiter.consume(100) == pytest.approx(1.0)


async def test_reset_starts_a_new_baseline(clock: VirtualClock) -> None:
    limiter = _limiter(clock, rate=100)
    limiter.reset()
    await limiter.consume(100)
    clock.advance(100)

    limiter.reset()
    delay = await limiter.consume(100)

    assert delay == pytest.approx(1.0)
    assert limiter.total_delay == pytest.approx(1.0)


async def test_reset_can_change_the_rate(clock: VirtualClock) -> None:
    limiter = _limiter(clock, rate=100)
    limiter.reset(max_bytes_per_second=1000)

    assert limiter.rate == 1000
    assert await limiter.consume(1000) == pytest.approx(1.0)


def test_rejects_non_positive_rate(clock: VirtualClock) -> None:
    with pytest.raises(ValueError):
        _limiter(clock, rate=0)

    limiter = _limiter(clock, rate=10)
    with pytest.raises(ValueError):
        limiter.set_rate(-1)
    assert limiter.rate == 10


def test_delay_for_without_explicit_reset(clock: VirtualClock) -> None:
    limiter = _limiter(clock, rate=50)

    assert limiter.delay_for(100) == pytest.approx(2.0)


def test_speed_meter_waits_for_min_elapsed(clock: VirtualClock) -> None:
    meter = SpeedMeter(interval=1.0, min_elapsed=0.5, clock=clock)
    meter.start()

    clock.advance(0.25)
    assert meter.update(1024 * 1024) is None

    clock.advance(0.75)
    assert meter.update(2 * 1024 * 1024) == pytest.approx(2.0)


def test_speed_meter_reports_the_last_window(clock: VirtualClock) -> None:
    meter = SpeedMeter(interval=1.0, min_elapsed=0.5, clock=clock)
    meter.start()

    clock.advance(1.0)
    assert meter.update(4 * 1024 * 1024) == pytest.approx(4.0)

    # Too soon for a new reading
    clock.advance(0.5)
    assert meter.update(5 * 1024 * 1024) is None

    clock.advance(0.5)
    assert meter.update(5 * 1024 * 1024) == pytest.approx(1.0)
    assert meter.peak_speed_bps == pytest.approx(4 * 1024 * 1024)
