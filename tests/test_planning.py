import pytest

from conftest import ALICE, FakeRPC, encode_log
from eventscan.application.deadline import Deadline
from eventscan.application.fetching import ResilientLogFetcher
from eventscan.application.planning import AdaptiveBatchPlanner, clamp_batch_size, merge_intervals
from eventscan.application.rate_limit import NoopRateLimiter
from eventscan.domain.errors import RPCError
from eventscan.domain.value_types import Address

ADDR = Address("0x5fbdb2315678afecb367f032d93f642f64180aa3")


def _planner(rpc, sleeps, *, min_block_range=10, max_block_range=50, max_retries=3):
    fetcher = ResilientLogFetcher(rpc, NoopRateLimiter(), max_retries=max_retries, retry_delay_s=2.0, sleep=sleeps)
    return AdaptiveBatchPlanner(
        fetcher, min_block_range=min_block_range, max_block_range=max_block_range,
        batch_delay_s=0.5, sleep=sleeps,
    )


def test_merge_intervals():
    assert merge_intervals([]) == []
    assert merge_intervals([(20, 29), (0, 9), (10, 14), (40, 41)]) == [(0, 14), (20, 29), (40, 41)]


def test_clamp_batch_size():
    assert clamp_batch_size(None, 10, 50) == 50
    assert clamp_batch_size(5, 10, 50) == 10
    assert clamp_batch_size(500, 10, 50) == 50
    assert clamp_batch_size(25, 10, 50) == 25


@pytest.mark.asyncio
async def test_two_windows_with_one_inter_batch_delay(sleeps):
    logs = [
        encode_log("CollateralDeposited", {"user": ALICE, "amount": 1}, block_number=1200),
        encode_log("CollateralDeposited", {"user": ALICE, "amount": 2}, block_number=1700),
    ]
    rpc = FakeRPC(logs=logs)
    out = await _planner(rpc, sleeps, max_block_range=500).scan(ADDR, 1000, 1999)

    assert rpc.calls == [(1000, 1499), (1500, 1999)]
    assert [(w.start, w.end) for w in out.windows] == [(1000, 1499), (1500, 1999)]
    assert sleeps.calls == [0.5]
    assert out.logs == logs
    assert out.skipped == [] and not out.interrupted


@pytest.mark.asyncio
async def test_range_limit_halves_and_retries_same_start(sleeps):
    def limited(fb, tb):
        if tb - fb + 1 > 12:
            raise RPCError(-32005, "query exceeds max block range")
        return None

    rpc = FakeRPC(on_get_logs=limited)
    out = await _planner(rpc, sleeps).scan(ADDR, 100, 149)

    # 50 -> 25 -> 12 at the same start, then walk forward at 12
    assert rpc.calls[:4] == [(100, 149), (100, 124), (100, 111), (112, 123)]
    assert out.shrinks == 2
    assert out.skipped == []
    assert out.windows[-1].end == 149


@pytest.mark.asyncio
async def test_shrink_floors_at_min_block_range(sleeps):
    def limited(fb, tb):
        raise RPCError(-32062, "batch size too large")

    rpc = FakeRPC(on_get_logs=limited)
    out = await _planner(rpc, sleeps, min_block_range=10, max_block_range=40).scan(ADDR, 0, 19)

    # 40 -> 20 -> 10, then at the floor the window is skipped without retries
    assert rpc.calls == [(0, 19), (0, 19), (0, 9), (10, 19)]
    assert [(w.start, w.end) for w in out.skipped] == [(0, 9), (10, 19)]
    assert out.skipped_ranges() == [(0, 19)]
    assert out.windows == []


@pytest.mark.asyncio
async def test_next_attempt_uses_half_of_failed_size(sleeps):
    seen: list[int] = []

    def first_wide_fails(fb, tb):
        seen.append(tb - fb + 1)
        if len(seen) == 1:
            raise RPCError(-32600, "invalid request")
        return None

    rpc = FakeRPC(on_get_logs=first_wide_fails)
    await _planner(rpc, sleeps, min_block_range=10, max_block_range=37).scan(ADDR, 0, 100)

    assert seen[0] == 37
    assert seen[1] == max(10, 37 // 2)
    assert rpc.calls[1][0] == 0


@pytest.mark.asyncio
async def test_transient_failure_skips_window_after_max_retries(sleeps):
    def bad_window(fb, tb):
        if fb == 50:
            raise RPCError(-32000, "upstream timeout")
        return None

    rpc = FakeRPC(on_get_logs=bad_window)
    out = await _planner(rpc, sleeps).scan(ADDR, 0, 149)

    assert rpc.calls.count((50, 99)) == 3
    assert rpc.calls[-1] == (100, 149)
    assert [(w.start, w.end) for w in out.windows] == [(0, 49), (100, 149)]
    assert [(w.start, w.end) for w in out.skipped] == [(50, 99)]


@pytest.mark.asyncio
async def test_batch_size_stays_within_bounds(sleeps):
    sizes: list[int] = []

    def erratic(fb, tb):
        sizes.append(tb - fb + 1)
        if len(sizes) % 3 == 1:
            raise RPCError(-32005, "limit exceeded")
        return None

    rpc = FakeRPC(on_get_logs=erratic)
    out = await _planner(rpc, sleeps, min_block_range=8, max_block_range=64).scan(ADDR, 0, 999)

    # only the final window may be cut short by to_block
    for fb, tb in rpc.calls:
        if tb != 999:
            assert 8 <= tb - fb + 1 <= 64
    covered = sorted((w.start, w.end) for w in out.windows + out.skipped)
    assert merge_intervals(covered) == [(0, 999)]


@pytest.mark.asyncio
async def test_override_is_clamped_to_configured_range(sleeps):
    rpc = FakeRPC()
    await _planner(rpc, sleeps, max_block_range=50).scan(ADDR, 0, 99, initial_batch_size=1_000)
    assert rpc.calls == [(0, 49), (50, 99)]

    rpc = FakeRPC()
    await _planner(rpc, sleeps, max_block_range=50).scan(ADDR, 0, 39, initial_batch_size=20)
    assert rpc.calls == [(0, 19), (20, 39)]


@pytest.mark.asyncio
async def test_single_block_range(sleeps):
    rpc = FakeRPC()
    out = await _planner(rpc, sleeps).scan(ADDR, 7, 7)
    assert rpc.calls == [(7, 7)]
    assert sleeps.calls == []
    assert len(out.windows) == 1


@pytest.mark.asyncio
async def test_cancelled_deadline_interrupts_scan(sleeps):
    deadline = Deadline()

    def cancel_after_first(fb, tb):
        deadline.cancel()
        return None

    rpc = FakeRPC(on_get_logs=cancel_after_first)
    out = await _planner(rpc, sleeps).scan(ADDR, 0, 499, deadline=deadline)

    assert rpc.calls == [(0, 49)]
    assert out.interrupted
    assert out.windows == []
