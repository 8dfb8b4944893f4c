from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..domain.errors import DeadlineExceeded
from ..domain.models import BlockRange, RawLog
from ..domain.value_types import Address
from .deadline import Deadline, Sleep
from .fetching import ResilientLogFetcher

logger = logging.getLogger(__name__)


def merge_intervals(intervals: list[tuple[int,int]]) -> list[tuple[int,int]]:
    if not intervals: return []
    intervals = sorted(intervals)
    merged: list[list[int]] = [[intervals[0][0], intervals[0][1]]]
    for s, e in intervals[1:]:
        ms, me = merged[-1]
        if s <= me + 1: merged[-1][1] = max(me, e)
        else: merged.append([s, e])
    return [(s, e) for s, e in merged]

def clamp_batch_size(size: int | None, min_block_range: int, max_block_range: int) -> int:
    if size is None: return max_block_range
    return max(min_block_range, min(max_block_range, int(size)))


@dataclass(slots=True)
class ScanOutcome:
    logs: list[RawLog] = field(default_factory=list)
    windows: list[BlockRange] = field(default_factory=list)    # fetched successfully
    skipped: list[BlockRange] = field(default_factory=list)    # given up on
    shrinks: int = 0
    interrupted: bool = False

    def skipped_ranges(self) -> list[tuple[int, int]]:
        return merge_intervals([(w.start, w.end) for w in self.skipped])


class AdaptiveBatchPlanner:
    """
    Walks [from_block, to_block] in windows whose size adapts to the provider.

    A range-limit error halves the window and retries the same start block.
    Any other failure (after the fetcher's retries) skips the window and moves
    on, so one bad window leaves a gap instead of aborting the scan. Windows are
    fetched one at a time; the batch size is local to each ``scan`` call.
    """

    def __init__(
        self,
        fetcher: ResilientLogFetcher,
        *,
        min_block_range: int = 10,
        max_block_range: int = 50,
        batch_delay_s: float = 0.5,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not 1 <= min_block_range <= max_block_range:
            raise ValueError("require 1 <= min_block_range <= max_block_range")
        self.fetcher = fetcher
        self.min_block_range = min_block_range
        self.max_block_range = max_block_range
        self.batch_delay_s = batch_delay_s
        self._sleep = sleep

    async def scan(
        self,
        address: Address,
        from_block: int,
        to_block: int,
        initial_batch_size: int | None = None,
        deadline: Deadline | None = None,
    ) -> ScanOutcome:
        deadline = deadline or Deadline()
        out = ScanOutcome()
        batch_size = clamp_batch_size(initial_batch_size, self.min_block_range, self.max_block_range)

        start = from_block
        try:
            while start <= to_block:
                end = min(start + batch_size - 1, to_block)
                window = BlockRange(start, end)
                try:
                    logs = await self.fetcher.fetch(address, window, deadline)
                except DeadlineExceeded:
                    raise
                except Exception as e:
                    if self.fetcher.is_range_limit(e) and batch_size > self.min_block_range:
                        new_size = max(self.min_block_range, batch_size // 2)
                        logger.warning("Block range limit hit for %d-%d. Reducing batch size from %d to %d",
                                       start, end, batch_size, new_size)
                        batch_size = new_size
                        out.shrinks += 1
                        continue   # same start, smaller window
                    logger.warning("Skipping blocks %d-%d after failure: %r", start, end, e)
                    out.skipped.append(window)
                    start = end + 1
                    continue

                out.logs.extend(logs)
                out.windows.append(window)
                logger.debug("Processed blocks %d-%d: %d logs", start, end, len(logs))
                if end < to_block:
                    await deadline.sleep(self.batch_delay_s, self._sleep)
                start = end + 1
        except DeadlineExceeded as e:
            logger.warning("Scan stopped at block %d: %s", start, e)
            out.interrupted = True
        return out
