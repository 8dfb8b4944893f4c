from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from ..domain.errors import DEFAULT_RANGE_LIMIT_RULES, DeadlineExceeded, RangeLimitRules, is_range_limit_error
from ..domain.models import BlockRange, RawLog
from ..domain.value_types import Address, Topic0
from ..ports.rpc import RPCClient
from .deadline import Deadline, Sleep
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class ResilientLogFetcher:
    """
    One ``eth_getLogs`` request per window, retried with linear backoff.

    Range-limit errors are re-raised at once so the planner can shrink the
    window instead of hammering the provider with the same span.
    """

    def __init__(
        self,
        rpc: RPCClient,
        limiter: RateLimiter,
        *,
        max_retries: int = 3,
        retry_delay_s: float = 2.0,
        rules: RangeLimitRules = DEFAULT_RANGE_LIMIT_RULES,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.rpc = rpc
        self.limiter = limiter
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.rules = rules
        self._sleep = sleep

    def is_range_limit(self, exc: BaseException) -> bool:
        return is_range_limit_error(exc, self.rules)

    async def fetch(
        self,
        address: Address,
        window: BlockRange,
        deadline: Deadline | None = None,
        topic0s: Sequence[Topic0] | None = None,
    ) -> list[RawLog]:
        deadline = deadline or Deadline()
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self.limiter.call(
                    self.rpc.get_logs, address, window.start, window.end, topic0s, deadline=deadline,
                )
            except DeadlineExceeded:
                raise
            except Exception as e:
                if self.is_range_limit(e):
                    logger.warning(
                        "Block range limit exceeded for %d-%d (span=%d, code=%r): %s",
                        window.start, window.end, window.span(), getattr(e, "code", None), e,
                    )
                    raise
                logger.warning("getLogs %d-%d attempt %d/%d failed: %r",
                               window.start, window.end, attempt, self.max_retries, e)
                if attempt == self.max_retries:
                    raise
                await deadline.sleep(self.retry_delay_s * attempt, self._sleep)
        raise RuntimeError("max_retries must be >= 1")
