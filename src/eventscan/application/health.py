from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from ..domain.models import HealthCheckResult
from ..domain.networks import network_display_name
from ..ports.rpc import RPCClient
from .deadline import Deadline
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


async def check_health(
    rpc: RPCClient,
    limiter: RateLimiter,
    *,
    deadline: Deadline | None = None,
    clock: Callable[[], float] = time.perf_counter,
) -> HealthCheckResult:
    """Probe block height and chain id. Never raises; failures give ``connected=False``."""
    started = clock()
    try:
        chain_id, block_number = await asyncio.gather(
            limiter.call(rpc.chain_id, deadline=deadline),
            limiter.call(rpc.latest_block, deadline=deadline),
            return_exceptions=True,
        )
        for res in (chain_id, block_number):
            if isinstance(res, BaseException):
                raise res
    except Exception as e:
        elapsed = (clock() - started) * 1000
        logger.warning("Health check failed after %.0fms: %r", elapsed, e)
        return HealthCheckResult(
            connected=False, chain_id=0, block_number=0, network_name="Unknown",
            response_time_ms=elapsed, error=str(e) or type(e).__name__,
        )
    elapsed = (clock() - started) * 1000
    return HealthCheckResult(
        connected=True,
        chain_id=int(chain_id),
        block_number=int(block_number),
        network_name=network_display_name(int(chain_id)),
        response_time_ms=elapsed,
    )
