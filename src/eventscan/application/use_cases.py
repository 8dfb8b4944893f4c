from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from eth_utils import is_address

from ..adapters.rpc_httpx import HttpxRPC
from ..config import CollectorConfig
from ..domain.abi import EventRegistry
from ..domain.errors import DEFAULT_RANGE_LIMIT_RULES, InvalidFilterError, RangeLimitRules
from ..domain.models import EventFilter, HealthCheckResult, QueryResult
from ..domain.value_types import Address
from ..ports.rpc import RPCClient
from .aggregate import aggregate
from .deadline import Deadline, Sleep
from .decoder import EventDecoder
from .fetching import ResilientLogFetcher
from .health import check_health
from .planning import AdaptiveBatchPlanner, ScanOutcome
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


def _is_block_int(v: object) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _requested(v: object) -> int:
    return v if _is_block_int(v) else 0  # type: ignore[return-value]


def validate_filter(flt: EventFilter) -> None:
    if not isinstance(flt.contract_address, str) or not is_address(flt.contract_address):
        raise InvalidFilterError("Invalid contract address")
    if flt.user_address is not None and not is_address(flt.user_address):
        raise InvalidFilterError("Invalid user address")
    for name in ("from_block", "to_block", "limit", "max_block_range"):
        v = getattr(flt, name)
        if v is not None and not _is_block_int(v):
            raise InvalidFilterError(f"{name} must be an integer, got {type(v).__name__}")
    for name in ("from_block", "to_block"):
        v = getattr(flt, name)
        if v is not None and v < 0:
            raise InvalidFilterError(f"{name} must be >= 0")
    if flt.from_block is not None and flt.to_block is not None and flt.from_block > flt.to_block:
        raise InvalidFilterError("fromBlock cannot be greater than toBlock")
    if flt.limit is not None and flt.limit < 0:
        raise InvalidFilterError("limit must be >= 0")
    if flt.max_block_range is not None and flt.max_block_range < 1:
        raise InvalidFilterError("max_block_range must be >= 1")


class EventCollector:
    """
    Pull-based historical event collection for one RPC provider.

    ``query_events`` and ``check_health`` never raise: every failure ends up in
    the ``error`` field of the returned result.
    """

    def __init__(
        self,
        rpc: RPCClient,
        *,
        config: CollectorConfig | None = None,
        limiter: RateLimiter | None = None,
        registry: EventRegistry | None = None,
        rules: RangeLimitRules = DEFAULT_RANGE_LIMIT_RULES,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config or CollectorConfig()
        self.rpc = rpc
        self.limiter = limiter or RateLimiter(self.config.rate_limit_interval_s)
        self.registry = registry or EventRegistry.default()
        self._clock = clock
        self.fetcher = ResilientLogFetcher(
            rpc, self.limiter,
            max_retries=self.config.max_retries,
            retry_delay_s=self.config.retry_delay_s,
            rules=rules,
            sleep=sleep,
        )
        self.planner = AdaptiveBatchPlanner(
            self.fetcher,
            min_block_range=self.config.min_block_range,
            max_block_range=self.config.max_block_range,
            batch_delay_s=self.config.batch_delay_s,
            sleep=sleep,
        )

    @classmethod
    def from_config(cls, config: CollectorConfig, *, limiter: RateLimiter | None = None) -> "EventCollector":
        rpc = HttpxRPC(config.rpc_url, timeout_s=config.request_timeout_s)
        return cls(rpc, config=config, limiter=limiter)

    async def __aenter__(self) -> "EventCollector":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.rpc.aclose()

    async def current_block(self, deadline: Deadline | None = None) -> int:
        return int(await self.limiter.call(self.rpc.latest_block, deadline=deadline))

    async def check_health(self) -> HealthCheckResult:
        return await check_health(self.rpc, self.limiter, deadline=Deadline(self.config.request_timeout_s or None))

    def _elapsed_ms(self, started: float) -> float:
        return max(0.0, (self._clock() - started) * 1000)

    async def query_events(self, flt: EventFilter, *, deadline: Deadline | None = None) -> QueryResult:
        started = self._clock()
        deadline = deadline or Deadline(self.config.scan_timeout_s)
        try:
            validate_filter(flt)
            return await self._query(flt, deadline, started)
        except InvalidFilterError as e:
            logger.warning("Rejected filter for %r: %s", flt.contract_address, e)
            return QueryResult(
                from_block=_requested(flt.from_block), to_block=_requested(flt.to_block),
                query_time_ms=self._elapsed_ms(started), error=str(e), complete=False,
            )
        except Exception as e:
            logger.exception("Query failed for %s", flt.contract_address)
            return QueryResult(
                from_block=_requested(flt.from_block), to_block=_requested(flt.to_block),
                query_time_ms=self._elapsed_ms(started), error=str(e) or type(e).__name__, complete=False,
            )

    async def _query(self, flt: EventFilter, deadline: Deadline, started: float) -> QueryResult:
        logger.info("Querying events: %s", flt)
        try:
            current = await self.current_block(deadline)
        except Exception as e:
            logger.error("Could not fetch current block: %r", e)
            return QueryResult(
                from_block=_requested(flt.from_block), to_block=_requested(flt.to_block),
                query_time_ms=self._elapsed_ms(started),
                error=f"Failed to fetch current block: {e}", complete=False,
            )

        from_block = flt.from_block if flt.from_block is not None else max(0, current - self.config.lookback_blocks)
        to_block = flt.to_block if flt.to_block is not None else current
        if from_block > to_block:
            return QueryResult(
                from_block=from_block, to_block=to_block, query_time_ms=self._elapsed_ms(started),
                error="fromBlock cannot be greater than toBlock", complete=False,
            )

        address = Address(flt.contract_address.lower())
        outcome = await self.planner.scan(address, from_block, to_block, flt.max_block_range, deadline)

        decoder = EventDecoder(
            self.rpc, self.limiter, self.registry, self.config.chain_id,
            event_types=flt.event_types, user_address=flt.user_address, deadline=deadline,
        )
        decoded = await decoder.decode_all(outcome.logs)
        events = aggregate(decoded, flt.limit)

        interrupted = outcome.interrupted or decoder.interrupted
        error = _scan_error(outcome, interrupted, deadline, from_block, to_block)
        result = QueryResult(
            from_block=from_block,
            to_block=to_block,
            events=events,
            total_logs=len(events),
            query_time_ms=self._elapsed_ms(started),
            error=error,
            skipped_ranges=outcome.skipped_ranges(),
            complete=not (interrupted or outcome.skipped),
        )
        logger.info("Query completed in %.0fms, found %d events (%d raw logs, %d windows, %d skipped)",
                    result.query_time_ms, len(events), len(outcome.logs), len(outcome.windows), len(outcome.skipped))
        return result


def _scan_error(outcome: ScanOutcome, interrupted: bool, deadline: Deadline, from_block: int, to_block: int) -> str | None:
    if interrupted:
        return "scan cancelled" if deadline.cancelled else "scan deadline exceeded"
    if outcome.skipped and not outcome.windows:
        return f"all {len(outcome.skipped)} windows failed for blocks {from_block}-{to_block}"
    return None


