from __future__ import annotations

import logging
from typing import Iterable

from ..domain.abi import EventRegistry, LogParseError
from ..domain.decoding import format_event, subject_address
from ..domain.errors import DeadlineExceeded
from ..domain.models import DomainEvent, RawLog
from ..ports.rpc import RPCClient
from .deadline import Deadline
from .rate_limit import RateLimiter

logger = logging.getLogger(__name__)


class EventDecoder:
    """
    Turns raw logs into domain events for one query.

    Applies the event-type allow-list and the user filter before any block
    lookup. Block timestamps are memoized for the lifetime of the instance,
    which is a single query.
    """

    def __init__(
        self,
        rpc: RPCClient,
        limiter: RateLimiter,
        registry: EventRegistry,
        chain_id: int,
        *,
        event_types: Iterable[str] | None = None,
        user_address: str | None = None,
        deadline: Deadline | None = None,
    ) -> None:
        self.rpc = rpc
        self.limiter = limiter
        self.registry = registry
        self.chain_id = chain_id
        if isinstance(event_types, str):
            event_types = (event_types,)
        self.event_types = frozenset(event_types) if event_types is not None else None
        self.user_address = user_address.lower() if user_address else None
        self.deadline = deadline or Deadline()
        self.interrupted = False
        self._timestamps: dict[int, int] = {}

    async def _block_timestamp(self, block_number: int) -> int | None:
        if block_number in self._timestamps:
            return self._timestamps[block_number]
        try:
            header = await self.limiter.call(self.rpc.get_block, block_number, deadline=self.deadline)
        except DeadlineExceeded:
            raise
        except Exception as e:
            logger.warning("Block lookup failed for %d: %r", block_number, e)
            return None
        if header is None:
            logger.warning("Block not found for log at block %d", block_number)
            return None
        self._timestamps[block_number] = header.timestamp
        return header.timestamp

    async def decode(self, log: RawLog) -> DomainEvent | None:
        try:
            parsed = self.registry.parse(log)
        except LogParseError as e:
            logger.warning("Failed to parse log tx=%s index=%d: %s", log.tx_hash, log.log_index, e)
            return None
        if parsed is None:
            logger.debug("No known ABI for topic0 %s (tx=%s)", log.topics[0] if log.topics else None, log.tx_hash)
            return None

        if self.event_types is not None and parsed.name not in self.event_types:
            return None
        if self.user_address is not None:
            subject = subject_address(parsed)
            if subject is not None and subject != self.user_address:
                return None

        ts = await self._block_timestamp(log.block_number)
        if ts is None:
            return None
        try:
            return format_event(parsed, log, ts, self.chain_id)
        except (LogParseError, ValueError) as e:
            logger.warning("Failed to format %s (tx=%s index=%d): %s", parsed.name, log.tx_hash, log.log_index, e)
            return None

    async def decode_all(self, logs: Iterable[RawLog]) -> list[DomainEvent]:
        """Decode every log; on deadline, return what was decoded so far."""
        out: list[DomainEvent] = []
        try:
            for log in logs:
                ev = await self.decode(log)
                if ev is not None:
                    out.append(ev)
        except DeadlineExceeded as e:
            logger.warning("Decoding stopped after %d events: %s", len(out), e)
            self.interrupted = True
        return out
