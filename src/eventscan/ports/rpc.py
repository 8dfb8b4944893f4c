# eventscan/ports/rpc.py
from __future__ import annotations

from typing import Protocol, Sequence
from ..domain.models import BlockHeader, RawLog
from ..domain.value_types import Address, Topic0


class RPCClient(Protocol):
    """Port defining the contract for an Ethereum JSON-RPC client used by the collector."""

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def chain_id(self) -> int:
        """Return the chain id reported by the node."""

    async def get_block(self, number: int) -> BlockHeader | None:
        """Return the header of block ``number``, or None when the node does not know it."""

    async def get_logs(
        self,
        address: Address,
        from_block: int,
        to_block: int,
        topic0s: Sequence[Topic0] | None = None,
    ) -> list[RawLog]:
        """Return raw logs for [from_block, to_block] inclusive. No topic filter when topic0s is None."""

    async def aclose(self) -> None:
        """Release the underlying connection pool."""
