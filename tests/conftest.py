"""Shared fixtures: an in-memory RPC node and ABI-encoded log builders."""

from __future__ import annotations

from typing import Any, Callable, Iterable

import pytest
from eth_abi import encode as abi_encode

from eventscan.domain.abi import VAMM_ROUTER_EVENTS, VAULT_EVENTS, parse_event_signature
from eventscan.domain.models import BlockHeader, RawLog

CONTRACT = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOB = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
BASE_TS = 1_700_000_000

SIGNATURES = {parse_event_signature(s).name: s for s in VAMM_ROUTER_EVENTS + VAULT_EVENTS}


def encode_log(
    signature: str,
    args: dict[str, Any],
    *,
    block_number: int,
    log_index: int = 0,
    address: str = CONTRACT,
    tx_hash: str | None = None,
) -> RawLog:
    """Build a RawLog the way a node would return it for ``signature``."""
    spec = parse_event_signature(SIGNATURES.get(signature, signature))
    indexed = [i for i in spec.inputs if i.indexed]
    plain = [i for i in spec.inputs if not i.indexed]
    topics = [spec.topic0] + ["0x" + abi_encode([i.type], [args[i.name]]).hex() for i in indexed]
    data = abi_encode([i.type for i in plain], [args[i.name] for i in plain]) if plain else b""
    return RawLog(
        address=address.lower(),
        topics=tuple(t.lower() for t in topics),
        data_hex="0x" + data.hex(),
        block_number=block_number,
        block_hash=f"0x{block_number:064x}",
        tx_hash=tx_hash or f"0x{block_number * 1000 + log_index:064x}",
        log_index=log_index,
    )


class FakeRPC:
    """In-memory node. ``on_get_logs(from, to)`` may raise or return logs to override the default."""

    def __init__(
        self,
        *,
        head: int | Exception = 2_000,
        chain: int | Exception = 137,
        logs: Iterable[RawLog] = (),
        on_get_logs: Callable[[int, int], list[RawLog] | None] | None = None,
        missing_blocks: Iterable[int] = (),
    ) -> None:
        self.head = head
        self.chain = chain
        self.logs = list(logs)
        self.on_get_logs = on_get_logs
        self.missing_blocks = set(missing_blocks)
        self.calls: list[tuple[int, int]] = []
        self.block_calls: list[int] = []
        self.closed = False

    async def latest_block(self) -> int:
        if isinstance(self.head, Exception):
            raise self.head
        return self.head

    async def chain_id(self) -> int:
        if isinstance(self.chain, Exception):
            raise self.chain
        return self.chain

    async def get_block(self, number: int) -> BlockHeader | None:
        self.block_calls.append(number)
        if number in self.missing_blocks:
            return None
        return BlockHeader(number=number, hash=f"0x{number:064x}", timestamp=BASE_TS + number)

    async def get_logs(self, address, from_block, to_block, topic0s=None) -> list[RawLog]:
        self.calls.append((from_block, to_block))
        if self.on_get_logs is not None:
            res = self.on_get_logs(from_block, to_block)
            if res is not None:
                return res
        return [l for l in self.logs if from_block <= l.block_number <= to_block]

    async def aclose(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def opened_log() -> RawLog:
    return encode_log(
        "PositionOpened",
        {"user": ALICE, "isLong": True, "size": 10**21, "price": 2_500 * 10**18, "leverage": 5, "fee": 3 * 10**15},
        block_number=1_234,
        log_index=2,
    )
