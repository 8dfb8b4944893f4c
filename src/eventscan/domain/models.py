from __future__ import annotations
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, ClassVar, Union
from .value_types import Address, EventName

@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int
    def span(self) -> int: return self.end - self.start + 1

@dataclass(slots=True, frozen=True)
class RawLog:
    address: Address
    topics: tuple[str, ...]     # lowercased, 0x-prefixed
    data_hex: str               # hex with 0x (or "0x")
    block_number: int
    block_hash: str
    tx_hash: str
    log_index: int

@dataclass(slots=True, frozen=True)
class BlockHeader:
    number: int
    hash: str
    timestamp: int              # unix seconds

@dataclass(slots=True, frozen=True)
class EventFilter:
    contract_address: str
    event_types: tuple[str, ...] | None = None
    user_address: str | None = None
    from_block: int | None = None
    to_block: int | None = None
    limit: int | None = None
    max_block_range: int | None = None   # per-call window size override


# ──────────────────────────────
# Domain events (closed set)
# ──────────────────────────────

def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p[:1].upper() + p[1:] for p in rest)

@dataclass(slots=True, frozen=True)
class EventBase:
    event_type: ClassVar[EventName]

    transaction_hash: str
    block_number: int
    block_hash: str
    log_index: int
    contract_address: str
    timestamp: datetime         # UTC, from the containing block
    chain_id: int

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"eventType": self.event_type}
        for f in fields(self):
            v = getattr(self, f.name)
            out[_camel(f.name)] = v.isoformat() if isinstance(v, datetime) else v
        return out

@dataclass(slots=True, frozen=True)
class PositionOpened(EventBase):
    event_type: ClassVar[EventName] = "PositionOpened"
    user: str
    is_long: bool
    size: str
    price: str
    leverage: str
    fee: str

@dataclass(slots=True, frozen=True)
class PositionClosed(EventBase):
    event_type: ClassVar[EventName] = "PositionClosed"
    user: str
    size: str
    price: str
    pnl: str
    fee: str

@dataclass(slots=True, frozen=True)
class PositionLiquidated(EventBase):
    event_type: ClassVar[EventName] = "PositionLiquidated"
    user: str
    liquidator: str
    size: str
    price: str
    fee: str

@dataclass(slots=True, frozen=True)
class FundingUpdated(EventBase):
    event_type: ClassVar[EventName] = "FundingUpdated"
    funding_rate: str
    funding_index: str
    premium_fraction: str

@dataclass(slots=True, frozen=True)
class FundingPaid(EventBase):
    event_type: ClassVar[EventName] = "FundingPaid"
    user: str
    amount: str
    funding_index: str
    position_id: str | None = None

@dataclass(slots=True, frozen=True)
class TradingFeeCollected(EventBase):
    event_type: ClassVar[EventName] = "TradingFeeCollected"
    user: str
    amount: str

@dataclass(slots=True, frozen=True)
class CollateralDeposited(EventBase):
    event_type: ClassVar[EventName] = "CollateralDeposited"
    user: str
    amount: str

@dataclass(slots=True, frozen=True)
class CollateralWithdrawn(EventBase):
    event_type: ClassVar[EventName] = "CollateralWithdrawn"
    user: str
    amount: str

DomainEvent = Union[
    PositionOpened, PositionClosed, PositionLiquidated, FundingUpdated,
    FundingPaid, TradingFeeCollected, CollateralDeposited, CollateralWithdrawn,
]


# ──────────────────────────────
# Results
# ──────────────────────────────

@dataclass(slots=True)
class QueryResult:
    from_block: int
    to_block: int
    events: list[DomainEvent] = field(default_factory=list)
    total_logs: int = 0
    query_time_ms: float = 0.0
    error: str | None = None
    skipped_ranges: list[tuple[int, int]] = field(default_factory=list)
    complete: bool = True

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "fromBlock": self.from_block,
            "toBlock": self.to_block,
            "events": [e.to_dict() for e in self.events],
            "totalLogs": self.total_logs,
            "queryTime": self.query_time_ms,
            "skippedRanges": [list(r) for r in self.skipped_ranges],
            "complete": self.complete,
        }
        if self.error is not None:
            out["error"] = self.error
        return out

@dataclass(slots=True, frozen=True)
class HealthCheckResult:
    connected: bool
    chain_id: int
    block_number: int
    network_name: str
    response_time_ms: float
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "connected": self.connected,
            "chainId": self.chain_id,
            "blockNumber": self.block_number,
            "networkName": self.network_name,
            "responseTime": self.response_time_ms,
        }
        if self.error is not None:
            out["error"] = self.error
        return out
