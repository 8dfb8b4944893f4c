from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from eth_utils import decode_hex, event_signature_to_log_topic

from .errors import EventScanError
from .models import RawLog


# Human-readable event signatures (ethers "event Foo(type indexed name, ...)")
VAMM_ROUTER_EVENTS: tuple[str, ...] = (
    "event PositionOpened(address indexed user, bool isLong, uint256 size, uint256 price, uint256 leverage, uint256 fee)",
    "event PositionClosed(address indexed user, uint256 size, uint256 price, int256 pnl, uint256 fee)",
    "event FundingUpdated(int256 fundingRate, uint256 fundingIndex, int256 premiumFraction)",
    "event FundingPaid(address indexed user, int256 amount, uint256 fundingIndex)",
    "event PositionLiquidated(address indexed user, address indexed liquidator, uint256 size, uint256 price, uint256 fee)",
    "event TradingFeeCollected(address indexed user, uint256 amount)",
    "event ParametersUpdated(string parameter, uint256 newValue)",
    "event AuthorizedAdded(address indexed account)",
    "event AuthorizedRemoved(address indexed account)",
    "event Paused()",
    "event Unpaused()",
)

VAULT_EVENTS: tuple[str, ...] = (
    "event CollateralDeposited(address indexed user, uint256 amount)",
    "event CollateralWithdrawn(address indexed user, uint256 amount)",
)


class LogParseError(EventScanError):
    """A log matched a known topic but its topics/data do not fit the ABI."""


@dataclass(slots=True, frozen=True)
class EventInput:
    name: str
    type: str
    indexed: bool

@dataclass(slots=True, frozen=True)
class EventSpec:
    name: str
    inputs: tuple[EventInput, ...]
    topic0: str                   # 0x-prefixed, lowercase

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(i.type for i in self.inputs)})"

@dataclass(slots=True, frozen=True)
class ParsedLog:
    name: str
    args: Mapping[str, Any]
    spec: EventSpec


_SIG_RE = re.compile(r"^\s*(?:event\s+)?([A-Za-z_]\w*)\s*\((.*)\)\s*;?\s*$")
_ALIASES = {"uint": "uint256", "int": "int256"}
# dynamic types are stored as keccak hashes when indexed
_DYNAMIC = re.compile(r"^(string|bytes)$|\[\]$")

def _canonical_type(t: str) -> str:
    base = _ALIASES.get(t, t)
    if "(" in base or ")" in base:
        raise ValueError(f"tuple event arguments are not supported: {t}")
    return base

def parse_event_signature(sig: str) -> EventSpec:
    """Parse ``event Name(type [indexed] name, ...)`` into an :class:`EventSpec`."""
    m = _SIG_RE.match(sig)
    if not m:
        raise ValueError(f"Invalid event signature: {sig!r}")
    name, body = m.group(1), m.group(2).strip()
    inputs: list[EventInput] = []
    if body:
        for pos, part in enumerate(body.split(",")):
            tokens = part.split()
            if not tokens:
                raise ValueError(f"Empty argument in event signature: {sig!r}")
            typ = _canonical_type(tokens[0])
            indexed = "indexed" in tokens[1:]
            rest = [t for t in tokens[1:] if t != "indexed"]
            arg_name = rest[0] if rest else f"arg{pos}"
            inputs.append(EventInput(arg_name, typ, indexed))
    canonical = f"{name}({','.join(i.type for i in inputs)})"
    topic0 = "0x" + event_signature_to_log_topic(canonical).hex()
    return EventSpec(name=name, inputs=tuple(inputs), topic0=topic0.lower())


class EventRegistry:
    """Known event ABIs for one contract family, keyed by topic0."""

    def __init__(self, signatures: Iterable[str]) -> None:
        self._by_topic: dict[str, EventSpec] = {}
        for sig in signatures:
            spec = parse_event_signature(sig)
            self._by_topic[spec.topic0] = spec

    @classmethod
    def default(cls) -> "EventRegistry":
        return cls(VAMM_ROUTER_EVENTS + VAULT_EVENTS)

    def __len__(self) -> int:
        return len(self._by_topic)

    def names(self) -> set[str]:
        return {s.name for s in self._by_topic.values()}

    def topic0_for(self, name: str) -> str | None:
        for spec in self._by_topic.values():
            if spec.name == name:
                return spec.topic0
        return None

    def parse(self, log: RawLog) -> ParsedLog | None:
        """Decode ``log`` against the registry. ``None`` when topic0 is not known."""
        if not log.topics:
            return None
        spec = self._by_topic.get(log.topics[0].lower())
        if spec is None:
            return None

        indexed = [i for i in spec.inputs if i.indexed]
        plain = [i for i in spec.inputs if not i.indexed]
        if len(log.topics) - 1 != len(indexed):
            raise LogParseError(
                f"{spec.name}: expected {len(indexed)} indexed topics, got {len(log.topics) - 1}"
            )

        args: dict[str, Any] = {}
        try:
            for inp, topic in zip(indexed, log.topics[1:]):
                if _DYNAMIC.search(inp.type):
                    args[inp.name] = topic.lower()
                else:
                    args[inp.name] = abi_decode([inp.type], decode_hex(topic))[0]
            if plain:
                values = abi_decode([i.type for i in plain], decode_hex(log.data_hex))
                for inp, v in zip(plain, values):
                    args[inp.name] = v
        except (DecodingError, ValueError, TypeError) as e:
            raise LogParseError(f"{spec.name}: {e}") from e

        return ParsedLog(name=spec.name, args=args, spec=spec)
