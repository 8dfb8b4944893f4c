from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from eth_utils import to_checksum_address

from .abi import LogParseError, ParsedLog
from .models import (
    CollateralDeposited, CollateralWithdrawn, DomainEvent, FundingPaid, FundingUpdated,
    PositionClosed, PositionLiquidated, PositionOpened, RawLog, TradingFeeCollected,
)

logger = logging.getLogger(__name__)


# --------- argument coercion (no floats, no truncation) ------------------------

def _num(args: Mapping[str, Any], key: str) -> str:
    v = args[key]
    if isinstance(v, bool) or not isinstance(v, int):
        raise LogParseError(f"argument {key!r} is not an integer: {v!r}")
    return str(v)

def _opt_num(args: Mapping[str, Any], key: str) -> str | None:
    return _num(args, key) if key in args else None

def _addr(args: Mapping[str, Any], key: str) -> str:
    return to_checksum_address(args[key])

def _flag(args: Mapping[str, Any], key: str) -> bool:
    v = args[key]
    if not isinstance(v, bool):
        raise LogParseError(f"argument {key!r} is not a bool: {v!r}")
    return v


# --------- per-variant builders ------------------------------------------------

def _position_opened(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return PositionOpened(**base, user=_addr(a, "user"), is_long=_flag(a, "isLong"),
                          size=_num(a, "size"), price=_num(a, "price"),
                          leverage=_num(a, "leverage"), fee=_num(a, "fee"))

def _position_closed(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return PositionClosed(**base, user=_addr(a, "user"), size=_num(a, "size"),
                          price=_num(a, "price"), pnl=_num(a, "pnl"), fee=_num(a, "fee"))

def _position_liquidated(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return PositionLiquidated(**base, user=_addr(a, "user"), liquidator=_addr(a, "liquidator"),
                              size=_num(a, "size"), price=_num(a, "price"), fee=_num(a, "fee"))

def _funding_updated(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return FundingUpdated(**base, funding_rate=_num(a, "fundingRate"),
                          funding_index=_num(a, "fundingIndex"),
                          premium_fraction=_num(a, "premiumFraction"))

def _funding_paid(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return FundingPaid(**base, user=_addr(a, "user"), amount=_num(a, "amount"),
                       funding_index=_num(a, "fundingIndex"),
                       position_id=_opt_num(a, "positionId"))

def _trading_fee_collected(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return TradingFeeCollected(**base, user=_addr(a, "user"), amount=_num(a, "amount"))

def _collateral_deposited(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return CollateralDeposited(**base, user=_addr(a, "user"), amount=_num(a, "amount"))

def _collateral_withdrawn(a: Mapping[str, Any], base: dict[str, Any]) -> DomainEvent:
    return CollateralWithdrawn(**base, user=_addr(a, "user"), amount=_num(a, "amount"))

_BUILDERS: dict[str, Callable[[Mapping[str, Any], dict[str, Any]], DomainEvent]] = {
    "PositionOpened":      _position_opened,
    "PositionClosed":      _position_closed,
    "PositionLiquidated":  _position_liquidated,
    "FundingUpdated":      _funding_updated,
    "FundingPaid":         _funding_paid,
    "TradingFeeCollected": _trading_fee_collected,
    "CollateralDeposited": _collateral_deposited,
    "CollateralWithdrawn": _collateral_withdrawn,
}

KNOWN_EVENT_NAMES: frozenset[str] = frozenset(_BUILDERS)


# ---------------------------- public API --------------------------------------

def subject_address(parsed: ParsedLog) -> str | None:
    """The ``user`` argument of a parsed log, lowercased, if it has one."""
    user = parsed.args.get("user")
    return user.lower() if isinstance(user, str) else None

def format_event(parsed: ParsedLog, log: RawLog, block_timestamp: int, chain_id: int) -> DomainEvent | None:
    """
    Map a parsed log onto exactly one domain event variant.
    Unrecognized names return None; missing or mistyped arguments raise LogParseError.
    """
    build = _BUILDERS.get(parsed.name)
    if build is None:
        logger.info("Dropping unrecognized event %s (tx=%s log=%d)", parsed.name, log.tx_hash, log.log_index)
        return None

    try:
        timestamp = datetime.fromtimestamp(block_timestamp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise LogParseError(f"{parsed.name}: block timestamp {block_timestamp!r} out of range") from e

    base = {
        "transaction_hash": log.tx_hash,
        "block_number":     log.block_number,
        "block_hash":       log.block_hash,
        "log_index":        log.log_index,
        "contract_address": to_checksum_address(log.address),
        "timestamp":        timestamp,
        "chain_id":         chain_id,
    }
    try:
        return build(parsed.args, base)
    except KeyError as e:
        raise LogParseError(f"{parsed.name}: missing argument {e.args[0]!r}") from e
