"""Error types and the block-range-limit classifier.

Providers do not document how many blocks a single ``eth_getLogs`` request may
span; they reject an oversized window with an error whose shape is provider
specific. The classifier below is a table of known codes and message fragments,
checked on the error itself and on one level of nesting (a "coalesced" error
that wraps the real cause in an ``error`` field). The table is a heuristic, not
an exhaustive list; widen it with :meth:`RangeLimitRules.extend`.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Iterable


class EventScanError(Exception):
    """Base class for errors raised by eventscan."""


class RPCError(EventScanError):
    """A JSON-RPC error object returned by the provider."""

    def __init__(self, code: int | str | None, message: str, data: Any = None, error: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data
        self.error = error      # nested cause, when the provider wraps one

    def __repr__(self) -> str:
        return f"RPCError(code={self.code!r}, message={self.message!r})"


class InvalidFilterError(EventScanError, ValueError):
    """The caller-supplied filter cannot be scanned."""


class DeadlineExceeded(EventScanError):
    """The scan deadline elapsed or the scan was cancelled."""


@dataclass(slots=True, frozen=True)
class RangeLimitRules:
    codes: frozenset[int | str]
    nested_codes: frozenset[int | str]
    messages: tuple[str, ...]
    nested_messages: tuple[str, ...]

    def extend(
        self,
        *,
        codes: Iterable[int | str] = (),
        nested_codes: Iterable[int | str] = (),
        messages: Iterable[str] = (),
        nested_messages: Iterable[str] = (),
    ) -> "RangeLimitRules":
        return replace(
            self,
            codes=self.codes | frozenset(codes),
            nested_codes=self.nested_codes | frozenset(nested_codes),
            messages=self.messages + tuple(messages),
            nested_messages=self.nested_messages + tuple(nested_messages),
        )


DEFAULT_RANGE_LIMIT_RULES = RangeLimitRules(
    codes=frozenset({-32600, -32602, -32005, -32062, "UNKNOWN_ERROR"}),
    nested_codes=frozenset({-32062, -32600, -32602, -32005}),
    messages=(
        "block range",
        "Block range is too large",
        "500 block",
        "400 block",
        "range limit",
        "too many blocks",
        "exceeds maximum",
        "eth_getLogs",
        "range should work",
        "query returned more than",
        "limit exceeded",
        "could not coalesce error",
    ),
    nested_messages=(
        "block range",
        "Block range is too large",
        "range limit",
        "too many blocks",
    ),
)


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)

def _code_of(obj: Any) -> Any:
    return _get(obj, "code")

def _message_of(obj: Any) -> str:
    msg = _get(obj, "message") or _get(obj, "reason")
    if not msg and isinstance(obj, BaseException):
        msg = str(obj)
    return msg if isinstance(msg, str) else ""

def _matches(code: Any, message: str, codes: frozenset[int | str], fragments: tuple[str, ...]) -> bool:
    try:
        if code is not None and code in codes:
            return True
    except TypeError:   # unhashable code
        pass
    return any(f in message for f in fragments)


def is_range_limit_error(exc: Any, rules: RangeLimitRules = DEFAULT_RANGE_LIMIT_RULES) -> bool:
    """True when ``exc`` looks like a provider rejecting the block span of a log query."""
    if exc is None:
        return False
    if _matches(_code_of(exc), _message_of(exc), rules.codes, rules.messages):
        return True
    nested = _get(exc, "error")
    if nested is None:
        return False
    return _matches(_code_of(nested), _message_of(nested), rules.nested_codes, rules.nested_messages)
