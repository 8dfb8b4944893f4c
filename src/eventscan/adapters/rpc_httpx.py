from __future__ import annotations
import asyncio, httpx, itertools, logging
from typing import Any, Awaitable, Callable, Sequence
from ..domain.errors import RPCError
from ..domain.models import BlockHeader, RawLog
from ..domain.value_types import Address, Topic0
from ..ports.rpc import RPCClient

logger = logging.getLogger(__name__)

def _to_hex_block(n: int) -> str: return hex(int(n))
def _hex_int(x: Any) -> int: return int(x, 16) if isinstance(x, str) else int(x)
def _is_topic_hash(x: str) -> bool: return isinstance(x, str) and x.startswith("0x") and len(x)==66

def _build_topics_param(topic0s: Sequence[Topic0]) -> list[list[str]]:
    t0s = [str(t).strip().lower() for t in topic0s]
    if not all(_is_topic_hash(x) for x in t0s):
        raise ValueError(f"Invalid topic0(s): {t0s}")
    return [t0s]

def _rpc_error(err: Any) -> RPCError:
    if not isinstance(err, dict):
        return RPCError(None, str(err))
    data = err.get("data")
    # some providers wrap the real cause inside data
    nested = data if isinstance(data, dict) and ("code" in data or "message" in data) else None
    return RPCError(err.get("code"), str(err.get("message") or ""), data=data, error=nested)

def _raw_log(rl: dict[str, Any]) -> RawLog:
    topics = tuple((t if isinstance(t, str) else t.decode()).lower() for t in rl.get("topics", []))
    return RawLog(
        address=Address(rl["address"].lower()),
        topics=topics,
        data_hex=str(rl.get("data") or "0x"),
        block_number=_hex_int(rl["blockNumber"]),
        block_hash=(rl.get("blockHash") or "").lower(),
        tx_hash=(rl.get("transactionHash") or "").lower(),
        log_index=_hex_int(rl["logIndex"]),
    )


class HttpxRPC(RPCClient):
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 20,
        max_conn: int = 16,
        *,
        max_429_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.rpc_url = rpc_url
        self.max_429_retries = max_429_retries
        self._ids = itertools.count(1)
        self._sleep = sleep
        self.client = httpx.AsyncClient(
            http2=transport is None,
            timeout=httpx.Timeout(timeout_s),
            limits=httpx.Limits(max_connections=max_conn, max_keepalive_connections=max(1, max_conn//2)),
            transport=transport,
        )

    async def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc":"2.0","id":next(self._ids),"method":method,"params":params}
        # retry on 429 with simple backoff
        for attempt in range(self.max_429_retries):
            r = await self.client.post(self.rpc_url, json=payload)
            if r.status_code == 429:
                ra = r.headers.get("Retry-After")
                delay = max(1.0, float(ra)) if ra and ra.isdigit() else (1.0 * (2**attempt))
                logger.debug("%s throttled (429), sleeping %.1fs", method, delay)
                await self._sleep(delay); continue
            r.raise_for_status()
            data = r.json()
            if "error" in data:
                raise _rpc_error(data["error"])
            return data.get("result")
        # keep the method name out of the message: "eth_getLogs" reads as a range-limit error
        raise RPCError(429, f"Too many requests: {self.max_429_retries} throttled attempts")

    async def latest_block(self) -> int:
        return _hex_int(await self._call("eth_blockNumber", []))

    async def chain_id(self) -> int:
        return _hex_int(await self._call("eth_chainId", []))

    async def get_block(self, number: int) -> BlockHeader | None:
        res = await self._call("eth_getBlockByNumber", [_to_hex_block(number), False])
        if not res:
            return None
        return BlockHeader(
            number=_hex_int(res["number"]),
            hash=(res.get("hash") or "").lower(),
            timestamp=_hex_int(res["timestamp"]),
        )

    async def get_logs(
        self,
        address: Address,
        from_block: int,
        to_block: int,
        topic0s: Sequence[Topic0] | None = None,
    ) -> list[RawLog]:
        flt: dict[str, Any] = {
            "address": str(address),
            "fromBlock": _to_hex_block(from_block),
            "toBlock": _to_hex_block(to_block),
        }
        if topic0s:
            flt["topics"] = _build_topics_param(topic0s)
        res = await self._call("eth_getLogs", [flt])
        return [_raw_log(rl) for rl in (res or [])]

    async def aclose(self) -> None:
        await self.client.aclose()
