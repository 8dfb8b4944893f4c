import json

import httpx
import pytest

from eventscan.adapters.rpc_httpx import HttpxRPC
from eventscan.domain.errors import RPCError, is_range_limit_error

URL = "http://node.test/rpc"
TOPIC = "0x" + "ab" * 32


def _rpc(handler, sleeps, **kw):
    return HttpxRPC(URL, transport=httpx.MockTransport(handler), sleep=sleeps, **kw)


def _result(request: httpx.Request, result) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.mark.asyncio
async def test_block_number_and_chain_id(sleeps):
    def handler(request):
        method = json.loads(request.content)["method"]
        return _result(request, {"eth_blockNumber": "0x10", "eth_chainId": "0x89"}[method])

    rpc = _rpc(handler, sleeps)
    assert await rpc.latest_block() == 16
    assert await rpc.chain_id() == 137
    await rpc.aclose()


@pytest.mark.asyncio
async def test_get_logs_sends_hex_range_and_parses_logs(sleeps):
    sent = []

    def handler(request):
        body = json.loads(request.content)
        sent.append(body)
        return _result(request, [{
            "address": "0x5FbDB2315678afecb367f032d93F642f64180aa3",
            "topics": [TOPIC.upper().replace("0X", "0x")],
            "data": "0x" + "00" * 32,
            "blockNumber": "0x64",
            "blockHash": "0x" + "CD" * 32,
            "transactionHash": "0x" + "EF" * 32,
            "logIndex": "0x2",
        }])

    rpc = _rpc(handler, sleeps)
    logs = await rpc.get_logs("0x5fbdb2315678afecb367f032d93f642f64180aa3", 100, 199)
    await rpc.aclose()

    assert sent[0]["method"] == "eth_getLogs"
    assert sent[0]["params"] == [{
        "address": "0x5fbdb2315678afecb367f032d93f642f64180aa3", "fromBlock": "0x64", "toBlock": "0xc7",
    }]
    (log,) = logs
    assert log.address == "0x5fbdb2315678afecb367f032d93f642f64180aa3"
    assert log.topics == (TOPIC,)
    assert (log.block_number, log.log_index) == (100, 2)
    assert log.tx_hash == "0x" + "ef" * 32


@pytest.mark.asyncio
async def test_get_logs_with_topic_filter(sleeps):
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return _result(request, [])

    rpc = _rpc(handler, sleeps)
    assert await rpc.get_logs("0x00", 1, 2, topic0s=[TOPIC]) == []
    await rpc.aclose()
    assert sent[0]["params"][0]["topics"] == [[TOPIC]]


@pytest.mark.asyncio
async def test_invalid_topic_is_rejected(sleeps):
    rpc = _rpc(lambda r: _result(r, []), sleeps)
    with pytest.raises(ValueError):
        await rpc.get_logs("0x00", 1, 2, topic0s=["0x1234"])
    await rpc.aclose()


@pytest.mark.asyncio
async def test_json_rpc_error_keeps_code_and_nested_cause(sleeps):
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {
            "code": -32603,
            "message": "could not coalesce error",
            "data": {"code": -32062, "message": "Batch size is too large"},
        }})

    rpc = _rpc(handler, sleeps)
    with pytest.raises(RPCError) as info:
        await rpc.get_logs("0x00", 0, 10_000)
    await rpc.aclose()

    err = info.value
    assert err.code == -32603
    assert err.error == {"code": -32062, "message": "Batch size is too large"}
    assert is_range_limit_error(err)


@pytest.mark.asyncio
async def test_throttled_request_is_retried_after_retry_after(sleeps):
    responses = iter([
        httpx.Response(429, headers={"Retry-After": "3"}),
        None,
    ])

    def handler(request):
        resp = next(responses)
        return resp if resp is not None else _result(request, "0x2a")

    rpc = _rpc(handler, sleeps)
    assert await rpc.latest_block() == 42
    await rpc.aclose()
    assert sleeps.calls == [3.0]


@pytest.mark.asyncio
async def test_exhausted_throttling_is_not_a_range_limit(sleeps):
    rpc = _rpc(lambda r: httpx.Response(429), sleeps, max_429_retries=2)
    with pytest.raises(RPCError) as info:
        await rpc.get_logs("0x00", 0, 10)
    await rpc.aclose()

    assert info.value.code == 429
    assert sleeps.calls == [1.0, 2.0]
    assert not is_range_limit_error(info.value)


@pytest.mark.asyncio
async def test_http_error_status_raises(sleeps):
    rpc = _rpc(lambda r: httpx.Response(503), sleeps)
    with pytest.raises(httpx.HTTPStatusError):
        await rpc.latest_block()
    await rpc.aclose()


@pytest.mark.asyncio
async def test_get_block(sleeps):
    def handler(request):
        number = json.loads(request.content)["params"][0]
        if number == "0x1":
            return _result(request, None)
        return _result(request, {"number": number, "hash": "0x" + "AA" * 32, "timestamp": "0x6553f100"})

    rpc = _rpc(handler, sleeps)
    header = await rpc.get_block(255)
    missing = await rpc.get_block(1)
    await rpc.aclose()

    assert (header.number, header.timestamp) == (255, 0x6553F100)
    assert header.hash == "0x" + "aa" * 32
    assert missing is None
