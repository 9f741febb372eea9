"""
Tests for EvmRpcClient status and JSON-RPC error mapping.
"""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import aiohttp
import pytest

from launch_radar.ingestion.errors import (
    DecodeError,
    RateLimitError,
    UpstreamError,
    UpstreamUnavailableError,
)
from launch_radar.ingestion.evm_client import EvmRpcClient, TokenMetadataReader
from launch_radar.ingestion.evm_scanner import ChainLogScanner, EvmScannerConfig
from launch_radar.ingestion.retry import MinIntervalGate, RetryPolicy


class FakeResponse:
    def __init__(self, status=200, body=None, text=""):
        self.status = status
        self._body = body
        self._text = text

    async def json(self, content_type=None):
        return self._body

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


def make_client(*responses, attempts=2):
    session = MagicMock()
    session.post = MagicMock(side_effect=list(responses))
    client = EvmRpcClient(
        "https://rpc.test",
        session=session,
        gate=MinIntervalGate(0),
        retry_policy=RetryPolicy(max_attempts=attempts, base_delay=0.0),
    )
    return client, session


def ok(result):
    return FakeResponse(body={"jsonrpc": "2.0", "id": 1, "result": result})


@pytest.mark.asyncio
class TestEvmRpcClient:
    async def test_block_number(self):
        client, session = make_client(ok("0x3e8"))

        assert await client.get_block_number() == 1000
        payload = session.post.call_args.kwargs["json"]
        assert payload["method"] == "eth_blockNumber"

    async def test_get_logs_hex_encodes_range(self):
        log = {
            "address": "0xAbC",
            "topics": ["0x01"],
            "data": "0x",
            "blockNumber": "0x10",
            "transactionHash": "0xtx",
            "logIndex": "0x2",
        }
        client, session = make_client(ok([log]))

        logs = await client.get_logs({"fromBlock": 900, "toBlock": 1000}, kind="pair")

        params = session.post.call_args.kwargs["json"]["params"][0]
        assert params["fromBlock"] == "0x384"
        assert params["toBlock"] == "0x3e8"
        assert len(logs) == 1
        assert logs[0].block_number == 16
        assert logs[0].kind == "pair"

    async def test_get_block_timestamp(self):
        client, _ = make_client(ok({"timestamp": "0x6553f100"}))

        entry = await client.get_block(5)

        assert entry.number == 5
        assert entry.timestamp == 0x6553F100

    async def test_missing_block_is_upstream_error(self):
        client, _ = make_client(ok(None))

        with pytest.raises(UpstreamError):
            await client.get_block(5)

    async def test_get_block_single_attempt(self):
        client, session = make_client(
            FakeResponse(429), ok({"timestamp": "0x1"}), attempts=3
        )

        with pytest.raises(RateLimitError):
            await client.get_block(5)

        assert session.post.call_count == 1

    async def test_http_429_retried_then_raised(self):
        client, session = make_client(FakeResponse(429), FakeResponse(429))

        with pytest.raises(RateLimitError):
            await client.get_block_number()

        assert session.post.call_count == 2

    async def test_rpc_rate_limit_code(self):
        body = {"error": {"code": -32005, "message": "limit"}}
        client, _ = make_client(FakeResponse(body=body), attempts=1)

        with pytest.raises(RateLimitError):
            await client.get_block_number()

    async def test_rate_limit_message(self):
        body = {"error": {"code": -32000, "message": "Too Many Requests, slow down"}}
        client, _ = make_client(FakeResponse(body=body), attempts=1)

        with pytest.raises(RateLimitError):
            await client.get_block_number()

    async def test_other_rpc_error_is_terminal(self):
        body = {"error": {"code": -32602, "message": "invalid argument"}}
        client, session = make_client(FakeResponse(body=body), ok("0x1"))

        with pytest.raises(UpstreamError) as exc_info:
            await client.get_block_number()

        assert not isinstance(exc_info.value, UpstreamUnavailableError)
        assert session.post.call_count == 1

    async def test_server_error_then_success(self):
        client, session = make_client(FakeResponse(502, text="bad gateway"), ok("0x2"))

        assert await client.get_block_number() == 2
        assert session.post.call_count == 2

    async def test_connection_error_mapped(self):
        session = MagicMock()
        session.post = MagicMock(side_effect=aiohttp.ClientConnectionError("refused"))
        client = EvmRpcClient(
            "https://rpc.test",
            session=session,
            gate=MinIntervalGate(0),
            retry_policy=RetryPolicy(max_attempts=1),
        )

        with pytest.raises(UpstreamUnavailableError):
            await client.get_block_number()

    async def test_call_returns_bytes(self):
        client, session = make_client(ok("0x" + "00" * 31 + "12"))

        raw = await client.call("0xtoken", "decimals()")

        assert raw[-1] == 18
        request = session.post.call_args.kwargs["json"]["params"][0]
        assert request["to"] == "0xtoken"
        assert request["data"] == "0x313ce567"


@pytest.mark.asyncio
class TestScannerBlockFetch:
    """Block timestamps through a live client are retried in one place."""

    async def test_rate_limited_block_bounded_to_policy(self):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        session = MagicMock()
        session.post = MagicMock(side_effect=lambda *args, **kwargs: FakeResponse(429))
        client = EvmRpcClient(
            "https://rpc.test",
            session=session,
            gate=MinIntervalGate(0),
            retry_policy=RetryPolicy(max_attempts=3, base_delay=0.0),
        )
        scanner = ChainLogScanner(
            client,
            EvmScannerConfig(block_retry_policy=RetryPolicy(max_attempts=3, base_delay=0.0)),
            clock=lambda: now,
        )

        assert await scanner.block_time(990) == now

        methods = [c.kwargs["json"]["method"] for c in session.post.call_args_list]
        assert methods == ["eth_getBlockByNumber"] * 3
        assert 990 not in scanner.cache


@pytest.mark.asyncio
class TestTokenMetadataReader:
    async def test_full_info(self, fake_rpc, chain_helpers):
        token = chain_helpers.addr(7)
        fake_rpc.add_token(token, "Seven", "SVN")

        info = await TokenMetadataReader(fake_rpc).full_info(token)

        assert info["name"] == "Seven"
        assert info["symbol"] == "SVN"
        assert info["decimals"] == 18
        assert info["total_supply"] == 1_000_000

    async def test_unknown_token_fails_whole_read(self, fake_rpc, chain_helpers):
        with pytest.raises(DecodeError):
            await TokenMetadataReader(fake_rpc).names(chain_helpers.addr(8))
