"""
JSON-RPC client for EVM-style chains (BNB Smart Chain).

Provides async access to the four calls the log scanner needs:
    get_block_number(), get_logs(filter), get_block(number), call(contract, method)

Every request passes through a shared MinIntervalGate and the common
retry_async() loop. Rate limits (HTTP 429, JSON-RPC -32005 or a
"too many requests" message) raise RateLimitError and are retried with a
longer backoff; other JSON-RPC errors are terminal.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence

import aiohttp
from eth_abi import decode
from web3 import Web3

from .block_cache import BlockCacheEntry
from .errors import DecodeError, RateLimitError, UpstreamError, UpstreamUnavailableError
from .models import RawLog
from .retry import MinIntervalGate, RetryPolicy, retry_async

logger = logging.getLogger(__name__)

RATE_LIMIT_RPC_CODES = {-32005, -32029}
RATE_LIMIT_MARKERS = ("too many requests", "rate limit", "limit exceeded")


class ChainRpc(Protocol):
    """Chain RPC contract required by ChainLogScanner."""

    async def get_block_number(self) -> int: ...

    async def get_logs(self, log_filter: dict, kind: str = "") -> list[RawLog]: ...

    async def get_block(self, number: int) -> BlockCacheEntry:
        """Single attempt; ChainLogScanner applies its own block retry policy."""

    async def call(self, contract: str, method: str) -> bytes: ...


def event_topic(signature: str) -> str:
    """Topic0 for an event signature, e.g. 'Transfer(address,address,uint256)'."""
    return Web3.to_hex(Web3.keccak(text=signature))


def function_selector(signature: str) -> str:
    return Web3.to_hex(Web3.keccak(text=signature)[:4])


def topic_to_address(topic: str) -> str:
    """Extract a lower-cased address from a 32-byte indexed topic."""
    if not topic or len(topic) < 42:
        raise DecodeError(f"Topic too short for an address: {topic!r}")
    return "0x" + topic[-40:].lower()


def address_to_topic(address: str) -> str:
    return "0x" + address.lower().replace("0x", "").rjust(64, "0")


class EvmRpcClient:
    """
    Async JSON-RPC client over aiohttp.

    Usage:
        async with EvmRpcClient(rpc_url) as client:
            head = await client.get_block_number()
            logs = await client.get_logs({"fromBlock": head - 100, "toBlock": head})
    """

    def __init__(
        self,
        rpc_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        gate: Optional[MinIntervalGate] = None,
        min_interval: float = 0.1,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the RPC client.

        Args:
            rpc_url: JSON-RPC endpoint
            session: Optional aiohttp session (created if not provided)
            gate: Shared minimum-interval gate (created if not provided)
            min_interval: Seconds between requests when creating a gate
            timeout: Per-request timeout in seconds
            retry_policy: Backoff for transient failures
        """
        self._rpc_url = rpc_url
        self._session = session
        self._owns_session = session is None
        self._gate = gate or MinIntervalGate(min_interval)
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry_policy = retry_policy or RetryPolicy()
        self._request_id = 0

    async def __aenter__(self) -> "EvmRpcClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _rpc(self, method: str, params: list) -> Any:
        return await retry_async(
            lambda: self._rpc_once(method, params),
            self._retry_policy,
            description=f"RPC {method}",
        )

    async def _rpc_once(self, method: str, params: list) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        await self._gate.wait()
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}

        try:
            async with self._session.post(self._rpc_url, json=payload) as response:
                if response.status == 429:
                    raise RateLimitError("Too Many Requests", status_code=429)
                if response.status >= 500:
                    text = await response.text()
                    raise UpstreamUnavailableError(
                        f"Server error: {response.status} - {text[:200]}",
                        status_code=response.status,
                    )
                if response.status >= 400:
                    text = await response.text()
                    raise UpstreamError(
                        f"RPC error: {response.status} - {text[:200]}",
                        status_code=response.status,
                    )
                body = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(f"{method} timed out") from e
        except aiohttp.ClientError as e:
            raise UpstreamUnavailableError(f"{method} failed: {e}") from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            code = error.get("code")
            message = str(error.get("message", ""))
            if code in RATE_LIMIT_RPC_CODES or any(m in message.lower() for m in RATE_LIMIT_MARKERS):
                raise RateLimitError(f"{method}: {message}")
            raise UpstreamError(f"{method}: {message} (code {code})")

        return body.get("result") if isinstance(body, dict) else None

    # =========================================================================
    # ChainRpc
    # =========================================================================

    async def get_block_number(self) -> int:
        result = await self._rpc("eth_blockNumber", [])
        return int(result, 16)

    async def get_logs(self, log_filter: dict, kind: str = "") -> list[RawLog]:
        """
        Fetch logs for a filter.

        fromBlock/toBlock may be given as ints; they are hex-encoded here.
        """
        params = dict(log_filter)
        for key in ("fromBlock", "toBlock"):
            if isinstance(params.get(key), int):
                params[key] = hex(params[key])
        result = await self._rpc("eth_getLogs", [params])
        return [RawLog.from_rpc(item, kind=kind) for item in result or []]

    async def get_block(self, number: int) -> BlockCacheEntry:
        # One attempt only: the scanner bounds block retries
        result = await self._rpc_once("eth_getBlockByNumber", [hex(number), False])
        if not result:
            raise UpstreamError(f"Block {number} not found")
        return BlockCacheEntry(number=number, timestamp=int(result["timestamp"], 16))

    async def call(self, contract: str, method: str) -> bytes:
        """eth_call a zero-argument view function, e.g. method='symbol()'."""
        result = await self._rpc(
            "eth_call",
            [{"to": contract, "data": function_selector(method)}, "latest"],
        )
        return bytes.fromhex((result or "0x")[2:])


# =============================================================================
# ERC-20 metadata
# =============================================================================


class TokenMetadataReader:
    """Reads ERC-20 name/symbol/decimals/totalSupply through a ChainRpc."""

    def __init__(self, rpc: ChainRpc) -> None:
        self._rpc = rpc

    async def read_text(self, token: str, method: str) -> str:
        raw = await self._rpc.call(token, method)
        return decode_text(raw)

    async def names(self, token: str) -> tuple[str, str]:
        """(name, symbol) or DecodeError."""
        name, symbol = await _gather_all(
            self.read_text(token, "name()"),
            self.read_text(token, "symbol()"),
        )
        if not name or not symbol:
            raise DecodeError(f"Token {token} has empty name or symbol")
        return name, symbol

    async def full_info(self, token: str) -> dict:
        """name, symbol, decimals and human-unit total supply."""
        name, symbol, raw_decimals, raw_supply = await _gather_all(
            self.read_text(token, "name()"),
            self.read_text(token, "symbol()"),
            self._rpc.call(token, "decimals()"),
            self._rpc.call(token, "totalSupply()"),
        )
        if not name or not symbol:
            raise DecodeError(f"Token {token} has empty name or symbol")
        decimals = decode_uint(raw_decimals)
        supply = decode_uint(raw_supply)
        return {
            "name": name,
            "symbol": symbol,
            "decimals": decimals,
            "total_supply": Decimal(supply).scaleb(-decimals),
        }


async def _gather_all(*calls) -> Sequence[Any]:
    """Run all calls; any failure becomes a DecodeError for the whole read."""
    results = await asyncio.gather(*calls, return_exceptions=True)
    for result in results:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            raise DecodeError(f"Auxiliary token call failed: {result}") from result
    return results


def decode_text(raw: bytes) -> str:
    """Decode an ABI string, tolerating bytes32 symbols from older tokens."""
    if not raw:
        raise DecodeError("Empty eth_call result")
    if len(raw) == 32:
        return raw.rstrip(b"\x00").decode("utf-8", errors="ignore").strip()
    try:
        (value,) = decode(["string"], raw)
    except Exception as e:
        raise DecodeError(f"Cannot decode string result: {e}") from e
    return value.strip()


def decode_uint(raw: bytes) -> int:
    if not raw:
        raise DecodeError("Empty eth_call result")
    try:
        (value,) = decode(["uint256"], raw)
    except Exception as e:
        raise DecodeError(f"Cannot decode uint result: {e}") from e
    return value
