"""
Test fixtures for ingestion layer.

IMPORTANT: All external API calls must be mocked.
Never hit real RPC nodes or news APIs in tests.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock

import pytest
from eth_abi import encode
from web3 import Web3

from launch_radar.ingestion.block_cache import BlockCacheEntry
from launch_radar.ingestion.evm_client import address_to_topic
from launch_radar.ingestion.models import RawLog

HEAD_BLOCK = 1_000
HEAD_TIMESTAMP = 1_700_000_000


# =============================================================================
# Helpers
# =============================================================================


def addr(n: int) -> str:
    """Deterministic lower-case address."""
    return "0x" + f"{n:040x}"


def abi_hex(types, values) -> str:
    return Web3.to_hex(encode(types, values))


def abi_string(value: str) -> bytes:
    return encode(["string"], [value])


def abi_uint(value: int) -> bytes:
    return encode(["uint256"], [value])


def make_log(
    topics,
    data: str = "0x",
    block: int = HEAD_BLOCK,
    tx: str = "0xtx",
    address: str = "",
    kind: str = "",
    log_index: int = 0,
) -> RawLog:
    return RawLog(
        address=address,
        topics=tuple(topics),
        data=data,
        block_number=block,
        transaction_hash=tx,
        log_index=log_index,
        kind=kind,
    )


class FakeChainRpc:
    """
    In-memory ChainRpc.

    logs_for(kind) returns the logs the scanner should see for one query kind;
    tokens maps address -> (name, symbol) for eth_call reads.
    """

    def __init__(self, head: int = HEAD_BLOCK, head_timestamp: int = HEAD_TIMESTAMP):
        self.head = head
        self.head_timestamp = head_timestamp
        self.logs: dict[str, list[RawLog]] = {}
        self.tokens: dict[str, tuple[str, str]] = {}
        self.log_errors: dict[str, Exception] = {}
        self.block_error: Optional[Exception] = None
        self.head_error: Optional[Exception] = None
        self.log_queries: list[tuple[dict, str]] = []
        self.block_fetches: list[int] = []

    def add_token(self, address: str, name: str, symbol: str) -> None:
        self.tokens[address.lower()] = (name, symbol)

    async def get_block_number(self) -> int:
        if self.head_error:
            raise self.head_error
        return self.head

    async def get_logs(self, log_filter: dict, kind: str = "") -> list[RawLog]:
        self.log_queries.append((log_filter, kind))
        if kind in self.log_errors:
            raise self.log_errors[kind]
        return list(self.logs.get(kind, []))

    async def get_block(self, number: int) -> BlockCacheEntry:
        self.block_fetches.append(number)
        if self.block_error:
            raise self.block_error
        return BlockCacheEntry(number, self.head_timestamp - (self.head - number) * 3)

    async def call(self, contract: str, method: str) -> bytes:
        info = self.tokens.get(contract.lower())
        if info is None:
            return b""
        name, symbol = info
        if method == "name()":
            return abi_string(name)
        if method == "symbol()":
            return abi_string(symbol)
        if method == "decimals()":
            return abi_uint(18)
        if method == "totalSupply()":
            return abi_uint(1_000_000 * 10**18)
        return b""


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def fixed_now():
    return datetime.fromtimestamp(HEAD_TIMESTAMP, tz=timezone.utc)


@pytest.fixture
def fake_rpc():
    return FakeChainRpc()


@pytest.fixture
def no_sleep():
    """Recorded, instant sleep for retry tests."""
    return AsyncMock()


@pytest.fixture
def chain_helpers():
    """Log and ABI builders."""
    return SimpleNamespace(
        addr=addr,
        abi_hex=abi_hex,
        make_log=make_log,
        topic=address_to_topic,
        head=HEAD_BLOCK,
        head_timestamp=HEAD_TIMESTAMP,
    )
