"""
Pure decoders from raw EVM logs to decoded detection events.

Decoders never touch the network. Auxiliary reads (token name/symbol) and
block timestamps are resolved afterwards by ChainLogScanner.

Each decoder raises DecodeError for a malformed log; the scanner skips it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from eth_abi import decode

from .errors import DecodeError
from .evm_client import event_topic, topic_to_address
from .models import RawLog

# PancakeSwap on BNB Smart Chain
PANCAKE_V2_FACTORY = "0xca143ce32fe78f1f7019d7d551a6402fc5350c73"
PANCAKE_V3_FACTORY = "0x0BFbCF9fa4f9C56B0F40a671Ad40E0805A091865"
PANCAKE_ROUTERS = (
    "0x10ED43C718714eb63d5aA57B78B54704E256024E",
    "0x13f4EA83D0bd40E75C8222255bc855a974568Dd4",
)
WBNB = "0xbb4CdB9CBd36B01bD1cBaeBF2De08d9173bc095c"

PAIR_CREATED_TOPIC = event_topic("PairCreated(address,address,address,uint256)")
ADD_LIQUIDITY_ETH_TOPIC = event_topic(
    "AddLiquidityETH(address,uint256,uint256,uint256,address,uint256)"
)
ADD_LIQUIDITY_TOPIC = event_topic(
    "AddLiquidity(address,address,uint256,uint256,uint256,uint256,address,uint256)"
)
POOL_CREATED_TOPIC = event_topic("PoolCreated(address,address,uint24,int24,address)")
TRANSFER_TOPIC = event_topic("Transfer(address,address,uint256)")
ZERO_ADDRESS_TOPIC = "0x" + "0" * 64

# RawLog.kind values
KIND_PAIR_CREATED = "pairCreated"
KIND_ADD_LIQUIDITY_ETH = "addLiquidityETH"
KIND_ADD_LIQUIDITY = "addLiquidity"
KIND_POOL_CREATED = "poolCreated"
KIND_MINT = "mint"


@dataclass(frozen=True)
class DecodedPair:
    """A new pair or pool: asset address plus its two tokens."""
    record_id: str
    address: str
    token0: str
    token1: str
    block_number: int
    v3: bool = False


@dataclass(frozen=True)
class DecodedToken:
    """A single token surfaced by a liquidity or mint log."""
    record_id: str
    address: str
    block_number: int


def _body(log: RawLog) -> bytes:
    data = log.data[2:] if log.data.startswith("0x") else log.data
    try:
        return bytes.fromhex(data)
    except ValueError as e:
        raise DecodeError(f"Log data is not hex in tx {log.transaction_hash}") from e


def _require_topics(log: RawLog, count: int) -> None:
    if len(log.topics) < count:
        raise DecodeError(
            f"Expected {count} topics, got {len(log.topics)} in tx {log.transaction_hash}"
        )


def decode_pair_created(log: RawLog) -> DecodedPair:
    """
    PairCreated(address indexed token0, address indexed token1, address pair, uint).

    The body is normally (address, uint256); some factories emit only the
    address, and anything longer is read from its first word.
    """
    _require_topics(log, 3)
    token0 = topic_to_address(log.topics[1])
    token1 = topic_to_address(log.topics[2])

    body = _body(log)
    try:
        if len(body) == 64:
            pair, _ = decode(["address", "uint256"], body)
        elif len(body) >= 32:
            (pair,) = decode(["address"], body[:32])
        else:
            raise DecodeError(f"PairCreated body too short ({len(body)} bytes)")
    except DecodeError:
        raise
    except Exception as e:
        raise DecodeError(f"Cannot decode PairCreated body: {e}") from e

    pair = pair.lower()
    return DecodedPair(
        record_id=pair,
        address=pair,
        token0=token0,
        token1=token1,
        block_number=log.block_number,
    )


def decode_pool_created(log: RawLog) -> DecodedPair:
    """PoolCreated(token0 indexed, token1 indexed, fee indexed, int24 tickSpacing, address pool)."""
    _require_topics(log, 3)
    token0 = topic_to_address(log.topics[1])
    token1 = topic_to_address(log.topics[2])
    try:
        _, pool = decode(["int24", "address"], _body(log))
    except Exception as e:
        raise DecodeError(f"Cannot decode PoolCreated body: {e}") from e

    pool = pool.lower()
    return DecodedPair(
        record_id=f"v3-{pool}",
        address=pool,
        token0=token0,
        token1=token1,
        block_number=log.block_number,
        v3=True,
    )


def decode_liquidity(log: RawLog, wrapped_native: str = WBNB) -> Optional[DecodedToken]:
    """
    Decode an AddLiquidityETH or AddLiquidity log.

    Returns None for a token/token AddLiquidity without the wrapped native
    token on either side; those do not identify a single new asset.
    """
    body = _body(log)
    try:
        if log.kind == KIND_ADD_LIQUIDITY_ETH:
            values = decode(
                ["address", "uint256", "uint256", "uint256", "address", "uint256"], body
            )
            token = values[0]
        elif log.kind == KIND_ADD_LIQUIDITY:
            values = decode(
                ["address", "address", "uint256", "uint256", "uint256", "uint256", "address", "uint256"],
                body,
            )
            token_a, token_b = values[0].lower(), values[1].lower()
            native = wrapped_native.lower()
            if token_a == native:
                token = token_b
            elif token_b == native:
                token = token_a
            else:
                return None
        else:
            raise DecodeError(f"Not a liquidity log: {log.kind!r}")
    except DecodeError:
        raise
    except Exception as e:
        raise DecodeError(f"Cannot decode {log.kind} body: {e}") from e

    token = token.lower()
    return DecodedToken(
        record_id=f"{token}-{log.transaction_hash}",
        address=token,
        block_number=log.block_number,
    )


def decode_mint(log: RawLog) -> DecodedToken:
    """Transfer from the zero address; the emitting contract is the token."""
    _require_topics(log, 3)
    if log.topics[1].lower() != ZERO_ADDRESS_TOPIC:
        raise DecodeError(f"Transfer in tx {log.transaction_hash} is not a mint")
    if not log.address:
        raise DecodeError(f"Mint log in tx {log.transaction_hash} has no address")
    token = log.address.lower()
    return DecodedToken(
        record_id=f"mint-{token}-{log.transaction_hash}",
        address=token,
        block_number=log.block_number,
    )
