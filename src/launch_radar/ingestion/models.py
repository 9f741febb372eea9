"""
Data models for the ingestion layer.

These models represent:
- Detected assets (new pairs, pools, minted tokens) from both chains
- News items from the aggregated feeds
- Raw upstream shapes (EVM logs) and per-call results

Dedup keys:
    AssetRecord - (contract address lower-cased, chain tag)
    NewsRecord  - normalized title; independent sources assign unrelated ids
                  to the same story, so the id is NOT the key
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Generic, Mapping, Optional, TypeVar


class ChainTag(str, Enum):
    """Chains the scanners cover."""
    BNB = "bnb"
    SUI = "sui"


class ContentKind(str, Enum):
    """Kind of publishable content."""
    LAUNCH = "launch"
    NEWS = "news"


GENERAL_NEWS = "general"
NEWS_CHAIN_TAGS = frozenset({ChainTag.BNB.value, ChainTag.SUI.value, GENERAL_NEWS})


def normalize_title(title: str) -> str:
    """News dedup key: lower-cased, trimmed title."""
    return (title or "").strip().lower()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RiskAnnotation:
    """Exogenous risk hint attached by a detection heuristic."""
    score: int
    factors: tuple[str, ...] = ()


@dataclass(frozen=True)
class AssetRecord:
    """
    A detected tradable asset.

    Market fields default to zero: freshly detected pairs have no market data
    yet. They are never computed here.

    Attributes:
        id: Stable identifier (strategy-specific, e.g. pair address)
        symbol: Ticker, or "SYM0/SYM1" for pairs
        name: Display name
        chain: Chain tag
        contract_address: Pair, pool, token or coin-type address
        launch_time: Creation time of the originating block/event (UTC)
        urls: Platform name -> URL (dextools, dexscreener, ...)
    """
    id: str
    symbol: str
    name: str
    chain: ChainTag
    contract_address: str
    launch_time: datetime
    market_cap: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    price_change_24h: Decimal = Decimal("0")
    urls: Mapping[str, str] = field(default_factory=dict)
    holders: Optional[int] = None
    transactions_24h: Optional[int] = None
    liquidity: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None
    verified: bool = False
    risk: Optional[RiskAnnotation] = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.contract_address.lower(), self.chain.value)


@dataclass(frozen=True)
class NewsRecord:
    """
    A discovered news item.

    Attributes:
        id: Source-assigned identifier
        title: Headline
        description: Plain-text summary (HTML stripped)
        url: Canonical article URL
        published_at: Publish time (UTC)
        coin_symbol: Associated coin symbol, may be empty
        chain: "bnb", "sui" or "general"
        source: Source name
    """
    id: str
    title: str
    description: str
    url: str
    published_at: datetime
    coin_symbol: str = ""
    chain: str = GENERAL_NEWS
    source: str = ""
    token_address: str = ""
    sentiment: Optional[str] = None
    tags: tuple[str, ...] = ()

    def __post_init__(self):
        if self.chain not in NEWS_CHAIN_TAGS:
            raise ValueError(f"Unknown news chain tag: {self.chain}")

    @property
    def dedup_key(self) -> str:
        return normalize_title(self.title)


@dataclass(frozen=True)
class RawLog:
    """An EVM log entry as returned by eth_getLogs."""
    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int
    transaction_hash: str
    log_index: int = 0
    # Which query produced the log (e.g. "addLiquidityETH")
    kind: str = ""

    @classmethod
    def from_rpc(cls, item: dict, kind: str = "") -> "RawLog":
        """Build from a JSON-RPC log object (hex-encoded numbers)."""
        return cls(
            address=item.get("address", ""),
            topics=tuple(item.get("topics") or ()),
            data=item.get("data") or "0x",
            block_number=_hex_to_int(item.get("blockNumber")),
            transaction_hash=item.get("transactionHash", ""),
            log_index=_hex_to_int(item.get("logIndex")),
            kind=kind,
        )


def _hex_to_int(value) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16) if str(value).startswith("0x") else int(value)


T = TypeVar("T")


@dataclass
class ScanResult(Generic[T]):
    """
    Outcome of one scan or fetch call.

    success is False only when the whole call failed; partial failures are
    listed in unit_errors while records still carry what succeeded.
    """
    success: bool
    records: list[T] = field(default_factory=list)
    error: Optional[str] = None
    unit_errors: dict[str, str] = field(default_factory=dict)

    @classmethod
    def failed(cls, error: str, unit_errors: Optional[dict[str, str]] = None) -> "ScanResult[T]":
        return cls(success=False, error=error, unit_errors=unit_errors or {})


def sort_newest_first(records: list[AssetRecord]) -> list[AssetRecord]:
    return sorted(records, key=lambda r: r.launch_time, reverse=True)


def sort_news_newest_first(records: list[NewsRecord]) -> list[NewsRecord]:
    return sorted(records, key=lambda r: r.published_at, reverse=True)


def dedup_by_title(records: list[NewsRecord]) -> list[NewsRecord]:
    """Keep the first record per normalized title."""
    seen: set[str] = set()
    unique = []
    for record in records:
        if record.dedup_key in seen:
            continue
        seen.add(record.dedup_key)
        unique.append(record)
    return unique


def dedup_by_address(records: list[AssetRecord]) -> list[AssetRecord]:
    """Keep the first record per contract address (case-insensitive)."""
    seen: set[str] = set()
    unique = []
    for record in records:
        key = record.contract_address.lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(record)
    return unique
