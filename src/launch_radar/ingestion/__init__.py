"""
Ingestion Layer - Chain scanners, news aggregation and upstream clients.

This module provides launch detection and news discovery:
    - ChainLogScanner: EVM log scanning (pair creation, liquidity, mint heuristic)
    - MoveEventScanner: Sui event-index scanning with tolerant payload decoding
    - NewsAggregator: primary + ordered fallback for general news, concurrent
      sources for chain news
    - DexScreenerListingSource: external listings with market data
    - EvmRpcClient, SuiEventClient, news sources: the upstream clients

Failure Isolation:
    - One strategy, event query or news source failing never cancels siblings
    - A single undecodable log or event is skipped, not the batch
    - A block timestamp that cannot be fetched falls back to "now"

Usage:
    from launch_radar.ingestion import ChainLogScanner, EvmRpcClient

    async with EvmRpcClient(rpc_url) as rpc:
        result = await ChainLogScanner(rpc).scan()
        for record in result.records:
            print(record.symbol, record.contract_address)
"""

# Models
from .models import (
    GENERAL_NEWS,
    AssetRecord,
    ChainTag,
    ContentKind,
    NewsRecord,
    RawLog,
    RiskAnnotation,
    ScanResult,
    normalize_title,
)

# Errors
from .errors import (
    ConfigurationMissingError,
    CycleFailedError,
    DecodeError,
    RadarError,
    RateLimitError,
    UpstreamError,
    UpstreamUnavailableError,
)

# Retry / rate limiting
from .retry import MinIntervalGate, RetryPolicy, retry_async

# Block cache
from .block_cache import BlockCache, BlockCacheEntry

# EVM
from .evm_client import ChainRpc, EvmRpcClient, TokenMetadataReader
from .evm_scanner import ChainLogScanner, EvmScannerConfig

# Sui
from .sui_client import MoveEventIndex, SuiEventClient
from .move_scanner import MovePackage, MoveEventScanner, MoveScannerConfig

# News
from .news_sources import (
    CryptoPanicSource,
    NewsApiSource,
    NewsSource,
    RssFeedSource,
    default_general_sources,
    default_sui_sources,
)
from .news_aggregator import AggregatedNews, NewsAggregator, NewsAggregatorConfig, NewsResult

# Listings
from .listing_source import DexScreenerListingSource

__all__ = [
    # Models
    "GENERAL_NEWS",
    "AssetRecord",
    "ChainTag",
    "ContentKind",
    "NewsRecord",
    "RawLog",
    "RiskAnnotation",
    "ScanResult",
    "normalize_title",
    # Errors
    "ConfigurationMissingError",
    "CycleFailedError",
    "DecodeError",
    "RadarError",
    "RateLimitError",
    "UpstreamError",
    "UpstreamUnavailableError",
    # Retry
    "MinIntervalGate",
    "RetryPolicy",
    "retry_async",
    # Cache
    "BlockCache",
    "BlockCacheEntry",
    # EVM
    "ChainRpc",
    "EvmRpcClient",
    "TokenMetadataReader",
    "ChainLogScanner",
    "EvmScannerConfig",
    # Sui
    "MoveEventIndex",
    "SuiEventClient",
    "MovePackage",
    "MoveEventScanner",
    "MoveScannerConfig",
    # News
    "CryptoPanicSource",
    "NewsApiSource",
    "NewsSource",
    "RssFeedSource",
    "default_general_sources",
    "default_sui_sources",
    "AggregatedNews",
    "NewsAggregator",
    "NewsAggregatorConfig",
    "NewsResult",
    # Listings
    "DexScreenerListingSource",
]
