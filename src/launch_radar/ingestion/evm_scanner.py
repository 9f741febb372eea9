"""
Launch detection on an EVM chain by scanning recent event logs.

Strategies run concurrently over the window [head - W, head]:
    pair_created     - factory PairCreated events
    liquidity_added  - router AddLiquidityETH / AddLiquidity events
    v3_pool_created  - V3 factory PoolCreated events (off by default)

If every strategy comes back empty, a mint_transfer heuristic scans a small
sub-window for Transfer events from the zero address.

A strategy failure is recorded in ScanResult.unit_errors and never cancels its
siblings. A log that fails to decode is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from .block_cache import BlockCache, BlockCacheEntry
from .errors import DecodeError, RateLimitError
from .evm_client import ChainRpc, TokenMetadataReader
from .evm_decoders import (
    ADD_LIQUIDITY_ETH_TOPIC,
    ADD_LIQUIDITY_TOPIC,
    KIND_ADD_LIQUIDITY,
    KIND_ADD_LIQUIDITY_ETH,
    KIND_MINT,
    KIND_PAIR_CREATED,
    KIND_POOL_CREATED,
    PAIR_CREATED_TOPIC,
    PANCAKE_ROUTERS,
    PANCAKE_V2_FACTORY,
    PANCAKE_V3_FACTORY,
    POOL_CREATED_TOPIC,
    TRANSFER_TOPIC,
    WBNB,
    ZERO_ADDRESS_TOPIC,
    DecodedPair,
    DecodedToken,
    decode_liquidity,
    decode_mint,
    decode_pair_created,
    decode_pool_created,
)
from .models import (
    AssetRecord,
    ChainTag,
    RawLog,
    RiskAnnotation,
    ScanResult,
    dedup_by_address,
    sort_newest_first,
    utc_now,
)
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

LIQUIDITY_RISK = RiskAnnotation(score=50, factors=("New token",))
MINT_RISK = RiskAnnotation(score=70, factors=("New mint detected", "No liquidity verified"))


@dataclass(frozen=True)
class EvmScannerConfig:
    """Configuration for ChainLogScanner."""

    chain: ChainTag = ChainTag.BNB
    block_interval_seconds: float = 3.0
    lookback_seconds: float = 300.0

    factory_address: str = PANCAKE_V2_FACTORY
    routers: tuple[str, ...] = PANCAKE_ROUTERS
    v3_factory_address: str = PANCAKE_V3_FACTORY
    wrapped_native: str = WBNB
    enable_v3: bool = False

    mint_window_blocks: int = 20
    mint_max_logs: int = 50

    strategy_timeout: float = 120.0
    block_retry_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_attempts=3, base_delay=1.0)
    )

    dextools_chain: str = "bnb"
    dexscreener_chain: str = "bsc"

    @property
    def window_blocks(self) -> int:
        return int(self.lookback_seconds // self.block_interval_seconds)


class ChainLogScanner:
    """
    Scans an EVM chain for newly launched assets.

    Usage:
        async with EvmRpcClient(url) as rpc:
            scanner = ChainLogScanner(rpc)
            result = await scanner.scan()
    """

    def __init__(
        self,
        rpc: ChainRpc,
        config: Optional[EvmScannerConfig] = None,
        cache: Optional[BlockCache] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._rpc = rpc
        self._config = config or EvmScannerConfig()
        self._cache = cache if cache is not None else BlockCache()
        self._tokens = TokenMetadataReader(rpc)
        self._clock = clock

    @property
    def config(self) -> EvmScannerConfig:
        return self._config

    @property
    def cache(self) -> BlockCache:
        return self._cache

    async def scan(self) -> ScanResult[AssetRecord]:
        """Run every strategy over the current window."""
        try:
            head = await self._rpc.get_block_number()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Cannot read head block on {self._config.chain.value}: {e}")
            return ScanResult.failed(f"head block unavailable: {e}")

        from_block = max(0, head - self._config.window_blocks)
        logger.info(
            f"Scanning {self._config.chain.value} blocks {from_block} to {head}"
        )

        strategies: dict[str, Callable[[int, int], Awaitable[list[AssetRecord]]]] = {
            "pair_created": self._scan_pair_created,
            "liquidity_added": self._scan_liquidity_added,
        }
        if self._config.enable_v3:
            strategies["v3_pool_created"] = self._scan_v3_pools

        records, errors = await self._run_strategies(strategies, from_block, head)

        if not records:
            logger.info("No launches from primary strategies, running mint heuristic")
            fallback, fallback_errors = await self._run_strategies(
                {"mint_transfer": self._scan_mints}, from_block, head
            )
            records.extend(fallback)
            errors.update(fallback_errors)
            attempted = len(strategies) + 1
        else:
            attempted = len(strategies)

        unique = sort_newest_first(dedup_by_address(records))
        logger.info(
            f"{self._config.chain.value} scan found {len(unique)} launches "
            f"({len(records)} before dedup, {len(errors)} strategies failed)"
        )

        if len(errors) == attempted:
            return ScanResult.failed("all strategies failed", unit_errors=errors)
        return ScanResult(success=True, records=unique, unit_errors=errors)

    async def _run_strategies(
        self,
        strategies: dict[str, Callable[[int, int], Awaitable[list[AssetRecord]]]],
        from_block: int,
        to_block: int,
    ) -> tuple[list[AssetRecord], dict[str, str]]:
        names = list(strategies)
        outcomes = await asyncio.gather(
            *(
                asyncio.wait_for(strategies[name](from_block, to_block), self._config.strategy_timeout)
                for name in names
            ),
            return_exceptions=True,
        )

        records: list[AssetRecord] = []
        errors: dict[str, str] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                reason = "timed out" if isinstance(outcome, asyncio.TimeoutError) else str(outcome)
                logger.warning(f"Strategy {name} failed: {reason}")
                errors[name] = reason or type(outcome).__name__
                continue
            logger.debug(f"Strategy {name} produced {len(outcome)} records")
            records.extend(outcome)
        return records, errors

    # =========================================================================
    # Strategies
    # =========================================================================

    async def _scan_pair_created(self, from_block: int, to_block: int) -> list[AssetRecord]:
        logs = await self._rpc.get_logs(
            {
                "address": self._config.factory_address,
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [PAIR_CREATED_TOPIC],
            },
            kind=KIND_PAIR_CREATED,
        )
        return await self._decode_all(logs, self._pair_record, decode_pair_created)

    async def _scan_v3_pools(self, from_block: int, to_block: int) -> list[AssetRecord]:
        logs = await self._rpc.get_logs(
            {
                "address": self._config.v3_factory_address,
                "fromBlock": from_block,
                "toBlock": to_block,
                "topics": [POOL_CREATED_TOPIC],
            },
            kind=KIND_POOL_CREATED,
        )
        return await self._decode_all(logs, self._pair_record, decode_pool_created)

    async def _scan_liquidity_added(self, from_block: int, to_block: int) -> list[AssetRecord]:
        queries = []
        for router in self._config.routers:
            for topic, kind in (
                (ADD_LIQUIDITY_ETH_TOPIC, KIND_ADD_LIQUIDITY_ETH),
                (ADD_LIQUIDITY_TOPIC, KIND_ADD_LIQUIDITY),
            ):
                queries.append((
                    f"{router}:{kind}",
                    self._rpc.get_logs(
                        {
                            "address": router,
                            "fromBlock": from_block,
                            "toBlock": to_block,
                            "topics": [topic],
                        },
                        kind=kind,
                    ),
                ))

        outcomes = await asyncio.gather(*(q for _, q in queries), return_exceptions=True)

        logs: list[RawLog] = []
        failures: list[BaseException] = []
        for (label, _), outcome in zip(queries, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(f"Liquidity query {label} failed: {outcome}")
                failures.append(outcome)
                continue
            logs.extend(outcome)

        if queries and len(failures) == len(queries):
            raise failures[0]

        native = self._config.wrapped_native
        return await self._decode_all(
            logs, self._liquidity_record, lambda log: decode_liquidity(log, native)
        )

    async def _scan_mints(self, from_block: int, to_block: int) -> list[AssetRecord]:
        start = max(from_block, to_block - self._config.mint_window_blocks)
        logs = await self._rpc.get_logs(
            {
                "fromBlock": start,
                "toBlock": to_block,
                "topics": [TRANSFER_TOPIC, ZERO_ADDRESS_TOPIC],
            },
            kind=KIND_MINT,
        )

        seen: set[str] = set()
        unique_logs = []
        for log in logs[: self._config.mint_max_logs]:
            address = log.address.lower()
            if address in seen:
                continue
            seen.add(address)
            unique_logs.append(log)

        return await self._decode_all(unique_logs, self._mint_record, decode_mint)

    # =========================================================================
    # Decoding
    # =========================================================================

    async def _decode_all(self, logs, build, decoder) -> list[AssetRecord]:
        """Decode each log; a failing log is skipped, never the batch."""
        records = []
        for log in logs:
            try:
                decoded = decoder(log)
                if decoded is None:
                    continue
                record = await build(decoded)
            except DecodeError as e:
                logger.debug(f"Skipping {log.kind} log in tx {log.transaction_hash}: {e}")
                continue
            if record is not None:
                records.append(record)
        return records

    async def _pair_record(self, pair: DecodedPair) -> AssetRecord:
        (name0, symbol0), (name1, symbol1) = await asyncio.gather(
            self._tokens.names(pair.token0),
            self._tokens.names(pair.token1),
        )
        launch_time = await self.block_time(pair.block_number)
        name = f"{name0} / {name1}"
        if pair.v3:
            name += " V3"
        return AssetRecord(
            id=pair.record_id,
            symbol=f"{symbol0}/{symbol1}",
            name=name,
            chain=self._config.chain,
            contract_address=pair.address,
            launch_time=launch_time,
            urls=self._urls(pair.address),
        )

    async def _liquidity_record(self, token: DecodedToken) -> AssetRecord:
        info = await self._tokens.full_info(token.address)
        launch_time = await self.block_time(token.block_number)
        return AssetRecord(
            id=token.record_id,
            symbol=info["symbol"],
            name=info["name"],
            chain=self._config.chain,
            contract_address=token.address,
            launch_time=launch_time,
            urls=self._urls(token.address),
            total_supply=info["total_supply"],
            liquidity=Decimal("0"),
            risk=LIQUIDITY_RISK,
        )

    async def _mint_record(self, token: DecodedToken) -> Optional[AssetRecord]:
        info = await self._tokens.full_info(token.address)
        if info["symbol"] == "UNKNOWN":
            return None
        launch_time = await self.block_time(token.block_number)
        return AssetRecord(
            id=token.record_id,
            symbol=info["symbol"],
            name=info["name"],
            chain=self._config.chain,
            contract_address=token.address,
            launch_time=launch_time,
            urls=self._urls(token.address),
            total_supply=info["total_supply"],
            risk=MINT_RISK,
        )

    def _urls(self, address: str) -> dict[str, str]:
        return {
            "dextools": f"https://www.dextools.io/app/en/{self._config.dextools_chain}/pair-explorer/{address}",
            "dexscreener": f"https://dexscreener.com/{self._config.dexscreener_chain}/{address}",
        }

    # =========================================================================
    # Block timestamps
    # =========================================================================

    async def block_time(self, number: int) -> datetime:
        """
        Launch time for a block.

        Uses the cache, then a live fetch retried on rate limits. If the block
        stays unavailable, "now" is returned and nothing is cached.
        """
        try:
            entry = await self._cache.get_or_fetch(number, self._fetch_block)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Block {number} unavailable ({e}), using current time")
            return self._clock()
        return datetime.fromtimestamp(entry.timestamp, tz=timezone.utc)

    async def _fetch_block(self, number: int) -> BlockCacheEntry:
        return await retry_async(
            lambda: self._rpc.get_block(number),
            self._config.block_retry_policy,
            description=f"get_block({number})",
            classify=lambda e: isinstance(e, RateLimitError),
        )
