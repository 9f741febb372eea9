"""
External token listings from the DexScreener API.

Listings carry market data and go through ListingThresholdFilter, unlike
on-chain detections.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from .errors import DecodeError, RateLimitError, UpstreamError, UpstreamUnavailableError
from .models import AssetRecord, ChainTag, ScanResult, dedup_by_address, sort_newest_first, utc_now
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

DEXSCREENER_BASE_URL = "https://api.dexscreener.com"
DEXSCREENER_CHAIN_IDS = {ChainTag.BNB: "bsc", ChainTag.SUI: "sui"}


def _decimal(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


class DexScreenerListingSource:
    """
    Searches DexScreener for pairs on a chain.

    Usage:
        async with DexScreenerListingSource(api_key) as source:
            result = await source.fetch_listings(ChainTag.BNB)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEXSCREENER_BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=2)

    async def __aenter__(self) -> "DexScreenerListingSource":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    def _headers(self) -> dict[str, str]:
        return {"X-API-Key": self._api_key} if self._api_key else {}

    async def fetch_listings(self, chain: ChainTag) -> ScanResult[AssetRecord]:
        """Pairs listed on DexScreener for a chain, newest first."""
        chain_id = DEXSCREENER_CHAIN_IDS[chain]
        try:
            data = await retry_async(
                lambda: self._get("/latest/dex/search", {"q": chain_id}),
                self._retry_policy,
                description=f"DexScreener search {chain_id}",
            )
            records = self.parse_pairs(data, chain)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"DexScreener listings for {chain.value} failed: {e}")
            return ScanResult.failed(str(e))

        logger.info(f"DexScreener returned {len(records)} {chain.value} listings")
        return ScanResult(success=True, records=sort_newest_first(dedup_by_address(records)))

    async def _get(self, path: str, params: dict) -> Any:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=self._headers())
            self._owns_session = True
        try:
            async with self._session.get(f"{self._base_url}{path}", params=params) as response:
                if response.status == 429:
                    raise RateLimitError("DexScreener rate limit", status_code=429)
                if response.status >= 500:
                    raise UpstreamUnavailableError(
                        f"DexScreener server error {response.status}", status_code=response.status
                    )
                if response.status >= 400:
                    raise UpstreamError(
                        f"DexScreener error {response.status}", status_code=response.status
                    )
                return await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError("DexScreener request timed out") from e
        except aiohttp.ClientError as e:
            raise UpstreamUnavailableError(f"DexScreener request failed: {e}") from e

    def parse_pairs(self, data: Any, chain: ChainTag) -> list[AssetRecord]:
        if not isinstance(data, dict):
            raise DecodeError("DexScreener response is not an object")

        chain_id = DEXSCREENER_CHAIN_IDS[chain]
        records = []
        for pair in data.get("pairs") or []:
            if pair.get("chainId") != chain_id:
                continue
            record = self._parse_pair(pair, chain)
            if record is not None:
                records.append(record)
        return records

    def _parse_pair(self, pair: dict, chain: ChainTag) -> Optional[AssetRecord]:
        try:
            base = pair["baseToken"]
            created_ms = pair.get("pairCreatedAt")
            launch_time = (
                datetime.fromtimestamp(int(created_ms) / 1000, tz=timezone.utc)
                if created_ms else utc_now()
            )
            liquidity = (pair.get("liquidity") or {}).get("usd")
            txns = (pair.get("txns") or {}).get("h24") or {}
            return AssetRecord(
                id=pair["pairAddress"],
                symbol=base.get("symbol") or "",
                name=base.get("name") or "",
                chain=chain,
                contract_address=(base.get("address") or "").lower(),
                launch_time=launch_time,
                market_cap=_decimal(pair.get("fdv") or pair.get("marketCap")),
                volume_24h=_decimal((pair.get("volume") or {}).get("h24")),
                price=_decimal(pair.get("priceUsd")),
                price_change_24h=_decimal((pair.get("priceChange") or {}).get("h24")),
                urls={"dexscreener": pair.get("url") or ""},
                liquidity=_decimal(liquidity) if liquidity is not None else None,
                transactions_24h=(
                    int(txns.get("buys", 0)) + int(txns.get("sells", 0)) if txns else None
                ),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse DexScreener pair: {e}")
            return None
