"""
Launch detection on Sui by querying the Move event index.

One TimeRange query per scan is shared by every (package, event) pair. If it
fails, each pair falls back to MoveEventType queries over the package's known
modules. A failing pair is logged and skipped; its siblings proceed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .errors import DecodeError, UpstreamError
from .models import (
    AssetRecord,
    ChainTag,
    ScanResult,
    dedup_by_address,
    sort_newest_first,
    utc_now,
)
from .move_payloads import decode_payload, event_id
from .sui_client import MoveEventIndex, move_event_type_query, time_range_query

logger = logging.getLogger(__name__)

DEFAULT_MODULES = ("factory", "pool", "swap", "pair")


@dataclass(frozen=True)
class MovePackage:
    """A DEX package, the event names it emits and its module names."""
    package_id: str
    events: tuple[str, ...]
    modules: tuple[str, ...] = ()
    label: str = ""

    @property
    def known_modules(self) -> tuple[str, ...]:
        return self.modules or DEFAULT_MODULES

    @property
    def display(self) -> str:
        return self.label or f"{self.package_id[:10]}..."


CETUS = MovePackage(
    package_id="0x1eabed72c53feb3805120a081dc15963c204dc8d091542592abaf7a35689b2fb",
    events=("PoolCreatedEvent", "AddLiquidityEvent"),
    modules=("factory", "pool", "clmm_pool", "amm_swap"),
    label="cetus",
)
TURBOS = MovePackage(
    package_id="0x91bfbc386a41afcfd9b2533058d7e915a1d3829089cc268ff4333d54d6339ca1",
    events=("PoolCreated", "LiquidityAdded"),
    modules=("swap", "pool_factory", "pool", "turbos_swap"),
    label="turbos",
)
GENERIC_FACTORY = MovePackage(
    package_id="0x886b3ff4623c7a9d101e0470012e0612621fbc67fa4cedddd3b17b273e35a50e",
    events=("PairCreated",),
    modules=("factory", "pair", "swap"),
    label="factory",
)


@dataclass(frozen=True)
class MoveScannerConfig:
    """Configuration for MoveEventScanner."""

    chain: ChainTag = ChainTag.SUI
    packages: tuple[MovePackage, ...] = (CETUS, TURBOS, GENERIC_FACTORY)
    lookback_seconds: float = 300.0
    time_range_limit: int = 100
    event_type_limit: int = 50
    query_timeout: float = 30.0
    dextools_chain: str = "sui"
    dexscreener_chain: str = "sui"


class MoveEventScanner:
    """
    Scans Sui DEX packages for pool and liquidity events.

    Usage:
        scanner = MoveEventScanner(SuiEventClient(url))
        result = await scanner.scan()
    """

    def __init__(
        self,
        index: MoveEventIndex,
        config: Optional[MoveScannerConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._index = index
        self._config = config or MoveScannerConfig()
        self._clock = clock

    @property
    def config(self) -> MoveScannerConfig:
        return self._config

    async def scan(self) -> ScanResult[AssetRecord]:
        now = self._clock()
        since = now - timedelta(seconds=self._config.lookback_seconds)
        logger.info(f"Scanning {self._config.chain.value} events since {since.isoformat()}")

        shared: Optional[list[dict]] = None
        try:
            shared = await self._query(
                time_range_query(_to_ms(since), _to_ms(now)),
                self._config.time_range_limit,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"TimeRange query failed ({e}), falling back to per-module queries")

        units = [
            (package, event)
            for package in self._config.packages
            for event in package.events
        ]
        outcomes = await asyncio.gather(
            *(self._scan_unit(package, event, shared, since) for package, event in units),
            return_exceptions=True,
        )

        records: list[AssetRecord] = []
        errors: dict[str, str] = {}
        for (package, event), outcome in zip(units, outcomes):
            key = f"{package.display}::{event}"
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning(f"Sui {key} scan failed: {outcome}")
                errors[key] = str(outcome) or type(outcome).__name__
                continue
            logger.debug(f"Sui {key}: {len(outcome)} events")
            records.extend(outcome)

        unique = sort_newest_first(dedup_by_address(records))
        logger.info(f"{self._config.chain.value} scan found {len(unique)} launches")

        if units and len(errors) == len(units):
            return ScanResult.failed("all event queries failed", unit_errors=errors)
        return ScanResult(success=True, records=unique, unit_errors=errors)

    async def _query(self, query: dict, limit: int) -> list[dict]:
        return await asyncio.wait_for(
            self._index.query_events(query, limit), self._config.query_timeout
        )

    async def _scan_unit(
        self,
        package: MovePackage,
        event_name: str,
        shared: Optional[list[dict]],
        since: datetime,
    ) -> list[AssetRecord]:
        if shared is not None:
            events = [
                ev for ev in shared
                if isinstance(ev, dict)
                and package.package_id in str(ev.get("type") or "")
                and event_name in str(ev.get("type") or "")
            ]
        else:
            events = await self._query_by_module(package, event_name)

        records = []
        for ev in events:
            if not isinstance(ev, dict):
                continue
            launch_time = self._event_time(ev)
            if launch_time < since:
                continue
            try:
                record = self._to_record(ev, launch_time)
            except DecodeError as e:
                logger.debug(f"Skipping Sui event {ev.get('type')}: {e}")
                continue
            if record is not None:
                records.append(record)
        return records

    async def _query_by_module(self, package: MovePackage, event_name: str) -> list[dict]:
        """Fully-qualified event type per known module; a failing module is skipped."""
        events: list[dict] = []
        failures = 0
        modules = package.known_modules
        for module in modules:
            event_type = f"{package.package_id}::{module}::{event_name}"
            try:
                events.extend(
                    await self._query(move_event_type_query(event_type), self._config.event_type_limit)
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failures += 1
                logger.debug(f"MoveEventType {event_type} failed: {e}")
        if modules and failures == len(modules):
            raise UpstreamError(f"every module query failed for {package.display}::{event_name}")
        return events

    def _event_time(self, ev: dict) -> datetime:
        raw = ev.get("timestampMs")
        if raw is None:
            return self._clock()
        try:
            return datetime.fromtimestamp(int(raw) / 1000, tz=timezone.utc)
        except (TypeError, ValueError):
            return self._clock()

    def _to_record(self, ev: dict, launch_time: datetime) -> Optional[AssetRecord]:
        try:
            match = decode_payload(ev)
        except (AttributeError, TypeError, ValueError) as e:
            raise DecodeError(f"malformed payload: {e}") from e
        if not match.address:
            logger.debug(f"Discarding Sui event without address: {ev.get('type')}")
            return None

        event_seq = event_id(ev).get("eventSeq")
        if event_seq is None:
            event_seq = _to_ms(launch_time)
        address = match.address
        return AssetRecord(
            id=f"{address}-{event_seq}",
            symbol=match.symbol,
            name=match.name,
            chain=self._config.chain,
            contract_address=address,
            launch_time=launch_time,
            urls={
                "dextools": f"https://www.dextools.io/app/en/{self._config.dextools_chain}/pair-explorer/{address}",
                "dexscreener": f"https://dexscreener.com/{self._config.dexscreener_chain}/{address}",
            },
        )


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)
