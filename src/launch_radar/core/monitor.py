"""
Scan-cycle orchestration: source -> filter -> reconciler -> store.

Each cycle completes and returns a CycleReport. CycleFailedError is raised
only when every sub-operation of the cycle failed.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol

from launch_radar.ingestion.errors import ConfigurationMissingError, CycleFailedError
from launch_radar.ingestion.models import AssetRecord, ChainTag, ScanResult
from launch_radar.ingestion.news_aggregator import NewsAggregator

from .filters import ListingThresholdFilter, NewPairFilter
from .reconciler import ReconcileReport, Reconciler

logger = logging.getLogger(__name__)


class LaunchScanner(Protocol):
    async def scan(self) -> ScanResult[AssetRecord]: ...


class ListingSource(Protocol):
    async def fetch_listings(self, chain: ChainTag) -> ScanResult[AssetRecord]: ...


@dataclass
class CycleReport:
    """Counts for one monitoring cycle."""

    task: str
    found: int = 0
    accepted: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def add(self, report: ReconcileReport) -> None:
        self.saved += report.saved
        self.skipped += report.skipped
        self.failed += report.failed

    def summary(self) -> str:
        return (
            f"{self.task}: found={self.found} accepted={self.accepted} saved={self.saved} "
            f"skipped={self.skipped} failed={self.failed}"
        )


class LaunchMonitor:
    """
    Runs launch, listing and news cycles.

    Usage:
        monitor = LaunchMonitor(
            reconciler,
            scanners={ChainTag.BNB: evm_scanner, ChainTag.SUI: move_scanner},
            aggregator=aggregator,
        )
        report = await monitor.monitor_network(ChainTag.BNB)
    """

    def __init__(
        self,
        reconciler: Reconciler,
        scanners: Optional[Mapping[ChainTag, LaunchScanner]] = None,
        listing_source: Optional[ListingSource] = None,
        aggregator: Optional[NewsAggregator] = None,
        new_pair_filter: Optional[NewPairFilter] = None,
        listing_filter: Optional[ListingThresholdFilter] = None,
    ) -> None:
        self._reconciler = reconciler
        self._scanners = dict(scanners or {})
        self._listing_source = listing_source
        self._aggregator = aggregator
        self._new_pair_filter = new_pair_filter or NewPairFilter()
        self._listing_filter = listing_filter or ListingThresholdFilter()

    async def monitor_network(self, chain: ChainTag) -> CycleReport:
        """Scan one chain for launches and persist the new ones."""
        scanner = self._scanners.get(chain)
        if scanner is None:
            raise ConfigurationMissingError(f"No scanner configured for {chain.value}")

        logger.info(f"Monitoring {chain.value} network...")
        result = await scanner.scan()
        return await self._persist(
            f"launches:{chain.value}", result, self._new_pair_filter
        )

    async def monitor_listings(self, chain: ChainTag) -> CycleReport:
        """External listings for a chain, through the threshold filter."""
        if self._listing_source is None:
            raise ConfigurationMissingError("No listing source configured")

        logger.info(f"Fetching {chain.value} listings...")
        result = await self._listing_source.fetch_listings(chain)
        return await self._persist(f"listings:{chain.value}", result, self._listing_filter)

    async def _persist(
        self,
        task: str,
        result: ScanResult[AssetRecord],
        policy: NewPairFilter,
    ) -> CycleReport:
        report = CycleReport(task=task, errors=dict(result.unit_errors))
        if not result.success:
            logger.error(f"{task} failed: {result.error}")
            raise CycleFailedError(f"{task}: {result.error}")

        accepted = policy.apply(result.records)
        report.found = len(result.records)
        report.accepted = len(accepted)
        report.add(await self._reconciler.persist_assets(accepted))

        logger.info(report.summary())
        if report.accepted and report.failed == report.accepted:
            raise CycleFailedError(f"{task}: every save failed")
        return report

    async def monitor_news(self) -> CycleReport:
        """General and per-chain news; each path is persisted separately."""
        if self._aggregator is None:
            raise ConfigurationMissingError("No news aggregator configured")

        logger.info("Starting crypto news monitoring...")
        news = await self._aggregator.get_all_news()
        report = CycleReport(task="news", found=len(news.combined))

        paths = [("general", news.general)] + list(news.by_chain.items())
        failed_paths = 0
        for name, result in paths:
            if not result.success:
                failed_paths += 1
                report.errors[name] = result.error or "failed"
                logger.warning(f"{name} news unavailable: {result.error}")
                continue
            if not result.items:
                continue
            report.accepted += len(result.items)
            try:
                saved = await self._reconciler.persist_news(result.items)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failed_paths += 1
                report.errors[name] = str(e)
                logger.error(f"Saving {name} news failed: {e}")
                continue
            report.add(saved)
            logger.info(f"{name} news: {saved.saved} saved, {saved.skipped} duplicates")

        logger.info(report.summary())
        if failed_paths == len(paths):
            raise CycleFailedError(f"news: every path failed ({report.errors})")
        return report
