"""
Filtering policies applied before persistence.

Two distinct policies:
    NewPairFilter          - on-chain detections. Data integrity only; zero
                             market cap and volume are expected for new pairs.
    ListingThresholdFilter - external listings. Integrity plus minimum market
                             cap and 24h volume.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable

from launch_radar.ingestion.models import AssetRecord

logger = logging.getLogger(__name__)


class NewPairFilter:
    """Keeps records with an address, symbol, name, chain and launch time."""

    def accepts(self, record: AssetRecord) -> bool:
        return bool(
            record.contract_address
            and record.symbol
            and record.name
            and record.chain
            and record.launch_time
        )

    def apply(self, records: Iterable[AssetRecord]) -> list[AssetRecord]:
        kept = []
        for record in records:
            if self.accepts(record):
                kept.append(record)
            else:
                logger.debug(f"Filtered out incomplete record {record.id}")
        return kept


class ListingThresholdFilter(NewPairFilter):
    """Integrity checks plus market cap and volume thresholds."""

    def __init__(
        self,
        min_market_cap: Decimal = Decimal("10000"),
        min_volume_24h: Decimal = Decimal("1000"),
    ) -> None:
        self.min_market_cap = Decimal(min_market_cap)
        self.min_volume_24h = Decimal(min_volume_24h)

    def accepts(self, record: AssetRecord) -> bool:
        return (
            super().accepts(record)
            and record.market_cap >= self.min_market_cap
            and record.volume_24h >= self.min_volume_24h
        )
