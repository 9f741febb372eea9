"""
Reconciliation of scanner output against stored records.

The existence check is a fast path only. Stores enforce uniqueness with a
unique index, and a conflicting insert comes back as UpsertOutcome.DUPLICATE,
which is counted as skipped rather than as an error.

Dedup keys:
    assets - (contract address lower-cased, chain tag)
    news   - normalized title
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Hashable, Optional, Protocol, Sequence, TypeVar

from launch_radar.ingestion.models import AssetRecord, NewsRecord

logger = logging.getLogger(__name__)

R = TypeVar("R")


class UpsertOutcome(str, Enum):
    """Result of a store insert."""
    INSERTED = "inserted"
    DUPLICATE = "duplicate"


class AssetStore(Protocol):
    async def find_by_key(self, key: tuple[str, str]): ...

    async def existing_keys(self, keys: Sequence[tuple[str, str]]) -> set[tuple[str, str]]: ...

    async def upsert(self, record: AssetRecord) -> UpsertOutcome: ...


class NewsStore(Protocol):
    async def find_by_key(self, key: str): ...

    async def existing_keys(self, keys: Sequence[str]) -> set[str]: ...

    async def upsert(self, record: NewsRecord) -> UpsertOutcome: ...


@dataclass
class ReconcileReport:
    """Counts for one persist call."""
    processed: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0

    def merge(self, other: "ReconcileReport") -> "ReconcileReport":
        return ReconcileReport(
            processed=self.processed + other.processed,
            saved=self.saved + other.saved,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
        )


class _Pipeline(Generic[R]):
    """Dedup-then-insert for one record type."""

    def __init__(self, store, key: Callable[[R], Hashable], label: str) -> None:
        self._store = store
        self._key = key
        self._label = label

    async def new_records(self, candidates: Sequence[R]) -> list[R]:
        batch_unique: list[R] = []
        seen: set = set()
        for record in candidates:
            key = self._key(record)
            if key in seen:
                continue
            seen.add(key)
            batch_unique.append(record)

        if not batch_unique:
            return []

        try:
            existing = await self._store.existing_keys([self._key(r) for r in batch_unique])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The unique index still rejects duplicates on insert
            logger.warning(f"Existing-{self._label} lookup failed ({e}), relying on store constraint")
            existing = set()

        return [r for r in batch_unique if self._key(r) not in existing]

    async def persist(self, candidates: Sequence[R]) -> ReconcileReport:
        fresh = await self.new_records(candidates)
        report = ReconcileReport(processed=len(candidates), skipped=len(candidates) - len(fresh))

        for record in fresh:
            try:
                outcome = await self._store.upsert(record)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                report.failed += 1
                logger.error(f"Error saving {self._label} {self._key(record)}: {e}")
                continue

            if outcome == UpsertOutcome.DUPLICATE:
                report.skipped += 1
                logger.debug(f"{self._label} {self._key(record)} already stored")
            else:
                report.saved += 1

        logger.info(
            f"{self._label} save summary: {report.saved} new, {report.skipped} duplicates, "
            f"{report.failed} failed"
        )
        return report


class Reconciler:
    """
    Emits only records not already stored, then persists them.

    Usage:
        reconciler = Reconciler(asset_repo, news_repo)
        report = await reconciler.persist_assets(scan_result.records)
    """

    def __init__(self, asset_store: Optional[AssetStore] = None, news_store: Optional[NewsStore] = None) -> None:
        self._assets = _Pipeline(asset_store, lambda r: r.dedup_key, "asset") if asset_store else None
        self._news = _Pipeline(news_store, lambda r: r.dedup_key, "news") if news_store else None

    def _asset_pipeline(self) -> _Pipeline:
        if self._assets is None:
            raise RuntimeError("Reconciler has no asset store")
        return self._assets

    def _news_pipeline(self) -> _Pipeline:
        if self._news is None:
            raise RuntimeError("Reconciler has no news store")
        return self._news

    async def new_assets(self, candidates: Sequence[AssetRecord]) -> list[AssetRecord]:
        """Candidates absent from the batch so far and from the store, in order."""
        return await self._asset_pipeline().new_records(candidates)

    async def new_news(self, candidates: Sequence[NewsRecord]) -> list[NewsRecord]:
        return await self._news_pipeline().new_records(candidates)

    async def persist_assets(self, candidates: Sequence[AssetRecord]) -> ReconcileReport:
        return await self._asset_pipeline().persist(candidates)

    async def persist_news(self, candidates: Sequence[NewsRecord]) -> ReconcileReport:
        return await self._news_pipeline().persist(candidates)
