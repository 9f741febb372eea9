"""
Core layer test fixtures.

Core tests verify reconciliation, publication state and orchestration, so
the stores are in-memory doubles that enforce the same unique keys as the
PostgreSQL schema.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

import pytest

from launch_radar.ingestion.models import AssetRecord, ChainTag, ContentKind, NewsRecord
from launch_radar.core.reconciler import UpsertOutcome
from launch_radar.storage.models import PRIMARY_FLAGS, PublicationFact, StoredAsset, StoredNews

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# In-memory stores
# =============================================================================


class InMemoryAssetStore:
    """Asset store keyed by (lower-cased address, chain)."""

    def __init__(self):
        self.rows: dict[tuple[str, str], AssetRecord] = {}
        self.lookup_error: Optional[Exception] = None
        self.failing_keys: set = set()
        self.upserts = 0

    async def find_by_key(self, key):
        record = self.rows.get(key)
        return StoredAsset.from_record(record) if record else None

    async def existing_keys(self, keys):
        if self.lookup_error:
            raise self.lookup_error
        return {key for key in keys if key in self.rows}

    async def upsert(self, record):
        self.upserts += 1
        key = record.dedup_key
        if key in self.failing_keys:
            raise RuntimeError(f"write failed for {key}")
        if key in self.rows:
            return UpsertOutcome.DUPLICATE
        self.rows[key] = record
        return UpsertOutcome.INSERTED


class InMemoryNewsStore:
    """News store keyed by normalized title."""

    def __init__(self):
        self.rows: dict[str, NewsRecord] = {}
        self.lookup_error: Optional[Exception] = None
        self.upsert_error: Optional[Exception] = None

    async def find_by_key(self, key):
        record = self.rows.get(key)
        return StoredNews.from_record(record) if record else None

    async def existing_keys(self, keys):
        if self.lookup_error:
            raise self.lookup_error
        return {key for key in keys if key in self.rows}

    async def upsert(self, record):
        if self.upsert_error:
            raise self.upsert_error
        if record.dedup_key in self.rows:
            return UpsertOutcome.DUPLICATE
        self.rows[record.dedup_key] = record
        return UpsertOutcome.INSERTED


class InMemoryPublicationStore:
    """Stored items plus facts unique by (kind, item_id, destination)."""

    def __init__(self):
        self.items: dict[ContentKind, dict[str, object]] = {
            ContentKind.LAUNCH: {},
            ContentKind.NEWS: {},
        }
        self.facts: dict[tuple[str, str, str], PublicationFact] = {}

    def add_item(self, kind, item):
        self.items[ContentKind(kind)][item.id] = item

    async def select_unsent(self, kind, destination, limit):
        kind = ContentKind(kind)
        order = "launch_time" if kind == ContentKind.LAUNCH else "published_at"
        unsent = [
            item for item in self.items[kind].values()
            if (kind.value, item.id, destination) not in self.facts
        ]
        unsent.sort(key=lambda item: getattr(item, order), reverse=True)
        return unsent[:limit]

    async def has_fact(self, kind, item_id, destination):
        return (ContentKind(kind).value, item_id, destination) in self.facts

    async def insert_fact(self, fact):
        key = (fact.content_kind.value, fact.item_id, fact.destination)
        if key in self.facts:
            return False
        self.facts[key] = fact
        return True

    async def set_primary_flag(self, kind, item_id, flag):
        assert flag in PRIMARY_FLAGS
        setattr(self.items[ContentKind(kind)][item_id], flag, True)


# =============================================================================
# Record factories
# =============================================================================


def make_asset(n: int, chain: ChainTag = ChainTag.BNB, minutes_ago: int = 0, **overrides) -> AssetRecord:
    fields = dict(
        id=f"asset-{n}",
        symbol=f"TKN{n}/WBNB",
        name=f"Token {n} / Wrapped BNB",
        chain=chain,
        contract_address="0x" + f"{n:040x}",
        launch_time=BASE_TIME - timedelta(minutes=minutes_ago),
    )
    fields.update(overrides)
    return AssetRecord(**fields)


def make_news(n: int, title: Optional[str] = None, minutes_ago: int = 0, chain: str = "general") -> NewsRecord:
    return NewsRecord(
        id=f"news-{n}",
        title=title or f"Headline {n}",
        description="",
        url=f"https://example.com/{n}",
        published_at=BASE_TIME - timedelta(minutes=minutes_ago),
        chain=chain,
    )


def stored_asset(n: int, minutes_ago: int = 0) -> StoredAsset:
    return StoredAsset.from_record(make_asset(n, minutes_ago=minutes_ago))


def stored_news(n: int, minutes_ago: int = 0) -> StoredNews:
    return StoredNews.from_record(make_news(n, minutes_ago=minutes_ago))


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def asset_store() -> InMemoryAssetStore:
    return InMemoryAssetStore()


@pytest.fixture
def news_store() -> InMemoryNewsStore:
    return InMemoryNewsStore()


@pytest.fixture
def publication_store() -> InMemoryPublicationStore:
    return InMemoryPublicationStore()


@pytest.fixture
def records():
    """Record and stored-row builders."""
    return SimpleNamespace(
        asset=make_asset,
        news=make_news,
        stored_asset=stored_asset,
        stored_news=stored_news,
        base_time=BASE_TIME,
        zero=Decimal("0"),
    )
