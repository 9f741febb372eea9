"""
Pydantic models matching the PostgreSQL schema in schema.py.

Stored rows extend the in-process records with the primary convenience
flags (is_posted for X, is_telegram_posted for the Telegram channel) and
created_at.

IMPORTANT: All market fields use Decimal for precision.
"""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from launch_radar.ingestion.models import (
    AssetRecord,
    ChainTag,
    ContentKind,
    NewsRecord,
    RiskAnnotation,
)


# =============================================================================
# ASSETS
# =============================================================================


class StoredAsset(BaseModel):
    """A persisted AssetRecord."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    symbol: str
    name: str
    chain: str
    contract_address: str
    market_cap: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")
    price: Decimal = Decimal("0")
    price_change_24h: Decimal = Decimal("0")
    launch_time: datetime
    urls: dict[str, str] = Field(default_factory=dict)
    holders: Optional[int] = None
    transactions_24h: Optional[int] = None
    liquidity: Optional[Decimal] = None
    total_supply: Optional[Decimal] = None
    verified: bool = False
    risk_score: Optional[int] = None
    risk_factors: list[str] = Field(default_factory=list)
    is_posted: bool = False
    is_telegram_posted: bool = False
    created_at: Optional[datetime] = None

    @field_validator("urls", mode="before")
    @classmethod
    def _decode_urls(cls, value: Any) -> Any:
        # asyncpg returns jsonb as text
        if isinstance(value, str):
            return json.loads(value) if value else {}
        return value or {}

    @field_validator("risk_factors", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return list(value or [])

    @classmethod
    def from_record(cls, record: AssetRecord) -> "StoredAsset":
        return cls(
            id=record.id,
            symbol=record.symbol,
            name=record.name,
            chain=record.chain.value,
            contract_address=record.contract_address,
            market_cap=record.market_cap,
            volume_24h=record.volume_24h,
            price=record.price,
            price_change_24h=record.price_change_24h,
            launch_time=record.launch_time,
            urls=dict(record.urls),
            holders=record.holders,
            transactions_24h=record.transactions_24h,
            liquidity=record.liquidity,
            total_supply=record.total_supply,
            verified=record.verified,
            risk_score=record.risk.score if record.risk else None,
            risk_factors=list(record.risk.factors) if record.risk else [],
        )

    def to_record(self) -> AssetRecord:
        return AssetRecord(
            id=self.id,
            symbol=self.symbol,
            name=self.name,
            chain=ChainTag(self.chain),
            contract_address=self.contract_address,
            launch_time=self.launch_time,
            market_cap=self.market_cap,
            volume_24h=self.volume_24h,
            price=self.price,
            price_change_24h=self.price_change_24h,
            urls=dict(self.urls),
            holders=self.holders,
            transactions_24h=self.transactions_24h,
            liquidity=self.liquidity,
            total_supply=self.total_supply,
            verified=self.verified,
            risk=(
                RiskAnnotation(score=self.risk_score, factors=tuple(self.risk_factors))
                if self.risk_score is not None else None
            ),
        )


# =============================================================================
# NEWS
# =============================================================================


class StoredNews(BaseModel):
    """A persisted NewsRecord; title_key is the normalized title."""

    id: str
    title: str
    title_key: str
    description: str = ""
    url: str = ""
    published_at: datetime
    coin_symbol: str = ""
    chain: str = "general"
    source: str = ""
    token_address: str = ""
    sentiment: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    is_posted: bool = False
    is_telegram_posted: bool = False
    created_at: Optional[datetime] = None

    @field_validator("tags", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return list(value or [])

    @classmethod
    def from_record(cls, record: NewsRecord) -> "StoredNews":
        return cls(
            id=record.id,
            title=record.title,
            title_key=record.dedup_key,
            description=record.description,
            url=record.url,
            published_at=record.published_at,
            coin_symbol=record.coin_symbol,
            chain=record.chain,
            source=record.source,
            token_address=record.token_address,
            sentiment=record.sentiment,
            tags=list(record.tags),
        )


# =============================================================================
# PUBLICATION FACTS
# =============================================================================

# Item columns a destination may maintain as its primary flag
PRIMARY_FLAGS = frozenset({"is_posted", "is_telegram_posted"})


class PublicationFact(BaseModel):
    """
    A confirmed send of one item to one destination.

    Unique by (content_kind, item_id, destination). Never updated or deleted.
    """

    model_config = ConfigDict(frozen=True)

    content_kind: ContentKind
    item_id: str
    destination: str
    remote_message_id: Optional[str] = None
    content: str = ""
    sent_at: Optional[datetime] = None
