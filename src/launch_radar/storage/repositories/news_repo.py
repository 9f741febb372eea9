"""
News repository. Uniqueness is the normalized title (title_key).
"""
from __future__ import annotations

from typing import Optional, Sequence

from launch_radar.core.reconciler import UpsertOutcome
from launch_radar.ingestion.models import NewsRecord, normalize_title
from launch_radar.storage.models import StoredNews
from launch_radar.storage.repositories.base import BaseRepository


class NewsRepository(BaseRepository[StoredNews]):
    """Repository for news items."""

    table_name = "news"
    model_class = StoredNews

    async def upsert(self, record: NewsRecord) -> UpsertOutcome:
        news = StoredNews.from_record(record)
        query = """
            INSERT INTO news
            (id, title, title_key, description, url, published_at, coin_symbol,
             chain, source, token_address, sentiment, tags)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            ON CONFLICT DO NOTHING
            RETURNING id
        """
        inserted = await self.db.fetchval(
            query,
            news.id,
            news.title,
            news.title_key,
            news.description,
            news.url,
            news.published_at,
            news.coin_symbol,
            news.chain,
            news.source,
            news.token_address,
            news.sentiment,
            news.tags,
        )
        return UpsertOutcome.INSERTED if inserted is not None else UpsertOutcome.DUPLICATE

    async def find_by_key(self, key: str) -> Optional[StoredNews]:
        record = await self.db.fetchrow(
            "SELECT * FROM news WHERE title_key = $1", normalize_title(key)
        )
        return self._record_to_model(record)

    async def existing_keys(self, keys: Sequence[str]) -> set[str]:
        if not keys:
            return set()
        records = await self.db.fetch(
            "SELECT title_key FROM news WHERE title_key = ANY($1::text[])", list(keys)
        )
        return {r["title_key"] for r in records}

    async def get_recent(self, chain: Optional[str] = None, limit: int = 50) -> list[StoredNews]:
        if chain:
            query = """
                SELECT * FROM news WHERE chain = $1
                ORDER BY published_at DESC LIMIT $2
            """
            records = await self.db.fetch(query, chain, limit)
        else:
            records = await self.db.fetch(
                "SELECT * FROM news ORDER BY published_at DESC LIMIT $1", limit
            )
        return self._records_to_models(records)
