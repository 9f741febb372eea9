"""
Publication fact repository.

Facts are append-only and unique per (content_kind, item_id, destination).
Selection of unsent items is per destination: facts recorded for any other
destination are ignored.
"""
from __future__ import annotations

from typing import Union

from launch_radar.ingestion.models import ContentKind
from launch_radar.storage.models import (
    PRIMARY_FLAGS,
    PublicationFact,
    StoredAsset,
    StoredNews,
)
from launch_radar.storage.repositories.base import BaseRepository

# kind -> (item table, recency column, model)
_ITEM_TABLES = {
    ContentKind.LAUNCH: ("assets", "launch_time", StoredAsset),
    ContentKind.NEWS: ("news", "published_at", StoredNews),
}


class PublicationRepository(BaseRepository[PublicationFact]):
    """Repository for publication facts and the items they refer to."""

    table_name = "publication_facts"
    model_class = PublicationFact

    async def select_unsent(
        self, kind: ContentKind, destination: str, limit: int
    ) -> list[Union[StoredAsset, StoredNews]]:
        """Items of kind without a fact for destination, newest first."""
        kind = ContentKind(kind)
        table, order_column, model = _ITEM_TABLES[kind]
        query = f"""
            SELECT i.* FROM {table} i
            WHERE NOT EXISTS (
                SELECT 1 FROM publication_facts f
                WHERE f.content_kind = $1 AND f.item_id = i.id AND f.destination = $2
            )
            ORDER BY i.{order_column} DESC
            LIMIT $3
        """
        records = await self.db.fetch(query, kind.value, destination, limit)
        return [model(**dict(r)) for r in records]

    async def has_fact(self, kind: ContentKind, item_id: str, destination: str) -> bool:
        query = """
            SELECT 1 FROM publication_facts
            WHERE content_kind = $1 AND item_id = $2 AND destination = $3
        """
        result = await self.db.fetchval(query, ContentKind(kind).value, item_id, destination)
        return result is not None

    async def insert_fact(self, fact: PublicationFact) -> bool:
        """Insert a fact. Returns False if one already existed."""
        query = """
            INSERT INTO publication_facts
            (content_kind, item_id, destination, remote_message_id, content, sent_at)
            VALUES ($1, $2, $3, $4, $5, COALESCE($6, NOW()))
            ON CONFLICT (content_kind, item_id, destination) DO NOTHING
            RETURNING id
        """
        inserted = await self.db.fetchval(
            query,
            fact.content_kind.value,
            fact.item_id,
            fact.destination,
            fact.remote_message_id,
            fact.content,
            fact.sent_at,
        )
        return inserted is not None

    async def set_primary_flag(self, kind: ContentKind, item_id: str, flag: str) -> None:
        if flag not in PRIMARY_FLAGS:
            raise ValueError(f"Unknown primary flag: {flag}")
        table = _ITEM_TABLES[ContentKind(kind)][0]
        await self.db.execute(f"UPDATE {table} SET {flag} = TRUE WHERE id = $1", item_id)

    async def get_facts(self, kind: ContentKind, item_id: str) -> list[PublicationFact]:
        """All facts for one item, oldest first."""
        query = """
            SELECT content_kind, item_id, destination, remote_message_id, content, sent_at
            FROM publication_facts
            WHERE content_kind = $1 AND item_id = $2
            ORDER BY sent_at
        """
        records = await self.db.fetch(query, ContentKind(kind).value, item_id)
        return self._records_to_models(records)
