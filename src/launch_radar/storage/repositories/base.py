"""
Shared plumbing for the asset, news and publication repositories.
"""
from __future__ import annotations

from typing import Generic, Iterable, Optional, Type, TypeVar

from pydantic import BaseModel

from launch_radar.storage.database import Database

T = TypeVar("T", bound=BaseModel)


class BaseRepository(Generic[T]):
    """Maps rows of one table onto one pydantic model."""

    table_name: str
    model_class: Type[T]

    def __init__(self, db: Database) -> None:
        self.db = db

    def _record_to_model(self, record) -> Optional[T]:
        if record is None:
            return None
        return self.model_class.model_validate(dict(record))

    def _records_to_models(self, records: Iterable) -> list[T]:
        return [self.model_class.model_validate(dict(r)) for r in records]

    async def get_by_id(self, item_id: str) -> Optional[T]:
        row = await self.db.fetchrow(f"SELECT * FROM {self.table_name} WHERE id = $1", item_id)
        return self._record_to_model(row)

    async def count(self) -> int:
        return await self.db.fetchval(f"SELECT COUNT(*) FROM {self.table_name}")
