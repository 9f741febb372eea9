"""
Asset repository.

Uniqueness is (lower(contract_address), chain), enforced by a unique index.
Inserts use ON CONFLICT DO NOTHING so concurrent writers never error on a
duplicate; an empty RETURNING means the asset was already stored.
"""
from __future__ import annotations

import json
from typing import Optional, Sequence

from launch_radar.core.reconciler import UpsertOutcome
from launch_radar.ingestion.models import AssetRecord
from launch_radar.storage.models import StoredAsset
from launch_radar.storage.repositories.base import BaseRepository


class AssetRepository(BaseRepository[StoredAsset]):
    """Repository for detected assets."""

    table_name = "assets"
    model_class = StoredAsset

    async def upsert(self, record: AssetRecord) -> UpsertOutcome:
        """Insert a new asset; DUPLICATE if its id or (address, chain) exists."""
        asset = StoredAsset.from_record(record)
        query = """
            INSERT INTO assets
            (id, symbol, name, chain, contract_address, market_cap, volume_24h,
             price, price_change_24h, launch_time, urls, holders, transactions_24h,
             liquidity, total_supply, verified, risk_score, risk_factors)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11::jsonb, $12, $13,
                    $14, $15, $16, $17, $18)
            ON CONFLICT DO NOTHING
            RETURNING id
        """
        inserted = await self.db.fetchval(
            query,
            asset.id,
            asset.symbol,
            asset.name,
            asset.chain,
            asset.contract_address,
            asset.market_cap,
            asset.volume_24h,
            asset.price,
            asset.price_change_24h,
            asset.launch_time,
            json.dumps(asset.urls),
            asset.holders,
            asset.transactions_24h,
            asset.liquidity,
            asset.total_supply,
            asset.verified,
            asset.risk_score,
            asset.risk_factors,
        )
        return UpsertOutcome.INSERTED if inserted is not None else UpsertOutcome.DUPLICATE

    async def find_by_key(self, key: tuple[str, str]) -> Optional[StoredAsset]:
        address, chain = key
        query = """
            SELECT * FROM assets
            WHERE lower(contract_address) = lower($1) AND chain = $2
        """
        record = await self.db.fetchrow(query, address, chain)
        return self._record_to_model(record)

    async def existing_keys(self, keys: Sequence[tuple[str, str]]) -> set[tuple[str, str]]:
        """The subset of (address, chain) keys already stored, in one query."""
        if not keys:
            return set()
        query = """
            SELECT lower(a.contract_address) AS address, a.chain
            FROM assets a
            JOIN unnest($1::text[], $2::text[]) AS k(address, chain)
              ON lower(a.contract_address) = k.address AND a.chain = k.chain
        """
        records = await self.db.fetch(
            query,
            [address.lower() for address, _ in keys],
            [chain for _, chain in keys],
        )
        return {(r["address"], r["chain"]) for r in records}

    async def get_recent(self, chain: Optional[str] = None, limit: int = 50) -> list[StoredAsset]:
        """Most recent launches, optionally for one chain."""
        if chain:
            query = """
                SELECT * FROM assets WHERE chain = $1
                ORDER BY launch_time DESC LIMIT $2
            """
            records = await self.db.fetch(query, chain, limit)
        else:
            query = "SELECT * FROM assets ORDER BY launch_time DESC LIMIT $1"
            records = await self.db.fetch(query, limit)
        return self._records_to_models(records)
