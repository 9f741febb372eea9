"""
Storage Layer - Async PostgreSQL database and repositories.

Built on asyncpg. Uniqueness is enforced by the schema itself, so two
concurrent cycles racing on the same asset or news title cannot both insert.

Public API:
    Database, DatabaseConfig - Connection pool management
    SCHEMA_STATEMENTS        - Idempotent DDL (assets, news, publication_facts)

    Models:
        StoredAsset, StoredNews, PublicationFact

    Repositories:
        AssetRepository       - keyed by (lower(contract_address), chain)
        NewsRepository        - keyed by normalized title
        PublicationRepository - one fact per (content_kind, item_id, destination)
"""
from launch_radar.storage.database import Database, DatabaseConfig
from launch_radar.storage.schema import SCHEMA_STATEMENTS
from launch_radar.storage.models import (
    PRIMARY_FLAGS,
    PublicationFact,
    StoredAsset,
    StoredNews,
)
from launch_radar.storage.repositories import (
    AssetRepository,
    NewsRepository,
    PublicationRepository,
)

__all__ = [
    "Database",
    "DatabaseConfig",
    "SCHEMA_STATEMENTS",
    "PRIMARY_FLAGS",
    "PublicationFact",
    "StoredAsset",
    "StoredNews",
    "AssetRepository",
    "NewsRepository",
    "PublicationRepository",
]
