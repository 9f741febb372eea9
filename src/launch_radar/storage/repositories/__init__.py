"""
Repository exports.
"""
from launch_radar.storage.repositories.asset_repo import AssetRepository
from launch_radar.storage.repositories.news_repo import NewsRepository
from launch_radar.storage.repositories.publication_repo import PublicationRepository

__all__ = [
    "AssetRepository",
    "NewsRepository",
    "PublicationRepository",
]
