"""
Test fixtures for the delivery layer.

IMPORTANT: Never post to real Telegram chats or X accounts in tests.
"""
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from launch_radar.core.publication import default_destinations
from launch_radar.storage.models import StoredAsset, StoredNews


class FakeResponse:
    """aiohttp response double usable as an async context manager."""

    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def json(self, content_type=None):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


def _session(*responses):
    session = MagicMock()
    session.post = MagicMock(side_effect=list(responses))
    session.get = MagicMock(side_effect=list(responses))
    return session


@pytest.fixture
def http():
    """Response and session builders."""
    return SimpleNamespace(response=FakeResponse, session=_session)


@pytest.fixture
def destinations():
    return default_destinations(channel_id="@launchradar", group_id="-100200300")


@pytest.fixture
def sample_asset() -> StoredAsset:
    return StoredAsset(
        id="0xpair",
        symbol="CAT/WBNB",
        name="Cat Coin / Wrapped BNB",
        chain="bnb",
        contract_address="0x" + "ab" * 20,
        market_cap=Decimal("1234567"),
        volume_24h=Decimal("2500"),
        price=Decimal("0.00012345"),
        price_change_24h=Decimal("-4.5"),
        launch_time=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
        urls={"dexscreener": "https://dexscreener.com/bsc/0xpair"},
    )


@pytest.fixture
def sample_news() -> StoredNews:
    return StoredNews(
        id="cp_1",
        title="Sui & friends <rally>",
        title_key="sui & friends <rally>",
        description="A" * 600,
        url="https://news.example/sui?a=1&b=2",
        published_at=datetime(2024, 5, 1, 9, 15, tzinfo=timezone.utc),
        coin_symbol="sui",
        chain="sui",
        source="NewsAPI",
    )
