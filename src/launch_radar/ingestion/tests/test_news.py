"""
Tests for news sources and NewsAggregator.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from launch_radar.ingestion.errors import (
    ConfigurationMissingError,
    DecodeError,
    UpstreamUnavailableError,
)
from launch_radar.ingestion.models import NewsRecord
from launch_radar.ingestion.news_aggregator import NewsAggregator, NewsAggregatorConfig
from launch_radar.ingestion.news_sources import (
    CryptoPanicSource,
    NewsApiSource,
    RssFeedSource,
    default_general_sources,
    default_sui_sources,
    parse_timestamp,
    strip_html,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Crypto Feed</title>
    <item>
      <title>Bitcoin breaks resistance</title>
      <link>https://example.com/btc</link>
      <guid>btc-1</guid>
      <description>&lt;p&gt;Price action &lt;b&gt;heats up&lt;/b&gt;&lt;/p&gt;</description>
      <pubDate>Wed, 01 May 2024 10:30:00 GMT</pubDate>
    </item>
    <item>
      <title>Sui TVL climbs</title>
      <link>https://example.com/sui</link>
      <guid>sui-1</guid>
      <pubDate>Wed, 01 May 2024 09:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Third story</title>
      <link>https://example.com/third</link>
      <guid>third-1</guid>
    </item>
  </channel>
</rss>
"""


def news(item_id, title, minutes_ago=0, chain="general"):
    return NewsRecord(
        id=item_id,
        title=title,
        description="",
        url=f"https://example.com/{item_id}",
        published_at=BASE_TIME - timedelta(minutes=minutes_ago),
        chain=chain,
    )


class FakeSource:
    """NewsSource double with scripted results."""

    def __init__(self, name, items=None, error=None, configured=True, delay=0.0):
        self.name = name
        self._items = items or []
        self._error = error
        self._configured = configured
        self._delay = delay
        self.calls = 0

    @property
    def is_configured(self):
        return self._configured

    async def fetch(self):
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        return list(self._items)


class TestHelpers:
    def test_strip_html(self):
        assert strip_html("<p>Hello <b>world</b></p>") == "Hello world"
        assert strip_html(None) == ""

    def test_strip_html_decodes_entities(self):
        assert strip_html("<p>Sui&#8217;s TVL &amp; volume</p>") == "Sui’s TVL & volume"

    def test_parse_timestamp_iso(self):
        parsed = parse_timestamp("2024-05-01T10:30:00Z")

        assert parsed == datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)

    def test_parse_timestamp_naive_is_utc(self):
        assert parse_timestamp("2024-05-01 10:30:00").tzinfo == timezone.utc

    def test_parse_timestamp_invalid(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None


class TestCryptoPanicParse:
    def test_parses_results(self):
        source = CryptoPanicSource("key")
        data = {
            "results": [
                {
                    "id": 101,
                    "title": "ETH upgrade ships",
                    "description": "<p>Details</p>",
                    "url": "https://cryptopanic.com/news/101",
                    "published_at": "2024-05-01T11:00:00Z",
                    "sentiment": "bullish",
                },
                {"id": 102},
            ]
        }

        records = source.parse(data)

        assert len(records) == 1
        record = records[0]
        assert record.id == "cp_101"
        assert record.description == "Details"
        assert record.chain == "general"
        assert record.source == "CryptoPanic"
        assert record.sentiment == "bullish"
        assert record.published_at == datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)

    def test_missing_results_is_decode_error(self):
        with pytest.raises(DecodeError):
            CryptoPanicSource("key").parse({"detail": "Invalid token"})

    @pytest.mark.asyncio
    async def test_fetch_without_key_is_unconfigured(self):
        source = CryptoPanicSource(None)

        assert source.is_configured is False
        with pytest.raises(ConfigurationMissingError):
            await source.fetch()


class TestNewsApiParse:
    def test_parses_articles(self):
        source = NewsApiSource("key")
        data = {
            "status": "ok",
            "articles": [
                {
                    "title": "Sui mainnet upgrade",
                    "description": "Upgrade <i>live</i>",
                    "url": "https://news.example/sui-upgrade",
                    "publishedAt": "2024-05-01T08:00:00Z",
                    "source": {"name": "The Block"},
                },
                {"title": None, "url": "https://news.example/empty"},
            ],
        }

        records = source.parse(data)

        assert len(records) == 1
        record = records[0]
        assert record.chain == "sui"
        assert record.coin_symbol == "SUI"
        assert record.source == "The Block"
        assert record.description == "Upgrade live"
        assert record.id == "news_sui_https://news.example/sui-upgrade"

    def test_missing_articles_is_decode_error(self):
        with pytest.raises(DecodeError):
            NewsApiSource("key").parse({"status": "error"})


class TestRssParse:
    def test_parses_entries(self):
        source = RssFeedSource("CoinTelegraph", "https://feed.test", "ct")

        records = source.parse(RSS_FEED)

        assert [r.title for r in records] == ["Bitcoin breaks resistance", "Sui TVL climbs", "Third story"]
        first = records[0]
        assert first.id == "ct_btc-1"
        assert first.url == "https://example.com/btc"
        assert first.description == "Price action heats up"
        assert first.published_at == datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc)
        assert first.source == "CoinTelegraph"

    def test_limit_applied(self):
        source = RssFeedSource("CoinJournal", "https://feed.test", "cj", limit=2)

        assert len(source.parse(RSS_FEED)) == 2

    def test_chain_tag_applied(self):
        source = RssFeedSource("Google News", "https://feed.test", "g", chain="sui", coin_symbol="SUI")

        records = source.parse(RSS_FEED)

        assert all(r.chain == "sui" and r.coin_symbol == "SUI" for r in records)

    def test_garbage_is_decode_error(self):
        source = RssFeedSource("Broken", "https://feed.test", "b")

        with pytest.raises(DecodeError):
            source.parse(b"<<<not xml at all")


class TestDefaultSources:
    def test_general_order(self):
        names = [s.name for s in default_general_sources("key")]

        assert names == ["CryptoPanic", "CoinTelegraph", "CoinDesk", "CoinJournal"]

    def test_sui_sources(self):
        sources = default_sui_sources(None)

        assert [s.name for s in sources] == ["NewsAPI", "Google News"]
        assert sources[0].is_configured is False
        assert sources[1].is_configured is True


@pytest.mark.asyncio
class TestGeneralNews:
    """Ordered fallback, stopping at the first non-empty source."""

    async def test_primary_serves(self):
        primary = FakeSource("primary", items=[news("a", "A")])
        fallback = FakeSource("fallback", items=[news("b", "B")])
        aggregator = NewsAggregator([primary, fallback])

        result = await aggregator.get_general_news()

        assert result.success is True
        assert result.source == "primary"
        assert fallback.calls == 0

    async def test_primary_fails_fallback_serves_three(self):
        primary = FakeSource("primary", error=UpstreamUnavailableError("down"))
        fallback = FakeSource(
            "fallback", items=[news("1", "One", 5), news("2", "Two", 1), news("3", "Three", 3)]
        )
        aggregator = NewsAggregator([primary, fallback])

        result = await aggregator.get_general_news()

        assert result.success is True
        assert result.source == "fallback"
        assert {r.id for r in result.items} == {"1", "2", "3"}
        assert [r.id for r in result.items] == ["2", "3", "1"]
        assert "primary" in result.source_errors

    async def test_empty_source_moves_to_next(self):
        empty = FakeSource("empty", items=[])
        second = FakeSource("second", items=[news("x", "X")])
        aggregator = NewsAggregator([empty, second])

        result = await aggregator.get_general_news()

        assert result.source == "second"
        assert result.source_errors["empty"] == "no items"

    async def test_all_sources_fail(self):
        aggregator = NewsAggregator([
            FakeSource("one", error=UpstreamUnavailableError("down")),
            FakeSource("two", error=DecodeError("garbage")),
        ])

        result = await aggregator.get_general_news()

        assert result.success is False
        assert result.items == []
        assert "one: down" in result.error
        assert "two: garbage" in result.error

    async def test_slow_source_times_out(self):
        slow = FakeSource("slow", items=[news("s", "S")], delay=1.0)
        fast = FakeSource("fast", items=[news("f", "F")])
        aggregator = NewsAggregator([slow, fast], config=NewsAggregatorConfig(source_timeout_seconds=0.01))

        result = await aggregator.get_general_news()

        assert result.source == "fast"
        assert result.source_errors["slow"] == "timed out"

    async def test_unconfigured_source_warned_once(self):
        unconfigured = FakeSource("keyless", configured=False)
        backup = FakeSource("backup", items=[news("b", "B")])
        aggregator = NewsAggregator([unconfigured, backup])

        with patch("launch_radar.ingestion.news_aggregator.logger") as mock_logger:
            await aggregator.get_general_news()
            await aggregator.get_general_news()

        warnings = [
            call.args[0] for call in mock_logger.warning.call_args_list
            if "not configured" in call.args[0]
        ]
        assert len(warnings) == 1
        assert unconfigured.calls == 0


@pytest.mark.asyncio
class TestChainNews:
    """Every chain source is queried; successes are merged."""

    async def test_merges_and_dedups_by_title(self):
        first = FakeSource("first", items=[news("a1", "Sui hits ATH", 1, "sui"), news("a2", "Other", 2, "sui")])
        second = FakeSource("second", items=[news("b1", "  SUI HITS ATH ", 0, "sui")])
        aggregator = NewsAggregator([], {"sui": [first, second]})

        result = await aggregator.get_chain_news("sui")

        assert result.success is True
        assert len(result.items) == 2
        assert first.calls == 1 and second.calls == 1

    async def test_one_source_failing_is_partial(self):
        ok = FakeSource("ok", items=[news("a", "A", chain="sui")])
        broken = FakeSource("broken", error=UpstreamUnavailableError("down"))
        aggregator = NewsAggregator([], {"sui": [ok, broken]})

        result = await aggregator.get_chain_news("sui")

        assert result.success is True
        assert [r.id for r in result.items] == ["a"]
        assert "broken" in result.source_errors

    async def test_all_sources_fail(self):
        aggregator = NewsAggregator([], {"sui": [
            FakeSource("one", error=UpstreamUnavailableError("down")),
            FakeSource("two", configured=False),
        ]})

        result = await aggregator.get_chain_news("sui")

        assert result.success is False
        assert "one: down" in result.error

    async def test_unknown_chain(self):
        result = await NewsAggregator([]).get_chain_news("bnb")

        assert result.success is False


@pytest.mark.asyncio
class TestAllNews:
    async def test_combined_deduplicated_across_paths(self):
        general = FakeSource("general", items=[news("g1", "Shared story", 3), news("g2", "General only", 1)])
        sui = FakeSource("sui", items=[news("s1", "shared story", 2, "sui"), news("s2", "Sui only", 0, "sui")])
        aggregator = NewsAggregator([general], {"sui": [sui]})

        result = await aggregator.get_all_news()

        assert result.general.success is True
        assert result.by_chain["sui"].success is True
        assert len(result.combined) == 3
        assert [r.id for r in result.combined] == ["s2", "g2", "g1"]

    async def test_general_failure_does_not_block_chains(self):
        aggregator = NewsAggregator(
            [FakeSource("general", error=UpstreamUnavailableError("down"))],
            {"sui": [FakeSource("sui", items=[news("s", "S", chain="sui")])]},
        )

        result = await aggregator.get_all_news()

        assert result.general.success is False
        assert [r.id for r in result.combined] == ["s"]
