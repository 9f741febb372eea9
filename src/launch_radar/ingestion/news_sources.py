"""
News source clients.

Every source exposes the same small contract:
    name            - display name used in logs and error messages
    is_configured   - False when a required API key is missing
    fetch()         - list of NewsRecord, or raises on failure

Sources:
    CryptoPanicSource - CryptoPanic developer API ("rising" posts)
    NewsApiSource     - NewsAPI /v2/everything keyword search
    RssFeedSource     - any RSS/Atom feed, parsed with feedparser
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import aiohttp
import feedparser
from dateutil import parser as dateparser

from .errors import (
    ConfigurationMissingError,
    DecodeError,
    RateLimitError,
    UpstreamError,
    UpstreamUnavailableError,
)
from .models import GENERAL_NEWS, NewsRecord, utc_now
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; NewsBot/1.0)"
CRYPTOPANIC_URL = "https://cryptopanic.com/api/developer/v2/posts/"
NEWSAPI_URL = "https://newsapi.org/v2/everything"

COINTELEGRAPH_RSS = "https://cointelegraph.com/rss"
COINDESK_RSS = "https://www.coindesk.com/arc/outboundfeeds/rss/"
COINJOURNAL_RSS = "https://coinjournal.net/feed/"
GOOGLE_NEWS_SUI_RSS = (
    "https://news.google.com/rss/search?q=SUI+blockchain+cryptocurrency&hl=en&gl=US&ceid=US:en"
)
SUI_NEWS_QUERY = 'SUI blockchain OR "Sui Network" OR "SUI crypto"'

_TAG_RE = re.compile(r"<[^>]*>")


class NewsSource(Protocol):
    """News source contract required by NewsAggregator."""

    name: str

    @property
    def is_configured(self) -> bool: ...

    async def fetch(self) -> list[NewsRecord]: ...


def strip_html(text: Optional[str]) -> str:
    """Drop markup tags, then decode entities such as &amp; and &#8217;."""
    return html.unescape(_TAG_RE.sub("", text or "")).strip()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 or RFC-822 date string to an aware UTC datetime."""
    if not value:
        return None
    try:
        parsed = dateparser.parse(str(value))
    except (ValueError, OverflowError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _struct_to_datetime(struct_time) -> Optional[datetime]:
    if not struct_time:
        return None
    return datetime(*struct_time[:6], tzinfo=timezone.utc)


class HttpNewsSource:
    """Shared HTTP plumbing: one GET with status mapping, via retry_async."""

    name = "http"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=2, base_delay=0.5)

    @property
    def is_configured(self) -> bool:
        return True

    async def _get(self, url: str, params: Optional[dict] = None, as_json: bool = True) -> Any:
        return await retry_async(
            lambda: self._get_once(url, params, as_json),
            self._retry_policy,
            description=f"{self.name} GET",
        )

    async def _get_once(self, url: str, params: Optional[dict], as_json: bool) -> Any:
        session = self._session
        owns_session = session is None
        if owns_session:
            session = aiohttp.ClientSession(timeout=self._timeout, headers={"User-Agent": USER_AGENT})
        try:
            async with session.get(url, params=params) as response:
                if response.status == 429:
                    raise RateLimitError(f"{self.name}: Too Many Requests", status_code=429)
                if response.status >= 500:
                    raise UpstreamUnavailableError(
                        f"{self.name}: server error {response.status}", status_code=response.status
                    )
                if response.status >= 400:
                    text = await response.text()
                    raise UpstreamError(
                        f"{self.name}: {response.status} - {text[:200]}", status_code=response.status
                    )
                if as_json:
                    return await response.json(content_type=None)
                return await response.read()
        except asyncio.TimeoutError as e:
            raise UpstreamUnavailableError(f"{self.name}: request timed out") from e
        except aiohttp.ClientError as e:
            raise UpstreamUnavailableError(f"{self.name}: {e}") from e
        finally:
            if owns_session:
                await session.close()


class CryptoPanicSource(HttpNewsSource):
    """General crypto news from CryptoPanic."""

    name = "CryptoPanic"

    def __init__(self, api_key: Optional[str], url: str = CRYPTOPANIC_URL, **kwargs):
        super().__init__(**kwargs)
        self._api_key = api_key
        self._url = url

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def fetch(self) -> list[NewsRecord]:
        if not self.is_configured:
            raise ConfigurationMissingError("CRYPTOPANIC_API_KEY is not set")
        data = await self._get(
            self._url,
            params={"auth_token": self._api_key, "filter": "rising", "public": "true"},
        )
        return self.parse(data)

    def parse(self, data: Any) -> list[NewsRecord]:
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise DecodeError("CryptoPanic response has no results list")

        records = []
        for item in data["results"]:
            try:
                title = item["title"]
                records.append(NewsRecord(
                    id=f"cp_{item['id']}",
                    title=title,
                    description=strip_html(item.get("description")),
                    url=item.get("url") or item.get("original_url") or "",
                    published_at=parse_timestamp(item.get("published_at")) or utc_now(),
                    chain=GENERAL_NEWS,
                    source=self.name,
                    sentiment=item.get("sentiment"),
                ))
            except (KeyError, TypeError) as e:
                logger.debug(f"Skipping malformed CryptoPanic item: {e}")
        return records


class NewsApiSource(HttpNewsSource):
    """Keyword search on NewsAPI, tagged with a chain and coin symbol."""

    name = "NewsAPI"

    def __init__(
        self,
        api_key: Optional[str],
        query: str = SUI_NEWS_QUERY,
        chain: str = "sui",
        coin_symbol: str = "SUI",
        page_size: int = 20,
        url: str = NEWSAPI_URL,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._api_key = api_key
        self._query = query
        self._chain = chain
        self._coin_symbol = coin_symbol
        self._page_size = page_size
        self._url = url

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def fetch(self) -> list[NewsRecord]:
        if not self.is_configured:
            raise ConfigurationMissingError("NEWSAPI_KEY is not set")
        data = await self._get(
            self._url,
            params={
                "apiKey": self._api_key,
                "q": self._query,
                "language": "en",
                "sortBy": "publishedAt",
                "pageSize": str(self._page_size),
            },
        )
        return self.parse(data)

    def parse(self, data: Any) -> list[NewsRecord]:
        if not isinstance(data, dict) or not isinstance(data.get("articles"), list):
            raise DecodeError("NewsAPI response has no articles list")

        records = []
        for index, article in enumerate(data["articles"]):
            title = (article or {}).get("title")
            if not title:
                continue
            source = (article.get("source") or {}).get("name") or self.name
            records.append(NewsRecord(
                id=f"news_{self._chain}_{article.get('url') or index}",
                title=title,
                description=strip_html(article.get("description")),
                url=article.get("url") or "",
                published_at=parse_timestamp(article.get("publishedAt")) or utc_now(),
                coin_symbol=self._coin_symbol,
                chain=self._chain,
                source=source,
            ))
        return records


class RssFeedSource(HttpNewsSource):
    """An RSS/Atom feed; always configured."""

    def __init__(
        self,
        name: str,
        url: str,
        id_prefix: str,
        limit: int = 15,
        chain: str = GENERAL_NEWS,
        coin_symbol: str = "",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.name = name
        self._url = url
        self._id_prefix = id_prefix
        self._limit = limit
        self._chain = chain
        self._coin_symbol = coin_symbol

    async def fetch(self) -> list[NewsRecord]:
        content = await self._get(self._url, as_json=False)
        return self.parse(content)

    def parse(self, content: bytes) -> list[NewsRecord]:
        feed = feedparser.parse(content)
        if feed.bozo and not feed.entries:
            raise DecodeError(f"{self.name}: unreadable feed ({feed.get('bozo_exception')})")

        records = []
        for entry in feed.entries[: self._limit]:
            title = getattr(entry, "title", None)
            if not title:
                continue
            link = getattr(entry, "link", "")
            published_at = (
                _struct_to_datetime(getattr(entry, "published_parsed", None))
                or parse_timestamp(getattr(entry, "published", None))
                or utc_now()
            )
            summary = getattr(entry, "summary", None) or getattr(entry, "description", None)
            records.append(NewsRecord(
                id=f"{self._id_prefix}_{getattr(entry, 'id', '') or link}",
                title=title.strip(),
                description=strip_html(summary),
                url=link,
                published_at=published_at,
                coin_symbol=self._coin_symbol,
                chain=self._chain,
                source=self.name,
            ))
        return records


def default_general_sources(cryptopanic_key: Optional[str], **kwargs) -> list:
    """CryptoPanic first, then the RSS fallbacks in order."""
    return [
        CryptoPanicSource(cryptopanic_key, **kwargs),
        RssFeedSource("CoinTelegraph", COINTELEGRAPH_RSS, "ct", limit=15, **kwargs),
        RssFeedSource("CoinDesk", COINDESK_RSS, "cd", limit=15, **kwargs),
        RssFeedSource("CoinJournal", COINJOURNAL_RSS, "cj", limit=10, **kwargs),
    ]


def default_sui_sources(newsapi_key: Optional[str], **kwargs) -> list:
    """Keyword search plus Google News, queried concurrently."""
    return [
        NewsApiSource(newsapi_key, **kwargs),
        RssFeedSource(
            "Google News", GOOGLE_NEWS_SUI_RSS, "google_sui",
            limit=10, chain="sui", coin_symbol="SUI", **kwargs,
        ),
    ]
