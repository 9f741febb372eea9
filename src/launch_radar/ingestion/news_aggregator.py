"""
News aggregation across unreliable sources.

General news walks an ordered list of sources and stops at the first one that
returns at least one item. Chain news always queries every source for the
chain concurrently and merges whatever succeeds.

A source without its API key is unconfigured: it is skipped, warned about
once per aggregator, and counted as a failed attempt.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from .errors import ConfigurationMissingError
from .models import NewsRecord, dedup_by_title, sort_news_newest_first
from .news_sources import NewsSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewsAggregatorConfig:
    """Configuration for NewsAggregator."""
    source_timeout_seconds: float = 15.0


@dataclass
class NewsResult:
    """Outcome of one aggregation path."""
    success: bool
    items: list[NewsRecord] = field(default_factory=list)
    error: Optional[str] = None
    # Source that served a general-news request
    source: Optional[str] = None
    source_errors: dict[str, str] = field(default_factory=dict)


@dataclass
class AggregatedNews:
    """General items, items per chain, and the deduplicated union."""
    general: NewsResult
    by_chain: dict[str, NewsResult]
    combined: list[NewsRecord]


class NewsAggregator:
    """
    Usage:
        aggregator = NewsAggregator(
            general_sources=default_general_sources(key),
            chain_sources={"sui": default_sui_sources(newsapi_key)},
        )
        news = await aggregator.get_all_news()
    """

    def __init__(
        self,
        general_sources: Sequence[NewsSource],
        chain_sources: Optional[Mapping[str, Sequence[NewsSource]]] = None,
        config: Optional[NewsAggregatorConfig] = None,
    ) -> None:
        self._general_sources = list(general_sources)
        self._chain_sources = {chain: list(s) for chain, s in (chain_sources or {}).items()}
        self._config = config or NewsAggregatorConfig()
        self._warned_unconfigured: set[str] = set()

    @property
    def chains(self) -> list[str]:
        return list(self._chain_sources)

    async def _fetch(self, source: NewsSource) -> list[NewsRecord]:
        if not source.is_configured:
            if source.name not in self._warned_unconfigured:
                self._warned_unconfigured.add(source.name)
                logger.warning(f"News source {source.name} is not configured, skipping it")
            raise ConfigurationMissingError(f"{source.name} is not configured")
        return await asyncio.wait_for(source.fetch(), self._config.source_timeout_seconds)

    async def get_general_news(self) -> NewsResult:
        """Primary source, then fallbacks in order, stopping at the first non-empty one."""
        errors: dict[str, str] = {}
        for source in self._general_sources:
            try:
                items = await self._fetch(source)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                errors[source.name] = _describe(e)
                if not isinstance(e, ConfigurationMissingError):
                    logger.warning(f"General news source {source.name} failed: {errors[source.name]}")
                continue

            if items:
                logger.info(f"General news: {len(items)} items from {source.name}")
                return NewsResult(
                    success=True,
                    items=sort_news_newest_first(dedup_by_title(items)),
                    source=source.name,
                    source_errors=errors,
                )
            errors[source.name] = "no items"
            logger.info(f"General news source {source.name} returned no items, trying next")

        message = "; ".join(f"{name}: {error}" for name, error in errors.items())
        logger.error(f"All general news sources failed: {message}")
        return NewsResult(
            success=False,
            error=message or "no general news sources",
            source_errors=errors,
        )

    async def get_chain_news(self, chain: str) -> NewsResult:
        """Query every source for a chain concurrently and merge the successes."""
        sources = self._chain_sources.get(chain, [])
        if not sources:
            return NewsResult(success=False, error=f"no news sources for chain {chain}")

        outcomes = await asyncio.gather(
            *(self._fetch(source) for source in sources),
            return_exceptions=True,
        )

        merged: list[NewsRecord] = []
        errors: dict[str, str] = {}
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                errors[source.name] = _describe(outcome)
                if not isinstance(outcome, ConfigurationMissingError):
                    logger.warning(f"{chain} news source {source.name} failed: {errors[source.name]}")
                continue
            merged.extend(outcome)

        if len(errors) == len(sources):
            message = "; ".join(f"{name}: {error}" for name, error in errors.items())
            logger.error(f"All {chain} news sources failed: {message}")
            return NewsResult(success=False, error=message, source_errors=errors)

        items = sort_news_newest_first(dedup_by_title(merged))
        logger.info(f"{chain} news: {len(items)} unique items ({len(merged)} fetched)")
        return NewsResult(success=True, items=items, source_errors=errors)

    async def get_all_news(self) -> AggregatedNews:
        """General and every chain path concurrently; combined is deduplicated across both."""
        chains = self.chains
        general, *chain_results = await asyncio.gather(
            self.get_general_news(),
            *(self.get_chain_news(chain) for chain in chains),
        )
        by_chain = dict(zip(chains, chain_results))

        everything = list(general.items)
        for result in chain_results:
            everything.extend(result.items)
        combined = sort_news_newest_first(dedup_by_title(everything))

        return AggregatedNews(general=general, by_chain=by_chain, combined=combined)


def _describe(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or type(error).__name__
