"""
Publish pass: select unsent items, render, send, record.

A fact is recorded only after the distribution client confirms the send with
a remote id. A failed send records nothing, so the item is selected again on
the next pass.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from launch_radar.ingestion.errors import CycleFailedError
from launch_radar.ingestion.models import ContentKind

from .publication import Destination, PublicationStateTracker

logger = logging.getLogger(__name__)

Renderer = Callable[[ContentKind, Any, str], str]


class DistributionClient(Protocol):
    async def send(self, destination: Destination, content: str) -> Optional[str]: ...


@dataclass(frozen=True)
class PublisherConfig:
    """Items per kind per pass."""
    launch_limit: int = 2
    news_limit: int = 1

    def limit_for(self, kind: ContentKind) -> int:
        return self.launch_limit if ContentKind(kind) == ContentKind.LAUNCH else self.news_limit


@dataclass
class PublishReport:
    """Counts for one publish pass."""
    processed: int = 0
    sent: int = 0
    failed: int = 0
    # Sent, but another pass had already recorded the fact
    skipped: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    def merge(self, other: "PublishReport") -> "PublishReport":
        return PublishReport(
            processed=self.processed + other.processed,
            sent=self.sent + other.sent,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            errors={**self.errors, **other.errors},
        )


class Publisher:
    """
    Publishes unsent launches and news to one destination at a time.

    Usage:
        publisher = Publisher(tracker, telegram, renderer.render)
        report = await publisher.run_pass(channel)
    """

    def __init__(
        self,
        tracker: PublicationStateTracker,
        client: DistributionClient,
        renderer: Renderer,
        config: Optional[PublisherConfig] = None,
    ) -> None:
        self._tracker = tracker
        self._client = client
        self._render = renderer
        self._config = config or PublisherConfig()

    async def publish(
        self,
        kind: ContentKind,
        destination: Destination,
        limit: Optional[int] = None,
    ) -> PublishReport:
        """Send up to limit unsent items of a kind; each send is isolated."""
        kind = ContentKind(kind)
        limit = self._config.limit_for(kind) if limit is None else limit
        items = await self._tracker.select_unsent(kind, destination, limit)
        report = PublishReport(processed=len(items))

        if not items:
            logger.info(f"No unsent {kind.value} items for {destination.key}")
            return report

        for item in items:
            try:
                content = self._render(kind, item, destination.platform)
                remote_id = await self._client.send(destination, content)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                report.failed += 1
                report.errors[item.id] = str(e)
                logger.error(f"Error publishing {kind.value} {item.id} to {destination.key}: {e}")
                continue

            if not remote_id:
                report.failed += 1
                logger.warning(f"Send returned no message id for {kind.value} {item.id} ({destination.key})")
                continue

            try:
                created = await self._tracker.record_sent(
                    kind, item.id, destination, remote_id, content=content
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # Delivered but unrecorded: the next pass will send it again
                report.failed += 1
                report.errors[item.id] = f"sent as {remote_id} but not recorded: {e}"
                logger.error(
                    f"Sent {kind.value} {item.id} to {destination.key} as {remote_id} "
                    f"but recording failed: {e}"
                )
                continue

            if created:
                report.sent += 1
            else:
                report.skipped += 1

        logger.info(
            f"Published {report.sent}/{report.processed} {kind.value} items to {destination.key} "
            f"({report.failed} failed)"
        )
        return report

    async def run_pass(self, destination: Destination) -> PublishReport:
        """
        Launches, then news, for one destination.

        Raises:
            CycleFailedError: if every attempted unit failed
        """
        total = PublishReport()
        units = 0
        failed_units = 0
        for kind in (ContentKind.LAUNCH, ContentKind.NEWS):
            if self._config.limit_for(kind) <= 0:
                continue
            units += 1
            try:
                report = await self.publish(kind, destination)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failed_units += 1
                total.errors[kind.value] = str(e)
                logger.error(f"Publish pass for {kind.value} on {destination.key} failed: {e}")
                continue
            if report.processed and report.failed == report.processed:
                failed_units += 1
            total = total.merge(report)

        if units and failed_units == units:
            raise CycleFailedError(f"publish pass to {destination.key} failed: {total.errors}")
        return total
