"""
Per-destination publication state.

Each (content kind, item, destination) is published at most once. Distinct
destinations under one platform (a Telegram channel and a Telegram group) are
tracked independently: a fact for one never hides the item from the other.

The primary flag on a stored item (is_posted, is_telegram_posted) is a
convenience view of its platform's primary destination only.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from launch_radar.ingestion.models import ContentKind
from launch_radar.storage.models import PRIMARY_FLAGS, PublicationFact

logger = logging.getLogger(__name__)

X = "x"
TELEGRAM_CHANNEL = "telegram_channel"
TELEGRAM_GROUP = "telegram_group"


@dataclass(frozen=True)
class Destination:
    """
    A publish target.

    Attributes:
        key: Identifier stored on PublicationFact (e.g. "telegram_group")
        platform: Destination class ("x", "telegram")
        target: Platform address (chat id); empty for X
        primary_flag: Item flag this destination maintains, if any
    """

    key: str
    platform: str
    target: str = ""
    primary_flag: Optional[str] = None

    def __post_init__(self):
        if self.primary_flag is not None and self.primary_flag not in PRIMARY_FLAGS:
            raise ValueError(f"Unknown primary flag: {self.primary_flag}")


def default_destinations(channel_id: str = "", group_id: str = "") -> dict[str, Destination]:
    """The X account, the Telegram channel and the Telegram group."""
    return {
        X: Destination(X, "x", primary_flag="is_posted"),
        TELEGRAM_CHANNEL: Destination(
            TELEGRAM_CHANNEL, "telegram", channel_id, primary_flag="is_telegram_posted"
        ),
        TELEGRAM_GROUP: Destination(TELEGRAM_GROUP, "telegram", group_id),
    }


class PublicationStore(Protocol):
    async def select_unsent(self, kind: ContentKind, destination: str, limit: int) -> list[Any]: ...

    async def has_fact(self, kind: ContentKind, item_id: str, destination: str) -> bool: ...

    async def insert_fact(self, fact: PublicationFact) -> bool: ...

    async def set_primary_flag(self, kind: ContentKind, item_id: str, flag: str) -> None: ...


class PublicationStateTracker:
    """
    Selects unsent items per destination and records confirmed sends.

    Usage:
        tracker = PublicationStateTracker(publication_repo)

        for item in await tracker.select_unsent(ContentKind.LAUNCH, channel, 2):
            message_id = await client.send(channel, render(item))
            if message_id:
                await tracker.record_sent(ContentKind.LAUNCH, item.id, channel, message_id)
    """

    def __init__(self, store: PublicationStore) -> None:
        self._store = store

    async def select_unsent(
        self,
        kind: ContentKind,
        destination: Destination,
        limit: int,
    ) -> list[Any]:
        """
        Items of a kind with no fact for this destination, newest first.

        Args:
            kind: Launches or news
            destination: Only facts for destination.key are considered
            limit: Maximum number of items

        Returns:
            Up to limit stored items
        """
        if limit <= 0:
            return []
        return await self._store.select_unsent(ContentKind(kind), destination.key, limit)

    async def is_sent(self, kind: ContentKind, item_id: str, destination: Destination) -> bool:
        return await self._store.has_fact(ContentKind(kind), item_id, destination.key)

    async def record_sent(
        self,
        kind: ContentKind,
        item_id: str,
        destination: Destination,
        remote_message_id: Optional[str],
        content: str = "",
    ) -> bool:
        """
        Record a confirmed send.

        Idempotent: a second call for the same (kind, item, destination) is a
        no-op. Only the destination's own primary flag is set.

        Returns:
            True if a new fact was created, False if one already existed
        """
        kind = ContentKind(kind)
        fact = PublicationFact(
            content_kind=kind,
            item_id=item_id,
            destination=destination.key,
            remote_message_id=remote_message_id,
            content=content,
            sent_at=datetime.now(timezone.utc),
        )
        created = await self._store.insert_fact(fact)
        if not created:
            logger.info(f"{kind.value} {item_id} already recorded for {destination.key}")
            return False

        if destination.primary_flag:
            await self._store.set_primary_flag(kind, item_id, destination.primary_flag)
        logger.info(f"Recorded {kind.value} {item_id} sent to {destination.key} ({remote_message_id})")
        return True
