"""
Telegram Bot API client (sendMessage in HTML parse mode, getMe for checks).
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from launch_radar.core.publication import Destination
from launch_radar.ingestion.errors import RateLimitError, UpstreamError
from launch_radar.ingestion.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramClient:
    """
    Sends messages to a channel or group.

    Returns the remote message id as a string on success and None on any
    failure. Only rate limits are retried, so a send is never duplicated.

    Usage:
        async with TelegramClient(bot_token) as telegram:
            message_id = await telegram.send(channel, "<b>hello</b>")
    """

    def __init__(
        self,
        bot_token: Optional[str],
        enabled: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self._bot_token = bot_token
        self._enabled = enabled and bool(bot_token)
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry_policy = retry_policy or RetryPolicy(max_attempts=3)
        self._api_base = api_base.rstrip("/")

        if enabled and not bot_token:
            logger.warning("Telegram bot token not configured. Telegram posting will be disabled.")

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    async def __aenter__(self) -> "TelegramClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def send(self, destination: Destination, content: str) -> Optional[str]:
        """Send an HTML message to destination.target."""
        if not self._enabled:
            logger.warning("Telegram is disabled, skipping message send")
            return None
        if not destination.target:
            logger.warning(f"No chat id configured for {destination.key}, skipping message send")
            return None

        try:
            message_id = await retry_async(
                lambda: self._send_once(destination.target, content),
                self._retry_policy,
                description="Telegram sendMessage",
                classify=lambda e: isinstance(e, RateLimitError),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error posting Telegram message to {destination.key}: {e}")
            return None

        logger.info(f"Telegram message posted to {destination.key}: {message_id}")
        return message_id

    async def _send_once(self, chat_id: str, content: str) -> str:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": content,
            "parse_mode": "HTML",
            "link_preview_options": {"is_disabled": False},
        }
        async with self._session.post(url, json=payload) as response:
            body = await response.json(content_type=None)
            if response.status == 429:
                raise RateLimitError("Telegram rate limit", status_code=429)
            if response.status >= 400 or not body.get("ok"):
                raise UpstreamError(
                    f"Telegram error {response.status}: {body.get('description')}",
                    status_code=response.status,
                )
            return str(body["result"]["message_id"])

    async def verify(self) -> bool:
        """True if the bot token is accepted (getMe). Never raises."""
        if not self._enabled:
            logger.warning("Telegram is disabled, skipping connection check")
            return False
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        url = f"{self._api_base}/bot{self._bot_token}/getMe"
        try:
            async with self._session.get(url) as response:
                body = await response.json(content_type=None)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Telegram connection check failed: {e}")
            return False

        if response.status != 200 or not isinstance(body, dict) or not body.get("ok"):
            logger.error(f"Telegram connection check failed with status {response.status}")
            return False
        username = (body.get("result") or {}).get("username")
        logger.info(f"Telegram connection verified (bot @{username})")
        return True
