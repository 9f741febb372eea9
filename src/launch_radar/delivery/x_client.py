"""
X (Twitter) API v2 client for posting and connection checks.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from launch_radar.core.publication import Destination
from launch_radar.ingestion.errors import RateLimitError, UpstreamError

logger = logging.getLogger(__name__)

X_TWEETS_URL = "https://api.twitter.com/2/tweets"
X_USERS_ME_URL = "https://api.twitter.com/2/users/me"


class XClient:
    """
    Posts text with an OAuth 2.0 user access token.

    Returns the tweet id on success and None on failure. Posts are never
    retried; X rejects duplicate content anyway.
    """

    def __init__(
        self,
        access_token: Optional[str],
        enabled: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 10.0,
        url: str = X_TWEETS_URL,
        me_url: str = X_USERS_ME_URL,
    ) -> None:
        self._access_token = access_token
        self._enabled = enabled and bool(access_token)
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._url = url
        self._me_url = me_url

        if enabled and not access_token:
            logger.warning("X access token not configured. X posting will be disabled.")

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    async def __aenter__(self) -> "XClient":
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
        if not self._enabled:
            logger.warning("X is disabled, skipping post")
            return None
        try:
            tweet_id = await self._post(content)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error posting to X: {e}")
            return None
        logger.info(f"Posted to X: {tweet_id}")
        return tweet_id

    async def _post(self, content: str) -> str:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        headers = {"Authorization": f"Bearer {self._access_token}"}
        async with self._session.post(self._url, json={"text": content}, headers=headers) as response:
            body = await response.json(content_type=None)
            if response.status == 429:
                raise RateLimitError("X rate limit", status_code=429)
            if response.status >= 400:
                detail = body.get("detail") or body.get("title") if isinstance(body, dict) else body
                raise UpstreamError(f"X error {response.status}: {detail}", status_code=response.status)
            return str(body["data"]["id"])

    async def verify(self) -> bool:
        """True if the access token resolves to a user (GET /2/users/me). Never raises."""
        if not self._enabled:
            logger.warning("X is disabled, skipping connection check")
            return False
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            async with self._session.get(self._me_url, headers=headers) as response:
                body = await response.json(content_type=None)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"X connection check failed: {e}")
            return False

        if response.status != 200 or not isinstance(body, dict) or not body.get("data"):
            logger.error(f"X connection check failed with status {response.status}")
            return False
        logger.info(f"X connection verified (@{body['data'].get('username')})")
        return True
