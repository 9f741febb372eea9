"""
Sui event-index client (JSON-RPC suix_queryEvents over httpx).
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from .errors import RateLimitError, UpstreamError, UpstreamUnavailableError
from .retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

SUI_MAINNET_RPC = "https://fullnode.mainnet.sui.io:443"


class MoveEventIndex(Protocol):
    """Event-index contract required by MoveEventScanner."""

    async def query_events(self, query: dict, limit: int) -> list[dict]: ...


def time_range_query(start_ms: int, end_ms: int) -> dict:
    return {"TimeRange": {"startTime": str(start_ms), "endTime": str(end_ms)}}


def move_event_type_query(event_type: str) -> dict:
    return {"MoveEventType": event_type}


class SuiEventClient:
    """
    Queries a Sui fullnode for events, newest first.

    Each call opens a short-lived httpx.AsyncClient; there is no connection
    state to manage.
    """

    def __init__(
        self,
        rpc_url: str = SUI_MAINNET_RPC,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._retry_policy = retry_policy or RetryPolicy()

    async def query_events(self, query: dict, limit: int) -> list[dict]:
        """
        Return one page of raw events for a filter.

        Each event carries id.txDigest, id.eventSeq, type, parsedJson and
        timestampMs.
        """
        result = await retry_async(
            lambda: self._rpc("suix_queryEvents", [query, None, limit, True]),
            self._retry_policy,
            description="suix_queryEvents",
        )
        if not isinstance(result, dict):
            raise UpstreamError(f"Unexpected queryEvents result: {type(result).__name__}")
        return list(result.get("data") or [])

    async def _rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._rpc_url, json=payload)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise RateLimitError("Too Many Requests", status_code=429) from e
            if status >= 500:
                raise UpstreamUnavailableError(f"Server error: {status}", status_code=status) from e
            raise UpstreamError(f"Sui RPC error: {status}", status_code=status) from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailableError(f"{method} failed: {e}") from e

        if not isinstance(body, dict):
            raise UpstreamError(f"Malformed JSON-RPC response for {method}")
        error = body.get("error")
        if error:
            message = str(error.get("message", ""))
            if "rate" in message.lower() or "too many" in message.lower():
                raise RateLimitError(f"{method}: {message}")
            raise UpstreamError(f"{method}: {message} (code {error.get('code')})")
        return body.get("result")
