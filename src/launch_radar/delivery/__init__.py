"""
Delivery Layer - Distribution clients and message rendering.

    TelegramClient  - Bot API sendMessage (channel and group destinations)
    XClient         - X API v2 posts
    MessageRenderer - Default launch and news templates

Every client implements send(destination, content) -> remote id | None.
"""
from .formatting import MessageRenderer, format_number
from .telegram import TelegramClient
from .x_client import XClient

__all__ = [
    "MessageRenderer",
    "format_number",
    "TelegramClient",
    "XClient",
]
