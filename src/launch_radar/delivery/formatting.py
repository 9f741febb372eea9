"""
Default message renderer for launches and news.

Telegram messages use HTML parse mode; X posts are plain text.
"""
from __future__ import annotations

import html
import random
from decimal import Decimal
from typing import Any, Optional

from launch_radar.ingestion.models import ContentKind

LAUNCH_INTROS = (
    "🚨 BREAKING: New Token Launch Detected!",
    "⚡ FRESH LAUNCH ALERT!",
    "🎯 NEW TOKEN SPOTTED!",
    "💫 LAUNCH NOTIFICATION!",
)
MAX_DESCRIPTION = 500


def format_number(value: Any) -> str:
    """1234567 -> '1.23M'."""
    num = Decimal(str(value or 0))
    for threshold, suffix in ((Decimal("1e9"), "B"), (Decimal("1e6"), "M"), (Decimal("1e3"), "K")):
        if num >= threshold:
            return f"{num / threshold:.2f}{suffix}"
    return f"{num:.2f}"


def _chain_emoji(chain: str) -> str:
    return "🌊" if chain == "sui" else "🚀"


class MessageRenderer:
    """
    Renders stored launches and news for a platform.

    Usage:
        renderer = MessageRenderer()
        text = renderer.render(ContentKind.LAUNCH, asset, "telegram")
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def render(self, kind: ContentKind, item: Any, platform: str) -> str:
        html_mode = platform == "telegram"
        if ContentKind(kind) == ContentKind.LAUNCH:
            return self.render_launch(item, html_mode)
        return self.render_news(item, html_mode)

    def render_launch(self, asset: Any, html_mode: bool) -> str:
        esc = html.escape if html_mode else (lambda s: s)
        bold = (lambda s: f"<b>{esc(s)}</b>") if html_mode else esc
        chain = asset.chain
        change = Decimal(str(asset.price_change_24h or 0))
        price_places = 8 if html_mode else 6
        intro = self._rng.choice(LAUNCH_INTROS)

        lines = [
            f"{_chain_emoji(chain)} {bold(intro)}",
            "",
            f"💎 {bold(asset.name)} (${esc(asset.symbol)})",
            f"🏷️ Network: {bold(chain.upper())}",
            f"💰 Price: ${Decimal(str(asset.price or 0)):.{price_places}f}",
            f"📊 Market Cap: ${format_number(asset.market_cap)}",
            f"📈 24h Volume: ${format_number(asset.volume_24h)}",
            f"{'📈' if change >= 0 else '📉'} 24h Change: {change:.2f}%",
            f"📅 Launch Time: {asset.launch_time:%Y-%m-%d %H:%M UTC}",
        ]
        if asset.contract_address:
            address = (
                f"<code>{esc(asset.contract_address)}</code>" if html_mode else asset.contract_address
            )
            lines.append(f"📝 Contract: {address}")

        dexscreener = (asset.urls or {}).get("dexscreener")
        if dexscreener:
            lines.append("")
            if html_mode:
                lines.append(f'📊 <a href="{esc(dexscreener)}">View on DexScreener</a>')
            else:
                lines.append(f"📊 DexScreener: {dexscreener}")

        lines.append("")
        lines.append(f"#{chain.upper()}Network #CryptoLaunch #DeFi #NewToken")
        return "\n".join(lines)

    def render_news(self, news: Any, html_mode: bool) -> str:
        esc = html.escape if html_mode else (lambda s: s)
        bold = (lambda s: f"<b>{esc(s)}</b>") if html_mode else esc
        chain = news.chain or "general"
        coin = (news.coin_symbol or "").upper()

        lines = [
            f"{_chain_emoji(chain)} {bold('CRYPTO NEWS ALERT!')}",
            "",
            f"📰 {bold(news.title)}",
            "",
        ]
        if html_mode and news.description:
            description = news.description
            if len(description) > MAX_DESCRIPTION:
                description = description[:MAX_DESCRIPTION] + "..."
            lines.extend([esc(description), ""])

        if coin:
            lines.append(f"🪙 Coin: {bold(coin)}")
        lines.append(f"🏷️ Network: {bold(chain.upper())}")
        lines.append(f"📅 Published: {news.published_at:%Y-%m-%d %H:%M UTC}")
        lines.append("")
        if html_mode:
            lines.append(f'🔗 <a href="{esc(news.url)}">Read Full Article</a>')
        else:
            lines.append(f"🔗 {news.url}")
        lines.append("")

        tags = f"#{chain.upper()}Network #CryptoNews"
        if coin:
            tags += f" #{coin}"
        lines.append(tags)
        return "\n".join(lines)
