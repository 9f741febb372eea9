"""
Launch Radar.

Detects new token launches on BNB Chain and Sui, aggregates crypto news from
unreliable upstream feeds, reconciles both against stored records, and tracks
per-destination publication state so an item reaches each destination once.
"""

__version__ = "0.1.0"
