"""
Core Layer - Reconciliation, publication state and orchestration.

This module provides:
    - Reconciler: emits only records not already stored, persists them
    - NewPairFilter / ListingThresholdFilter: the two filtering policies
    - PublicationStateTracker: at most one send per (item, destination)
    - Publisher: select unsent -> render -> send -> record
    - LaunchMonitor: scan cycles with count reports

Data Flow:
    1. A scanner or the news aggregator produces candidate records
    2. A filter drops records that do not qualify
    3. Reconciler skips known records; the store's unique index rejects races
    4. Later, Publisher selects unsent items per destination
    5. After a confirmed send, PublicationStateTracker records the fact
"""

from .filters import ListingThresholdFilter, NewPairFilter
from .reconciler import AssetStore, NewsStore, ReconcileReport, Reconciler, UpsertOutcome
from .publication import (
    TELEGRAM_CHANNEL,
    TELEGRAM_GROUP,
    X,
    Destination,
    PublicationStateTracker,
    PublicationStore,
    default_destinations,
)
from .publisher import DistributionClient, PublishReport, Publisher, PublisherConfig
from .monitor import CycleReport, LaunchMonitor

__all__ = [
    "ListingThresholdFilter",
    "NewPairFilter",
    "AssetStore",
    "NewsStore",
    "ReconcileReport",
    "Reconciler",
    "UpsertOutcome",
    "TELEGRAM_CHANNEL",
    "TELEGRAM_GROUP",
    "X",
    "Destination",
    "PublicationStateTracker",
    "PublicationStore",
    "default_destinations",
    "DistributionClient",
    "PublishReport",
    "Publisher",
    "PublisherConfig",
    "CycleReport",
    "LaunchMonitor",
]
