"""Business logic services."""

from wikikeeper.services.archive import ArchiveCollectResult, ArchiveService
from wikikeeper.services.collector import CollectionOutcome, CollectorService
from wikikeeper.services.mediawiki import MediaWikiClient, MediaWikiService, SiteInfo
from wikikeeper.services.reconciler import Reconciler
from wikikeeper.services.scheduler import (
    ArchiveScheduler,
    CollectionScheduler,
    CycleResult,
    SiteScheduler,
    backoff_for,
)

__all__ = [
    "ArchiveCollectResult",
    "ArchiveService",
    "ArchiveScheduler",
    "CollectionOutcome",
    "CollectionScheduler",
    "CollectorService",
    "CycleResult",
    "MediaWikiClient",
    "MediaWikiService",
    "Reconciler",
    "SiteInfo",
    "SiteScheduler",
    "backoff_for",
]
