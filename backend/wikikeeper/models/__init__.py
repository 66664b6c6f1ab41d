"""SQLAlchemy models."""

from wikikeeper.models.wiki import ARCHIVE_STATUS_FIELDS, COLLECTION_FIELDS, Wiki, WikiStatus
from wikikeeper.models.wiki_archive import WikiArchive
from wikikeeper.models.wiki_stats import WikiStats

__all__ = [
    "ARCHIVE_STATUS_FIELDS",
    "COLLECTION_FIELDS",
    "Wiki",
    "WikiStatus",
    "WikiStats",
    "WikiArchive",
]
