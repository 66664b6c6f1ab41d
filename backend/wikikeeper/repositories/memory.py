"""In-memory repository implementations.

Used by the test suite and for dry runs without a database. Mirrors the
PostgreSQL semantics the services rely on: unique URLs, nulls-first
ordering, cascade deletes and (wiki_id, ia_identifier) upserts.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from itertools import count

from wikikeeper.models import Wiki, WikiArchive, WikiStats, WikiStatus
from wikikeeper.repositories.protocols import (
    CheckColumn,
    DuplicateURLError,
    Repository,
    WikiListOptions,
)


def _apply_defaults(obj) -> None:
    """Fill unset columns from their SQLAlchemy column defaults, as an INSERT would."""
    for column in obj.__table__.columns:
        if column.default is None or getattr(obj, column.key) is not None:
            continue
        default = column.default
        value = default.arg(None) if default.is_callable else default.arg
        setattr(obj, column.key, value)


def _oldest_first_key(column: CheckColumn):
    def key(wiki: Wiki):
        checked_at = getattr(wiki, column)
        # Never-checked wikis sort before everything else
        return (checked_at is not None, checked_at or wiki.created_at, wiki.created_at)
    return key


class InMemoryStore:
    """Shared tables for the in-memory repositories."""

    def __init__(self):
        self.wikis: dict[str, Wiki] = {}
        self.stats: list[WikiStats] = []
        self.archives: dict[tuple[str, str], WikiArchive] = {}
        self.stats_ids = count(1)


class InMemoryWikiRepository:
    """In-memory implementation of wiki repository."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_id(self, wiki_id: str) -> Wiki | None:
        return self.store.wikis.get(wiki_id)

    async def get_by_url(self, url: str) -> Wiki | None:
        return next((w for w in self.store.wikis.values() if w.url == url), None)

    async def list_by_api_url(self, api_url: str) -> list[Wiki]:
        matches = [w for w in self.store.wikis.values() if w.api_url == api_url]
        return sorted(matches, key=lambda w: w.created_at)

    async def list_wikis(self, options: WikiListOptions) -> tuple[list[Wiki], int]:
        wikis = list(self.store.wikis.values())
        if options.status:
            wikis = [w for w in wikis if w.status == options.status]
        if options.has_archive is not None:
            wikis = [w for w in wikis if w.has_archive == options.has_archive]
        if options.search:
            needle = options.search.lower()
            clean = needle.removeprefix("http://").removeprefix("https://").removeprefix("www.")
            wikis = [
                w for w in wikis
                if needle in (w.sitename or "").lower()
                or needle in w.url.lower()
                or clean in w.url.lower()
            ]

        wikis.sort(key=lambda w: w.updated_at, reverse=True)
        page = max(options.page, 1)
        page_size = max(options.page_size, 1)
        start = (page - 1) * page_size
        return wikis[start:start + page_size], len(wikis)

    async def list_oldest_checked(
        self,
        column: CheckColumn,
        limit: int,
        active_only: bool = False,
        require_api_url: bool = False,
    ) -> list[Wiki]:
        wikis = list(self.store.wikis.values())
        if active_only:
            wikis = [w for w in wikis if w.is_active]
        if require_api_url:
            wikis = [w for w in wikis if w.api_url is not None]
        wikis.sort(key=_oldest_first_key(column))
        return wikis[:limit]

    async def create(self, wiki: Wiki) -> Wiki:
        if await self.get_by_url(wiki.url):
            raise DuplicateURLError(f"Wiki already exists: {wiki.url}")
        _apply_defaults(wiki)
        self.store.wikis[wiki.id] = wiki
        return wiki

    async def update(self, wiki: Wiki, fields: Iterable[str]) -> bool:
        stored = self.store.wikis.get(wiki.id)
        if stored is None:
            return False
        for field in fields:
            setattr(stored, field, getattr(wiki, field))
        stored.updated_at = datetime.now(timezone.utc)
        return True

    async def delete(self, wiki_id: str) -> bool:
        if self.store.wikis.pop(wiki_id, None) is None:
            return False
        # ON DELETE CASCADE
        self.store.stats = [s for s in self.store.stats if s.wiki_id != wiki_id]
        for key in [k for k in self.store.archives if k[0] == wiki_id]:
            del self.store.archives[key]
        return True

    async def summary(self) -> dict[str, int]:
        wikis = list(self.store.wikis.values())
        latest: dict[str, WikiStats] = {}
        for stats in self.store.stats:
            current = latest.get(stats.wiki_id)
            if current is None or stats.time >= current.time:
                latest[stats.wiki_id] = stats
        return {
            "total_wikis": len(wikis),
            "archived_wikis": sum(1 for w in wikis if w.has_archive),
            "status_ok_wikis": sum(1 for w in wikis if w.status == WikiStatus.OK.value),
            "status_error_wikis": sum(1 for w in wikis if w.status == WikiStatus.ERROR.value),
            "active_wikis": sum(1 for w in wikis if w.is_active),
            "total_pages": sum(s.pages for s in latest.values()),
            "total_edits": sum(s.edits for s in latest.values()),
        }


class InMemoryStatsRepository:
    """In-memory implementation of stats repository."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def create(self, stats: WikiStats) -> WikiStats:
        if stats.wiki_id not in self.store.wikis:
            raise ValueError(f"Unknown wiki {stats.wiki_id}")
        _apply_defaults(stats)
        stats.id = next(self.store.stats_ids)
        self.store.stats.append(stats)
        return stats

    async def list_by_wiki(self, wiki_id: str, days: int | None = None) -> list[WikiStats]:
        rows = [s for s in self.store.stats if s.wiki_id == wiki_id]
        if days:
            since = datetime.now(timezone.utc) - timedelta(days=days)
            rows = [s for s in rows if s.time >= since]
        return sorted(rows, key=lambda s: s.time, reverse=True)

    async def get_latest(self, wiki_id: str) -> WikiStats | None:
        rows = await self.list_by_wiki(wiki_id)
        return rows[0] if rows else None


class InMemoryArchiveRepository:
    """In-memory implementation of archive repository."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    async def get_by_identifier(self, wiki_id: str, ia_identifier: str) -> WikiArchive | None:
        return self.store.archives.get((wiki_id, ia_identifier))

    async def list_by_wiki(self, wiki_id: str) -> list[WikiArchive]:
        rows = [a for (wid, _), a in self.store.archives.items() if wid == wiki_id]
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(rows, key=lambda a: a.dump_date or epoch, reverse=True)

    async def upsert(self, archive: WikiArchive) -> bool:
        if archive.wiki_id not in self.store.wikis:
            raise ValueError(f"Unknown wiki {archive.wiki_id}")
        key = (archive.wiki_id, archive.ia_identifier)
        existing = self.store.archives.get(key)
        if existing:
            existing.copy_data_from(archive)
            return False
        _apply_defaults(archive)
        self.store.archives[key] = archive
        return True


class InMemoryRepository(Repository):
    """Repository bundle backed by a single in-memory store."""

    def __init__(self, store: InMemoryStore | None = None):
        self.store = store or InMemoryStore()
        super().__init__(
            wikis=InMemoryWikiRepository(self.store),
            stats=InMemoryStatsRepository(self.store),
            archives=InMemoryArchiveRepository(self.store),
        )
