"""PostgreSQL repository implementations.

Each call runs in its own short session and commits before returning, so
the schedulers never hold a transaction open across outbound HTTP calls.
Wiki updates name the columns they write: collection and archive checks
run concurrently on the same rows and must not overwrite each other.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wikikeeper.models import Wiki, WikiArchive, WikiStats, WikiStatus
from wikikeeper.models.wiki_archive import ARCHIVE_DATA_FIELDS
from wikikeeper.repositories.protocols import (
    CheckColumn,
    DuplicateURLError,
    Repository,
    WikiListOptions,
)


class PostgresWikiRepository:
    """PostgreSQL implementation of wiki repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_by_id(self, wiki_id: str) -> Wiki | None:
        """Get a wiki by ID."""
        async with self.session_factory() as session:
            result = await session.execute(select(Wiki).where(Wiki.id == wiki_id))
            return result.scalar_one_or_none()

    async def get_by_url(self, url: str) -> Wiki | None:
        """Get a wiki by URL (globally unique)."""
        async with self.session_factory() as session:
            result = await session.execute(select(Wiki).where(Wiki.url == url))
            return result.scalar_one_or_none()

    async def list_by_api_url(self, api_url: str) -> list[Wiki]:
        """Get every wiki resolved to the given API URL, oldest first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Wiki)
                .where(Wiki.api_url == api_url)
                .order_by(Wiki.created_at.asc())
            )
            return list(result.scalars().all())

    async def list_wikis(self, options: WikiListOptions) -> tuple[list[Wiki], int]:
        """List wikis with filters and pagination, most recently updated first."""
        query = select(Wiki)
        if options.status:
            query = query.where(Wiki.status == options.status)
        if options.has_archive is not None:
            query = query.where(Wiki.has_archive == options.has_archive)
        if options.search:
            # Match URLs with or without scheme and www.
            clean = options.search.removeprefix("http://").removeprefix("https://")
            clean = clean.removeprefix("www.")
            query = query.where(
                or_(
                    Wiki.sitename.ilike(f"%{options.search}%"),
                    Wiki.url.ilike(f"%{options.search}%"),
                    Wiki.url.ilike(f"%{clean}%"),
                )
            )

        page = max(options.page, 1)
        page_size = max(options.page_size, 1)

        async with self.session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(query.subquery()))
            ).scalar_one()
            result = await session.execute(
                query.order_by(Wiki.updated_at.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return list(result.scalars().all()), total

    async def list_oldest_checked(
        self,
        column: CheckColumn,
        limit: int,
        active_only: bool = False,
        require_api_url: bool = False,
    ) -> list[Wiki]:
        """Get wikis ordered by a check timestamp, never-checked first."""
        order_column = getattr(Wiki, column)
        query = select(Wiki)
        if active_only:
            query = query.where(Wiki.is_active.is_(True))
        if require_api_url:
            query = query.where(Wiki.api_url.is_not(None))

        async with self.session_factory() as session:
            result = await session.execute(
                query.order_by(order_column.asc().nulls_first(), Wiki.created_at.asc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def create(self, wiki: Wiki) -> Wiki:
        """Insert a new wiki.

        Raises:
            DuplicateURLError: The URL is already tracked.
        """
        async with self.session_factory() as session:
            session.add(wiki)
            try:
                await session.commit()
            except IntegrityError as e:
                raise DuplicateURLError(f"Wiki already exists: {wiki.url}") from e
            return wiki

    async def update(self, wiki: Wiki, fields: Iterable[str]) -> bool:
        """Write the named columns of wiki, leaving every other column as stored.

        Returns:
            False if the wiki no longer exists. Nothing is re-inserted.
        """
        values = {field: getattr(wiki, field) for field in fields}
        values["updated_at"] = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            result = await session.execute(
                update(Wiki).where(Wiki.id == wiki.id).values(**values)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete(self, wiki_id: str) -> bool:
        """Delete a wiki; stats and archives cascade in the database."""
        async with self.session_factory() as session:
            result = await session.execute(delete(Wiki).where(Wiki.id == wiki_id))
            await session.commit()
            return result.rowcount > 0

    async def summary(self) -> dict[str, int]:
        """Fleet-wide counters for the dashboard."""
        latest = (
            select(WikiStats.wiki_id, func.max(WikiStats.time).label("time"))
            .group_by(WikiStats.wiki_id)
            .subquery()
        )
        latest_totals = select(
            func.coalesce(func.sum(WikiStats.pages), 0),
            func.coalesce(func.sum(WikiStats.edits), 0),
        ).join(
            latest,
            (WikiStats.wiki_id == latest.c.wiki_id) & (WikiStats.time == latest.c.time),
        )

        async with self.session_factory() as session:
            counts = (
                await session.execute(
                    select(
                        func.count(Wiki.id),
                        func.count(Wiki.id).filter(Wiki.has_archive.is_(True)),
                        func.count(Wiki.id).filter(Wiki.status == WikiStatus.OK.value),
                        func.count(Wiki.id).filter(Wiki.status == WikiStatus.ERROR.value),
                        func.count(Wiki.id).filter(Wiki.is_active.is_(True)),
                    )
                )
            ).one()
            total_pages, total_edits = (await session.execute(latest_totals)).one()

        return {
            "total_wikis": counts[0],
            "archived_wikis": counts[1],
            "status_ok_wikis": counts[2],
            "status_error_wikis": counts[3],
            "active_wikis": counts[4],
            "total_pages": int(total_pages),
            "total_edits": int(total_edits),
        }


class PostgresStatsRepository:
    """PostgreSQL implementation of stats repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def create(self, stats: WikiStats) -> WikiStats:
        """Append a snapshot."""
        async with self.session_factory() as session:
            session.add(stats)
            await session.commit()
            return stats

    async def list_by_wiki(self, wiki_id: str, days: int | None = None) -> list[WikiStats]:
        """Get snapshots for a wiki, newest first, optionally limited to recent days."""
        query = select(WikiStats).where(WikiStats.wiki_id == wiki_id)
        if days:
            since = datetime.now(timezone.utc) - timedelta(days=days)
            query = query.where(WikiStats.time >= since)

        async with self.session_factory() as session:
            result = await session.execute(query.order_by(WikiStats.time.desc()))
            return list(result.scalars().all())

    async def get_latest(self, wiki_id: str) -> WikiStats | None:
        """Get the most recent snapshot for a wiki."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WikiStats)
                .where(WikiStats.wiki_id == wiki_id)
                .order_by(WikiStats.time.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()


class PostgresArchiveRepository:
    """PostgreSQL implementation of archive repository."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_by_identifier(self, wiki_id: str, ia_identifier: str) -> WikiArchive | None:
        """Get an archive record by wiki and archive.org identifier."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WikiArchive).where(
                    WikiArchive.wiki_id == wiki_id,
                    WikiArchive.ia_identifier == ia_identifier,
                )
            )
            return result.scalar_one_or_none()

    async def list_by_wiki(self, wiki_id: str) -> list[WikiArchive]:
        """Get archive records for a wiki, newest dump first."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(WikiArchive)
                .where(WikiArchive.wiki_id == wiki_id)
                .order_by(WikiArchive.dump_date.desc().nulls_last())
            )
            return list(result.scalars().all())

    async def upsert(self, archive: WikiArchive) -> bool:
        """Insert or update by (wiki_id, ia_identifier) in one statement.

        Returns:
            True if a new row was inserted, False if an existing one was updated.
        """
        now = datetime.now(timezone.utc)
        data = {field: getattr(archive, field) for field in ARCHIVE_DATA_FIELDS}
        for field in data:
            if field.startswith("has_"):
                data[field] = bool(data[field])
        new_id = archive.id or str(uuid4())

        async with self.session_factory() as session:
            insert = _dialect_insert(session)
            stmt = insert(WikiArchive).values(
                id=new_id,
                wiki_id=archive.wiki_id,
                ia_identifier=archive.ia_identifier,
                created_at=now,
                updated_at=now,
                **data,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["wiki_id", "ia_identifier"],
                set_={**data, "updated_at": now},
            ).returning(WikiArchive.id)
            row_id = (await session.execute(stmt)).scalar_one()
            await session.commit()

        # On conflict the existing row keeps its own id
        return row_id == new_id


def _dialect_insert(session: AsyncSession):
    """INSERT construct with ON CONFLICT support for the session's backend."""
    if session.bind.dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


def build_postgres_repository(session_factory: async_sessionmaker[AsyncSession]) -> Repository:
    """Build the repository bundle on top of a session factory."""
    return Repository(
        wikis=PostgresWikiRepository(session_factory),
        stats=PostgresStatsRepository(session_factory),
        archives=PostgresArchiveRepository(session_factory),
    )
