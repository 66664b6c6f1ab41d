"""Repository protocols.

Services depend on these protocols only, so the PostgreSQL implementation
can be swapped for the in-memory one in tests and scripts.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, Protocol

from wikikeeper.models import Wiki, WikiArchive, WikiStats

# Timestamp columns the schedulers order by
CheckColumn = Literal["last_check_at", "archive_last_check_at"]


class DuplicateURLError(ValueError):
    """Raised when inserting a wiki whose URL is already tracked."""


@dataclass
class WikiListOptions:
    """Filtering and pagination for wiki listings."""
    page: int = 1
    page_size: int = 10
    status: str | None = None
    has_archive: bool | None = None
    search: str | None = None


class WikiRepository(Protocol):
    async def get_by_id(self, wiki_id: str) -> Wiki | None: ...

    async def get_by_url(self, url: str) -> Wiki | None: ...

    async def list_by_api_url(self, api_url: str) -> list[Wiki]: ...

    async def list_wikis(self, options: WikiListOptions) -> tuple[list[Wiki], int]: ...

    async def list_oldest_checked(
        self,
        column: CheckColumn,
        limit: int,
        active_only: bool = False,
        require_api_url: bool = False,
    ) -> list[Wiki]: ...

    async def create(self, wiki: Wiki) -> Wiki: ...

    async def update(self, wiki: Wiki, fields: Iterable[str]) -> bool:
        """Write only the named columns of wiki. False if the row is gone."""
        ...

    async def delete(self, wiki_id: str) -> bool: ...

    async def summary(self) -> dict[str, int]: ...


class StatsRepository(Protocol):
    async def create(self, stats: WikiStats) -> WikiStats: ...

    async def list_by_wiki(self, wiki_id: str, days: int | None = None) -> list[WikiStats]: ...

    async def get_latest(self, wiki_id: str) -> WikiStats | None: ...


class ArchiveRepository(Protocol):
    async def get_by_identifier(self, wiki_id: str, ia_identifier: str) -> WikiArchive | None: ...

    async def list_by_wiki(self, wiki_id: str) -> list[WikiArchive]: ...

    async def upsert(self, archive: WikiArchive) -> bool: ...


@dataclass
class Repository:
    """The stores the reconciliation services are built on."""
    wikis: WikiRepository
    stats: StatsRepository
    archives: ArchiveRepository
