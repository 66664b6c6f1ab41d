"""Repository implementations for data access."""

from wikikeeper.repositories.memory import InMemoryRepository
from wikikeeper.repositories.postgres import (
    PostgresArchiveRepository,
    PostgresStatsRepository,
    PostgresWikiRepository,
    build_postgres_repository,
)
from wikikeeper.repositories.protocols import DuplicateURLError, Repository, WikiListOptions

__all__ = [
    "DuplicateURLError",
    "Repository",
    "WikiListOptions",
    "InMemoryRepository",
    "PostgresWikiRepository",
    "PostgresStatsRepository",
    "PostgresArchiveRepository",
    "build_postgres_repository",
]
