"""Dependency injection for FastAPI routes.

Services and schedulers are built once in the application lifespan and
kept on app.state.
"""

from typing import Annotated

from fastapi import Depends, Request

from wikikeeper.repositories import Repository
from wikikeeper.services import (
    ArchiveScheduler,
    ArchiveService,
    CollectionScheduler,
    CollectorService,
)


def get_repository(request: Request) -> Repository:
    return request.app.state.repository


def get_collector(request: Request) -> CollectorService:
    return request.app.state.collector


def get_archive_service(request: Request) -> ArchiveService:
    return request.app.state.archive


def get_collection_scheduler(request: Request) -> CollectionScheduler:
    return request.app.state.collection_scheduler


def get_archive_scheduler(request: Request) -> ArchiveScheduler:
    return request.app.state.archive_scheduler


# Type aliases for dependency injection
Repo = Annotated[Repository, Depends(get_repository)]
Collector = Annotated[CollectorService, Depends(get_collector)]
Archive = Annotated[ArchiveService, Depends(get_archive_service)]
CollectionSched = Annotated[CollectionScheduler, Depends(get_collection_scheduler)]
ArchiveSched = Annotated[ArchiveScheduler, Depends(get_archive_scheduler)]
