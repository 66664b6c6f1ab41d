"""Wiki management routes."""

import logging
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status
from pydantic import BaseModel

from wikikeeper.api.deps import Archive, Collector, Repo
from wikikeeper.models import Wiki
from wikikeeper.repositories import DuplicateURLError, WikiListOptions
from wikikeeper.services import ArchiveService, CollectorService
from wikikeeper.services.errors import ArchiveSearchError, CollectorError
from wikikeeper.services.urls import normalize_url

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateWikiRequest(BaseModel):
    """Request to start tracking a wiki."""

    url: str
    name: str | None = None


class WikiResponse(BaseModel):
    """Wiki information response."""

    id: str
    url: str
    api_url: str | None = None
    index_url: str | None = None
    wiki_name: str | None = None
    sitename: str | None = None
    lang: str | None = None
    dbtype: str | None = None
    dbversion: str | None = None
    mediawiki_version: str | None = None
    max_page_id: int | None = None
    status: str
    has_archive: bool
    api_available: bool
    last_error: str | None = None
    last_error_at: str | None = None
    archive_last_check_at: str | None = None
    archive_last_error: str | None = None
    archive_last_error_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_check_at: str | None = None
    is_active: bool


class WikiListResponse(BaseModel):
    total: int
    page: int
    page_size: int
    data: list[WikiResponse]


class StatsResponse(BaseModel):
    """One siteinfo statistics snapshot."""

    wiki_id: str
    time: str | None = None
    pages: int
    articles: int
    edits: int
    images: int
    users: int
    active_users: int
    admins: int
    jobs: int
    response_time_ms: int | None = None
    http_status: int | None = None


class StatsListResponse(BaseModel):
    wiki_id: str
    days: int
    data: list[StatsResponse]


class ArchiveResponse(BaseModel):
    """One archive.org dump item."""

    id: str
    wiki_id: str
    ia_identifier: str
    added_date: str | None = None
    dump_date: str | None = None
    item_size: int | None = None
    uploader: str | None = None
    scanner: str | None = None
    upload_state: str | None = None
    has_xml_current: bool
    has_xml_history: bool
    has_images_dump: bool
    has_titles_list: bool
    has_images_list: bool
    has_legacy_wikidump: bool
    created_at: str | None = None
    updated_at: str | None = None


class ArchiveListResponse(BaseModel):
    wiki_id: str
    data: list[ArchiveResponse]


class TaskAcceptedResponse(BaseModel):
    detail: str
    wiki_id: str


async def run_collection(collector: CollectorService, wiki_id: str) -> None:
    """Background task: collect siteinfo for one wiki."""
    try:
        outcome = await collector.collect_one(wiki_id)
        logger.info(f"[API] Collection for {wiki_id} finished: {outcome.value}")
    except CollectorError as e:
        logger.info(f"[API] Collection failed for {wiki_id}: {e}")


async def run_archive_check(
    archive: ArchiveService, wiki_id: str, api_url: str, index_url: str | None
) -> None:
    """Background task: check archive.org for one wiki."""
    try:
        result = await archive.collect_archives(wiki_id, api_url, index_url)
        logger.info(
            f"[API] Archive check completed: found={result.found}, "
            f"imported={result.imported}, updated={result.updated}"
        )
    except ArchiveSearchError as e:
        logger.info(f"[API] Archive check failed for {wiki_id}: {e}")
        await archive.update_wiki_archive_error(wiki_id, e)


async def _get_wiki_or_404(repo: Repo, wiki_id: UUID) -> Wiki:
    wiki = await repo.wikis.get_by_id(str(wiki_id))
    if wiki is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wiki not found")
    return wiki


@router.get("", response_model=WikiListResponse)
async def list_wikis(
    repo: Repo,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    wiki_status: Literal["pending", "ok", "error", "offline"] | None = Query(None, alias="status"),
    has_archive: bool | None = None,
    search: str | None = None,
) -> WikiListResponse:
    """List tracked wikis, most recently updated first."""
    wikis, total = await repo.wikis.list_wikis(WikiListOptions(
        page=page,
        page_size=page_size,
        status=wiki_status,
        has_archive=has_archive,
        search=search or None,
    ))
    return WikiListResponse(
        total=total,
        page=page,
        page_size=page_size,
        data=[WikiResponse(**w.to_dict()) for w in wikis],
    )


@router.post("", response_model=WikiResponse, status_code=status.HTTP_201_CREATED)
async def create_wiki(
    request: CreateWikiRequest,
    repo: Repo,
    collector: Collector,
    background_tasks: BackgroundTasks,
) -> WikiResponse:
    """Track a new wiki and schedule its first collection."""
    url = normalize_url(request.url)
    if not url:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid URL format")

    if await repo.wikis.get_by_url(url):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Wiki already exists")

    try:
        wiki = await repo.wikis.create(Wiki(url=url, wiki_name=request.name))
    except DuplicateURLError:
        # Lost a race with a concurrent create
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Wiki already exists")

    logger.info(f"[API] Tracking new wiki {url} ({wiki.id})")
    background_tasks.add_task(run_collection, collector, wiki.id)
    return WikiResponse(**wiki.to_dict())


@router.get("/{wiki_id}", response_model=WikiResponse)
async def get_wiki(wiki_id: UUID, repo: Repo) -> WikiResponse:
    """Get a specific wiki."""
    wiki = await _get_wiki_or_404(repo, wiki_id)
    return WikiResponse(**wiki.to_dict())


@router.delete("/{wiki_id}")
async def delete_wiki(wiki_id: UUID, repo: Repo) -> dict:
    """Stop tracking a wiki. Its snapshots and archive rows go with it."""
    if not await repo.wikis.delete(str(wiki_id)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Wiki not found")
    return {"detail": "Wiki deleted", "wiki_id": str(wiki_id)}


@router.post(
    "/{wiki_id}/check",
    response_model=TaskAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def check_wiki(
    wiki_id: UUID,
    repo: Repo,
    collector: Collector,
    background_tasks: BackgroundTasks,
) -> TaskAcceptedResponse:
    """Collect siteinfo for a wiki in the background."""
    wiki = await _get_wiki_or_404(repo, wiki_id)
    background_tasks.add_task(run_collection, collector, wiki.id)
    return TaskAcceptedResponse(detail="Stats collection started", wiki_id=wiki.id)


@router.post(
    "/{wiki_id}/check-archive",
    response_model=TaskAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def check_wiki_archive(
    wiki_id: UUID,
    repo: Repo,
    archive: Archive,
    background_tasks: BackgroundTasks,
) -> TaskAcceptedResponse:
    """Check archive.org for a wiki in the background."""
    wiki = await _get_wiki_or_404(repo, wiki_id)
    if not wiki.api_url:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Wiki API URL not available. Run stats collection first.",
        )
    background_tasks.add_task(run_archive_check, archive, wiki.id, wiki.api_url, wiki.index_url)
    return TaskAcceptedResponse(detail="Archive check started", wiki_id=wiki.id)


@router.get("/{wiki_id}/stats", response_model=StatsListResponse)
async def get_wiki_stats(
    wiki_id: UUID,
    repo: Repo,
    days: int = Query(30, ge=1, le=3650),
) -> StatsListResponse:
    """Statistics snapshots from the last `days` days, newest first."""
    wiki = await _get_wiki_or_404(repo, wiki_id)
    stats = await repo.stats.list_by_wiki(wiki.id, days=days)
    return StatsListResponse(
        wiki_id=wiki.id,
        days=days,
        data=[StatsResponse(**s.to_dict()) for s in stats],
    )


@router.get("/{wiki_id}/archives", response_model=ArchiveListResponse)
async def get_wiki_archives(wiki_id: UUID, repo: Repo) -> ArchiveListResponse:
    """archive.org dumps of a wiki, newest dump first."""
    wiki = await _get_wiki_or_404(repo, wiki_id)
    archives = await repo.archives.list_by_wiki(wiki.id)
    return ArchiveListResponse(
        wiki_id=wiki.id,
        data=[ArchiveResponse(**a.to_dict()) for a in archives],
    )
