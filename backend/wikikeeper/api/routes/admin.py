"""Admin and fleet summary routes."""

import logging

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from wikikeeper.api.deps import ArchiveSched, CollectionSched, Repo

logger = logging.getLogger(__name__)

router = APIRouter()


class TriggerResponse(BaseModel):
    detail: str


class SchedulerStatus(BaseModel):
    """State of one background scheduler."""

    running: bool
    interval_minutes: float
    batch_size: int
    delay: float
    last_cycle_started_at: str | None = None
    last_cycle_result: dict | None = None


class SchedulersResponse(BaseModel):
    collection: SchedulerStatus
    archive: SchedulerStatus


class SummaryResponse(BaseModel):
    """Fleet-wide counters."""

    total_wikis: int
    archived_wikis: int
    status_ok_wikis: int
    status_error_wikis: int
    active_wikis: int
    total_pages: int
    total_edits: int


@router.post(
    "/admin/collect-all",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def collect_all(scheduler: CollectionSched) -> TriggerResponse:
    """Run an extra collection cycle now."""
    if not scheduler.trigger_manual_run():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Collection scheduler is not running",
        )
    return TriggerResponse(detail="Collection cycle started")


@router.post(
    "/admin/check-all-archives",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def check_all_archives(scheduler: ArchiveSched) -> TriggerResponse:
    """Run an extra archive check cycle now."""
    if not scheduler.trigger_manual_run():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Archive scheduler is not running",
        )
    return TriggerResponse(detail="Archive check cycle started")


@router.get("/admin/scheduler", response_model=SchedulersResponse)
async def scheduler_status(
    collection: CollectionSched,
    archive: ArchiveSched,
) -> SchedulersResponse:
    """Status of both background schedulers."""
    return SchedulersResponse(
        collection=SchedulerStatus(**collection.status()),
        archive=SchedulerStatus(**archive.status()),
    )


@router.get("/stats/summary", response_model=SummaryResponse)
async def summary(repo: Repo) -> SummaryResponse:
    """Fleet-wide totals from each wiki's latest snapshot."""
    return SummaryResponse(**await repo.wikis.summary())
