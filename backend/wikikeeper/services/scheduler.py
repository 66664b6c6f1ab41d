"""Background schedulers for siteinfo collection and archive checks.

Each scheduler runs as asyncio tasks on the application's event loop:

- an immediate cycle when started
- a continuous loop that peeks at the most overdue site and either backs off
  (the fleet was checked recently) or runs another cycle
- optional manual cycles triggered from the admin API

A cycle walks up to batch_size sites ordered by their check timestamp,
never-checked first, and processes them one at a time.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from wikikeeper.models import Wiki
from wikikeeper.repositories.protocols import CheckColumn, Repository
from wikikeeper.services.archive import ArchiveService
from wikikeeper.services.collector import CollectorService
from wikikeeper.services.errors import ArchiveSearchError

logger = logging.getLogger(__name__)

# Sites checked within this window make the loop back off
FRESHNESS_WINDOW = timedelta(days=3)

# (age below, seconds to wait); more recent checks wait longer
BACKOFF_STEPS = (
    (timedelta(hours=24), 60.0),
    (timedelta(hours=48), 45.0),
    (timedelta(hours=72), 30.0),
)


def backoff_for(age: timedelta) -> float | None:
    """Seconds to wait given the age of the most overdue site's last check.

    Returns None once the site is older than the freshness window.
    """
    if age >= FRESHNESS_WINDOW:
        return None
    for limit, seconds in BACKOFF_STEPS:
        if age < limit:
            return seconds
    return None


@dataclass
class CycleResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    interrupted: bool = False


class SiteScheduler(ABC):
    """Base class for the per-site background loops.

    Subclasses set name, check_column and due_filter, and implement
    is_eligible and process. due_filter is applied to both the cycle listing
    and the overdue peek, so ineligible sites never fill a batch.
    """

    name = "scheduler"
    check_column: CheckColumn = "last_check_at"
    # Keyword filters for list_oldest_checked
    due_filter: dict[str, bool] = {}

    # Seconds between a finished cycle and the next peek
    cycle_pause = 1.0
    # Seconds to wait after the peek query fails
    error_retry_delay = 10.0

    def __init__(
        self,
        repository: Repository,
        interval_minutes: float,
        batch_size: int,
        delay: float,
    ):
        self.repository = repository
        self.interval_minutes = interval_minutes
        self.batch_size = batch_size
        self.delay = delay

        self.running = False
        self.last_cycle_started_at: datetime | None = None
        self.last_cycle_result: CycleResult | None = None

        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    @abstractmethod
    def is_eligible(self, wiki: Wiki) -> bool:
        """Whether a listed site should be processed."""

    @abstractmethod
    async def process(self, wiki: Wiki) -> None:
        """Handle one site. Exceptions count the site as failed."""

    async def list_due(self, limit: int) -> list[Wiki]:
        return await self.repository.wikis.list_oldest_checked(
            self.check_column, limit, **self.due_filter
        )

    async def peek_most_overdue(self) -> Wiki | None:
        sites = await self.list_due(1)
        return sites[0] if sites else None

    def start(self) -> None:
        """Start the immediate cycle and the continuous loop."""
        if self.running:
            logger.warning(f"[{self.name}] Already running")
            return

        self._stop_event = asyncio.Event()
        self.running = True
        logger.info(
            f"[{self.name}] Started (batch_size={self.batch_size}, delay={self.delay}s)"
        )
        self._spawn(self.run_cycle(), "initial-cycle")
        self._spawn(self._run_forever(), "loop")

    async def stop(self) -> None:
        """Signal every task to stop and wait for all of them to finish."""
        if not self.running:
            return

        logger.info(f"[{self.name}] Stopping")
        self._stop_event.set()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
        self.running = False
        logger.info(f"[{self.name}] Stopped")

    def trigger_manual_run(self) -> bool:
        """Run one extra cycle alongside the loop.

        Returns:
            False if the scheduler is not running.
        """
        if not self.running or self._stop_event.is_set():
            logger.warning(f"[{self.name}] Cannot trigger run: scheduler not running")
            return False

        logger.info(f"[{self.name}] Manual cycle triggered")
        self._spawn(self.run_cycle(), "manual-cycle")
        return True

    def status(self) -> dict:
        return {
            "running": self.running,
            "interval_minutes": self.interval_minutes,
            "batch_size": self.batch_size,
            "delay": self.delay,
            "last_cycle_started_at": (
                self.last_cycle_started_at.isoformat() if self.last_cycle_started_at else None
            ),
            "last_cycle_result": (
                asdict(self.last_cycle_result) if self.last_cycle_result else None
            ),
        }

    async def run_cycle(self) -> CycleResult:
        """Process one batch of the least recently checked sites.

        Per-site failures are logged and counted, never raised.
        """
        started = datetime.now(timezone.utc)
        self.last_cycle_started_at = started
        result = CycleResult()
        logger.info(f"[{self.name}] Starting cycle")

        try:
            sites = await self.list_due(self.batch_size)
        except Exception as e:
            logger.error(f"[{self.name}] Failed to list sites: {e}")
            self.last_cycle_result = result
            return result

        for i, wiki in enumerate(sites):
            if self._stop_event.is_set():
                result.interrupted = True
                break

            if not self.is_eligible(wiki):
                result.skipped += 1
                continue

            if result.processed and self.delay > 0:
                if await self._sleep(self.delay):
                    result.interrupted = True
                    break

            result.processed += 1
            logger.info(f"[{self.name}] Processing {i + 1}/{len(sites)}: {wiki.url}")
            try:
                await self.process(wiki)
            except Exception as e:
                result.failed += 1
                logger.error(f"[{self.name}] Failed {wiki.url} ({wiki.id}): {e}")
            else:
                result.succeeded += 1

        self.last_cycle_result = result
        elapsed = (datetime.now(timezone.utc) - started).total_seconds()
        if result.interrupted:
            logger.warning(f"[{self.name}] Cycle interrupted: {result}")
        else:
            logger.info(f"[{self.name}] Cycle completed in {elapsed:.1f}s: {result}")
        return result

    async def _run_forever(self) -> None:
        while not self._stop_event.is_set():
            try:
                due = await self.peek_most_overdue()
            except Exception as e:
                logger.error(f"[{self.name}] Failed to check sites: {e}")
                if await self._sleep(self.error_retry_delay):
                    break
                continue

            checked_at = getattr(due, self.check_column) if due else None
            if checked_at is not None:
                age = datetime.now(timezone.utc) - checked_at
                wait = backoff_for(age)
                if wait is not None:
                    logger.info(
                        f"[{self.name}] Backing off {wait:.0f}s, most overdue site "
                        f"checked {age.total_seconds() / 3600:.1f}h ago"
                    )
                    if await self._sleep(wait):
                        break
                    continue

            await self.run_cycle()
            if await self._sleep(self.cycle_pause):
                break

        logger.info(f"[{self.name}] Loop stopped")

    async def _sleep(self, seconds: float) -> bool:
        """Wait for seconds or until stop; True if stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _spawn(self, coro, label: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"{self.name}-{label}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task


class CollectionScheduler(SiteScheduler):
    """Periodically collects siteinfo for active wikis."""

    name = "CollectionScheduler"
    check_column = "last_check_at"
    due_filter = {"active_only": True}

    def __init__(
        self,
        repository: Repository,
        collector: CollectorService,
        interval_minutes: float = 60.0,
        batch_size: int = 50,
        delay: float = 1.5,
    ):
        super().__init__(repository, interval_minutes, batch_size, delay)
        self.collector = collector

    def is_eligible(self, wiki: Wiki) -> bool:
        return wiki.is_active

    async def process(self, wiki: Wiki) -> None:
        await self.collector.collect_one(wiki.id)


class ArchiveScheduler(SiteScheduler):
    """Periodically checks archive.org for wikis with a known API URL."""

    name = "ArchiveScheduler"
    check_column = "archive_last_check_at"
    due_filter = {"require_api_url": True}

    def __init__(
        self,
        repository: Repository,
        archive: ArchiveService,
        interval_minutes: float = 720.0,
        batch_size: int = 100,
        delay: float = 1.0,
    ):
        super().__init__(repository, interval_minutes, batch_size, delay)
        self.archive = archive

    def is_eligible(self, wiki: Wiki) -> bool:
        return bool(wiki.api_url)

    async def process(self, wiki: Wiki) -> None:
        try:
            await self.archive.collect_archives(wiki.id, wiki.api_url, wiki.index_url)
        except ArchiveSearchError as e:
            await self.archive.update_wiki_archive_error(wiki.id, e)
            raise
