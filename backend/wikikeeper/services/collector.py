"""Siteinfo collection for tracked wikis."""

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum

from wikikeeper.models import COLLECTION_FIELDS, Wiki, WikiStats
from wikikeeper.repositories.protocols import Repository
from wikikeeper.services.errors import CollectorError, MediaWikiError, WikiNotFoundError
from wikikeeper.services.mediawiki import MediaWikiService, SiteInfo
from wikikeeper.services.reconciler import Reconciler

logger = logging.getLogger(__name__)


class CollectionOutcome(str, Enum):
    """Result of a successful collect_one call."""

    COLLECTED = "collected"
    REMOVED_AS_DUPLICATE = "removed_as_duplicate"


class CollectorService:
    """Fetches siteinfo for a wiki and records a statistics snapshot."""

    def __init__(
        self,
        repository: Repository,
        mediawiki: MediaWikiService,
        reconciler: Reconciler | None = None,
    ):
        self.repository = repository
        self.mediawiki = mediawiki
        self.reconciler = reconciler or Reconciler(repository.wikis)

    async def collect_one(self, wiki_id: str) -> CollectionOutcome:
        """Collect siteinfo for one wiki.

        A cached endpoint is tried first; on failure the endpoint is detected
        again from the wiki URL.

        Raises:
            WikiNotFoundError: No wiki with this id, or it was deleted before
                the result could be written.
            CollectorError: Detection or siteinfo fetch failed. The failure
                has already been recorded on the wiki.
        """
        wiki = await self.repository.wikis.get_by_id(wiki_id)
        if wiki is None:
            raise WikiNotFoundError("get_wiki", f"wiki {wiki_id} not found")

        try:
            api_url, index_url, siteinfo = await self._fetch(wiki)
        except MediaWikiError as e:
            await self._record_error(wiki, str(e))
            raise CollectorError(e.op, e.cause, url=wiki.url) from e

        try:
            if await self.reconciler.resolve_duplicate(wiki, api_url):
                return CollectionOutcome.REMOVED_AS_DUPLICATE
        except Exception as e:
            logger.warning(f"[Collector] Duplicate check failed for {wiki.url}: {e}")

        now = datetime.now(timezone.utc)
        general = siteinfo.general
        wiki.sitename = general.sitename or None
        wiki.lang = general.lang or None
        wiki.db_type = general.dbtype or None
        wiki.db_version = general.dbversion or None
        wiki.mediawiki_version = general.generator or None
        wiki.max_page_id = general.maxpageid
        wiki.mark_collected(api_url, index_url, now)
        if not await self.repository.wikis.update(wiki, COLLECTION_FIELDS):
            # Deleted while siteinfo was being fetched
            raise WikiNotFoundError("update_wiki", f"wiki {wiki_id} was deleted", url=wiki.url)

        statistics = siteinfo.statistics
        await self.repository.stats.create(WikiStats(
            wiki_id=wiki.id,
            time=now,
            pages=statistics.pages,
            articles=statistics.articles,
            edits=statistics.edits,
            images=statistics.images,
            users=statistics.users,
            active_users=statistics.activeusers,
            admins=statistics.admins,
            jobs=statistics.jobs,
            response_time_ms=siteinfo.response_time_ms,
            http_status=siteinfo.http_status,
        ))

        logger.info(
            f"[Collector] Collected {wiki.url}: {general.sitename} "
            f"(pages={statistics.pages}, edits={statistics.edits})"
        )
        return CollectionOutcome.COLLECTED

    async def collect_batch(self, limit: int = 50, delay: float = 1.5) -> int:
        """Collect the least recently checked active wikis.

        Returns:
            Number of snapshots written.
        """
        wikis = await self.repository.wikis.list_oldest_checked(
            "last_check_at", limit, active_only=True
        )
        collected = 0
        for i, wiki in enumerate(wikis):
            try:
                if await self.collect_one(wiki.id) == CollectionOutcome.COLLECTED:
                    collected += 1
            except CollectorError as e:
                logger.warning(f"[Collector] {e}")
            if delay > 0 and i < len(wikis) - 1:
                await asyncio.sleep(delay)
        logger.info(f"[Collector] Batch done: {collected}/{len(wikis)} collected")
        return collected

    async def _fetch(self, wiki: Wiki) -> tuple[str, str, SiteInfo]:
        if wiki.api_url:
            client = self.mediawiki.client_for(wiki.url, wiki.api_url, wiki.index_url)
            try:
                siteinfo = await self.mediawiki.fetch_siteinfo(client)
                return client.api_url, client.index_url, siteinfo
            except MediaWikiError as e:
                logger.info(f"[Collector] Cached API failed for {wiki.url}, re-detecting: {e}")

        client = await self.mediawiki.initialize(wiki.url)
        siteinfo = await self.mediawiki.fetch_siteinfo(client)
        return client.api_url, client.index_url, siteinfo

    async def _record_error(self, wiki: Wiki, message: str) -> None:
        wiki.mark_error(message, datetime.now(timezone.utc))
        if not await self.repository.wikis.update(wiki, COLLECTION_FIELDS):
            logger.info(f"[Collector] {wiki.url} was deleted, error not recorded")
        logger.warning(f"[Collector] Failed to collect {wiki.url}: {message}")
