import unittest
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx

from tests.helpers import RecordingTransport, api_handler, make_wiki, siteinfo_payload
from wikikeeper.models import WikiStatus
from wikikeeper.repositories import InMemoryRepository
from wikikeeper.services.collector import CollectionOutcome, CollectorService
from wikikeeper.services.errors import CollectorError, WikiNotFoundError
from wikikeeper.services.mediawiki import MediaWikiService


class CollectorTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.repo = InMemoryRepository()
        self.apis: dict[str, dict] = {}
        self.transport = RecordingTransport(api_handler(self.apis))
        self.http = httpx.AsyncClient(transport=self.transport)
        self.collector = CollectorService(self.repo, MediaWikiService(self.http, timeout=5.0))

    async def asyncTearDown(self) -> None:
        await self.http.aclose()

    async def test_collects_new_wiki_end_to_end(self) -> None:
        self.apis["https://wiki.example.org/wiki/api.php"] = siteinfo_payload(pages=500, edits=9000)
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        outcome = await self.collector.collect_one(wiki.id)

        self.assertEqual(outcome, CollectionOutcome.COLLECTED)
        stored = await self.repo.wikis.get_by_id(wiki.id)
        self.assertEqual(stored.status, WikiStatus.OK.value)
        self.assertEqual(stored.api_url, "https://wiki.example.org/wiki/api.php")
        self.assertEqual(stored.index_url, "https://wiki.example.org/wiki/index.php")
        self.assertEqual(stored.sitename, "Example Wiki")
        self.assertEqual(stored.lang, "en")
        self.assertEqual(stored.db_type, "mysql")
        self.assertEqual(stored.mediawiki_version, "MediaWiki 1.39.3")
        self.assertEqual(stored.max_page_id, 131)
        self.assertTrue(stored.api_available)
        self.assertIsNotNone(stored.last_check_at)
        self.assertIsNone(stored.last_error)

        snapshots = await self.repo.stats.list_by_wiki(wiki.id)
        self.assertEqual(len(snapshots), 1)
        self.assertEqual(snapshots[0].pages, 500)
        self.assertEqual(snapshots[0].edits, 9000)
        self.assertEqual(snapshots[0].active_users, 3)
        self.assertEqual(snapshots[0].http_status, 200)
        self.assertEqual(snapshots[0].time, stored.last_check_at)

    async def test_uses_cached_endpoint_without_detection(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        wiki = await self.repo.wikis.create(make_wiki(
            "https://wiki.example.org",
            api_url="https://wiki.example.org/w/api.php",
            index_url="https://wiki.example.org/w/index.php",
        ))

        await self.collector.collect_one(wiki.id)

        self.assertEqual(self.transport.urls("HEAD"), [])
        self.assertEqual(self.transport.urls("GET"), ["https://wiki.example.org/w/api.php"])

    async def test_redetects_when_cached_endpoint_fails(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        wiki = await self.repo.wikis.create(make_wiki(
            "https://wiki.example.org",
            api_url="https://wiki.example.org/old/api.php",
            index_url="https://wiki.example.org/old/index.php",
        ))

        outcome = await self.collector.collect_one(wiki.id)

        self.assertEqual(outcome, CollectionOutcome.COLLECTED)
        stored = await self.repo.wikis.get_by_id(wiki.id)
        self.assertEqual(stored.api_url, "https://wiki.example.org/w/api.php")
        self.assertEqual(stored.index_url, "https://wiki.example.org/w/index.php")

    async def test_failure_is_recorded_without_snapshot(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        with self.assertRaises(CollectorError) as ctx:
            await self.collector.collect_one(wiki.id)

        self.assertEqual(ctx.exception.op, "detect_api")
        stored = await self.repo.wikis.get_by_id(wiki.id)
        self.assertEqual(stored.status, WikiStatus.ERROR.value)
        self.assertIn("API not found", stored.last_error)
        self.assertEqual(stored.last_error_at, stored.last_check_at)
        self.assertFalse(stored.api_available)
        self.assertEqual(await self.repo.stats.list_by_wiki(wiki.id), [])

    async def test_failure_keeps_previous_snapshots(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))
        await self.collector.collect_one(wiki.id)

        self.apis.clear()
        with self.assertRaises(CollectorError):
            await self.collector.collect_one(wiki.id)

        self.assertEqual(len(await self.repo.stats.list_by_wiki(wiki.id)), 1)

    async def test_unknown_wiki(self) -> None:
        with self.assertRaises(WikiNotFoundError):
            await self.collector.collect_one("00000000-0000-0000-0000-000000000000")

    async def test_wiki_deleted_during_fetch_is_not_recreated(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        wiki = await self.repo.wikis.create(make_wiki(
            "https://wiki.example.org",
            api_url="https://wiki.example.org/w/api.php",
            index_url="https://wiki.example.org/w/index.php",
        ))
        fetch = self.collector.mediawiki.fetch_siteinfo

        async def fetch_then_delete(client):
            siteinfo = await fetch(client)
            await self.repo.wikis.delete(wiki.id)
            return siteinfo

        self.collector.mediawiki.fetch_siteinfo = fetch_then_delete

        with self.assertRaises(WikiNotFoundError) as ctx:
            await self.collector.collect_one(wiki.id)

        self.assertEqual(ctx.exception.op, "update_wiki")
        self.assertIsNone(await self.repo.wikis.get_by_id(wiki.id))
        self.assertEqual(await self.repo.stats.list_by_wiki(wiki.id), [])

    async def test_later_duplicate_is_removed(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        original = await self.repo.wikis.create(make_wiki(
            "http://wiki.example.org",
            created_ago=timedelta(days=30),
            api_url="https://wiki.example.org/w/api.php",
            index_url="https://wiki.example.org/w/index.php",
        ))
        duplicate = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        outcome = await self.collector.collect_one(duplicate.id)

        self.assertEqual(outcome, CollectionOutcome.REMOVED_AS_DUPLICATE)
        self.assertIsNone(await self.repo.wikis.get_by_id(duplicate.id))
        self.assertIsNotNone(await self.repo.wikis.get_by_id(original.id))
        self.assertEqual(self.repo.store.stats, [])

    async def test_older_site_removes_later_duplicate(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        original = await self.repo.wikis.create(make_wiki(
            "https://wiki.example.org", created_ago=timedelta(days=30)
        ))
        duplicate = await self.repo.wikis.create(make_wiki(
            "http://wiki.example.org",
            api_url="https://wiki.example.org/w/api.php",
        ))

        outcome = await self.collector.collect_one(original.id)

        self.assertEqual(outcome, CollectionOutcome.COLLECTED)
        self.assertIsNone(await self.repo.wikis.get_by_id(duplicate.id))
        self.assertEqual(len(await self.repo.stats.list_by_wiki(original.id)), 1)

    async def test_duplicate_check_failure_is_ignored(self) -> None:
        self.apis["https://wiki.example.org/w/api.php"] = siteinfo_payload()
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))
        self.collector.reconciler.resolve_duplicate = AsyncMock(side_effect=RuntimeError("db down"))

        with self.assertLogs("wikikeeper.services.collector", level="WARNING"):
            outcome = await self.collector.collect_one(wiki.id)

        self.assertEqual(outcome, CollectionOutcome.COLLECTED)
        self.assertEqual(len(await self.repo.stats.list_by_wiki(wiki.id)), 1)

    async def test_collect_batch_skips_inactive_and_counts_snapshots(self) -> None:
        self.apis["https://a.example.org/w/api.php"] = siteinfo_payload()
        self.apis["https://b.example.org/w/api.php"] = siteinfo_payload()
        a = await self.repo.wikis.create(make_wiki("https://a.example.org"))
        await self.repo.wikis.create(make_wiki("https://b.example.org", is_active=False))
        await self.repo.wikis.create(make_wiki("https://broken.example.org"))

        collected = await self.collector.collect_batch(limit=10, delay=0)

        self.assertEqual(collected, 1)
        self.assertEqual(len(self.repo.store.stats), 1)
        self.assertEqual(self.repo.store.stats[0].wiki_id, a.id)


if __name__ == "__main__":
    unittest.main()
