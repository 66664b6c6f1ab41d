import unittest
from datetime import datetime, timedelta, timezone

import httpx
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tests.helpers import RecordingTransport, api_handler, make_wiki, siteinfo_payload
from wikikeeper.database import Base
from wikikeeper.models import (
    ARCHIVE_STATUS_FIELDS,
    COLLECTION_FIELDS,
    WikiArchive,
    WikiStats,
    WikiStatus,
)
from wikikeeper.repositories import DuplicateURLError, WikiListOptions
from wikikeeper.repositories.postgres import build_postgres_repository
from wikikeeper.services.collector import CollectorService
from wikikeeper.services.mediawiki import MediaWikiService

API_URL = "https://wiki.example.org/w/api.php"
INDEX_URL = "https://wiki.example.org/w/index.php"


def _enable_foreign_keys(dbapi_connection, _record) -> None:
    # ON DELETE CASCADE is off by default in SQLite
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLRepositoryTest(unittest.IsolatedAsyncioTestCase):
    """The SQLAlchemy repositories against an in-memory SQLite database."""

    async def asyncSetUp(self) -> None:
        self.engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
        event.listen(self.engine.sync_engine, "connect", _enable_foreign_keys)
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.repo = build_postgres_repository(
            async_sessionmaker(self.engine, expire_on_commit=False)
        )

    async def asyncTearDown(self) -> None:
        await self.engine.dispose()

    async def test_create_and_get(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        by_id = await self.repo.wikis.get_by_id(wiki.id)
        by_url = await self.repo.wikis.get_by_url("https://wiki.example.org")

        self.assertEqual(by_id.url, "https://wiki.example.org")
        self.assertEqual(by_url.id, wiki.id)
        self.assertEqual(by_id.status, WikiStatus.PENDING.value)
        self.assertTrue(by_id.is_active)
        self.assertFalse(by_id.has_archive)

    async def test_create_duplicate_url_raises(self) -> None:
        await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        with self.assertRaises(DuplicateURLError):
            await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        total = (await self.repo.wikis.list_wikis(WikiListOptions()))[1]
        self.assertEqual(total, 1)

    async def test_update_writes_only_named_columns(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))
        now = datetime.now(timezone.utc)

        # Both checks load the row before either writes
        collected = await self.repo.wikis.get_by_id(wiki.id)
        archived = await self.repo.wikis.get_by_id(wiki.id)

        archived.mark_archive_checked(True, now)
        self.assertTrue(await self.repo.wikis.update(archived, ARCHIVE_STATUS_FIELDS))

        collected.sitename = "Example Wiki"
        collected.mark_collected(API_URL, INDEX_URL, now)
        self.assertTrue(await self.repo.wikis.update(collected, COLLECTION_FIELDS))

        stored = await self.repo.wikis.get_by_id(wiki.id)
        self.assertTrue(stored.has_archive)
        self.assertIsNotNone(stored.archive_last_check_at)
        self.assertEqual(stored.status, WikiStatus.OK.value)
        self.assertEqual(stored.sitename, "Example Wiki")
        self.assertEqual(stored.api_url, API_URL)

    async def test_update_of_deleted_wiki_does_not_recreate_it(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))
        stale = await self.repo.wikis.get_by_id(wiki.id)
        self.assertTrue(await self.repo.wikis.delete(wiki.id))

        stale.mark_error("timeout", datetime.now(timezone.utc))

        self.assertFalse(await self.repo.wikis.update(stale, COLLECTION_FIELDS))
        self.assertIsNone(await self.repo.wikis.get_by_id(wiki.id))
        self.assertIsNone(await self.repo.wikis.get_by_url("https://wiki.example.org"))

    async def test_collection_keeps_archive_status_written_during_fetch(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki(
            "https://wiki.example.org", api_url=API_URL, index_url=INDEX_URL
        ))
        http = httpx.AsyncClient(transport=RecordingTransport(
            api_handler({API_URL: siteinfo_payload(pages=500)})
        ))
        self.addAsyncCleanup(http.aclose)
        collector = CollectorService(self.repo, MediaWikiService(http, timeout=5.0))
        fetch = collector.mediawiki.fetch_siteinfo

        async def fetch_while_archive_check_finishes(client):
            siteinfo = await fetch(client)
            other = await self.repo.wikis.get_by_id(wiki.id)
            other.mark_archive_checked(True, datetime.now(timezone.utc))
            await self.repo.wikis.update(other, ARCHIVE_STATUS_FIELDS)
            return siteinfo

        collector.mediawiki.fetch_siteinfo = fetch_while_archive_check_finishes

        await collector.collect_one(wiki.id)

        stored = await self.repo.wikis.get_by_id(wiki.id)
        self.assertEqual(stored.status, WikiStatus.OK.value)
        self.assertTrue(stored.has_archive)
        self.assertEqual((await self.repo.stats.get_latest(wiki.id)).pages, 500)

    async def test_list_oldest_checked_puts_never_checked_first(self) -> None:
        now = datetime.now(timezone.utc)
        recent = await self.repo.wikis.create(make_wiki(
            "https://recent.example.org", last_check_at=now - timedelta(hours=1), api_url=API_URL
        ))
        stale = await self.repo.wikis.create(make_wiki(
            "https://stale.example.org", last_check_at=now - timedelta(days=3)
        ))
        new_older = await self.repo.wikis.create(make_wiki(
            "https://new-older.example.org", created_ago=timedelta(days=2)
        ))
        new_later = await self.repo.wikis.create(make_wiki("https://new-later.example.org"))
        await self.repo.wikis.create(make_wiki("https://off.example.org", is_active=False))

        ordered = await self.repo.wikis.list_oldest_checked("last_check_at", 10, active_only=True)
        self.assertEqual(
            [w.id for w in ordered], [new_older.id, new_later.id, stale.id, recent.id]
        )

        limited = await self.repo.wikis.list_oldest_checked("last_check_at", 1, active_only=True)
        self.assertEqual([w.id for w in limited], [new_older.id])

        with_api = await self.repo.wikis.list_oldest_checked(
            "archive_last_check_at", 10, require_api_url=True
        )
        self.assertEqual([w.id for w in with_api], [recent.id])

    async def test_list_by_api_url_oldest_first(self) -> None:
        later = await self.repo.wikis.create(make_wiki("https://b.example.org", api_url=API_URL))
        older = await self.repo.wikis.create(make_wiki(
            "https://a.example.org", api_url=API_URL, created_ago=timedelta(days=1)
        ))
        await self.repo.wikis.create(make_wiki("https://other.example.org"))

        matches = await self.repo.wikis.list_by_api_url(API_URL)

        self.assertEqual([w.id for w in matches], [older.id, later.id])

    async def test_list_wikis_filters(self) -> None:
        await self.repo.wikis.create(make_wiki(
            "https://www.alpha.example.org", sitename="Alpha Wiki", status="ok"
        ))
        await self.repo.wikis.create(make_wiki("https://beta.example.org", status="error"))

        ok, total = await self.repo.wikis.list_wikis(WikiListOptions(status="ok"))
        self.assertEqual((total, ok[0].sitename), (1, "Alpha Wiki"))

        found, _ = await self.repo.wikis.list_wikis(WikiListOptions(search="https://alpha"))
        self.assertEqual([w.url for w in found], ["https://www.alpha.example.org"])

    async def test_archive_upsert_inserts_then_refreshes(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))

        inserted = await self.repo.archives.upsert(WikiArchive(
            wiki_id=wiki.id, ia_identifier="wiki-example-20240101", item_size=100,
            has_xml_history=True,
        ))
        first = await self.repo.archives.get_by_identifier(wiki.id, "wiki-example-20240101")

        updated = await self.repo.archives.upsert(WikiArchive(
            wiki_id=wiki.id, ia_identifier="wiki-example-20240101", item_size=200,
            has_xml_history=True, has_images_dump=True,
        ))
        rows = await self.repo.archives.list_by_wiki(wiki.id)

        self.assertTrue(inserted)
        self.assertFalse(updated)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].id, first.id)
        self.assertEqual(rows[0].item_size, 200)
        self.assertTrue(rows[0].has_images_dump)
        self.assertTrue(rows[0].has_xml_history)

    async def test_delete_cascades_to_stats_and_archives(self) -> None:
        wiki = await self.repo.wikis.create(make_wiki("https://wiki.example.org"))
        await self.repo.stats.create(WikiStats(wiki_id=wiki.id, pages=10, edits=20))
        await self.repo.archives.upsert(WikiArchive(
            wiki_id=wiki.id, ia_identifier="wiki-example-20240101"
        ))

        self.assertTrue(await self.repo.wikis.delete(wiki.id))
        self.assertFalse(await self.repo.wikis.delete(wiki.id))

        self.assertEqual(await self.repo.stats.list_by_wiki(wiki.id), [])
        self.assertEqual(await self.repo.archives.list_by_wiki(wiki.id), [])

    async def test_summary_uses_latest_snapshot(self) -> None:
        now = datetime.now(timezone.utc)
        wiki = await self.repo.wikis.create(make_wiki(
            "https://wiki.example.org", status="ok", has_archive=True
        ))
        await self.repo.wikis.create(make_wiki("https://down.example.org", status="error"))
        await self.repo.stats.create(WikiStats(
            wiki_id=wiki.id, time=now - timedelta(days=1), pages=5, edits=10
        ))
        await self.repo.stats.create(WikiStats(wiki_id=wiki.id, time=now, pages=10, edits=20))

        summary = await self.repo.wikis.summary()

        self.assertEqual(summary["total_wikis"], 2)
        self.assertEqual(summary["archived_wikis"], 1)
        self.assertEqual(summary["status_ok_wikis"], 1)
        self.assertEqual(summary["status_error_wikis"], 1)
        self.assertEqual(summary["active_wikis"], 2)
        self.assertEqual((summary["total_pages"], summary["total_edits"]), (10, 20))


if __name__ == "__main__":
    unittest.main()
