"""Archive.org dump discovery for tracked wikis.

Searches the Internet Archive for items whose originalurl matches a wiki's
API or index URL (either scheme), reads each item's metadata and file list,
and upserts one WikiArchive row per item.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, quote_plus

import httpx

from wikikeeper.models import ARCHIVE_STATUS_FIELDS, WikiArchive
from wikikeeper.repositories.protocols import Repository
from wikikeeper.services.errors import ArchiveSearchError
from wikikeeper.services.fields import decode_str
from wikikeeper.services.urls import swap_scheme

logger = logging.getLogger(__name__)

SEARCH_ROWS = 100

ADDED_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)

DUMP_DATE_PATTERN = re.compile(r"-(\d{8})$")
SIZE_PATTERN = re.compile(r"^([\d.]+)\s*([KMGT]?B?)$")

SIZE_MULTIPLIERS = {
    "": 1,
    "B": 1,
    "K": 1 << 10,
    "KB": 1 << 10,
    "M": 1 << 20,
    "MB": 1 << 20,
    "G": 1 << 30,
    "GB": 1 << 30,
    "T": 1 << 40,
    "TB": 1 << 40,
}

# Flag attribute -> lowercase filename fragments that set it
FILE_MARKERS = {
    "has_xml_current": ("-current.xml",),
    "has_xml_history": ("-history.xml",),
    "has_images_dump": ("-images.7z", "-images.tar"),
    "has_titles_list": ("-titles.txt", "-titles.xml"),
    "has_images_list": ("-images.txt", "-images.xml"),
    "has_legacy_wikidump": ("-wikidump.7z", "-wikidump.tar"),
}


@dataclass
class ArchiveInfo:
    """One archive.org item parsed from search and metadata responses."""
    ia_identifier: str
    added_date: datetime | None = None
    dump_date: datetime | None = None
    item_size: int | None = None
    uploader: str | None = None
    scanner: str | None = None
    upload_state: str | None = None
    has_xml_current: bool = False
    has_xml_history: bool = False
    has_images_dump: bool = False
    has_titles_list: bool = False
    has_images_list: bool = False
    has_legacy_wikidump: bool = False

    def to_model(self, wiki_id: str) -> WikiArchive:
        return WikiArchive(
            wiki_id=wiki_id,
            ia_identifier=self.ia_identifier,
            added_date=self.added_date,
            dump_date=self.dump_date,
            item_size=self.item_size,
            uploader=self.uploader,
            scanner=self.scanner,
            upload_state=self.upload_state,
            has_xml_current=self.has_xml_current,
            has_xml_history=self.has_xml_history,
            has_images_dump=self.has_images_dump,
            has_titles_list=self.has_titles_list,
            has_images_list=self.has_images_list,
            has_legacy_wikidump=self.has_legacy_wikidump,
        )


@dataclass
class ArchiveCheckResult:
    """Search hits and the items whose metadata could be read."""
    found: int = 0
    archives: list[ArchiveInfo] = field(default_factory=list)


@dataclass
class ArchiveCollectResult:
    found: int = 0
    imported: int = 0
    updated: int = 0


def parse_size(size: str) -> int | None:
    """Parse a size like "1.2G", "512 MB" or "1234" into bytes.

    Units are binary multiples. Returns None if the text is not a size.
    """
    text = size.strip().upper()
    match = SIZE_PATTERN.match(text)
    if not match:
        return None
    try:
        value = float(match.group(1))
    except ValueError:
        return None
    return round(value * SIZE_MULTIPLIERS[match.group(2)])


def format_bytes(size: int) -> str:
    """Render a byte count as e.g. "1.5 KiB"."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'KMGTPE'[exp]}iB"


def parse_added_date(value: str) -> datetime | None:
    """Parse an archive.org addeddate, trying each known format as UTC."""
    if not value:
        return None
    for fmt in ADDED_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_dump_date(identifier: str) -> datetime | None:
    """Read a trailing -YYYYMMDD from an item identifier."""
    match = DUMP_DATE_PATTERN.search(identifier)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def parse_item_size(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return round(value)
    if isinstance(value, str):
        return parse_size(value)
    return None


def classify_files(info: ArchiveInfo, files: list[Any]) -> None:
    """Set dump content flags from the item's file names."""
    for entry in files:
        if not isinstance(entry, dict):
            continue
        name = decode_str(entry.get("name")).lower()
        if not name:
            continue
        for flag, markers in FILE_MARKERS.items():
            if any(marker in name for marker in markers):
                setattr(info, flag, True)


def build_search_query(api_url: str, index_url: str) -> str:
    urls = (
        swap_scheme(api_url, "http"),
        swap_scheme(api_url, "https"),
        swap_scheme(index_url, "http"),
        swap_scheme(index_url, "https"),
    )
    return "(" + " OR ".join(f'originalurl:"{url}"' for url in urls) + ")"


class ArchiveService:
    """Checks archive.org for wiki dumps and records them."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        repository: Repository,
        timeout: float = 30.0,
        user_agent: str = "WikiKeeper/1.0",
        base_url: str = "https://archive.org",
    ):
        self.http = http_client
        self.repository = repository
        self.timeout = timeout
        self.user_agent = user_agent or "WikiKeeper/1.0"
        self.base_url = base_url.rstrip("/")

    def build_search_url(self, query: str) -> str:
        # Built by hand so the fl[]/sort[]/rows[] names keep their brackets
        return (
            f"{self.base_url}/advancedsearch.php?q={quote_plus(query)}"
            f"&fl[]=identifier&fl[]=addeddate&fl[]=originalurl"
            f"&sort[]=addeddate+desc&rows[]={SEARCH_ROWS}&output=json"
        )

    async def check_archive(self, api_url: str, index_url: str | None = None) -> ArchiveCheckResult:
        """Search archive.org for dumps of a wiki.

        Items whose metadata cannot be fetched are skipped.

        Raises:
            ArchiveSearchError: Missing api_url or the search request failed.
        """
        if not api_url:
            raise ArchiveSearchError("check_archive", "API URL is required")
        if not index_url:
            index_url = api_url.replace("api.php", "index.php", 1)

        logger.info(f"[Archive] Checking Archive.org for: {api_url}")
        search_url = self.build_search_url(build_search_query(api_url, index_url))
        docs = await self._search(search_url, api_url)
        logger.info(f"[Archive] Found {len(docs)} results for: {api_url}")

        result = ArchiveCheckResult(found=len(docs))
        for doc in docs:
            info = await self._parse_item(doc)
            if info is not None:
                result.archives.append(info)
        return result

    async def collect_archives(
        self, wiki_id: str, api_url: str, index_url: str | None = None
    ) -> ArchiveCollectResult:
        """Check archive.org for a wiki and upsert every item found.

        Raises:
            ArchiveSearchError: The search itself failed. Nothing is written;
                callers record it with update_wiki_archive_error.
        """
        check = await self.check_archive(api_url, index_url)
        result = ArchiveCollectResult(found=check.found)

        for info in check.archives:
            try:
                created = await self.repository.archives.upsert(info.to_model(wiki_id))
            except Exception as e:
                logger.warning(f"[Archive] Failed to upsert archive {info.ia_identifier}: {e}")
                continue
            if created:
                result.imported += 1
                logger.info(f"[Archive] Imported archive: {info.ia_identifier}")
            else:
                result.updated += 1
                logger.info(f"[Archive] Updated archive: {info.ia_identifier}")

        await self._update_wiki_archive_status(wiki_id, has_archive=result.found > 0)
        logger.info(
            f"[Archive] Archive collection completed: found={result.found}, "
            f"imported={result.imported}, updated={result.updated}"
        )
        return result

    async def update_wiki_archive_error(self, wiki_id: str, error: Exception | str) -> None:
        """Record a failed archive check without touching has_archive."""
        wiki = await self.repository.wikis.get_by_id(wiki_id)
        if wiki is None:
            logger.warning(f"[Archive] Wiki {wiki_id} gone, dropping archive error: {error}")
            return
        wiki.mark_archive_error(str(error), datetime.now(timezone.utc))
        await self.repository.wikis.update(wiki, ARCHIVE_STATUS_FIELDS)

    async def _update_wiki_archive_status(self, wiki_id: str, has_archive: bool) -> None:
        wiki = await self.repository.wikis.get_by_id(wiki_id)
        if wiki is None:
            logger.warning(f"[Archive] Wiki {wiki_id} gone, skipping archive status update")
            return
        wiki.mark_archive_checked(has_archive, datetime.now(timezone.utc))
        if not await self.repository.wikis.update(wiki, ARCHIVE_STATUS_FIELDS):
            logger.warning(f"[Archive] Wiki {wiki_id} deleted during check")

    async def _search(self, search_url: str, api_url: str) -> list[dict[str, Any]]:
        try:
            response = await self.http.get(
                search_url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise ArchiveSearchError("search", f"HTTP request failed: {e}", url=api_url) from e

        if response.status_code != 200:
            raise ArchiveSearchError("search", f"HTTP {response.status_code}", url=api_url)

        try:
            payload = response.json()
        except ValueError as e:
            raise ArchiveSearchError("search", f"JSON decode failed: {e}", url=api_url) from e

        body = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(body, dict):
            raise ArchiveSearchError("search", "missing response", url=api_url)
        docs = body.get("docs") or []
        if not isinstance(docs, list):
            raise ArchiveSearchError("search", "docs is not a list", url=api_url)

        logger.info(f"[Archive] Search result: numFound={body.get('numFound', len(docs))}")
        return [
            doc for doc in docs
            if isinstance(doc, dict) and decode_str(doc.get("identifier"))
        ]

    async def _parse_item(self, doc: dict[str, Any]) -> ArchiveInfo | None:
        identifier = decode_str(doc.get("identifier"))
        info = ArchiveInfo(
            ia_identifier=identifier,
            added_date=parse_added_date(decode_str(doc.get("addeddate"))),
        )

        try:
            metadata = await self._fetch_metadata(identifier)
        except (httpx.HTTPError, ValueError) as e:
            logger.info(f"[Archive] Failed to fetch metadata for {identifier}: {e}")
            return None

        item_meta = metadata.get("metadata")
        if isinstance(item_meta, dict):
            info.uploader = decode_str(item_meta.get("uploader")) or None
            info.scanner = decode_str(item_meta.get("scanner")) or None
            info.upload_state = decode_str(item_meta.get("upload-state")) or None

        info.item_size = parse_item_size(metadata.get("item_size"))
        info.dump_date = parse_dump_date(identifier) or info.added_date

        files = metadata.get("files")
        if isinstance(files, list):
            classify_files(info, files)

        logger.info(
            f"[Archive] Loaded: {identifier} "
            f"(xml_current={info.has_xml_current}, xml_history={info.has_xml_history})"
        )
        return info

    async def _fetch_metadata(self, identifier: str) -> dict[str, Any]:
        response = await self.http.get(
            f"{self.base_url}/metadata/{quote(identifier)}",
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
        )
        if response.status_code != 200:
            raise httpx.HTTPStatusError(
                f"HTTP {response.status_code}", request=response.request, response=response
            )
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("metadata is not a JSON object")
        return payload
