"""MediaWiki API discovery and siteinfo collection.

Turns a bare wiki URL into a validated (api_url, index_url) pair and reads
siteinfo general/statistics from it. Discovery follows permanent redirects
that only move the endpoint to another scheme or host, and ignores
redirects that change the path.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin, urlparse, urlunparse

import httpx

from wikikeeper.services.errors import (
    InvalidResponseError,
    MediaWikiAPIError,
    MediaWikiNotFoundError,
    MediaWikiUnavailableError,
)
from wikikeeper.services.fields import decode_int, decode_optional_int, decode_str
from wikikeeper.services.urls import excerpt, same_path

logger = logging.getLogger(__name__)

SITEINFO_PARAMS = {
    "action": "query",
    "meta": "siteinfo",
    "siprop": "general|statistics",
    "format": "json",
}

# (api path, index path), tried in order
CANDIDATE_PATHS = (
    ("/w/api.php", "/w/index.php"),
    ("/api.php", "/index.php"),
    ("/wiki/api.php", "/wiki/index.php"),
)

PERMANENT_REDIRECT_STATUSES = (301, 308)
SCHEME_UPGRADE_TIMEOUT = 10.0

# httpx.InvalidURL is not an HTTPError; a bad Location header raises it
REQUEST_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass
class MediaWikiClient:
    """A detected MediaWiki installation."""
    url: str
    api_url: str | None = None
    index_url: str | None = None
    was_redirected: bool = False  # http -> https upgrade applied


@dataclass
class SiteInfoGeneral:
    """Fields of siteinfo.general we keep."""
    sitename: str = ""
    lang: str = ""
    dbtype: str = ""
    dbversion: str = ""
    generator: str = ""
    baseurl: str = ""
    mainpage: str = ""
    maxpageid: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteInfoGeneral":
        return cls(
            sitename=decode_str(data.get("sitename")),
            lang=decode_str(data.get("lang")),
            dbtype=decode_str(data.get("dbtype")),
            dbversion=decode_str(data.get("dbversion")),
            generator=decode_str(data.get("generator")),
            baseurl=decode_str(data.get("base")) or decode_str(data.get("baseurl")),
            mainpage=decode_str(data.get("mainpage")),
            maxpageid=decode_optional_int(data.get("maxpageid")),
        )


@dataclass
class SiteInfoStatistics:
    """siteinfo.statistics counters. Unparseable values decode to 0."""
    pages: int = 0
    articles: int = 0
    edits: int = 0
    images: int = 0
    users: int = 0
    activeusers: int = 0
    admins: int = 0
    jobs: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteInfoStatistics":
        return cls(
            pages=decode_int(data.get("pages")),
            articles=decode_int(data.get("articles")),
            edits=decode_int(data.get("edits")),
            images=decode_int(data.get("images")),
            users=decode_int(data.get("users")),
            activeusers=decode_int(data.get("activeusers")),
            admins=decode_int(data.get("admins")),
            jobs=decode_int(data.get("jobs")),
        )


@dataclass
class SiteInfo:
    """Result of a siteinfo query."""
    general: SiteInfoGeneral = field(default_factory=SiteInfoGeneral)
    statistics: SiteInfoStatistics = field(default_factory=SiteInfoStatistics)
    response_time_ms: int = 0
    http_status: int = 200


class MediaWikiService:
    """Service for MediaWiki API discovery and siteinfo queries."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        timeout: float = 30.0,
        user_agent: str = "WikiKeeper/1.0",
    ):
        self.http = http_client
        self.timeout = timeout
        self.user_agent = user_agent or "WikiKeeper/1.0"

    async def initialize(self, wiki_url: str) -> MediaWikiClient:
        """Detect and validate the MediaWiki API for a wiki URL.

        Raises:
            MediaWikiNotFoundError: No candidate endpoint answered.
        """
        logger.info(f"[MediaWiki] Initializing: {wiki_url}")

        base_url, was_redirected = await self._detect_scheme_upgrade(wiki_url)
        api_url, index_url = await self._detect_api_url(base_url)

        logger.info(f"[MediaWiki] API found: {api_url} (redirected: {was_redirected})")
        return MediaWikiClient(
            url=wiki_url,
            api_url=api_url,
            index_url=index_url,
            was_redirected=was_redirected,
        )

    async def resolve(self, wiki_url: str) -> tuple[str, str]:
        """Resolve a wiki URL to its (api_url, index_url) pair."""
        client = await self.initialize(wiki_url)
        return client.api_url, client.index_url

    def client_for(self, wiki_url: str, api_url: str, index_url: str | None) -> MediaWikiClient:
        """Build a client for an already known endpoint."""
        logger.info(f"[MediaWiki] Using known API: {api_url}")
        return MediaWikiClient(url=wiki_url, api_url=api_url, index_url=index_url)

    async def fetch_siteinfo(self, client: MediaWikiClient) -> SiteInfo:
        """Fetch siteinfo general and statistics from a detected API.

        Raises:
            MediaWikiUnavailableError: Transport failure or non-200 status.
            InvalidResponseError: Body is not a siteinfo payload.
            MediaWikiAPIError: The API returned an error envelope.
        """
        if not client.api_url:
            raise MediaWikiNotFoundError("fetch_siteinfo", "no API URL", url=client.url)

        start = time.perf_counter()
        try:
            response = await self._get_siteinfo(client.api_url)
        except REQUEST_ERRORS as e:
            raise MediaWikiUnavailableError(
                "fetch_siteinfo", f"HTTP request failed: {e}", url=client.url
            ) from e
        elapsed_ms = int((time.perf_counter() - start) * 1000)

        if response.status_code != 200:
            raise MediaWikiUnavailableError(
                "fetch_siteinfo",
                f"HTTP {response.status_code}: {excerpt(response.text)}",
                url=client.url,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise InvalidResponseError("parse_response", f"JSON decode: {e}", url=client.url) from e
        if not isinstance(payload, dict):
            raise InvalidResponseError("parse_response", "expected a JSON object", url=client.url)

        error = payload.get("error")
        if error:
            if isinstance(error, dict):
                detail = f"{error.get('code', 'unknown')}: {error.get('info', '')}"
            else:
                detail = str(error)
            raise MediaWikiAPIError("api_error", detail, url=client.url)

        query = payload.get("query")
        if not isinstance(query, dict):
            raise InvalidResponseError("parse_response", "missing query", url=client.url)
        general = query.get("general")
        if not isinstance(general, dict):
            raise InvalidResponseError("parse_general", "missing query.general", url=client.url)
        statistics = query.get("statistics")
        if not isinstance(statistics, dict):
            raise InvalidResponseError("parse_statistics", "missing query.statistics", url=client.url)

        siteinfo = SiteInfo(
            general=SiteInfoGeneral.from_dict(general),
            statistics=SiteInfoStatistics.from_dict(statistics),
            response_time_ms=elapsed_ms,
            http_status=response.status_code,
        )
        logger.info(
            f"[MediaWiki] Fetched siteinfo: {siteinfo.general.sitename} "
            f"(pages={siteinfo.statistics.pages}, edits={siteinfo.statistics.edits}, "
            f"{elapsed_ms}ms)"
        )
        return siteinfo

    async def _detect_scheme_upgrade(self, url: str) -> tuple[str, bool]:
        """Upgrade http:// to https:// when the https root answers.

        Returns:
            (url to use, whether it was upgraded)
        """
        if not url.startswith("http://"):
            return url, False

        https_url = "https://" + url[len("http://"):]
        probe_url = https_url.rstrip("/") + "/"
        try:
            response = await self.http.head(
                probe_url,
                headers={"User-Agent": self.user_agent},
                timeout=min(SCHEME_UPGRADE_TIMEOUT, self.timeout),
                follow_redirects=True,
            )
        except REQUEST_ERRORS:
            return url, False

        if 200 <= response.status_code < 400:
            logger.info(f"[MediaWiki] Scheme upgrade: {url} -> {https_url}")
            return https_url, True
        return url, False

    async def _detect_api_url(self, base_url: str) -> tuple[str, str]:
        """Try the common API paths, honouring scheme/host-only redirects."""
        base_url = base_url.rstrip("/")
        candidates = [(base_url + api, base_url + index) for api, index in CANDIDATE_PATHS]

        last_status: int | None = None
        last_body = ""
        last_error: Exception | None = None

        for api_url, index_url in candidates:
            redirect_url = await self._check_redirect(api_url)
            if redirect_url:
                if not same_path(api_url, redirect_url):
                    logger.info(
                        f"[MediaWiki] Skipping candidate due to path redirect: "
                        f"{api_url} -> {redirect_url}"
                    )
                    continue

                logger.info(f"[MediaWiki] Testing redirect for API: {api_url} -> {redirect_url}")
                try:
                    redirected = await self._get_siteinfo(redirect_url)
                except REQUEST_ERRORS as e:
                    logger.info(f"[MediaWiki] Redirect target failed: {e}")
                else:
                    if self._is_api_response(redirected):
                        logger.info(f"[MediaWiki] Using redirected API: {redirect_url}")
                        target = urlparse(redirect_url)
                        index_path = urlparse(index_url).path
                        return redirect_url, urlunparse(
                            (target.scheme, target.netloc, index_path, "", "", "")
                        )
                logger.info(f"[MediaWiki] Redirected URL doesn't work, trying original: {api_url}")

            try:
                response = await self._get_siteinfo(api_url)
            except REQUEST_ERRORS as e:
                last_error = e
                continue

            last_status = response.status_code
            last_body = response.text
            if self._is_api_response(response):
                return api_url, index_url

        message = f"API not found (tried {len(candidates)} candidates"
        if last_status is not None:
            message += f", last HTTP {last_status}: {excerpt(last_body)}"
        elif last_error is not None:
            message += f", last error: {last_error}"
        message += ")"
        raise MediaWikiNotFoundError("detect_api", message, url=base_url)

    async def _check_redirect(self, url: str) -> str | None:
        """Return the target of a permanent (301/308) redirect, or None."""
        try:
            response = await self.http.head(
                url,
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
                follow_redirects=False,
            )
        except REQUEST_ERRORS:
            return None

        location = response.headers.get("location")
        if response.status_code in PERMANENT_REDIRECT_STATUSES and location:
            target = urljoin(url, location)
            logger.info(f"[MediaWiki] Permanent redirect: {url} -> {target}")
            return target
        return None

    async def _get_siteinfo(self, api_url: str) -> httpx.Response:
        """Issue the siteinfo query without following redirects."""
        return await self.http.get(
            api_url,
            params=SITEINFO_PARAMS,
            headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            timeout=self.timeout,
            follow_redirects=False,
        )

    @staticmethod
    def _is_api_response(response: httpx.Response) -> bool:
        """A MediaWiki API answers 200 with a JSON object holding 'query'."""
        if response.status_code != 200:
            return False
        try:
            payload = response.json()
        except ValueError:
            return False
        return isinstance(payload, dict) and "query" in payload
