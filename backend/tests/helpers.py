"""Shared fixtures for the test suite."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from wikikeeper.models import Wiki


def siteinfo_payload(sitename: str = "Example Wiki", **statistics: Any) -> dict:
    stats = {
        "pages": 120,
        "articles": 80,
        "edits": 3400,
        "images": 12,
        "users": 45,
        "activeusers": 3,
        "admins": 2,
        "jobs": 0,
    }
    stats.update(statistics)
    return {
        "batchcomplete": "",
        "query": {
            "general": {
                "sitename": sitename,
                "lang": "en",
                "dbtype": "mysql",
                "dbversion": "10.6.12-MariaDB",
                "generator": "MediaWiki 1.39.3",
                "base": "https://wiki.example.org/wiki/Main_Page",
                "mainpage": "Main Page",
                "maxpageid": 131,
            },
            "statistics": stats,
        },
    }


class RecordingTransport(httpx.MockTransport):
    """MockTransport that remembers every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    def urls(self, method: str | None = None) -> list[str]:
        return [
            str(r.url).split("?")[0]
            for r in self.requests
            if method is None or r.method == method
        ]


def api_handler(working_apis: dict[str, dict], redirects: dict[str, tuple[int, str]] | None = None):
    """Serve siteinfo for the given API URLs and 404 everything else.

    redirects maps a URL to the (status, Location) its HEAD probe answers.
    """
    redirects = redirects or {}

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url).split("?")[0]
        if request.method == "HEAD":
            if url in redirects:
                status, location = redirects[url]
                return httpx.Response(status, headers={"Location": location})
            return httpx.Response(404)
        if url in working_apis:
            return httpx.Response(200, json=working_apis[url])
        return httpx.Response(404, text="Not Found")

    return handler


def make_wiki(url: str, created_ago: timedelta = timedelta(0), **fields: Any) -> Wiki:
    fields.setdefault("created_at", datetime.now(timezone.utc) - created_ago)
    return Wiki(url=url, **fields)
