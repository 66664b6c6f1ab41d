"""Service-level exceptions."""


class ServiceError(Exception):
    """An operation failure with context about what was being processed."""

    def __init__(self, op: str, cause: Exception | str, url: str | None = None):
        self.op = op
        self.url = url
        self.cause = cause
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.url:
            return f"[{self.url}] {self.op}: {self.cause}"
        return f"{self.op}: {self.cause}"


class MediaWikiError(ServiceError):
    """MediaWiki API discovery or query failure."""


class MediaWikiNotFoundError(MediaWikiError):
    """No candidate endpoint answered like a MediaWiki API."""


class MediaWikiUnavailableError(MediaWikiError):
    """Transport failure or non-200 response from the wiki."""


class InvalidResponseError(MediaWikiError):
    """Response body was not the expected siteinfo payload."""


class MediaWikiAPIError(MediaWikiError):
    """The wiki answered with an API error envelope."""


class CollectorError(ServiceError):
    """Siteinfo collection failed for a wiki."""


class WikiNotFoundError(CollectorError):
    """The wiki to collect no longer exists."""


class ArchiveSearchError(ServiceError):
    """archive.org search failed as a whole (not a single item)."""
