"""URL helpers shared by discovery and archive matching."""

from urllib.parse import urlparse

# Suffixes users paste that are not part of the wiki root
_WIKI_PATH_SUFFIXES = ("/wiki", "/w", "/index.php")

MAX_EXCERPT_LENGTH = 120


def normalize_url(raw_url: str) -> str | None:
    """Normalize a user-supplied wiki URL to its root.

    Strips whitespace, a trailing slash and common wiki path suffixes,
    and defaults the scheme to https.

    Returns:
        The normalized URL, or None if it has no usable host.
    """
    url = raw_url.strip().removesuffix("/")
    for suffix in _WIKI_PATH_SUFFIXES:
        url = url.removesuffix(suffix)

    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if not parsed.netloc:
        return None
    return url


def swap_scheme(url: str, scheme: str) -> str:
    """Return url with its http/https scheme replaced."""
    for prefix in ("http://", "https://"):
        if url.startswith(prefix):
            return f"{scheme}://{url[len(prefix):]}"
    return url


def same_path(original_url: str, redirect_url: str) -> bool:
    """True when a redirect changed only scheme and/or host."""
    try:
        return urlparse(original_url).path == urlparse(redirect_url).path
    except ValueError:
        return False


def excerpt(body: str, limit: int = MAX_EXCERPT_LENGTH) -> str:
    """Truncate a response body for error messages."""
    if len(body) > limit:
        body = body[:limit] + "..."
    return body.replace("\n", " ").replace("\r", " ").strip()
