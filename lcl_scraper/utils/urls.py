"""URL resolution and normalization utilities."""

from urllib.parse import urldefrag, urljoin, urlparse


def is_valid_url(url: str | None) -> bool:
    """Check if a string is an absolute http(s) URL."""
    if not url:
        return False
    try:
        result = urlparse(url)
    except ValueError:
        return False
    return result.scheme in ("http", "https") and bool(result.netloc)


def make_absolute_url(url: str | None, base_url: str) -> str | None:
    """Convert a relative URL to absolute.

    Args:
        url: URL (may be relative)
        base_url: Base URL for resolution

    Returns:
        Absolute http(s) URL or None for empty, javascript: and mailto: links
    """
    if not url:
        return None

    url = url.strip()
    if not url or url.startswith(("javascript:", "mailto:", "tel:", "#")):
        return None

    if url.startswith(("http://", "https://")):
        return url

    try:
        resolved = urljoin(base_url, url)
    except ValueError:
        return None
    return resolved if is_valid_url(resolved) else None


def strip_fragment(url: str) -> str:
    """Drop the #fragment so two anchors to the same page compare equal."""
    return urldefrag(url)[0]


def extract_host(url: str | None) -> str | None:
    """Lowercased hostname without port, or None."""
    if not url:
        return None
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def trailing_slash_variant(url: str) -> str:
    """Return the URL with its trailing slash toggled on the path."""
    parsed = urlparse(url)
    if parsed.path.endswith("/") and parsed.path != "/":
        path = parsed.path.rstrip("/")
    elif parsed.path in ("", "/"):
        return url
    else:
        path = parsed.path + "/"
    return parsed._replace(path=path).geturl()
