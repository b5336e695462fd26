"""
Request identity for cache entries.

A cache entry is addressed by method + absolute URL. Fragments are dropped
(they never reach the server) and the scheme/host are lower-cased, so the
same resource requested two ways lands on the same key.
"""

import hashlib
import logging
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)


def normalize_url(url: str) -> str:
    """Lower-case scheme and host, drop the fragment."""
    parts = urlsplit(url)
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path or "/",
        parts.query,
        "",
    ))


def request_identity(method: str, url: str) -> str:
    """Human-readable identity, e.g. ``GET https://radio.example/index.html``."""
    return f"{method.upper()} {normalize_url(url)}"


def make_cache_key(method: str, url: str) -> str:
    """
    Deterministic storage key for a request.

    key = SHA256("METHOD URL")[:16]
    """
    identity = request_identity(method, url)
    key = hashlib.sha256(identity.encode()).hexdigest()[:16]
    logger.debug(f"Generated key: {key} ({identity})")
    return key
