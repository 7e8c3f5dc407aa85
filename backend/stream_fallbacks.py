"""
Alternate stream URLs for when a provider's advertised extension fails.

Providers often serve the same stream under several container extensions
and only some of them work for a given client. Given the URL that failed,
derive the candidates worth trying next:

    live:  <ext> -> .m3u8 -> .m3u
    VOD:   <ext> -> .m3u8 -> .ts

The query string is kept verbatim because it usually carries the auth token.
"""
import logging
import re
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)

LIVE_FALLBACK_EXTENSIONS = ("m3u8", "m3u")
VOD_FALLBACK_EXTENSIONS = ("m3u8", "ts")

_EXTENSION_RE = re.compile(r"\.([a-z0-9]+)$", re.IGNORECASE)


def get_stream_fallbacks(url: str, is_live: bool) -> list[str]:
    """Return fallback URLs in the order they should be tried.

    Empty when the path has no extension or the URL cannot be parsed.
    The current extension is never proposed again.
    """
    try:
        parts = urlsplit(url)
        # Absolute URLs only; an empty host (file:///...) is still valid
        if not parts.scheme:
            return []
        # Force port parsing so malformed netlocs are rejected here
        parts.port
    except ValueError:
        logger.debug("[STREAM-FALLBACK] Unparseable URL, no fallbacks")
        return []

    match = _EXTENSION_RE.search(parts.path)
    if not match:
        return []

    current_ext = match.group(1).lower()
    base_path = parts.path[:match.start()]
    candidates = LIVE_FALLBACK_EXTENSIONS if is_live else VOD_FALLBACK_EXTENSIONS

    return [
        urlunsplit((parts.scheme, parts.netloc, f"{base_path}.{ext}", parts.query, parts.fragment))
        for ext in candidates
        if ext != current_ext
    ]
