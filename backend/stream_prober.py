"""
Stream Prober service.
Peeks at a stream URL over HTTP to catch providers that answer with error
pages instead of media. Never downloads an open-ended live body.
"""
import logging
from typing import Optional

import httpx

from config import get_env_settings
from log_utils import redact_url
from models import ProbeErrorKind, ProbeOutcome, ProbeSeverity

logger = logging.getLogger(__name__)

# Only ask for the first couple of KB
PROBE_RANGE_HEADER = "bytes=0-2048"
# Bodies at or above this size are never read unless the server honored Range
MAX_SAFE_CONTENT_LENGTH = 100_000
# How much of the body is inspected for an HTML signature
SNIFF_CHARS = 500
# An HLS playlist served as text/html still carries this marker
PLAYLIST_MARKER = "#EXTM3U"
AUTH_KEYWORDS = ("Forbidden", "Unauthorized", "Access denied", "Error")
HTML_PREFIXES = ("<!doctype html", "<html")


def classify_status(status_code: int, reason: str = "") -> Optional[ProbeOutcome]:
    """Map a non-success HTTP status to an outcome. None for 2xx."""
    if 200 <= status_code < 300:
        return None
    if status_code in (401, 403):
        return ProbeOutcome(
            ProbeErrorKind.AUTH, ProbeSeverity.HARD,
            f"Access Denied ({status_code}): {reason}",
        )
    if status_code == 404:
        return ProbeOutcome(ProbeErrorKind.NOT_FOUND, ProbeSeverity.HARD, "Stream Not Found")
    return ProbeOutcome(
        ProbeErrorKind.HTTP, ProbeSeverity.HARD,
        f"HTTP Error {status_code}: {reason}",
    )


def is_safe_to_read(response: httpx.Response) -> bool:
    """Whether the body is bounded enough to read in full.

    A 200 to a Range request means the server ignored the Range header and
    may be sending an endless live feed, so the body is only read when it is
    partial content, an HTML page, or declared small.
    """
    if response.status_code == 206:
        return True
    content_type = response.headers.get("content-type", "")
    if "text/html" in content_type:
        return True
    content_length = response.headers.get("content-length")
    if content_length:
        try:
            return int(content_length) < MAX_SAFE_CONTENT_LENGTH
        except ValueError:
            return False
    return False


def classify_body(text: str) -> Optional[ProbeOutcome]:
    """Detect an HTML error/login page served with a 2xx status."""
    head = text.strip()[:SNIFF_CHARS].lower()
    if not head.startswith(HTML_PREFIXES):
        return None
    if PLAYLIST_MARKER in text:
        return None
    if any(keyword in text for keyword in AUTH_KEYWORDS):
        return ProbeOutcome(ProbeErrorKind.AUTH, ProbeSeverity.SOFT, "Stream Access Denied (Auth Failed)")
    return ProbeOutcome(ProbeErrorKind.FORMAT, ProbeSeverity.SOFT, "Invalid Stream Format (HTML response)")


class StreamProber:
    """Peek-only HTTP checker for stream URLs.

    Pass ``client`` to reuse an existing httpx.AsyncClient (the caller then
    owns its lifecycle). Otherwise a short-lived client is created per probe.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        connect_timeout: Optional[float] = None,
    ):
        if timeout is None or connect_timeout is None:
            env = get_env_settings()
            timeout = env.probe_timeout if timeout is None else timeout
            connect_timeout = env.probe_connect_timeout if connect_timeout is None else connect_timeout
        self._client = client
        self.timeout = httpx.Timeout(timeout, connect=connect_timeout)

    def _build_headers(self, user_agent: Optional[str]) -> dict:
        headers = {
            "Range": PROBE_RANGE_HEADER,
            "Cache-Control": "no-cache",
        }
        if user_agent:
            headers["User-Agent"] = user_agent
        return headers

    async def probe(self, url: str, user_agent: Optional[str] = None) -> Optional[ProbeOutcome]:
        """
        Check a stream URL without risking an unbounded read.

        Returns None when the stream looks fine or could not be checked
        safely, otherwise a ProbeOutcome describing the problem. Never raises
        for network errors.
        """
        safe_url = redact_url(url)
        logger.debug("[STREAM-PROBE] Checking %s", safe_url)
        headers = self._build_headers(user_agent)

        try:
            if self._client is not None:
                return await self._probe_with(self._client, url, headers, safe_url)
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                return await self._probe_with(client, url, headers, safe_url)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.warning("[STREAM-PROBE] Connection failed for %s: %s", safe_url, message)
            return ProbeOutcome(ProbeErrorKind.NETWORK, ProbeSeverity.HARD, f"Connection failed: {message}")

    async def _probe_with(
        self, client: httpx.AsyncClient, url: str, headers: dict, safe_url: str
    ) -> Optional[ProbeOutcome]:
        async with client.stream("GET", url, headers=headers, timeout=self.timeout) as response:
            logger.debug("[STREAM-PROBE] %s -> %s %s", safe_url, response.status_code, response.reason_phrase)

            outcome = classify_status(response.status_code, response.reason_phrase)
            if outcome is not None:
                logger.warning("[STREAM-PROBE] %s for %s", outcome.message, safe_url)
                return outcome

            if not is_safe_to_read(response):
                logger.debug("[STREAM-PROBE] %s: possible endless body, skipping body check", safe_url)
                return None

            try:
                await response.aread()
                text = response.text
            except Exception as e:
                logger.warning("[STREAM-PROBE] Could not read response body for %s: %s", safe_url, e)
                return None

        outcome = classify_body(text)
        if outcome is not None:
            logger.info("[STREAM-PROBE] HTML response for %s: %s", safe_url, outcome.message)
        return outcome


async def check_stream_status(url: str, user_agent: Optional[str] = None) -> Optional[str]:
    """Probe ``url`` and return the error message, or None when it looks OK."""
    outcome = await StreamProber().probe(url, user_agent)
    return outcome.message if outcome else None
