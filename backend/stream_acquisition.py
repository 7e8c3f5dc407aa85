"""
Stream acquisition.

Loads a stream into the player as fast as possible, then defends against
misbehaving providers:

1. The primary URL goes to the player immediately; nothing waits on a probe.
2. HTTP(S) URLs are probed in the background. Auth failures found there are
   reported through a callback but never stop playback.
3. If the player rejects the primary URL, fallback URLs are tried one at a
   time, in order, so an already struggling provider is not hit with
   parallel requests.
4. If everything fails, the primary attempt's error is returned.
"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from log_utils import redact_url
from models import AcquisitionResult, LoadResult
from player_backend import PlayerBackend
from stream_fallbacks import get_stream_fallbacks
from stream_prober import StreamProber

logger = logging.getLogger(__name__)

UNKNOWN_LOAD_ERROR = "Unknown error"

BackgroundErrorCallback = Callable[[str], Union[None, Awaitable[None]]]


class StreamAcquisition:
    """Loads streams into a player with background probing and fallbacks."""

    def __init__(self, player: PlayerBackend, prober: Optional[StreamProber] = None):
        self.player = player
        self.prober = prober or StreamProber()
        # Strong refs so background probes are not garbage collected mid-flight
        self._background_tasks: set[asyncio.Task] = set()

    async def acquire(
        self,
        primary_url: str,
        is_live: bool,
        user_agent: Optional[str] = None,
        on_background_error: Optional[BackgroundErrorCallback] = None,
    ) -> AcquisitionResult:
        """
        Load ``primary_url``, falling back to alternate extensions on failure.

        Args:
            primary_url: URL the user picked
            is_live: Live channel (True) or VOD item (False); picks the fallback chain
            user_agent: Optional User-Agent for both the player and the probe
            on_background_error: Called with the probe's message when the
                background check finds an auth failure

        Returns:
            AcquisitionResult with the URL that worked, or the primary error
        """
        safe_url = redact_url(primary_url)
        logger.info("[STREAM-LOAD] Loading %s (live=%s)", safe_url, is_live)

        if user_agent:
            try:
                await self.player.set_property("user-agent", user_agent)
            except Exception as e:
                logger.warning("[STREAM-LOAD] Failed to set user-agent: %s", e)

        # The probe task only starts running once the load suspends, so the
        # player always receives the URL first.
        if primary_url.lower().startswith(("http://", "https://")):
            self._start_background_check(primary_url, user_agent, on_background_error)

        result = await self._load(primary_url)

        if result.success:
            logger.info("[STREAM-LOAD] Primary URL loaded: %s", safe_url)
            return AcquisitionResult.succeeded(primary_url)

        primary_error = result.error or UNKNOWN_LOAD_ERROR
        logger.warning("[STREAM-LOAD] Primary URL failed: %s", primary_error)

        fallbacks = get_stream_fallbacks(primary_url, is_live)
        logger.info("[STREAM-LOAD] Trying %s fallback URLs", len(fallbacks))
        for fallback_url in fallbacks:
            fallback_result = await self._load(fallback_url)
            if fallback_result.success:
                logger.info("[STREAM-LOAD] Fallback succeeded: %s", redact_url(fallback_url))
                return AcquisitionResult.succeeded(fallback_url)
            logger.info("[STREAM-LOAD] Fallback %s failed: %s",
                        redact_url(fallback_url), fallback_result.error or UNKNOWN_LOAD_ERROR)

        logger.error("[STREAM-LOAD] All URLs failed for %s, returning primary error: %s", safe_url, primary_error)
        return AcquisitionResult.failed(primary_url, primary_error)

    async def _load(self, url: str) -> LoadResult:
        """Ask the player to load ``url``; exceptions count as a failed load."""
        try:
            result = await self.player.load_video(url)
        except Exception as e:
            logger.warning("[STREAM-LOAD] Player raised while loading %s: %s", redact_url(url), e)
            return LoadResult(success=False, error=str(e) or type(e).__name__)
        if isinstance(result, dict):
            return LoadResult(success=bool(result.get("success")), error=result.get("error"))
        return result

    def _start_background_check(
        self,
        url: str,
        user_agent: Optional[str],
        on_error: Optional[BackgroundErrorCallback],
    ) -> None:
        task = asyncio.create_task(self._background_check(url, user_agent, on_error))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _background_check(
        self,
        url: str,
        user_agent: Optional[str],
        on_error: Optional[BackgroundErrorCallback],
    ) -> None:
        outcome = await self.prober.probe(url, user_agent)
        if outcome is None:
            return
        # Only auth failures are escalated
        if not outcome.is_auth_failure:
            logger.debug("[STREAM-LOAD] Background check ignored: %s", outcome.message)
            return

        logger.warning("[STREAM-LOAD] Background check failed: %s", outcome.message)
        if on_error is None:
            return
        try:
            maybe_awaitable = on_error(outcome.message)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception:
            logger.exception("[STREAM-LOAD] Background error callback raised")

    async def wait_for_background_checks(self) -> None:
        """Wait for every in-flight background probe to finish."""
        while True:
            pending = [task for task in self._background_tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
