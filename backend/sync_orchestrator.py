"""
Startup sync orchestrator.

Runs once per application session:
  - Checks backend health (diagnostic only)
  - Loads sources and user settings, hands UI preferences to the caller
  - Syncs stale channel/EPG sources in batches
  - Syncs stale VOD catalogs for sources whose provider has one

Each phase is isolated: an EPG failure does not stop the VOD phase. The
session's syncing flags are always cleared when the run ends.
"""
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from batch_runner import BatchRunResult, BatchScheduler
from config import AppSettings, RefreshPolicy
from models import Source, SyncKind
from staleness import is_stale

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[Any, Awaitable[Any]]
SessionListener = Callable[["SyncSession"], None]


async def _resolve(value: MaybeAwaitable) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class SyncSession:
    """
    Observable state of one sync run.

    Created when a run starts and torn down when it ends. The running
    orchestrator is the only writer; UI code subscribes to changes.
    """

    def __init__(self, listeners: Optional[list[SessionListener]] = None):
        self.channel_syncing = False
        self.vod_syncing = False
        self.status_message: Optional[str] = None
        self.finished = False
        self._listeners: list[SessionListener] = list(listeners or [])

    def subscribe(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("[AUTO-SYNC] Session listener raised")

    def set_channel_syncing(self, value: bool) -> None:
        self.channel_syncing = value
        self._notify()

    def set_vod_syncing(self, value: bool) -> None:
        self.vod_syncing = value
        self._notify()

    def set_status(self, message: Optional[str]) -> None:
        self.status_message = message
        self._notify()

    def finish(self) -> None:
        """Clear every flag. Safe to call more than once."""
        self.channel_syncing = False
        self.vod_syncing = False
        self.status_message = None
        self.finished = True
        self._notify()

    def to_dict(self) -> dict:
        return {
            "channel_syncing": self.channel_syncing,
            "vod_syncing": self.vod_syncing,
            "status_message": self.status_message,
            "finished": self.finished,
        }


@dataclass
class SyncCallbacks:
    """Receivers for stored UI preferences. Each is called only if the value is set."""
    on_sort_order_loaded: Optional[Callable[[str], None]] = None
    on_shortcuts_loaded: Optional[Callable[[dict[str, str]], None]] = None
    on_theme_loaded: Optional[Callable[[str], None]] = None
    on_sidebar_visibility_loaded: Optional[Callable[[bool], None]] = None
    on_font_size_loaded: Optional[Callable[[Optional[int], Optional[int]], None]] = None


@dataclass
class SyncSummary:
    """What a run did, for diagnostics."""
    healthy: Optional[bool] = None
    source_count: int = 0
    epg: Optional[BatchRunResult] = None
    vod: Optional[BatchRunResult] = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "source_count": self.source_count,
            "epg": self.epg.to_dict() if self.epg else None,
            "vod": self.vod.to_dict() if self.vod else None,
            "errors": self.errors,
        }


class SyncOrchestrator:
    """
    Drives the startup sync of all configured sources.

    Args:
        callbacks: Receivers for UI preferences found in the settings
        health_check: ``() -> bool`` (sync or async); failure is logged only
        staleness_check: ``(source_id, kind, hours) -> bool`` (sync or async).
            Defaults to comparing the source's own last-sync timestamps.
        on_progress: Receives every non-empty status message
        session_listeners: Subscribed to the SyncSession of each run
    """

    def __init__(
        self,
        callbacks: Optional[SyncCallbacks] = None,
        health_check: Optional[Callable[[], MaybeAwaitable]] = None,
        staleness_check: Optional[Callable[[str, SyncKind, float], MaybeAwaitable]] = None,
        on_progress: Optional[Callable[[str], None]] = None,
        session_listeners: Optional[list[SessionListener]] = None,
    ):
        self.callbacks = callbacks or SyncCallbacks()
        self.health_check = health_check
        self.staleness_check = staleness_check
        self.on_progress = on_progress
        self.session_listeners = list(session_listeners or [])
        self.session: Optional[SyncSession] = None
        self.last_summary: Optional[SyncSummary] = None
        self._has_run = False

    @property
    def has_run(self) -> bool:
        return self._has_run

    async def run_once(
        self,
        source_provider: Callable[[], MaybeAwaitable],
        settings_provider: Callable[[], MaybeAwaitable],
        sync_epg: Callable[[Source, Callable[[str], None]], Awaitable[None]],
        sync_vod: Callable[[Source], Awaitable[None]],
    ) -> SyncSummary:
        """
        Run the startup sync. Never raises; problems are logged and recorded
        in the returned summary.

        A second call on the same orchestrator does nothing and returns the
        first run's summary.
        """
        if self._has_run:
            logger.warning("[AUTO-SYNC] Startup sync already ran this session, skipping")
            return self.last_summary or SyncSummary()
        self._has_run = True

        session = SyncSession(self.session_listeners)
        self.session = session
        summary = SyncSummary()
        self.last_summary = summary

        try:
            summary.healthy = await self._check_health()

            sources = await self._load_sources(source_provider)
            summary.source_count = len(sources)
            if not sources:
                logger.info("[AUTO-SYNC] No sources configured, nothing to sync")
                return summary

            settings = await self._load_settings(settings_provider)
            self._apply_preferences(settings)
            policy = settings.refresh_policy()
            enabled = [source for source in sources if source.enabled]

            try:
                summary.epg = await self._run_epg_phase(session, enabled, policy, sync_epg)
            except Exception as e:
                logger.exception("[AUTO-SYNC] Channel/EPG sync phase failed")
                summary.errors.append(f"epg: {e}")

            try:
                summary.vod = await self._run_vod_phase(session, enabled, policy, sync_vod)
            except Exception as e:
                logger.exception("[AUTO-SYNC] VOD sync phase failed")
                summary.errors.append(f"vod: {e}")
        except Exception as e:
            logger.exception("[AUTO-SYNC] Initial sync failed")
            summary.errors.append(str(e))
        finally:
            session.finish()

        return summary

    async def _check_health(self) -> Optional[bool]:
        if self.health_check is None:
            return None
        try:
            healthy = bool(await _resolve(self.health_check()))
        except Exception as e:
            logger.error("[AUTO-SYNC] Backend health check raised: %s", e)
            healthy = False
        if healthy:
            logger.info("[AUTO-SYNC] Backend health check passed")
        else:
            logger.error("[AUTO-SYNC] Backend health check failed - sync may not work")
        return healthy

    async def _load_sources(self, source_provider) -> list[Source]:
        raw = await _resolve(source_provider())
        sources = []
        for entry in raw or []:
            sources.append(entry if isinstance(entry, Source) else Source.from_dict(entry))
        logger.info("[AUTO-SYNC] Loaded %s sources", len(sources))
        return sources

    async def _load_settings(self, settings_provider) -> AppSettings:
        raw = await _resolve(settings_provider())
        if isinstance(raw, AppSettings):
            return raw
        return AppSettings.model_validate(raw or {})

    def _apply_preferences(self, settings: AppSettings) -> None:
        """Forward stored UI preferences to whoever registered for them."""
        cb = self.callbacks
        calls = []
        if settings.channel_sort_order and cb.on_sort_order_loaded:
            calls.append(("sort order", cb.on_sort_order_loaded, (settings.channel_sort_order,)))
        if settings.shortcuts and cb.on_shortcuts_loaded:
            calls.append(("shortcuts", cb.on_shortcuts_loaded, (settings.shortcuts,)))
        if settings.theme and cb.on_theme_loaded:
            calls.append(("theme", cb.on_theme_loaded, (settings.theme,)))
        if settings.show_sidebar is not None and cb.on_sidebar_visibility_loaded:
            calls.append(("sidebar", cb.on_sidebar_visibility_loaded, (settings.show_sidebar,)))
        if (settings.channel_font_size or settings.category_font_size) and cb.on_font_size_loaded:
            calls.append(("font size", cb.on_font_size_loaded,
                          (settings.channel_font_size, settings.category_font_size)))

        for label, fn, args in calls:
            try:
                fn(*args)
            except Exception as e:
                logger.warning("[AUTO-SYNC] Applying %s preference failed: %s", label, e)

    async def _check_stale(self, source: Source, kind: SyncKind, hours: float) -> bool:
        if self.staleness_check is not None:
            return bool(await _resolve(self.staleness_check(source.id, kind, hours)))
        return is_stale(source, kind, hours)

    def _status_reporter(self, session: SyncSession) -> Callable[[str], None]:
        def report(message: str) -> None:
            session.set_status(message)
            if self.on_progress and message:
                self.on_progress(message)
        return report

    async def _run_epg_phase(
        self,
        session: SyncSession,
        sources: list[Source],
        policy: RefreshPolicy,
        sync_epg,
    ) -> Optional[BatchRunResult]:
        stale = [
            source for source in sources
            if await self._check_stale(source, SyncKind.EPG, policy.epg_refresh_hours)
        ]
        if not stale:
            logger.info("[AUTO-SYNC] All %s enabled sources have fresh EPG", len(sources))
            return None

        logger.info("[AUTO-SYNC] %s sources need channel/EPG sync", len(stale))
        session.set_channel_syncing(True)
        report = self._status_reporter(session)
        scheduler = BatchScheduler(policy.concurrency_limit)
        result = await scheduler.run(
            stale,
            sync_epg,
            on_batch_progress=report,
            on_item_progress=report,
        )
        session.set_status(None)
        return result

    async def _run_vod_phase(
        self,
        session: SyncSession,
        sources: list[Source],
        policy: RefreshPolicy,
        sync_vod,
    ) -> Optional[BatchRunResult]:
        vod_capable = [source for source in sources if source.type.supports_vod]
        if not vod_capable:
            return None
        stale = [
            source for source in vod_capable
            if await self._check_stale(source, SyncKind.VOD, policy.vod_refresh_hours)
        ]
        if not stale:
            logger.info("[AUTO-SYNC] VOD catalogs are fresh for %s sources", len(vod_capable))
            return None

        logger.info("[AUTO-SYNC] %s sources need VOD sync", len(stale))
        session.set_vod_syncing(True)

        async def sync_one(source: Source, _report: Callable[[str], None]) -> None:
            await sync_vod(source)

        scheduler = BatchScheduler(policy.concurrency_limit)
        result = await scheduler.run(
            stale,
            sync_one,
            on_batch_progress=self._status_reporter(session),
            batch_label="VOD batch",
        )
        session.set_status(None)
        return result
