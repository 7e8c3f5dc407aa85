"""
Staleness checks for cached EPG and VOD catalogs.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from models import Source, SyncKind

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stale(
    source: Source,
    kind: SyncKind,
    refresh_hours: float,
    now: Optional[datetime] = None,
) -> bool:
    """
    Whether ``source``'s cached ``kind`` data is older than ``refresh_hours``.

    Never synced means stale. A refresh interval of 0 means manual refresh
    only, which is never stale. For VOD, callers filter on
    ``source.type.supports_vod`` first.
    """
    kind = SyncKind(kind)
    if refresh_hours == 0:
        return False

    last_synced = source.last_synced(kind)
    if last_synced is None:
        return True

    now = _as_utc(now) if now else datetime.now(timezone.utc)
    age = now - _as_utc(last_synced)
    stale = age > timedelta(hours=refresh_hours)
    logger.debug("[AUTO-SYNC] %s %s age=%s threshold=%sh stale=%s",
                 source.name, kind.value, age, refresh_hours, stale)
    return stale


def is_epg_stale(source: Source, refresh_hours: float, now: Optional[datetime] = None) -> bool:
    return is_stale(source, SyncKind.EPG, refresh_hours, now)


def is_vod_stale(source: Source, refresh_hours: float, now: Optional[datetime] = None) -> bool:
    return is_stale(source, SyncKind.VOD, refresh_hours, now)
