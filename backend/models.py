"""
Core data types shared by stream acquisition and source sync.

Sources are owned by the host application's configuration store; this
package only reads them. Everything else here is a value object.
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class SourceType(str, Enum):
    """Provider type of a source."""
    M3U = "m3u"
    XTREAM = "xtream"
    STALKER = "stalker"

    @property
    def supports_vod(self) -> bool:
        """Whether the provider exposes a VOD (movies/series) catalog."""
        return self in (SourceType.XTREAM, SourceType.STALKER)


class SyncKind(str, Enum):
    """Which cached catalog a staleness check refers to."""
    EPG = "epg"
    VOD = "vod"


@dataclass
class Source:
    """A configured IPTV provider."""
    id: str
    name: str
    type: SourceType
    enabled: bool = True
    last_epg_sync: Optional[datetime] = None
    last_vod_sync: Optional[datetime] = None

    def __post_init__(self):
        if not isinstance(self.type, SourceType):
            self.type = SourceType(self.type)

    def last_synced(self, kind: SyncKind) -> Optional[datetime]:
        if kind == SyncKind.EPG:
            return self.last_epg_sync
        return self.last_vod_sync

    @classmethod
    def from_dict(cls, data: dict) -> "Source":
        """Build a Source from a host record, ignoring keys it does not own.

        Host records carry connection details (url, credentials, mac) next to
        the fields used here, and store sync times as ISO strings under
        ``last_synced`` / ``vod_last_synced``.
        """
        values = {}
        for key, value in data.items():
            field_name = _SOURCE_KEYS.get(key)
            if field_name is not None and field_name not in values:
                values[field_name] = value
        for field_name in ("last_epg_sync", "last_vod_sync"):
            values[field_name] = _parse_timestamp(values.get(field_name))
        if "id" in values:
            values["id"] = str(values["id"])
        return cls(**values)


# Accepted host keys for Source fields
_SOURCE_KEYS = {
    "id": "id",
    "name": "name",
    "type": "type",
    "enabled": "enabled",
    "last_epg_sync": "last_epg_sync",
    "lastEpgSync": "last_epg_sync",
    "last_synced": "last_epg_sync",
    "lastSynced": "last_epg_sync",
    "last_vod_sync": "last_vod_sync",
    "lastVodSync": "last_vod_sync",
    "vod_last_synced": "last_vod_sync",
    "vodLastSynced": "last_vod_sync",
}


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    # fromisoformat() only accepts a trailing "Z" from 3.11 on
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


class ProbeErrorKind(str, Enum):
    """Failure categories a stream probe can report."""
    NETWORK = "network"      # transport-level exception
    AUTH = "auth"            # 401/403 or an HTML login/error page
    NOT_FOUND = "not_found"  # 404
    FORMAT = "format"        # HTML body that is not a playlist
    HTTP = "http"            # any other non-2xx status


class ProbeSeverity(str, Enum):
    SOFT = "soft"  # 200 OK that is really an error page
    HARD = "hard"  # error status or transport failure


@dataclass(frozen=True)
class ProbeOutcome:
    """A non-OK probe result. A clean probe is represented by None."""
    kind: ProbeErrorKind
    severity: ProbeSeverity
    message: str

    @property
    def is_auth_failure(self) -> bool:
        """True for outcomes worth interrupting playback to report."""
        return (
            "403" in self.message
            or "401" in self.message
            or "Access Denied" in self.message
        )

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class LoadResult:
    """What the player backend reports for one load attempt."""
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class AcquisitionResult:
    """Outcome of loading a stream, fallbacks included.

    ``url`` is the URL that actually played, or the requested URL when
    nothing did. On failure ``error`` is always the primary attempt's error.
    """
    success: bool
    url: str
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, url: str) -> "AcquisitionResult":
        return cls(success=True, url=url)

    @classmethod
    def failed(cls, url: str, error: str) -> "AcquisitionResult":
        return cls(success=False, url=url, error=error)

    def to_dict(self) -> dict:
        """Convert to dictionary for the UI bridge."""
        result = {"success": self.success, "url": self.url}
        if not self.success:
            result["error"] = self.error
        return result
