"""
Player backend interface.

The media player itself (mpv in the desktop app) lives outside this package.
Stream acquisition only needs to load a URL and set a property, so that is
all the interface asks for.
"""
from abc import ABC, abstractmethod
from typing import Any

from models import LoadResult


class PlayerBackend(ABC):
    """Minimal surface of a media player used for stream loading."""

    @abstractmethod
    async def load_video(self, url: str) -> LoadResult:
        """Load ``url`` and report whether playback could start."""

    @abstractmethod
    async def set_property(self, name: str, value: Any) -> None:
        """Set a player property, e.g. ``user-agent``."""
