"""Event models shared across watcher and pipeline components."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class EventType(str, Enum):
    """Kinds of filesystem changes emitted by the watch source."""

    CREATED = "created"
    WRITTEN = "written"
    REMOVED = "removed"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangeEvent:
    """A single change observed in the watched directory."""

    event_type: EventType
    path: Path


@dataclass(frozen=True)
class CandidateFile:
    """A created file that passed the upload filters."""

    name: str
    path: Path


@dataclass(frozen=True)
class WatchError:
    """A problem reported by the watch source while it keeps running."""

    message: str
    path: Optional[Path] = None

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


class _Closed:
    def __repr__(self) -> str:
        return "CLOSED"


# Placed on the error queue once the source can no longer deliver events.
CLOSED = _Closed()
