"""Upload pipeline: turns created screenshots into clipboard-ready short URLs."""
from __future__ import annotations

import logging
import queue
import random
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from .clipboard import ClipboardSink
from .events import CLOSED, CandidateFile, ChangeEvent, EventType
from .shortener import UrlShortener
from .storage import ObjectStore, object_key

logger = logging.getLogger(__name__)

IMAGE_EXTENSION = ".png"
EXPIRY_FORMAT = "%b %d %H:%M %Z"

_STOP = "stop"
_EVENT = "event"
_ERROR = "error"


@dataclass
class PipelineStats:
    """Counters emitted by the pipeline for observability."""

    events_seen: int = 0
    uploads: int = 0
    shares: int = 0
    failures: int = 0


class EventSource(Protocol):
    """Anything exposing the change-event and watch-error queues."""

    events: queue.Queue
    errors: queue.Queue


def select_candidate(event: ChangeEvent) -> Optional[CandidateFile]:
    """Return the upload candidate for ``event``, or ``None`` if it is ignored."""

    if event.event_type is not EventType.CREATED:
        return None
    name = event.path.name
    if name.startswith("."):
        logger.debug("new hidden file created, not uploading: %s", name)
        return None
    if not name.endswith(IMAGE_EXTENSION):
        logger.debug("non png created, not uploading: %s", name)
        return None
    return CandidateFile(name=name, path=event.path)


class UploadPipeline:
    """Single worker that uploads, shares, shortens and copies each new image.

    Events are handled one at a time: an event's upload, presign, shorten and
    clipboard steps all finish (or the event is abandoned) before the next
    event is taken from the source.
    """

    def __init__(
        self,
        source: EventSource,
        store: ObjectStore,
        shortener: UrlShortener,
        clipboard: ClipboardSink,
        *,
        share_ttl: timedelta,
        stop_event: threading.Event,
        prefix: str = "",
        idle_interval: float = 0.25,
    ):
        self._events: queue.Queue = source.events
        self._errors: queue.Queue = source.errors
        self._store = store
        self._shortener = shortener
        self._clipboard = clipboard
        self._share_ttl = share_ttl
        self._stop_event = stop_event
        self._prefix = prefix
        self._idle_interval = idle_interval
        self._stats = PipelineStats()

    @property
    def stats(self) -> PipelineStats:
        return self._stats

    def run(self) -> None:
        """Run the pipeline loop until stopped or the watch source closes."""

        logger.info("Upload pipeline started")
        try:
            while True:
                wakeup = self._next_wakeup()
                if wakeup is None:
                    self._stop_event.wait(self._idle_interval)
                    continue
                if wakeup == _STOP:
                    return
                if wakeup == _EVENT:
                    self.handle_event(self._events.get_nowait())
                    continue
                error = self._errors.get_nowait()
                if error is CLOSED:
                    logger.error("filesystem watcher closed its error stream; stopping")
                    self._stop_event.set()
                    return
                logger.error("error: %s", error)
        except Exception:
            logger.exception("Upload pipeline failed")
            self._stop_event.set()
            raise
        finally:
            logger.info(
                "Upload pipeline stopped after %s events, %s uploads, %s shares, %s failures",
                self._stats.events_seen,
                self._stats.uploads,
                self._stats.shares,
                self._stats.failures,
            )

    def stop(self) -> None:
        """Signal the pipeline to stop at the next wakeup."""

        self._stop_event.set()

    def _next_wakeup(self) -> Optional[str]:
        ready = []
        if self._stop_event.is_set():
            ready.append(_STOP)
        if not self._events.empty():
            ready.append(_EVENT)
        if not self._errors.empty():
            ready.append(_ERROR)
        if not ready:
            return None
        return random.choice(ready)

    def handle_event(self, event: ChangeEvent) -> Optional[str]:
        """Filter one event and, for candidates, run every stage in order.

        Returns the short URL when all stages succeed, otherwise ``None``.
        """

        self._stats.events_seen += 1
        candidate = select_candidate(event)
        if candidate is None:
            return None
        short_url = self._share(candidate)
        if short_url is None:
            self._stats.failures += 1
        return short_url

    def _share(self, candidate: CandidateFile) -> Optional[str]:
        key = object_key(self._prefix, candidate.name)
        ttl = self._share_ttl

        try:
            self._store.put(key, candidate.path)
        except Exception as exc:  # any gateway failure abandons only this event
            logger.error("error writing to storage: %s", exc)
            return None
        self._stats.uploads += 1

        try:
            presigned_url = self._store.presigned_get(key, ttl)
        except Exception as exc:
            logger.error("error getting public storage url: %s", exc)
            return None
        logger.info("Storage URL: %s", presigned_url)

        try:
            short_url = str(self._shortener.shorten(presigned_url, ttl))
        except Exception as exc:
            logger.error("error getting short share url: %s", exc)
            return None

        expires_at = datetime.now().astimezone() + ttl
        logger.info("Share URL: %s (valid until %s)", short_url, expires_at.strftime(EXPIRY_FORMAT))
        self._stats.shares += 1

        if not self._copy_to_clipboard(short_url):
            return None
        return short_url

    def _copy_to_clipboard(self, text: str) -> bool:
        try:
            channel = self._clipboard.open()
        except Exception as exc:
            logger.error("error opening clipboard: %s", exc)
            return False

        ok = True
        try:
            channel.write(text)
        except Exception as exc:
            logger.error("error writing to clipboard: %s", exc)
            ok = False
        try:
            channel.close()
        except Exception as exc:
            logger.error("error closing clipboard: %s", exc)
            ok = False
        try:
            channel.wait()
        except Exception as exc:
            logger.error("clipboard command exited with error: %s", exc)
            ok = False
        return ok
