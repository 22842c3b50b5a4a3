"""Filesystem watch source built on watchdog observers."""
from __future__ import annotations

import logging
import os
import queue
import threading
from pathlib import Path
from typing import List, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from .events import CLOSED, ChangeEvent, EventType, WatchError

logger = logging.getLogger(__name__)

_EVENT_TYPES = {
    EVENT_TYPE_CREATED: EventType.CREATED,
    EVENT_TYPE_MODIFIED: EventType.WRITTEN,
    EVENT_TYPE_DELETED: EventType.REMOVED,
    EVENT_TYPE_MOVED: EventType.RENAMED,
}


class WatchSourceError(Exception):
    """Raised when the monitored directory cannot be watched."""


class _QueueingHandler(FileSystemEventHandler):
    def __init__(self, source: "WatchSource"):
        super().__init__()
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._source._dispatch(event)


class WatchSource:
    """Watches a single directory (non-recursively) and queues what it sees.

    ``events`` receives :class:`ChangeEvent` values and ``errors`` receives
    :class:`WatchError` values. Once the directory can no longer be observed,
    ``CLOSED`` is placed on ``errors`` and nothing further is produced.
    """

    def __init__(
        self,
        root: Path,
        *,
        use_polling: bool = False,
        poll_interval: float = 1.0,
        health_interval: float = 1.0,
    ):
        self.root = Path(root).expanduser()
        self.events: "queue.Queue[ChangeEvent]" = queue.Queue()
        self.errors: "queue.Queue[object]" = queue.Queue()
        self._use_polling = use_polling
        self._poll_interval = poll_interval
        self._health_interval = health_interval
        self._observer: Optional[Observer] = None
        self._supervisor: Optional[threading.Thread] = None
        self._closing = threading.Event()
        self._errors_closed = False
        self._lock = threading.Lock()
        self._root_names = {os.path.normpath(str(self.root)), os.path.realpath(self.root)}

    def __enter__(self) -> "WatchSource":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> "WatchSource":
        if not self.root.exists():
            raise WatchSourceError(f"monitored path does not exist: {self.root}")
        if not self.root.is_dir():
            raise WatchSourceError(f"monitored path is not a directory: {self.root}")

        if self._use_polling:
            observer = PollingObserver(timeout=self._poll_interval)
        else:
            observer = Observer()
        observer.schedule(_QueueingHandler(self), str(self.root), recursive=False)
        try:
            observer.start()
        except OSError as exc:
            raise WatchSourceError(f"unable to watch {self.root}: {exc}") from exc

        self._observer = observer
        self._supervisor = threading.Thread(target=self._supervise, name="spaced-watch-supervisor", daemon=True)
        self._supervisor.start()
        logger.info("Watching %s (%s)", self.root, type(observer).__name__)
        return self

    def close(self) -> None:
        """Stop observing; failures are logged rather than raised."""

        self._closing.set()
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        try:
            observer.stop()
            observer.join()
        except (OSError, RuntimeError) as exc:
            logger.error("error closing filesystem watcher: %s", exc)
        self._close_errors()
        logger.info("Stopped watching %s", self.root)

    def _dispatch(self, event: FileSystemEvent) -> None:
        src_path = os.fsdecode(event.src_path)
        if event.is_directory:
            if event.event_type == EVENT_TYPE_DELETED and self._is_root(src_path):
                self.errors.put(WatchError("monitored directory was removed", self.root))
                self._close_errors()
            return

        for change in self._translate(event, src_path):
            self.events.put(change)

    def _translate(self, event: FileSystemEvent, src_path: str) -> List[ChangeEvent]:
        event_type = _EVENT_TYPES.get(event.event_type)
        if event_type is None:
            return []

        changes = [ChangeEvent(event_type=event_type, path=Path(os.path.abspath(src_path)))]
        if event_type is EventType.RENAMED:
            # A rename into the directory is reported as a creation of the new name.
            dest_path = os.fsdecode(event.dest_path)
            if self._is_root(os.path.dirname(os.path.abspath(dest_path))):
                changes.append(ChangeEvent(event_type=EventType.CREATED, path=Path(os.path.abspath(dest_path))))
        return changes

    def _is_root(self, path: str) -> bool:
        return os.path.normpath(path) in self._root_names or os.path.realpath(path) in self._root_names

    def _supervise(self) -> None:
        while not self._closing.wait(self._health_interval):
            observer = self._observer
            if observer is None:
                return
            emitters = list(observer.emitters)
            if observer.is_alive() and emitters and all(emitter.is_alive() for emitter in emitters):
                continue
            if self._closing.is_set():
                return
            with self._lock:
                already_closed = self._errors_closed
            if not already_closed:
                self.errors.put(WatchError("filesystem observer stopped unexpectedly", self.root))
                self._close_errors()
            return

    def _close_errors(self) -> None:
        with self._lock:
            if self._errors_closed:
                return
            self._errors_closed = True
        self.errors.put(CLOSED)
