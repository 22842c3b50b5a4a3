"""Process lifecycle: run the pipeline worker until a stop signal arrives."""
from __future__ import annotations

import logging
import signal
import threading
from typing import Any, Dict, Optional

from .pipeline import UploadPipeline

logger = logging.getLogger(__name__)

_WAIT_SLICE = 0.5


class Coordinator:
    """Owns the worker thread and turns OS signals into a pipeline stop."""

    def __init__(self, pipeline: UploadPipeline, stop_event: threading.Event):
        self._pipeline = pipeline
        self._stop_event = stop_event
        self._worker: Optional[threading.Thread] = None
        self._failure: Optional[BaseException] = None

    @property
    def failure(self) -> Optional[BaseException]:
        return self._failure

    def run(self) -> int:
        """Block until the pipeline stops. Returns the process exit status."""

        previous = self._install_signal_handlers()
        self._worker = threading.Thread(target=self._work, name="spaced-pipeline")
        self._worker.start()
        try:
            while not self._stop_event.wait(_WAIT_SLICE):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            self._stop_event.set()
        finally:
            self._join_worker()
            self._restore_signal_handlers(previous)

        return 1 if self._failure is not None else 0

    def _join_worker(self) -> None:
        # The worker finishes its current event before observing the stop.
        while self._worker.is_alive():
            try:
                self._worker.join(_WAIT_SLICE)
            except KeyboardInterrupt:
                logger.info("Waiting for the current upload to finish before exiting")
                self._stop_event.set()

    def _work(self) -> None:
        try:
            self._pipeline.run()
        except Exception as exc:  # logged by the pipeline
            self._failure = exc

    def _handle_signal(self, signum: int, _frame: Any) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self._stop_event.set()

    def _install_signal_handlers(self) -> Dict[int, Any]:
        previous: Dict[int, Any] = {}
        if threading.current_thread() is not threading.main_thread():
            return previous
        for name in ("SIGTERM", "SIGHUP"):
            signum = getattr(signal, name, None)
            if signum is None:
                continue
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)
