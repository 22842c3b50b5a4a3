"""
Pytest configuration and recording fakes for spaced tests
"""

import queue
import threading
from datetime import timedelta
from types import SimpleNamespace

import pytest

from spaced.clipboard import ClipboardChannel, ClipboardError, ClipboardSink
from spaced.pipeline import UploadPipeline
from spaced.shortener import ShortenerError, UrlShortener
from spaced.storage import ObjectStore, StorageError


class RecordingStore(ObjectStore):
    def __init__(self, calls):
        self.calls = calls
        self.fail_put = False
        self.fail_presign = False

    def put(self, key, local_path):
        self.calls.append(("put", key, local_path))
        if self.fail_put:
            raise StorageError("bucket unavailable")
        return 42

    def presigned_get(self, key, ttl):
        self.calls.append(("presigned_get", key, ttl))
        if self.fail_presign:
            raise StorageError("presign refused")
        return f"https://bucket.example.com/{key}?X-Amz-Expires={int(ttl.total_seconds())}"


class RecordingShortener(UrlShortener):
    def __init__(self, calls):
        self.calls = calls
        self.fail = False

    def shorten(self, long_url, ttl):
        self.calls.append(("shorten", long_url, ttl))
        if self.fail:
            raise ShortenerError("token rejected")
        return "https://eok.vin/abc123"


class RecordingChannel(ClipboardChannel):
    def __init__(self, sink):
        self._sink = sink

    def write(self, text):
        self._sink.calls.append(("clipboard_write", text))
        if self._sink.fail_write:
            raise ClipboardError("broken pipe")

    def close(self):
        self._sink.calls.append(("clipboard_close",))
        if self._sink.fail_close:
            raise ClipboardError("close failed")

    def wait(self):
        self._sink.calls.append(("clipboard_wait",))
        if self._sink.fail_wait:
            raise ClipboardError("exit status 1")


class RecordingClipboard(ClipboardSink):
    def __init__(self, calls):
        self.calls = calls
        self.fail_open = False
        self.fail_write = False
        self.fail_close = False
        self.fail_wait = False

    def open(self):
        self.calls.append(("clipboard_open",))
        if self.fail_open:
            raise ClipboardError("pbcopy not found")
        return RecordingChannel(self)


@pytest.fixture
def calls():
    """Ordered record of every gateway interaction"""
    return []


@pytest.fixture
def store(calls):
    return RecordingStore(calls)


@pytest.fixture
def shortener(calls):
    return RecordingShortener(calls)


@pytest.fixture
def clipboard(calls):
    return RecordingClipboard(calls)


@pytest.fixture
def source():
    return SimpleNamespace(events=queue.Queue(), errors=queue.Queue())


@pytest.fixture
def stop_event():
    return threading.Event()


@pytest.fixture
def share_ttl():
    return timedelta(minutes=20)


@pytest.fixture
def make_pipeline(source, store, shortener, clipboard, stop_event, share_ttl):
    def factory(prefix="shots"):
        return UploadPipeline(
            source,
            store,
            shortener,
            clipboard,
            share_ttl=share_ttl,
            stop_event=stop_event,
            prefix=prefix,
            idle_interval=0.01,
        )

    return factory
