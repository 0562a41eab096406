"""
Shared pytest fixtures for reflections tests.

Provides mock providers so no test touches a real model or network.
"""

from concurrent.futures import Future
from pathlib import Path
from typing import Any

import pytest

from reflections.document_store import DocumentStore
from reflections.object_storage import LocalObjectStorage
from reflections.providers.base import ImageBlob

# Smallest valid PNG (1x1 transparent pixel)
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


class MockGenerationProvider:
    """
    Scripted generation provider.

    Replies are returned in order; the last one repeats. A reply that is an
    Exception instance is raised instead of returned.
    """

    def __init__(self, *replies: Any):
        self.replies = list(replies) or ['{"summary": "A summary", "tags": ["a", "b", "c"]}']
        self.calls: list[dict] = []

    def generate(self, prompt, *, system=None, image=None):
        self.calls.append({"prompt": prompt, "system": system, "image": image})
        reply = self.replies[0] if len(self.replies) == 1 else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class MockBlobProvider:
    """Returns fixed bytes for any URI, or raises if given an error."""

    def __init__(self, error: Exception | None = None):
        self.error = error
        self.fetched: list[str] = []

    def supports(self, uri: str) -> bool:
        return True

    def fetch(self, uri: str) -> ImageBlob:
        self.fetched.append(uri)
        if self.error is not None:
            raise self.error
        return ImageBlob(uri=uri, data=PNG_BYTES)


class ImmediateExecutor:
    """Runs submitted work synchronously and returns a completed Future."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


class HeldExecutor:
    """Queues submitted work until run_all(); lets tests observe in-flight state."""

    def __init__(self):
        self.queue: list[tuple[Future, Any, tuple]] = []

    def submit(self, fn, *args) -> Future:
        future: Future = Future()
        self.queue.append((future, fn, args))
        return future

    def run_all(self) -> None:
        queue, self.queue = self.queue, []
        for future, fn, args in queue:
            try:
                future.set_result(fn(*args))
            except Exception as e:
                future.set_exception(e)

    def shutdown(self, wait: bool = True) -> None:
        pass


class ManualTimer:
    """Timer that fires only when the test says so."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.callback()


class ManualTimerFactory:
    """Timer factory that records every timer it builds."""

    def __init__(self):
        self.timers: list[ManualTimer] = []

    def __call__(self, delay, callback) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def live(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


@pytest.fixture
def store(tmp_path: Path):
    """A fresh document store in a temp directory."""
    s = DocumentStore(tmp_path / "reflections.db")
    yield s
    s.close()


@pytest.fixture
def storage(tmp_path: Path) -> LocalObjectStorage:
    return LocalObjectStorage(tmp_path / "blobs")


@pytest.fixture
def mock_generation() -> MockGenerationProvider:
    return MockGenerationProvider()


@pytest.fixture
def immediate_executor() -> ImmediateExecutor:
    return ImmediateExecutor()


@pytest.fixture
def timer_factory() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def store_path(tmp_path: Path, monkeypatch) -> Path:
    """Isolated store directory; clears provider keys so detection is deterministic."""
    for var in ("GEMINI_API_KEY", "GOOGLE_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY",
                "RESEND_API_KEY", "YOUTUBE_API_KEY", "GOOGLE_CLOUD_PROJECT"):
        monkeypatch.delenv(var, raising=False)
    path = tmp_path / "store"
    monkeypatch.setenv("REFLECTIONS_STORE_PATH", str(path))
    return path


@pytest.fixture
def reflections(store_path, mock_generation, immediate_executor, timer_factory):
    """A Reflections facade with mock providers and a signed-in user."""
    from reflections import Reflections

    rf = Reflections(
        store_path,
        generation_provider=mock_generation,
        blob_provider=MockBlobProvider(),
        enrich_executor=immediate_executor,
        timer_factory=timer_factory,
    )
    rf.sign_up("reader@example.com", "secret-pw", display_name="Reader")
    yield rf
    rf.close()
