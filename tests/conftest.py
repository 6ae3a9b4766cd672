"""
BillVault Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, List

import pytest

from billvault.db.session import dispose, init_database
from billvault.documents.service import DocumentService
from billvault.documents.store import MemoryDocumentStore
from billvault.editor.bridge import BufferEditor
from billvault.engine.config import AutoSaveConfig
from billvault.process.scheduler import Timer


# ---------------------------------------------------------------------------
# Global singletons
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset the config singleton and stop any log queue a test started."""
    import billvault.engine.config as cfg_mod
    from billvault.engine.logging import shutdown_logging

    cfg_mod._platform_config = None
    yield
    shutdown_logging()
    cfg_mod._platform_config = None


# ---------------------------------------------------------------------------
# Deterministic time
# ---------------------------------------------------------------------------

class StepClock:
    """Clock that advances by ``step`` on every call."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
                 step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step
        self.calls = 0

    def __call__(self) -> datetime:
        self.now = self.now + self.step
        self.calls += 1
        return self.now


class FakeHandle:
    def __init__(self, when_ms: int, seq: int, callback: Callable[[], None]):
        self.when_ms = when_ms
        self.seq = seq
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


async def settle(rounds: int = 20) -> None:
    """Let tasks spawned by timer callbacks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeTimer(Timer):
    """
    Virtual-time timer. Callbacks fire only inside ``advance_ms``, in due
    order, and the event loop is given a chance to run after each one.
    """

    def __init__(self):
        self.now_ms = 0
        self._seq = 0
        self.handles: List[FakeHandle] = []

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> FakeHandle:
        self._seq += 1
        handle = FakeHandle(self.now_ms + round(delay_seconds * 1000), self._seq, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    async def advance_ms(self, ms: int) -> None:
        target = self.now_ms + ms
        while True:
            due = [h for h in self.pending if h.when_ms <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when_ms, h.seq))
            self.now_ms = handle.when_ms
            handle.fired = True
            handle.callback()
            await settle()
        self.now_ms = target
        await settle()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def fake_timer():
    return FakeTimer()


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def editor():
    return BufferEditor(text="A1=Item;B1=42", bill_type=1)


@pytest.fixture
def service(store, editor, clock):
    """DocumentService over an in-memory store; cheap bcrypt rounds."""
    return DocumentService(
        store, editor, clock=clock, default_template="A1=Bill", bcrypt_rounds=4
    )


@pytest.fixture
def make_scheduler(service, fake_timer):
    """Build a scheduler wired to ``service`` on the fake timer."""

    def _make(interval_ms: int = 1000, **kwargs):
        kwargs.setdefault("timer", fake_timer)
        kwargs.setdefault("config", AutoSaveConfig(interval_ms=interval_ms))
        return service.create_autosave_scheduler(**kwargs)

    return _make


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite database in a temp directory."""
    factory = init_database(f"sqlite:///{tmp_path / 'db' / 'documents.db'}")
    yield factory
    dispose(factory)


@pytest.fixture
def memory_session_factory():
    factory = init_database("sqlite://")
    yield factory
    dispose(factory)


# ---------------------------------------------------------------------------
# Project tree
# ---------------------------------------------------------------------------

@pytest.fixture
def project_root(tmp_path):
    """
    A directory holding billvault.yaml with storage and logs under it.
    Returns the root Path.
    """
    root = tmp_path / "project"
    root.mkdir()
    (root / "billvault.yaml").write_text(
        "platform:\n"
        "  name: TestVault\n"
        "  environment: dev\n"
        "storage:\n"
        f"  url: sqlite:///{(root / 'data' / 'documents.db').as_posix()}\n"
        "autosave:\n"
        "  enabled: true\n"
        "  interval_ms: 15000\n"
        "security:\n"
        "  password_min_length: 4\n"
        "  bcrypt_rounds: 4\n"
        "logging:\n"
        "  level: debug\n"
        f"  directory: {(root / 'logs').as_posix()}\n",
        encoding="utf-8",
    )
    return root
