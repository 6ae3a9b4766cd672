"""
BillVault Auto-Save Scheduler — periodic unattended saves of the open bill.

State machine:

    IDLE ──start()──► ARMED ──tick──► SAVING ──done──► ARMED
      ▲                 │                 │
      └── STOPPED ◄─────┴──stop()/disable()┘

Responsibilities:
1. Keep a single pending timer handle; the next tick is scheduled from the
   timer itself (wall-clock cadence), not from save completion.
2. On each tick capture editor content and write it through the store,
   preserving created_at and the password of an existing record.
3. Never write the built-in ``default`` template.
4. At most one save in flight: a tick that fires while saving is dropped.
5. Convert every failure into an ``on_error`` notification; a failed save
   never stops the scheduler.

Foreground saves share the same NameLocks, so an auto-save and a user save
to the same document are serialized and the later writer wins.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from billvault.documents.locks import NameLocks
from billvault.documents.models import DEFAULT_BILL_TYPE, DEFAULT_NAME, DocumentRecord, utcnow
from billvault.documents.store import DocumentStore
from billvault.editor.bridge import EditorBridge
from billvault.engine.config import AutoSaveConfig
from billvault.engine.errors import BillVaultError, BillVaultNotFoundError
from billvault.engine.logging import log, log_autosave_event, log_autosave_performance

logger = logging.getLogger("billvault.process.scheduler")

SaveCallback = Callable[[str], Any]
ErrorCallback = Callable[[str], Any]


class SchedulerState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    SAVING = "saving"
    STOPPED = "stopped"


# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------

class Timer(ABC):
    """Schedules a callback after a delay; the returned handle has ``cancel()``."""

    @abstractmethod
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> Any:
        ...


class LoopTimer(Timer):
    """Timer backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_seconds, callback)


# ---------------------------------------------------------------------------
# AutoSaveScheduler
# ---------------------------------------------------------------------------

class AutoSaveScheduler:
    """
    Recurring background saver for the active document.

    Args:
        store: Where records are written.
        editor: Supplies the current serialized content and bill type.
        active_name: Returns the name of the document being edited.
        locks: Per-name locks shared with the foreground save path. Must be the
            same instance the foreground service holds.
        on_save: Called with the document name after each successful save.
        on_error: Called with a user-facing message after each failed save.
        timer: Timer implementation (defaults to the running event loop).
        clock: Source of modified_at timestamps.
    """

    def __init__(
        self,
        store: DocumentStore,
        editor: EditorBridge,
        active_name: Callable[[], str],
        *,
        locks: NameLocks,
        on_save: Optional[SaveCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        timer: Optional[Timer] = None,
        clock: Callable[[], datetime] = utcnow,
        config: Optional[AutoSaveConfig] = None,
    ):
        self._store = store
        self._editor = editor
        self._active_name = active_name
        self._locks = locks
        self.on_save = on_save
        self.on_error = on_error
        self._timer = timer or LoopTimer()
        self._clock = clock

        self._config = config or AutoSaveConfig()
        self._state = SchedulerState.IDLE
        self._handle: Any = None
        self._inflight: Optional[asyncio.Task] = None
        self._callback_tasks: Set[asyncio.Task] = set()

        self._ticks = 0
        self._saves = 0
        self._failures = 0
        self._skipped = 0
        self._dropped = 0

    # ---- properties ----

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def config(self) -> AutoSaveConfig:
        return self._config

    @property
    def is_saving(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def is_armed(self) -> bool:
        return self._handle is not None

    # ---- lifecycle ----

    def start(self, config: Optional[AutoSaveConfig] = None) -> None:
        """
        Arm the timer. Calling again while armed replaces the pending timer
        with one at the (possibly new) interval.

        ``start()`` with no argument re-enables the last configured interval.
        A config with ``enabled=False`` disables instead.
        """
        if config is None:
            config = self._config.model_copy(update={"enabled": True})
        self._config = config

        if not config.enabled:
            self.stop()
            return

        self._cancel_pending()
        self._schedule_next()
        self._state = SchedulerState.SAVING if self.is_saving else SchedulerState.ARMED
        logger.info(f"Auto-save armed every {config.interval_ms} ms")
        log(log_autosave_event("started", interval_ms=config.interval_ms))

    def stop(self) -> None:
        """
        Cancel the pending tick. No tick fires after this returns; a save
        already in flight is left to finish.
        """
        was_running = self._state in (SchedulerState.ARMED, SchedulerState.SAVING)
        self._cancel_pending()
        self._state = SchedulerState.STOPPED
        if was_running:
            logger.info("Auto-save stopped")
            log(log_autosave_event("stopped"))

    def disable(self) -> None:
        """Stop, keeping the interval for a later ``start()``."""
        self._config = self._config.model_copy(update={"enabled": False})
        self.stop()

    async def wait_idle(self) -> None:
        """Wait for the in-flight save, if any."""
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait([self._inflight])

    def tick_now(self) -> Optional[asyncio.Task]:
        """
        Run a tick immediately without touching the timer cadence.
        Returns the save task, or None if a save is already in flight.
        """
        return self._begin_tick()

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self._state.value,
            "enabled": self._config.enabled,
            "interval_ms": self._config.interval_ms,
            "ticks": self._ticks,
            "saves": self._saves,
            "failures": self._failures,
            "skipped": self._skipped,
            "dropped_ticks": self._dropped,
        }

    # ---- timer plumbing ----

    def _schedule_next(self) -> None:
        self._handle = self._timer.call_later(self._config.interval_seconds, self._on_timer)

    def _cancel_pending(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _on_timer(self) -> None:
        self._handle = None
        if self._state == SchedulerState.STOPPED:
            return
        self._schedule_next()
        self._begin_tick()

    def _begin_tick(self) -> Optional[asyncio.Task]:
        self._ticks += 1
        if self.is_saving:
            self._dropped += 1
            logger.debug("Auto-save tick dropped: previous save still in flight")
            log(log_autosave_event("dropped"))
            return None

        if self._state == SchedulerState.ARMED:
            self._state = SchedulerState.SAVING
        self._inflight = asyncio.ensure_future(self._save_once())
        return self._inflight

    # ---- the save itself ----

    async def _save_once(self) -> None:
        started = time.monotonic()
        name: Optional[str] = None
        try:
            name = self._active_name()
            if name == DEFAULT_NAME:
                self._skipped += 1
                logger.debug("Auto-save skipped: built-in default template is open")
                log(log_autosave_event("skipped", document=name))
                return

            content = self._editor.get_serialized_content()
            bill_type = self._editor.get_active_bill_type()

            async with self._locks.hold(name):
                try:
                    existing: Optional[DocumentRecord] = await self._store.get(name)
                except BillVaultNotFoundError:
                    existing = None

                now = self._clock()
                if existing is None:
                    record = DocumentRecord.create(
                        name, content, bill_type or DEFAULT_BILL_TYPE, now=now
                    )
                else:
                    record = existing.touched(content, bill_type, now=now)
                await self._store.put(record)

            duration_ms = (time.monotonic() - started) * 1000
            self._saves += 1
            logger.info(f"Auto-saved '{name}' in {duration_ms:.1f} ms")
            log(log_autosave_event("saved", document=name, duration_ms=duration_ms))
            log(log_autosave_performance(name, duration_ms))
            self._notify(self.on_save, name)

        except BillVaultError as e:
            self._record_failure(name, e.message)
        except Exception as e:
            logger.exception("Unexpected auto-save failure")
            self._record_failure(name, str(e) or e.__class__.__name__)
        finally:
            if self._state == SchedulerState.SAVING:
                self._state = SchedulerState.ARMED

    def _record_failure(self, name: Optional[str], reason: str) -> None:
        self._failures += 1
        message = f"Auto-save failed for '{name}': {reason}" if name else f"Auto-save failed: {reason}"
        logger.error(message)
        log(log_autosave_event("failed", document=name, error=reason))
        self._notify(self.on_error, message)

    # ---- callbacks ----

    def _notify(self, callback: Optional[Callable[[str], Any]], arg: str) -> None:
        if callback is None:
            return
        try:
            result = callback(arg)
        except Exception:
            logger.exception(f"Auto-save callback {callback!r} raised")
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Auto-save callback failed: {task.exception()!r}")
