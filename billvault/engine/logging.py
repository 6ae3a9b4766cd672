"""
BillVault Logging — Structured JSON audit trail with an async flush queue.

Implements:
- FileLogger: per-object-type, per-category JSONL files (one file per day)
- AsyncLogQueue: bounded in-memory queue drained by a background thread
- Log entry builders for document, auto-save, security and system events
- LogRetentionManager: delete/compress files past their retention

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl[.gz]

Document content and passwords are never written to these files.
"""

from __future__ import annotations

import gzip
import json
import logging
import shutil
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger("billvault.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "documents": ["execution", "security"],
    "autosave": ["execution", "performance"],
    "system": ["execution"],
}

# Retention defaults (days)
DEFAULT_RETENTION = {
    "execution": 90,
    "performance": 30,
    "security": 365,
}


def configure_logging(level: str = "INFO") -> None:
    """Send ``billvault.*`` module loggers to stderr at ``level``."""
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("billvault").setLevel(level.upper())


@dataclass(frozen=True)
class LogEntry:
    """One JSON line bound for ``{object_type}/{category}``."""
    object_type: str
    category: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


def _file_date(path: Path) -> Optional[date]:
    """2026-02-12.jsonl and 2026-02-12.jsonl.gz both date to 2026-02-12."""
    try:
        return date.fromisoformat(path.name.split(".", 1)[0])
    except ValueError:
        return None


def _iter_entries(path: Path, filters: Optional[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
    opener = gzip.open if path.suffix == ".gz" else open
    try:
        with opener(path, "rt", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed line in {path}")
                    continue
                if filters and any(data.get(k) != v for k, v in filters.items()):
                    continue
                yield data
    except OSError as e:
        logger.warning(f"Could not read log file {path}: {e}")


class FileLogger:
    """
    Appends entries to the day file of their object type and category.

    Safe to share between threads: appends to one file are serialized by a
    per-path lock.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._locks: Dict[Path, threading.Lock] = defaultdict(threading.Lock)
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def day_file(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        folder = self._log_dir / object_type / category
        folder.mkdir(parents=True, exist_ok=True)
        return folder / f"{(day or date.today()).isoformat()}.jsonl"

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        lines_by_file: Dict[Path, List[str]] = defaultdict(list)
        for entry in entries:
            lines_by_file[self.day_file(entry.object_type, entry.category)].append(entry.to_json())

        for path, lines in lines_by_file.items():
            with self._locks[path], path.open("a", encoding="utf-8") as f:
                f.writelines(f"{line}\n" for line in lines)

    def query(
        self,
        object_type: str,
        category: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Entries of one object_type/category between two dates (default: the
        last 7 days), oldest first. Compressed days are read transparently.
        ``filters`` match top-level keys exactly; at most the newest
        ``limit`` entries are returned.
        """
        end_date = end_date or date.today()
        start_date = start_date or end_date - timedelta(days=7)

        folder = self._log_dir / object_type / category
        if not folder.is_dir():
            return []

        day_files = []
        for path in folder.iterdir():
            day = _file_date(path)
            if day is not None and start_date <= day <= end_date:
                # Compressed half of a day predates its plain file
                day_files.append((day, path.suffix != ".gz", path))

        results: List[Dict[str, Any]] = []
        for _, _, path in sorted(day_files):
            results.extend(_iter_entries(path, filters))
        return results[-limit:] if limit else results


class AsyncLogQueue:
    """
    Bounded queue in front of a FileLogger.

    ``push`` never blocks; when the queue is full the entry is counted as
    dropped. A daemon thread writes batches of up to ``flush_batch_size``
    entries, waiting at most ``flush_interval_ms`` for the first one.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._file_logger = file_logger
        self._wait = flush_interval_ms / 1000.0
        self._batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="billvault-log-flush", daemon=True)
        self._thread.start()
        logger.debug("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the writer thread, then write whatever is still queued."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._flush(self._take(max_items=None, wait=None))
        logger.debug(f"Async log queue stopped ({self._dropped} dropped)")

    def push(self, entry: LogEntry) -> bool:
        """Queue an entry. Returns False if it was dropped (queue full)."""
        try:
            self._queue.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    def _run(self) -> None:
        while not self._stopping.is_set():
            self._flush(self._take(max_items=self._batch_size, wait=self._wait))

    def _take(self, max_items: Optional[int], wait: Optional[float]) -> List[LogEntry]:
        """Up to ``max_items`` entries; blocks up to ``wait`` seconds for the first."""
        batch: List[LogEntry] = []
        if wait is not None:
            try:
                batch.append(self._queue.get(timeout=wait))
            except Empty:
                return batch
        while max_items is None or len(batch) < max_items:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        return batch

    def _flush(self, batch: List[LogEntry]) -> None:
        if not batch:
            return
        try:
            self._file_logger.write_batch(batch)
        except OSError as e:
            logger.error(f"Lost {len(batch)} log entries: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _entry(event: str, level: str, **fields: Any) -> Dict[str, Any]:
    """Timestamped entry; fields that are None are left out."""
    data: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    data.update((k, v) for k, v in fields.items() if v is not None)
    return data


def log_document_operation(
    operation: str,
    document: str,
    success: bool,
    bill_type: Optional[int] = None,
    content_length: Optional[int] = None,
    protected: Optional[bool] = None,
    duration_ms: Optional[float] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a document save/save_as/delete/open log entry."""
    return LogEntry("documents", "execution", _entry(
        f"document_{operation}",
        "INFO" if success else "ERROR",
        document=document,
        operation=operation,
        success=success,
        bill_type=bill_type,
        content_length=content_length,
        protected=protected,
        duration_ms=duration_ms,
        error=error or None,
    ))


def log_autosave_event(
    event: str,
    document: Optional[str] = None,
    duration_ms: Optional[float] = None,
    interval_ms: Optional[int] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build an auto-save log entry (saved/skipped/failed/dropped/started/stopped)."""
    level = "ERROR" if event == "failed" else "INFO"
    return LogEntry("autosave", "execution", _entry(
        f"autosave_{event}", level,
        document=document, interval_ms=interval_ms, duration_ms=duration_ms, error=error or None,
    ))


def log_autosave_performance(document: str, duration_ms: float) -> LogEntry:
    return LogEntry("autosave", "performance", _entry(
        "autosave_performance", "INFO", document=document, duration_ms=duration_ms,
    ))


def log_security_event(event: str, document: str, level: str = "WARNING") -> LogEntry:
    """Build a security entry (protected document unlock failures etc.)."""
    return LogEntry("documents", "security", _entry(event, level, document=document))


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Startup, shutdown and preference changes."""
    return LogEntry("system", "execution", _entry(event, level, details=details or None))


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------

def _gzip_file(path: Path) -> bool:
    """Replace ``path`` with ``path.gz``. On failure the original is kept."""
    gz_path = path.with_name(path.name + ".gz")
    try:
        with path.open("rb") as src, gzip.open(gz_path, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except OSError as e:
        logger.error(f"Failed to compress {path}: {e}")
        gz_path.unlink(missing_ok=True)
        return False
    path.unlink()
    return True


class LogRetentionManager:
    """Deletes day files older than their category's retention; gzips the rest after a week."""

    def __init__(
        self,
        log_dir: str = "logs",
        retention_days: Optional[Dict[str, int]] = None,
        compress_after_days: int = 7,
    ):
        self._log_dir = Path(log_dir)
        self._retention = {**DEFAULT_RETENTION, **(retention_days or {})}
        self._compress_after = compress_after_days

    def cleanup(self, today: Optional[date] = None) -> Dict[str, int]:
        """Returns ``{"deleted": N, "compressed": M}``."""
        today = today or date.today()
        counts = {"deleted": 0, "compressed": 0}

        for path in sorted(self._log_dir.glob("*/*/*.jsonl*")):
            obj_type, category = path.parent.parent.name, path.parent.name
            if category not in OBJECT_TYPE_CATEGORIES.get(obj_type, ()):
                continue
            day = _file_date(path)
            if day is None or not path.is_file():
                continue

            age = (today - day).days
            if age > self._retention.get(category, DEFAULT_RETENTION["execution"]):
                path.unlink()
                counts["deleted"] += 1
            elif age > self._compress_after and path.suffix == ".jsonl" and _gzip_file(path):
                counts["compressed"] += 1

        logger.info(f"Log cleanup: {counts}")
        return counts


# ---------------------------------------------------------------------------
# Process-wide queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Start the process-wide queue, replacing (and flushing) any previous one."""
    global _global_queue
    shutdown_logging()
    _global_queue = AsyncLogQueue(
        FileLogger(log_dir=log_dir),
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Queue an audit entry. Without a running queue the entry is dropped."""
    if _global_queue is None:
        logger.debug(f"No log queue; dropped {entry.data.get('event')}")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
        _global_queue = None
