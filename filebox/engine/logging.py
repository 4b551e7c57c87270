"""
FileBox Logging System — Structured JSON file-based logging with async queue.

Two channels:
- stdlib ``logging`` (``filebox.<module>`` loggers) for developer diagnostics;
- structured JSON lines for the audit trail of namespace operations.

Structured layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
    folders/  execution, security   (create, rename, delete, lock decisions)
    files/    execution, security   (register, upload, rename, delete, locks)
    storage/  execution             (object writes)
    system/   execution, security   (startup, shutdown, failed operations)

Entries are pushed onto an AsyncLogQueue and written by a background thread,
so an operation never waits on disk I/O.
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
from typing import Any, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger("filebox.engine.logging")

OBJECT_TYPE_CATEGORIES = {
    "folders": ["execution", "security"],
    "files": ["execution", "security"],
    "storage": ["execution"],
    "system": ["execution", "security"],
}

# Days a file is kept before deletion
DEFAULT_RETENTION = {
    "execution": 90,
    "security": 365,
}

JSONL = ".jsonl"
JSONL_GZ = ".jsonl.gz"


@dataclass
class LogEntry:
    """One structured record and the file it belongs to."""

    object_type: str
    category: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


def _day_of(path: Path) -> Optional[date]:
    """2026-02-12.jsonl / 2026-02-12.jsonl.gz → date(2026, 2, 12)."""
    try:
        return date.fromisoformat(path.name.split(".", 1)[0])
    except ValueError:
        return None


class FileLogger:
    """
    Appends LogEntry records to daily JSONL files and reads them back.

    All writes share one lock; batches are grouped so each file is opened once.
    """

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._write_lock = threading.Lock()
        for object_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                (self._log_dir / object_type / category).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        day = day or date.today()
        return self._log_dir / object_type / category / f"{day.isoformat()}{JSONL}"

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: List[LogEntry]) -> None:
        by_path: Dict[Path, List[str]] = defaultdict(list)
        for entry in entries:
            by_path[self.path_for(entry.object_type, entry.category)].append(entry.to_json())

        with self._write_lock:
            for path, lines in by_path.items():
                path.parent.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    f.write("\n".join(lines) + "\n")

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
        Read entries for one object_type/category, oldest first.

        Args:
            start_date: First day to include (defaults to 7 days before end_date).
            end_date: Last day to include (defaults to today).
            filters: Keep only entries whose top-level keys equal all of these,
                     e.g. ``{"node_id": "…", "success": False}``.
            limit: Stop after this many matches.

        Compressed days (``.jsonl.gz``) are read transparently.
        """
        end_date = end_date or date.today()
        start_date = start_date or end_date - timedelta(days=7)
        base = self._log_dir / object_type / category
        if not base.is_dir():
            return []

        results: List[Dict[str, Any]] = []
        day = start_date
        while day <= end_date and len(results) < limit:
            for path in (base / f"{day.isoformat()}{JSONL_GZ}", base / f"{day.isoformat()}{JSONL}"):
                if len(results) >= limit:
                    break
                if path.exists():
                    for data in self._iter_entries(path):
                        if filters and any(data.get(k) != v for k, v in filters.items()):
                            continue
                        results.append(data)
                        if len(results) >= limit:
                            break
            day += timedelta(days=1)
        return results

    def node_history(self, node_id: str, days: int = 30) -> List[Dict[str, Any]]:
        """Every structured entry about one folder or file, oldest first per file."""
        start = date.today() - timedelta(days=days)
        history: List[Dict[str, Any]] = []
        for object_type in ("folders", "files"):
            for category in OBJECT_TYPE_CATEGORIES[object_type]:
                history.extend(
                    self.query(object_type, category, start_date=start, filters={"node_id": node_id})
                )
        return sorted(history, key=lambda e: e.get("timestamp", ""))

    @staticmethod
    def _iter_entries(path: Path) -> Iterator[Dict[str, Any]]:
        opener = gzip.open if path.name.endswith(JSONL_GZ) else open
        try:
            with opener(path, "rt", encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug(f"Skipping malformed line in {path}")
        except OSError as e:
            logger.warning(f"Could not read log file {path}: {e}")


class AsyncLogQueue:
    """
    Bounded in-memory buffer drained by a daemon thread.

    The thread wakes every flush_interval_ms (or as soon as flush_batch_size
    entries are waiting) and hands whatever it collected to the FileLogger.
    push() never blocks: when the buffer is full the entry is dropped and
    counted.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._file_logger = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = flush_batch_size
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="filebox-log-flush", daemon=True)
        self._thread.start()
        logger.info("Async log queue started")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the thread, then write out everything still buffered."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._flush(self._take(limit=None))
        logger.info(f"Async log queue stopped (dropped: {self._dropped})")

    def push(self, entry: LogEntry) -> bool:
        try:
            self._queue.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                first = self._queue.get(timeout=self._interval)
            except Empty:
                continue
            self._flush([first] + self._take(limit=self._batch_size - 1))

    def _take(self, limit: Optional[int]) -> List[LogEntry]:
        batch: List[LogEntry] = []
        while limit is None or len(batch) < limit:
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
            logger.error(f"Log flush failed, {len(batch)} entries lost: {e}")

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    node_id: Optional[str] = None,
    execution_id: Optional[str] = None,
    user_id: Optional[Any] = None,
    **extra: Any,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if node_id:
        entry["node_id"] = node_id
    if execution_id:
        entry["execution_id"] = execution_id
    if user_id is not None:
        entry["user_id"] = user_id
    entry.update(extra)
    return entry


def _object_type(node_kind: str) -> str:
    return node_kind if node_kind in OBJECT_TYPE_CATEGORIES else "system"


def log_node_operation(
    operation: str,
    node_kind: str,
    node_id: Optional[str],
    user_id: Any,
    success: bool,
    execution_id: Optional[str] = None,
    parent_id: Optional[str] = None,
    fields_changed: Optional[List[str]] = None,
    duration_ms: Optional[float] = None,
    error: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """
    Build a node mutation entry (create_folder, register_file, upload, rename,
    delete, toggle_lock). node_kind is the collection name ("folders"/"files");
    anything else, including failures with no node, goes to "system".
    """
    data = _base_entry(
        event=f"node_{operation}",
        level="INFO" if success else "ERROR",
        node_id=node_id,
        execution_id=execution_id,
        user_id=user_id,
        operation=operation,
        success=success,
    )
    optional = {
        "parent_id": parent_id,
        "fields_changed": fields_changed,
        "error": error,
    }
    data.update({k: v for k, v in optional.items() if v})
    if duration_ms is not None:
        data["duration_ms"] = round(duration_ms, 3)
    return LogEntry(_object_type(node_kind), "execution", data)


def log_lock_event(
    event: str,
    node_kind: str,
    node_id: str,
    user_id: Any,
    owner_id: Optional[str],
    operation: str,
    execution_id: Optional[str] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Build a lock guard entry: lock_acquired, lock_released or lock_denied."""
    data = _base_entry(
        event=event,
        level=level,
        node_id=node_id,
        execution_id=execution_id,
        user_id=user_id,
        owner_id=owner_id,
        operation=operation,
    )
    return LogEntry(_object_type(node_kind), "security", data)


def log_storage_write(
    key: str,
    user_id: Any,
    size_bytes: int,
    backend: str,
    sha256: Optional[str] = None,
) -> LogEntry:
    data = _base_entry(
        event="object_stored",
        level="INFO",
        user_id=user_id,
        key=key,
        size_bytes=size_bytes,
        backend=backend,
    )
    if sha256:
        data["sha256"] = sha256
    return LogEntry("storage", "execution", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    data = _base_entry(event=event, level=level)
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Log Cleanup / Retention
# ---------------------------------------------------------------------------

class LogRetentionManager:
    """
    Ages out structured log files.

    Per category: files older than the retention period are deleted; plain
    files older than compress_after_days are gzipped in place.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        retention_days: Optional[Dict[str, int]] = None,
        compress_after_days: int = 7,
    ):
        self._log_dir = Path(log_dir)
        self._retention = {**DEFAULT_RETENTION, **(retention_days or {})}
        self._compress_after = compress_after_days

    def _aged_files(self, today: date) -> Iterator[Tuple[Path, str, int]]:
        for object_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                directory = self._log_dir / object_type / category
                if not directory.is_dir():
                    continue
                for path in sorted(directory.iterdir()):
                    day = _day_of(path) if path.is_file() else None
                    if day is not None:
                        yield path, category, (today - day).days

    def cleanup(self, today: Optional[date] = None) -> Dict[str, int]:
        """Returns {"deleted": N, "compressed": M}."""
        today = today or date.today()
        result = {"deleted": 0, "compressed": 0}

        for path, category, age in self._aged_files(today):
            if age > self._retention.get(category, DEFAULT_RETENTION["execution"]):
                path.unlink()
                result["deleted"] += 1
            elif age > self._compress_after and path.name.endswith(JSONL) and self._compress(path):
                result["compressed"] += 1

        logger.info(f"Log cleanup: {result}")
        return result

    @staticmethod
    def _compress(path: Path) -> bool:
        target = path.with_name(path.name + ".gz")
        try:
            with open(path, "rb") as src, gzip.open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
        except OSError as e:
            logger.error(f"Failed to compress {path}: {e}")
            target.unlink(missing_ok=True)
            return False
        path.unlink()
        return True


# ---------------------------------------------------------------------------
# Global Log Queue
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
) -> AsyncLogQueue:
    """Start the process-wide structured log queue (replacing any previous one)."""
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
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
    """Queue a structured entry. False when logging is off or the queue is full."""
    if _global_queue is None:
        logger.debug(f"Structured logging not initialised; dropped {entry.data.get('event')}")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
        _global_queue = None
