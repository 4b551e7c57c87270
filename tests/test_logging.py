"""Unit tests for filebox.engine.logging — FileLogger, AsyncLogQueue, LogRetentionManager."""

import gzip
import json
from datetime import date, timedelta

from filebox.engine.logging import (
    OBJECT_TYPE_CATEGORIES,
    AsyncLogQueue,
    FileLogger,
    LogEntry,
    LogRetentionManager,
    get_log_queue,
    init_logging,
    log,
    log_lock_event,
    log_node_operation,
    log_storage_write,
    log_system_event,
    shutdown_logging,
)


class TestObjectTypeCategories:
    def test_node_collections_have_security_logs(self):
        assert "security" in OBJECT_TYPE_CATEGORIES["folders"]
        assert "security" in OBJECT_TYPE_CATEGORIES["files"]


class TestLogEntry:
    def test_to_json(self):
        entry = LogEntry("folders", "execution", {"node_id": "n1"})
        assert json.loads(entry.to_json()) == {"node_id": "n1"}


class TestFileLogger:
    def test_write_creates_file(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        file_logger.write(LogEntry("folders", "execution", {"event": "node_create_folder"}))

        files = list((tmp_path / "logs" / "folders" / "execution").glob("*.jsonl"))
        assert len(files) == 1
        assert json.loads(files[0].read_text().strip())["event"] == "node_create_folder"

    def test_write_batch_groups_by_file(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        file_logger.write_batch(
            [LogEntry("files", "execution", {"n": i}) for i in range(3)]
            + [LogEntry("files", "security", {"n": 99})]
        )
        execution = next((tmp_path / "logs" / "files" / "execution").glob("*.jsonl"))
        security = next((tmp_path / "logs" / "files" / "security").glob("*.jsonl"))
        assert len(execution.read_text().strip().split("\n")) == 3
        assert len(security.read_text().strip().split("\n")) == 1

    def test_query_with_filters(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        file_logger.write_batch([
            LogEntry("folders", "security", {"event": "lock_denied", "user_id": "u2"}),
            LogEntry("folders", "security", {"event": "lock_acquired", "user_id": "u1"}),
        ])
        rows = file_logger.query("folders", "security", filters={"user_id": "u2"})
        assert [r["event"] for r in rows] == ["lock_denied"]

    def test_query_reads_gzipped_files(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        day = date.today() - timedelta(days=1)
        gz_path = tmp_path / "logs" / "system" / "execution" / f"{day.isoformat()}.jsonl.gz"
        with gzip.open(gz_path, "wt", encoding="utf-8") as f:
            f.write(json.dumps({"event": "startup"}) + "\n")
        rows = file_logger.query("system", "execution")
        assert rows == [{"event": "startup"}]

    def test_query_limit_spans_gzipped_and_plain_day(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        base = tmp_path / "logs" / "files" / "execution"
        with gzip.open(base / f"{date.today().isoformat()}.jsonl.gz", "wt", encoding="utf-8") as f:
            f.write('{"n": 1}\n{"n": 2}\n')
        (base / f"{date.today().isoformat()}.jsonl").write_text('{"n": 3}\n{"n": 4}\n', encoding="utf-8")

        assert file_logger.query("files", "execution", limit=2) == [{"n": 1}, {"n": 2}]
        assert len(file_logger.query("files", "execution", limit=3)) == 3

    def test_node_history(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        file_logger.write_batch([
            log_node_operation("create_folder", "folders", "d1", "u1", success=True),
            log_lock_event("lock_acquired", "folders", "d1", "u1", "u1", "toggle_lock", level="INFO"),
            log_node_operation("create_folder", "folders", "d2", "u1", success=True),
        ])
        events = [e["event"] for e in file_logger.node_history("d1")]
        assert sorted(events) == ["lock_acquired", "node_create_folder"]

    def test_query_unknown_type_is_empty(self, tmp_path):
        assert FileLogger(log_dir=str(tmp_path / "logs")).query("nope", "execution") == []


class TestAsyncLogQueue:
    def test_stop_drains_pending_entries(self, tmp_path):
        file_logger = FileLogger(log_dir=str(tmp_path / "logs"))
        queue = AsyncLogQueue(file_logger, flush_interval_ms=10)
        assert queue.push(log_system_event("startup")) is True
        queue.stop()
        rows = file_logger.query("system", "execution")
        assert rows[0]["event"] == "startup"

    def test_full_queue_drops(self, tmp_path):
        queue = AsyncLogQueue(FileLogger(log_dir=str(tmp_path / "logs")), max_queue_size=1)
        assert queue.push(log_system_event("a")) is True
        assert queue.push(log_system_event("b")) is False
        assert queue.dropped_count == 1


class TestGlobalQueue:
    def test_log_without_queue_returns_false(self):
        assert get_log_queue() is None
        assert log(log_system_event("orphan")) is False

    def test_init_log_shutdown(self, tmp_path):
        init_logging(log_dir=str(tmp_path / "logs"), flush_interval_ms=10)
        assert log(log_system_event("startup")) is True
        shutdown_logging()
        assert get_log_queue() is None
        rows = FileLogger(log_dir=str(tmp_path / "logs")).query("system", "execution")
        assert rows[0]["event"] == "startup"


class TestLogBuilders:
    def test_log_node_operation_success(self):
        entry = log_node_operation(
            operation="rename",
            node_kind="files",
            node_id="f1",
            user_id="u1",
            success=True,
            fields_changed=["name"],
        )
        assert entry.object_type == "files"
        assert entry.category == "execution"
        assert entry.data["event"] == "node_rename"
        assert entry.data["level"] == "INFO"
        assert entry.data["fields_changed"] == ["name"]

    def test_log_node_operation_failure_level(self):
        entry = log_node_operation("delete", "folders", "d1", "u1", success=False, error={"m": 1})
        assert entry.data["level"] == "ERROR"
        assert entry.data["error"] == {"m": 1}

    def test_unknown_kind_goes_to_system(self):
        assert log_node_operation("delete", "widgets", "x", "u1", success=True).object_type == "system"

    def test_log_lock_event(self):
        entry = log_lock_event("lock_denied", "folders", "d1", "u2", "u1", "toggle_lock")
        assert entry.category == "security"
        assert entry.data["owner_id"] == "u1"
        assert entry.data["level"] == "WARNING"

    def test_log_storage_write(self):
        entry = log_storage_write("u1/abc.txt", "u1", 10, "local", sha256="deadbeef")
        assert entry.object_type == "storage"
        assert entry.data["sha256"] == "deadbeef"


class TestLogRetentionManager:
    def _touch(self, tmp_path, day):
        path = tmp_path / "logs" / "folders" / "execution" / f"{day.isoformat()}.jsonl"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text('{"event":"x"}\n', encoding="utf-8")
        return path

    def test_deletes_and_compresses(self, tmp_path):
        today = date(2026, 3, 1)
        old = self._touch(tmp_path, today - timedelta(days=100))
        aging = self._touch(tmp_path, today - timedelta(days=10))
        fresh = self._touch(tmp_path, today - timedelta(days=1))

        mgr = LogRetentionManager(log_dir=str(tmp_path / "logs"), compress_after_days=7)
        result = mgr.cleanup(today=today)

        assert result == {"deleted": 1, "compressed": 1}
        assert not old.exists()
        assert not aging.exists()
        assert aging.with_suffix(".jsonl.gz").exists()
        assert fresh.exists()

    def test_cleanup_empty_dir(self, tmp_path):
        (tmp_path / "logs").mkdir()
        assert LogRetentionManager(log_dir=str(tmp_path / "logs")).cleanup() == {"deleted": 0, "compressed": 0}
