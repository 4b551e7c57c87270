"""Unit tests for filebox.engine.runtime — boot sequence and storage selection."""

import pytest

from filebox.engine.config import DatabaseConfig, FileBoxConfig, LoggingConfig, StorageConfig
from filebox.engine.logging import FileLogger
from filebox.engine.runtime import FileBoxRuntime, build_storage
from filebox.storage.backends import HttpObjectStorage, LocalObjectStorage


@pytest.fixture
def runtime_config(tmp_path):
    return FileBoxConfig(
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'runtime.db'}", create_tables=True),
        storage=StorageConfig(root=str(tmp_path / "storage"), base_url="http://storage.test"),
        logging=LoggingConfig(directory=str(tmp_path / "logs")),
    )


class TestBuildStorage:
    def test_local(self, runtime_config):
        assert isinstance(build_storage(runtime_config), LocalObjectStorage)

    def test_http(self):
        storage = build_storage(FileBoxConfig(storage=StorageConfig(backend="http")))
        try:
            assert isinstance(storage, HttpObjectStorage)
        finally:
            storage.close()


class TestFileBoxRuntime:
    def test_not_started(self, runtime_config):
        runtime = FileBoxRuntime(config=runtime_config)
        assert not runtime.is_started
        with pytest.raises(RuntimeError, match="not started"):
            runtime.file_manager

    def test_startup_and_operate(self, runtime_config, act_as, tmp_path):
        runtime = FileBoxRuntime(config=runtime_config)
        runtime.startup()
        try:
            assert runtime.is_started
            runtime.users.add_user("u1", "u1@example.com", "alice")
            act_as("u1")
            result = runtime.file_manager.create_folder("Docs")
            assert result.success
            assert result.view.listing.names == ["Docs"]
            assert runtime.audit().ok
        finally:
            runtime.shutdown()

        assert not runtime.is_started
        events = [e["event"] for e in FileLogger(str(tmp_path / "logs")).query("system", "execution")]
        assert "startup" in events
        assert "shutdown" in events

    def test_config_path(self, tmp_path):
        path = tmp_path / "filebox.yaml"
        path.write_text("name: FromFile\n", encoding="utf-8")
        assert FileBoxRuntime(config_path=str(path)).config.name == "FromFile"

    def test_cleanup_logs_uses_configured_retention(self, runtime_config, tmp_path):
        from datetime import date, timedelta

        stale = tmp_path / "logs" / "files" / "execution" / f"{(date.today() - timedelta(days=120)).isoformat()}.jsonl"
        stale.parent.mkdir(parents=True)
        stale.write_text('{"event":"old"}\n', encoding="utf-8")

        result = FileBoxRuntime(config=runtime_config).cleanup_logs()
        assert result["deleted"] == 1
        assert not stale.exists()
