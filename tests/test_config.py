"""Unit tests for filebox.engine.config — FileBoxConfig and filebox.yaml loading."""

import pytest

from filebox.engine.config import (
    DeletionConfig,
    FileBoxConfig,
    LockConfig,
    NamespaceConfig,
    StorageConfig,
    get_config,
    load_config,
)
from filebox.engine.errors import FileBoxConfigError


class TestFileBoxConfig:
    """Test FileBoxConfig Pydantic model."""

    def test_defaults(self):
        cfg = FileBoxConfig()
        assert cfg.name == "FileBox"
        assert cfg.environment == "dev"
        assert cfg.database.pool_size == 10
        assert cfg.storage.backend == "local"
        assert cfg.namespace.collation == "binary"
        assert cfg.locks.protect_rename_delete is True
        assert cfg.deletion.non_empty_folder == "reject"
        assert cfg.logging.level == "INFO"
        assert cfg.allowed_mime_types == ["*/*"]

    def test_invalid_environment(self):
        with pytest.raises(ValueError, match="dev/staging/prod"):
            FileBoxConfig(environment="test")

    def test_invalid_collation(self):
        with pytest.raises(ValueError, match="binary/casefold"):
            NamespaceConfig(collation="locale")

    def test_invalid_deletion_policy(self):
        with pytest.raises(ValueError, match="reject/cascade"):
            DeletionConfig(non_empty_folder="orphan")

    def test_invalid_storage_backend(self):
        with pytest.raises(ValueError, match="local/http"):
            StorageConfig(backend="s3")

    def test_max_name_length_capped_at_column_width(self):
        assert NamespaceConfig(max_name_length=255).max_name_length == 255
        with pytest.raises(ValueError, match="between 1 and 255"):
            NamespaceConfig(max_name_length=1000)
        with pytest.raises(ValueError, match="between 1 and 255"):
            NamespaceConfig(max_name_length=0)

    def test_legacy_lock_mode(self):
        cfg = FileBoxConfig(locks=LockConfig(protect_rename_delete=False))
        assert cfg.locks.protect_rename_delete is False


class TestLoadConfig:
    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(str(tmp_path / "filebox.yaml"))
        assert cfg == FileBoxConfig()

    def test_load_nested(self, tmp_path):
        path = tmp_path / "filebox.yaml"
        path.write_text(
            "filebox:\n"
            "  name: Team Drive\n"
            "  environment: staging\n"
            "  namespace:\n"
            "    collation: casefold\n"
            "  deletion:\n"
            "    non_empty_folder: cascade\n"
            "  storage:\n"
            "    backend: http\n"
            "    base_url: https://store.example.com\n",
            encoding="utf-8",
        )
        cfg = load_config(str(path))
        assert cfg.name == "Team Drive"
        assert cfg.environment == "staging"
        assert cfg.namespace.collation == "casefold"
        assert cfg.deletion.non_empty_folder == "cascade"
        assert cfg.storage.backend == "http"

    def test_load_flat(self, tmp_path):
        path = tmp_path / "filebox.yaml"
        path.write_text("locks:\n  protect_rename_delete: false\n", encoding="utf-8")
        assert load_config(str(path)).locks.protect_rename_delete is False

    def test_invalid_values_raise_config_error(self, tmp_path):
        path = tmp_path / "filebox.yaml"
        path.write_text("environment: qa\n", encoding="utf-8")
        with pytest.raises(FileBoxConfigError):
            load_config(str(path))

    def test_oversized_name_length_raises_config_error(self, tmp_path):
        path = tmp_path / "filebox.yaml"
        path.write_text("namespace:\n  max_name_length: 1000\n", encoding="utf-8")
        with pytest.raises(FileBoxConfigError):
            load_config(str(path))

    def test_non_mapping_raises_config_error(self, tmp_path):
        path = tmp_path / "filebox.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(FileBoxConfigError, match="mapping"):
            load_config(str(path))

    def test_auto_discovery(self, tmp_path, monkeypatch):
        (tmp_path / "filebox.yaml").write_text("name: Discovered\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert get_config().name == "Discovered"
