"""
FileBox Runtime — builds the namespace services from filebox.yaml.

Boot sequence:
1. Load config (explicit object, explicit path, or auto-discovered file)
2. Configure stdlib logging level and start the structured log queue
3. Initialise the database and the SQL node store / user directory
4. Build the object storage backend
5. Build the FileManager

Usage:
    runtime = FileBoxRuntime(config_path="filebox.yaml")
    runtime.startup()
    manager = runtime.file_manager
    ...
    runtime.shutdown()
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from filebox.db.session import init_db
from filebox.engine.config import FileBoxConfig, load_config
from filebox.engine.errors import FileBoxConfigError
from filebox.engine.logging import (
    LogRetentionManager,
    init_logging,
    log,
    log_system_event,
    shutdown_logging,
)
from filebox.namespace.integrity import IntegrityReport, NamespaceAuditor
from filebox.namespace.orchestrator import FileManager
from filebox.namespace.store import SqlNodeStore, SqlUserDirectory
from filebox.storage.backends import HttpObjectStorage, LocalObjectStorage, ObjectStorage

logger = logging.getLogger("filebox.engine.runtime")


def build_storage(config: FileBoxConfig) -> ObjectStorage:
    storage_cfg = config.storage
    if storage_cfg.backend == "local":
        return LocalObjectStorage(
            root=storage_cfg.root,
            base_url=storage_cfg.base_url,
            bucket=storage_cfg.bucket,
        )
    if storage_cfg.backend == "http":
        return HttpObjectStorage(
            base_url=storage_cfg.base_url,
            bucket=storage_cfg.bucket,
            api_key=storage_cfg.api_key,
            timeout=storage_cfg.timeout,
        )
    raise FileBoxConfigError(f"Unknown storage backend '{storage_cfg.backend}'")


class FileBoxRuntime:
    """Owns the lifecycle of the database, log queue and storage client."""

    def __init__(self, config: Optional[FileBoxConfig] = None, config_path: Optional[str] = None):
        self._config = config
        self._config_path = config_path
        self._file_manager: Optional[FileManager] = None
        self._store: Optional[SqlNodeStore] = None
        self._users: Optional[SqlUserDirectory] = None
        self._storage: Optional[ObjectStorage] = None
        self._started = False

    @property
    def config(self) -> FileBoxConfig:
        if self._config is None:
            self._config = load_config(self._config_path)
        return self._config

    @property
    def file_manager(self) -> FileManager:
        if self._file_manager is None:
            raise RuntimeError("FileBox runtime not started. Call startup() first.")
        return self._file_manager

    @property
    def users(self) -> SqlUserDirectory:
        if self._users is None:
            raise RuntimeError("FileBox runtime not started. Call startup() first.")
        return self._users

    @property
    def is_started(self) -> bool:
        return self._started

    def startup(self) -> None:
        if self._started:
            return
        config = self.config

        logging.getLogger("filebox").setLevel(config.logging.level.upper())
        if config.logging.enabled:
            queue_cfg = config.logging.async_queue
            init_logging(
                log_dir=config.logging.directory,
                flush_interval_ms=queue_cfg.flush_interval_ms,
                flush_batch_size=queue_cfg.flush_batch_size,
                max_queue_size=queue_cfg.max_queue_size,
            )

        db = config.database
        factory = init_db(
            db.url,
            schema=db.schema_name,
            create_tables=db.create_tables,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            pool_recycle=db.pool_recycle,
            pool_pre_ping=db.pool_pre_ping,
        )
        self._store = SqlNodeStore(factory)
        self._users = SqlUserDirectory(factory)
        self._storage = build_storage(config)
        self._file_manager = FileManager.from_config(config, self._store, self._users, self._storage)
        self._started = True

        log(log_system_event("startup", details={
            "name": config.name,
            "environment": config.environment,
            "storage": config.storage.backend,
        }))
        logger.info(f"FileBox runtime started ({config.environment})")

    def audit(self) -> IntegrityReport:
        if self._store is None:
            raise RuntimeError("FileBox runtime not started. Call startup() first.")
        return NamespaceAuditor(self._store).audit()

    def cleanup_logs(self) -> Dict[str, int]:
        """Apply the configured retention to the structured log directory."""
        log_cfg = self.config.logging
        manager = LogRetentionManager(
            log_dir=log_cfg.directory,
            retention_days={
                "execution": log_cfg.retention.execution_days,
                "security": log_cfg.retention.security_days,
            },
            compress_after_days=log_cfg.compress_after_days,
        )
        return manager.cleanup()

    def shutdown(self) -> None:
        if not self._started:
            return
        log(log_system_event("shutdown"))
        if isinstance(self._storage, HttpObjectStorage):
            self._storage.close()
        shutdown_logging()
        self._file_manager = None
        self._started = False
        logger.info("FileBox runtime stopped")
