"""
BillVault Runtime — boots and tears down one editing session.

Startup order:
    1. Structured logging queue
    2. Document database (tables created on first run)
    3. Store, preferences, editor, document service
    4. Auto-save scheduler, configured from persisted preferences

The scheduler is created but only armed by ``start_autosave()``, which
needs a running event loop.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from sqlalchemy.orm import sessionmaker

from billvault.db.session import dispose, init_database
from billvault.documents.locks import NameLocks
from billvault.documents.service import DocumentService
from billvault.documents.store import SqlDocumentStore
from billvault.editor.bridge import BufferEditor, EditorBridge
from billvault.engine.config import AutoSavePreferences, PlatformConfig
from billvault.engine.errors import BillVaultConfigError
from billvault.engine.logging import (
    AsyncLogQueue,
    LogRetentionManager,
    init_logging,
    log,
    log_system_event,
    shutdown_logging,
)
from billvault.engine.preferences import PreferenceStore
from billvault.process.scheduler import AutoSaveScheduler

logger = logging.getLogger("billvault.engine.runtime")


class BillVaultRuntime:
    def __init__(
        self,
        config: Optional[PlatformConfig] = None,
        editor: Optional[EditorBridge] = None,
        enable_file_logging: bool = True,
    ):
        self.config = config or PlatformConfig()
        self._editor = editor
        self._enable_file_logging = enable_file_logging

        self.log_queue: Optional[AsyncLogQueue] = None
        self.session_factory: Optional[sessionmaker] = None
        self.store: Optional[SqlDocumentStore] = None
        self.preferences: Optional[PreferenceStore] = None
        self.service: Optional[DocumentService] = None
        self.scheduler: Optional[AutoSaveScheduler] = None
        self.retention_manager: Optional[LogRetentionManager] = None
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def startup(self) -> None:
        if self._started:
            logger.warning("Runtime already started")
            return

        cfg = self.config
        logger.info(f"Starting {cfg.name} ({cfg.environment})")
        template = self._read_template()

        if self._enable_file_logging:
            q = cfg.logging.async_queue
            self.log_queue = init_logging(
                log_dir=cfg.logging.directory,
                flush_interval_ms=q.flush_interval_ms,
                flush_batch_size=q.flush_batch_size,
                max_queue_size=q.max_queue_size,
            )
            self.retention_manager = LogRetentionManager(
                log_dir=cfg.logging.directory,
                retention_days=cfg.retention_days(),
                compress_after_days=cfg.logging.compress_after_days,
            )
            try:
                self.retention_manager.cleanup()
            except OSError as e:
                logger.warning(f"Log retention cleanup failed: {e}")

        self.session_factory = init_database(cfg.storage.url, echo=cfg.storage.echo)
        self.store = SqlDocumentStore(self.session_factory)
        self.preferences = PreferenceStore(self.session_factory)

        editor = self._editor or BufferEditor(bill_type=cfg.documents.default_bill_type)
        self.service = DocumentService(
            self.store,
            editor,
            locks=NameLocks(),
            default_template=template,
            password_min_length=cfg.security.password_min_length,
            bcrypt_rounds=cfg.security.bcrypt_rounds,
        )
        self.service.load_default()

        self.scheduler = self.service.create_autosave_scheduler(config=self.autosave_settings())

        self._started = True
        log(log_system_event("session_started", details=self.status()))
        logger.info("BillVault runtime started")

    def shutdown(self) -> None:
        if not self._started:
            return
        if self.scheduler is not None:
            self.scheduler.stop()
        log(log_system_event("session_stopped"))
        if self.session_factory is not None:
            dispose(self.session_factory)
        if self.log_queue is not None:
            shutdown_logging()
            self.log_queue = None
        self._started = False
        logger.info("BillVault runtime stopped")

    # ---- auto-save ----

    def autosave_settings(self) -> AutoSavePreferences:
        """Persisted preferences layered over billvault.yaml's autosave section."""
        if self.preferences is None:
            return self.config.autosave
        return self.preferences.load_autosave(self.config.autosave)

    def start_autosave(self) -> AutoSavePreferences:
        """Arm (or disarm) the scheduler per the current settings. Needs a running loop."""
        settings = self.autosave_settings()
        self.scheduler.start(settings)
        return settings

    def update_autosave(
        self,
        enabled: Optional[bool] = None,
        interval_ms: Optional[int] = None,
    ) -> AutoSavePreferences:
        """Persist new settings; a running scheduler is rescheduled to match."""
        settings = self.preferences.save_autosave(
            enabled=enabled, interval_ms=interval_ms, defaults=self.config.autosave
        )
        log(log_system_event("autosave_preferences_changed", details=settings.model_dump()))
        if self.scheduler is not None:
            if not settings.enabled or self.scheduler.is_armed:
                self.scheduler.start(settings)
        return settings

    # ---- helpers ----

    def _read_template(self) -> str:
        path = self.config.documents.template_path
        if not path:
            return ""
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise BillVaultConfigError(f"Cannot read default template {path}: {e}") from e

    def status(self) -> Dict[str, Any]:
        return {
            "storage": self.config.storage.url,
            "active_document": self.service.active_name if self.service else None,
            "autosave": self.scheduler.stats() if self.scheduler else None,
        }
