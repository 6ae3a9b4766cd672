"""
BillVault Preferences — user settings persisted across sessions.

Stored as JSON values in the ``preferences`` table under the same keys the
settings menu has always used (``autoSaveEnabled``, ``autoSaveInterval``).
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from billvault.db.models import PreferenceRow
from billvault.db.session import session_scope, upsert
from billvault.engine.config import AutoSavePreferences
from billvault.engine.errors import BillVaultConfigError, BillVaultStorageError

logger = logging.getLogger("billvault.engine.preferences")

AUTOSAVE_ENABLED_KEY = "autoSaveEnabled"
AUTOSAVE_INTERVAL_KEY = "autoSaveInterval"


class PreferenceStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with session_scope(self._session_factory) as session:
                row = session.get(PreferenceRow, key)
                raw = row.value if row is not None else None
        except SQLAlchemyError as e:
            raise BillVaultStorageError(
                f"Cannot read preference '{key}'", operation="get_preference", cause=e
            ) from e
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Ignoring unreadable preference {key}={raw!r}")
            return default

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        try:
            with session_scope(self._session_factory) as session:
                upsert(session, PreferenceRow, {"key": key, "value": raw})
        except SQLAlchemyError as e:
            raise BillVaultStorageError(
                f"Cannot write preference '{key}'", operation="set_preference", cause=e
            ) from e

    def all(self) -> Dict[str, Any]:
        """Every stored preference; unreadable values are left out."""
        try:
            with session_scope(self._session_factory) as session:
                rows = session.execute(select(PreferenceRow)).scalars().all()
                stored = {row.key: row.value for row in rows}
        except SQLAlchemyError as e:
            raise BillVaultStorageError(
                "Cannot read preferences", operation="list_preferences", cause=e
            ) from e

        result: Dict[str, Any] = {}
        for key, raw in stored.items():
            try:
                result[key] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unreadable preference {key}={raw!r}")
        return result

    # ---- auto-save settings ----

    def load_autosave(self, defaults: Optional[AutoSavePreferences] = None) -> AutoSavePreferences:
        """
        Saved auto-save settings layered over ``defaults``. A stored value
        that is no longer valid falls back to the default.
        """
        defaults = defaults or AutoSavePreferences()
        enabled = self.get(AUTOSAVE_ENABLED_KEY, defaults.enabled)
        interval = self.get(AUTOSAVE_INTERVAL_KEY, defaults.interval_ms)
        try:
            return AutoSavePreferences(enabled=bool(enabled), interval_ms=int(interval))
        except (ValidationError, TypeError, ValueError):
            logger.warning(
                f"Stored auto-save settings invalid ({enabled!r}, {interval!r}); using defaults"
            )
            return defaults

    def save_autosave(
        self,
        enabled: Optional[bool] = None,
        interval_ms: Optional[int] = None,
        defaults: Optional[AutoSavePreferences] = None,
    ) -> AutoSavePreferences:
        """Validate and persist changed settings; returns the resulting settings."""
        current = self.load_autosave(defaults)
        try:
            updated = AutoSavePreferences(
                enabled=current.enabled if enabled is None else enabled,
                interval_ms=current.interval_ms if interval_ms is None else interval_ms,
            )
        except ValidationError as e:
            raise BillVaultConfigError(f"Invalid auto-save settings: {e}") from e
        self.set(AUTOSAVE_ENABLED_KEY, updated.enabled)
        self.set(AUTOSAVE_INTERVAL_KEY, updated.interval_ms)
        return updated
