"""
ActionStore Configuration and Factory

Builds the process-wide action store from environment variables.

Backends:
- "db" (default): SQLiteActionStore on its own
- "hybrid": HybridActionStore over SQLiteActionStore and LegacyActionStore,
  for deployments still migrating legacy actions
"""

from __future__ import annotations

import logging
import os
from datetime import timezone, tzinfo
from enum import Enum
from typing import Optional
from zoneinfo import ZoneInfo

from .engine import (
    ActionMigrator,
    ActionStore,
    HybridActionStore,
    LegacyActionStore,
    SQLiteActionStore,
    ensure_boundary_initialized,
    read_boundary,
)

logger = logging.getLogger(__name__)


class StoreBackend(str, Enum):
    DB = "db"
    HYBRID = "hybrid"


class StoreConfig:
    """Action store configuration from environment variables."""

    def __init__(self):
        self.backend = self._get_backend(os.getenv("ACTION_STORE_BACKEND", "db"))
        self.db_path = os.getenv("ACTION_STORE_DB", "data/action_store.db")
        self.legacy_db_path = os.getenv("LEGACY_ACTION_STORE_DB", "data/legacy_actions.db")
        self.timezone_name = os.getenv("ACTION_STORE_TIMEZONE", "UTC")
        self.busy_timeout_ms = int(os.getenv("ACTION_STORE_BUSY_TIMEOUT_MS", "5000"))

    @staticmethod
    def _get_backend(value: str) -> StoreBackend:
        try:
            return StoreBackend(value.lower())
        except ValueError:
            logger.warning(f"Unknown action store backend '{value}', falling back to 'db'")
            return StoreBackend.DB

    @property
    def local_tz(self) -> tzinfo:
        if self.timezone_name.upper() == "UTC":
            return timezone.utc
        return ZoneInfo(self.timezone_name)

    def __repr__(self) -> str:
        return (
            f"StoreConfig(backend={self.backend.value}, db_path={self.db_path}, "
            f"legacy_db_path={self.legacy_db_path}, timezone={self.timezone_name})"
        )


# Global singleton instance
_default_store: Optional[ActionStore] = None


def get_action_store(
    backend: Optional[str] = None,
    *,
    force_new: bool = False,
    config: Optional[StoreConfig] = None,
) -> ActionStore:
    """
    Get the action store.

    Args:
        backend: "db" or "hybrid". Defaults to ACTION_STORE_BACKEND.
        force_new: Build a new instance instead of returning the singleton.
        config: Explicit configuration; read from the environment when omitted.

    Examples:
        store = get_action_store()
        store = get_action_store("hybrid", force_new=True)
    """
    global _default_store

    if _default_store is not None and not force_new and backend is None and config is None:
        return _default_store

    config = config or StoreConfig()
    if backend is not None:
        config.backend = config._get_backend(backend)

    if config.backend == StoreBackend.HYBRID:
        store: ActionStore = _create_hybrid_store(config)
    else:
        store = _create_db_store(config)

    if not force_new:
        _default_store = store
    return store


def _create_db_store(config: StoreConfig) -> SQLiteActionStore:
    store = SQLiteActionStore(
        config.db_path,
        local_tz=config.local_tz,
        busy_timeout_ms=config.busy_timeout_ms,
    )
    logger.info(f"Created SQLiteActionStore at {config.db_path}")
    return store


def _create_hybrid_store(config: StoreConfig) -> HybridActionStore:
    primary = _create_db_store(config)
    secondary = LegacyActionStore(
        config.legacy_db_path,
        local_tz=config.local_tz,
        busy_timeout_ms=config.busy_timeout_ms,
    )
    ensure_boundary_initialized(primary, secondary)
    boundary = read_boundary(primary)

    store = HybridActionStore(
        primary,
        secondary,
        ActionMigrator(secondary, primary),
        boundary,
    )
    logger.info(f"Created HybridActionStore (demarkation at action {boundary})")
    return store


def reset_default_store() -> None:
    """
    Reset the default store singleton.

    Useful for testing or when configuration changes.
    """
    global _default_store
    _default_store = None
