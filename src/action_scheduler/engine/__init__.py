"""
Action Store Engine

Storage backends for scheduled actions:
- SQLiteActionStore: current backend with race-free claiming
- LegacyActionStore: pre-migration layout
- HybridActionStore: serves both while legacy actions are migrated
"""

from .base import ActionStore, QueryResult
from .models import (
    Action,
    ActionClaim,
    ActionQuery,
    ActionStatus,
    NullAction,
    Schedule,
)
from .sqlite_store import SQLiteActionStore
from .legacy_store import LegacyActionStore
from .migration import ActionMigrator, MigrationGateway
from .bootstrap import DEMARKATION_OPTION, ensure_boundary_initialized, read_boundary
from .hybrid_store import HybridActionStore

__all__ = [
    # Interface
    "ActionStore",
    "QueryResult",
    # Models
    "Action",
    "ActionClaim",
    "ActionQuery",
    "ActionStatus",
    "NullAction",
    "Schedule",
    # Backends
    "SQLiteActionStore",
    "LegacyActionStore",
    "HybridActionStore",
    # Migration
    "ActionMigrator",
    "MigrationGateway",
    "DEMARKATION_OPTION",
    "ensure_boundary_initialized",
    "read_boundary",
]
