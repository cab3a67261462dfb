"""
Shared fixtures for action store tests.

Every store is backed by a real SQLite file under tmp_path.
"""

from datetime import timedelta

import pytest

from action_scheduler.config import reset_default_store
from action_scheduler.engine import (
    Action,
    ActionMigrator,
    HybridActionStore,
    LegacyActionStore,
    Schedule,
    SQLiteActionStore,
    ensure_boundary_initialized,
)
from action_scheduler.engine.models import now_utc
from action_scheduler.events import EventPublisher, reset_publisher


@pytest.fixture(autouse=True)
def _reset_globals():
    """Drop process-wide singletons between tests."""
    reset_publisher()
    reset_default_store()
    yield
    reset_publisher()
    reset_default_store()


@pytest.fixture
def publisher():
    return EventPublisher()


@pytest.fixture
def events(publisher):
    """Every event published through the test publisher, in order."""
    received = []
    publisher.subscribe("*", received.append)
    return received


@pytest.fixture
def store(tmp_path, publisher):
    return SQLiteActionStore(tmp_path / "actions.db", publisher=publisher)


@pytest.fixture
def legacy_store(tmp_path, publisher):
    return LegacyActionStore(tmp_path / "legacy.db", publisher=publisher)


def make_action(hook="test_hook", args=None, *, start=None, group="", delay=timedelta(hours=-1), **kwargs):
    """Action due at `start`, or `delay` from now (an hour ago by default)."""
    if start is None and delay is not None:
        start = now_utc() + delay
    return Action(hook=hook, args=args or {}, schedule=Schedule(start=start), group=group, **kwargs)


def advance_id_sequence(action_store, table, next_id):
    """Make the next AUTOINCREMENT id of `table` equal `next_id`."""
    with action_store.database.transaction() as conn:
        conn.execute(
            f"INSERT INTO {table} (action_id, hook, status) VALUES (?, '', '')",
            (next_id - 1,),
        )
        conn.execute(f"DELETE FROM {table} WHERE action_id=?", (next_id - 1,))


def set_column(action_store, table, action_id, **columns):
    """Write raw column values, bypassing the store API."""
    assignments = ", ".join(f"{name}=?" for name in columns)
    with action_store.database.transaction() as conn:
        conn.execute(
            f"UPDATE {table} SET {assignments} WHERE action_id=?",
            (*columns.values(), action_id),
        )


@pytest.fixture
def legacy_action_id(legacy_store):
    """A pending, due legacy action stored under ID 42."""
    advance_id_sequence(legacy_store, "legacy_actions", 42)
    action_id = legacy_store.save_action(make_action("legacy_hook", {"order": 7}, group="imports"))
    assert action_id == 42
    return action_id


@pytest.fixture
def hybrid(store, legacy_store, legacy_action_id, publisher):
    """Hybrid store with the demarkation fixed at 100 and legacy action 42."""
    boundary = ensure_boundary_initialized(store, legacy_store, boundary=100)
    migrator = ActionMigrator(legacy_store, store, publisher=publisher)
    return HybridActionStore(store, legacy_store, migrator, boundary)
