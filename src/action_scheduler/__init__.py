"""
Action Scheduler Store

Persistence core for scheduled actions: a SQLite-backed store with race-free
claiming, and a hybrid store that drains a legacy store into it.

Usage:
    from action_scheduler.config import get_action_store

    store = get_action_store()
    claim = store.stake_claim(max_actions=25)
"""

__version__ = "1.0.0"
