"""
Tests for SQLiteActionStore persistence, queries and status transitions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from action_scheduler.engine import Action, ActionStatus, NullAction, Schedule
from action_scheduler.engine.models import format_db_datetime, now_utc
from action_scheduler.errors import (
    ActionNotFoundError,
    InvalidArgumentError,
    StorageInconsistencyError,
)
from conftest import make_action, set_column


class TestSaveAndFetch:
    """Tests for save_action and fetch_action."""

    def test_save_returns_id_and_fetch_round_trips(self, store):
        """Test that a saved action can be fetched back."""
        start = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)
        action_id = store.save_action(make_action("send_email", {"to": "a@example.com"}, start=start, group="mail"))

        assert action_id > 0
        action = store.fetch_action(action_id)
        assert action.action_id == action_id
        assert action.hook == "send_email"
        assert action.args == {"to": "a@example.com"}
        assert action.group == "mail"
        assert action.status == ActionStatus.PENDING
        assert action.schedule.start == start
        assert action.scheduled_date_gmt == start
        assert action.attempts == 0
        assert action.claim_id == 0

    def test_ids_are_unique(self, store):
        """Test that each save returns a new ID."""
        ids = {store.save_action(make_action()) for _ in range(5)}
        assert len(ids) == 5

    def test_finished_action_saved_as_complete(self, store):
        """Test that a finished action is stored as complete."""
        action_id = store.save_action(make_action(status=ActionStatus.FAILED))
        assert store.get_status(action_id) == ActionStatus.COMPLETE

    def test_explicit_date_overrides_schedule(self, store):
        """Test that the date argument wins over the schedule."""
        override = datetime(2030, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        action_id = store.save_action(make_action(), date=override)
        assert store.get_date_gmt(action_id) == override

    def test_action_without_schedule_is_never_due(self, store):
        """Test that an unscheduled action has no date and is not claimed."""
        action_id = store.save_action(Action(hook="unscheduled"))
        assert store.get_date_gmt(action_id) is None
        assert store.stake_claim().action_ids == ()

    def test_group_is_shared(self, store):
        """Test that actions in the same group reuse one group row."""
        store.save_action(make_action(group="reports"))
        store.save_action(make_action(group="reports"))

        with store.database.connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM action_groups WHERE slug='reports'").fetchone()[0]
        assert count == 1

    def test_fetch_missing_returns_null_action(self, store):
        """Test that fetching an unknown ID yields a NullAction."""
        action = store.fetch_action(999)
        assert isinstance(action, NullAction)
        assert action.is_null()

    def test_save_emits_stored_event(self, store, events):
        """Test that saving publishes action.stored."""
        action_id = store.save_action(make_action("send_email"))
        assert [(e.event_type, e.action_id) for e in events] == [("action.stored", action_id)]
        assert events[0].event_data == {"hook": "send_email"}


class TestFindAction:
    """Tests for find_action."""

    def test_pending_returns_earliest_due(self, store):
        """Test that the earliest scheduled pending action wins."""
        later = store.save_action(make_action("sync", delay=timedelta(hours=-1)))
        earlier = store.save_action(make_action("sync", delay=timedelta(hours=-5)))
        assert later != earlier
        assert store.find_action("sync") == earlier

    def test_filters_by_args(self, store):
        """Test exact argument matching."""
        store.save_action(make_action("sync", {"id": 1}))
        wanted = store.save_action(make_action("sync", {"id": 2}))
        assert store.find_action("sync", {"args": {"id": 2}}) == wanted
        assert store.find_action("sync", {"args": {"id": 3}}) is None

    def test_filters_by_group(self, store):
        """Test group filtering."""
        store.save_action(make_action("sync", group="a"))
        wanted = store.save_action(make_action("sync", group="b"))
        assert store.find_action("sync", {"group": "b"}) == wanted
        assert store.find_action("sync", {"group": "missing"}) is None

    def test_default_status_is_pending(self, store):
        """Test that non-pending actions are ignored by default."""
        action_id = store.save_action(make_action("sync"))
        store.cancel_action(action_id)
        assert store.find_action("sync") is None

    def test_non_pending_returns_most_recent_attempt(self, store):
        """Test that other statuses order by latest attempt."""
        old = store.save_action(make_action("report"))
        recent = store.save_action(make_action("report"))
        store.mark_complete(old)
        store.mark_complete(recent)
        set_column(store, "actions", old, last_attempt_gmt="2024-01-01 00:00:00")
        set_column(store, "actions", recent, last_attempt_gmt="2024-06-01 00:00:00")

        assert store.find_action("report", {"status": ActionStatus.COMPLETE}) == recent

    def test_unknown_hook(self, store):
        """Test that an unknown hook finds nothing."""
        assert store.find_action("nothing") is None


class TestQueryActions:
    """Tests for query_actions."""

    @pytest.fixture
    def seeded(self, store):
        ids = [store.save_action(make_action(f"hook_{i % 2}", delay=timedelta(hours=-(10 - i)))) for i in range(8)]
        return ids

    def test_default_page_size(self, store, seeded):
        """Test that the default page holds five IDs, oldest first."""
        assert store.query_actions() == seeded[:5]

    def test_pagination(self, store, seeded):
        """Test per_page and offset."""
        assert store.query_actions({"per_page": 3, "offset": 3}) == seeded[3:6]

    def test_unlimited_page(self, store, seeded):
        """Test that per_page 0 returns everything."""
        assert store.query_actions({"per_page": 0}) == seeded

    def test_count(self, store, seeded):
        """Test count mode ignores pagination."""
        assert store.query_actions({"hook": "hook_0"}, "count") == 4
        assert store.query_actions({"per_page": 1}, "count") == 8

    def test_invalid_query_type(self, store):
        """Test that unknown query modes are rejected."""
        with pytest.raises(InvalidArgumentError):
            store.query_actions({}, "delete")

    def test_status_filter(self, store, seeded):
        """Test status filtering."""
        store.cancel_action(seeded[0])
        assert store.query_actions({"status": ActionStatus.CANCELED}) == [seeded[0]]

    def test_descending_order(self, store, seeded):
        """Test descending date order."""
        assert store.query_actions({"order": "DESC", "per_page": 2}) == [seeded[7], seeded[6]]

    def test_date_comparator(self, store):
        """Test date filtering with a comparator."""
        past = store.save_action(make_action(delay=timedelta(days=-1)))
        future = store.save_action(make_action(delay=timedelta(days=1)))
        now = now_utc()
        assert store.query_actions({"date": now}) == [past]
        assert store.query_actions({"date": now, "date_compare": ">"}) == [future]

    def test_claimed_filter(self, store, seeded):
        """Test the claimed tri-state filter."""
        claim = store.stake_claim(max_actions=2)
        assert sorted(store.query_actions({"claimed": True, "per_page": 0})) == sorted(claim.action_ids)
        assert len(store.query_actions({"claimed": False, "per_page": 0})) == 6
        assert sorted(store.query_actions({"claimed": claim.claim_id, "per_page": 0})) == sorted(claim.action_ids)

    def test_group_filter(self, store):
        """Test group filtering."""
        wanted = store.save_action(make_action(group="billing"))
        store.save_action(make_action(group="other"))
        assert store.query_actions({"group": "billing"}) == [wanted]

    def test_action_counts(self, store, seeded):
        """Test per-status counts."""
        store.cancel_action(seeded[0])
        store.mark_complete(seeded[1])
        assert store.action_counts() == {"pending": 6, "canceled": 1, "complete": 1}

    def test_action_counts_ignore_invalid_status(self, store):
        """Test that rows with unknown statuses are not counted."""
        action_id = store.save_action(make_action())
        store.save_action(make_action())
        set_column(store, "actions", action_id, status="bogus")
        assert store.action_counts() == {"pending": 1}


class TestStatusTransitions:
    """Tests for status changes and their errors."""

    def test_cancel(self, store, events):
        """Test cancelling an action."""
        action_id = store.save_action(make_action())
        store.cancel_action(action_id)
        assert store.get_status(action_id) == ActionStatus.CANCELED
        assert events[-1].event_type == "action.canceled"

    def test_mark_failure(self, store):
        """Test marking an action failed."""
        action_id = store.save_action(make_action())
        store.mark_failure(action_id)
        assert store.get_status(action_id) == ActionStatus.FAILED

    def test_mark_complete_records_attempt(self, store):
        """Test completion sets the last attempt."""
        action_id = store.save_action(make_action())
        store.mark_complete(action_id)
        assert store.get_status(action_id) == ActionStatus.COMPLETE
        assert store.get_last_attempt(action_id) is not None

    def test_log_execution(self, store):
        """Test that logging an execution counts the attempt."""
        action_id = store.save_action(make_action())
        store.log_execution(action_id)
        store.log_execution(action_id)

        action = store.fetch_action(action_id)
        assert action.status == ActionStatus.RUNNING
        assert action.attempts == 2
        assert action.last_attempt_gmt is not None

    @pytest.mark.parametrize(
        "method",
        ["cancel_action", "delete_action", "mark_failure", "mark_complete", "log_execution", "get_status"],
    )
    def test_unknown_id_raises(self, store, method):
        """Test that per-ID operations reject unknown IDs."""
        with pytest.raises(ActionNotFoundError) as exc_info:
            getattr(store, method)(404)
        assert exc_info.value.action_id == 404

    def test_get_status_empty_is_inconsistent(self, store):
        """Test that an empty stored status is a data error."""
        action_id = store.save_action(make_action())
        set_column(store, "actions", action_id, status="")
        with pytest.raises(StorageInconsistencyError):
            store.get_status(action_id)

    def test_fetch_with_unknown_status(self, store):
        """Test that fetch treats an unknown status as complete."""
        action_id = store.save_action(make_action())
        set_column(store, "actions", action_id, status="archived")
        assert store.fetch_action(action_id).status == ActionStatus.COMPLETE

    def test_delete(self, store, events):
        """Test deleting an action."""
        action_id = store.save_action(make_action())
        store.delete_action(action_id)
        assert store.fetch_action(action_id).is_null()
        assert events[-1].event_type == "action.deleted"
        assert events[-1].action_id == action_id


class TestDates:
    """Tests for date accessors."""

    def test_pending_date_is_schedule(self, store):
        """Test that a pending action reports its scheduled time."""
        start = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)
        action_id = store.save_action(make_action(start=start))
        assert store.get_date_gmt(action_id) == start
        assert store.get_date(action_id) == start

    def test_attempted_date_is_last_attempt(self, store):
        """Test that a non-pending action reports its last attempt."""
        action_id = store.save_action(make_action(start=datetime(2024, 3, 1, tzinfo=timezone.utc)))
        store.log_execution(action_id)
        set_column(store, "actions", action_id, last_attempt_gmt="2024-03-02 10:00:00")
        assert store.get_date_gmt(action_id) == datetime(2024, 3, 2, 10, 0, 0, tzinfo=timezone.utc)

    def test_last_attempt_before_any_attempt(self, store):
        """Test that an unattempted action has no last attempt."""
        action_id = store.save_action(make_action())
        assert store.get_last_attempt(action_id) is None
        assert store.get_last_attempt_local(action_id) is None

    def test_last_attempt_local(self, store):
        """Test the local last attempt time."""
        action_id = store.save_action(make_action())
        store.log_execution(action_id)
        assert store.get_last_attempt_local(action_id) == store.get_last_attempt(action_id)

    @pytest.mark.parametrize("method", ["get_date", "get_date_gmt", "get_last_attempt", "get_last_attempt_local"])
    def test_unknown_id_raises(self, store, method):
        """Test that date accessors reject unknown IDs."""
        with pytest.raises(ActionNotFoundError):
            getattr(store, method)(404)


class TestUpdateAction:
    """Tests for update_action."""

    def test_update_fields(self, store):
        """Test updating several fields at once."""
        action_id = store.save_action(make_action("old", {"a": 1}))
        store.update_action(action_id, {"hook": "new", "args": {"b": 2}, "group": "moved", "attempts": 3})

        action = store.fetch_action(action_id)
        assert action.hook == "new"
        assert action.args == {"b": 2}
        assert action.group == "moved"
        assert action.attempts == 3

    def test_update_schedule_moves_due_date(self, store):
        """Test that a new schedule updates the due date."""
        action_id = store.save_action(make_action())
        start = datetime(2031, 1, 1, tzinfo=timezone.utc)
        store.update_action(action_id, {"schedule": Schedule(start=start)})
        assert store.get_date_gmt(action_id) == start

    def test_update_status(self, store):
        """Test updating the status."""
        action_id = store.save_action(make_action())
        store.update_action(action_id, {"status": "failed"})
        assert store.get_status(action_id) == ActionStatus.FAILED

    def test_unknown_field_rejected(self, store):
        """Test that unsupported fields are rejected."""
        action_id = store.save_action(make_action())
        with pytest.raises(InvalidArgumentError):
            store.update_action(action_id, {"claim_id": 5})

    def test_invalid_status_rejected(self, store):
        """Test that an unknown status value is an invalid argument."""
        action_id = store.save_action(make_action())
        with pytest.raises(InvalidArgumentError) as exc_info:
            store.update_action(action_id, {"status": "paused"})
        assert exc_info.value.details["status"] == "paused"
        assert store.get_status(action_id) == ActionStatus.PENDING

    def test_unknown_id(self, store):
        """Test updating an unknown action."""
        with pytest.raises(ActionNotFoundError):
            store.update_action(404, {"hook": "x"})
        with pytest.raises(ActionNotFoundError):
            store.update_action(404, {})


class TestImport:
    """Tests for the migration support methods."""

    def test_import_keeps_id_and_state(self, store):
        """Test importing an action under an explicit ID."""
        attempted = datetime(2024, 2, 2, 2, 2, 2, tzinfo=timezone.utc)
        action = make_action(
            "imported",
            {"x": 1},
            group="legacy",
            action_id=7,
            status=ActionStatus.FAILED,
            attempts=4,
            claim_id=12,
            scheduled_date_gmt=datetime(2024, 2, 1, tzinfo=timezone.utc),
            last_attempt_gmt=attempted,
        )
        assert store.import_action(action) is True

        fetched = store.fetch_action(7)
        assert fetched.hook == "imported"
        assert fetched.group == "legacy"
        assert fetched.status == ActionStatus.FAILED
        assert fetched.attempts == 4
        assert fetched.claim_id == 0
        assert fetched.last_attempt_gmt == attempted

    def test_import_is_idempotent(self, store):
        """Test that importing an existing ID is a no-op."""
        action = make_action(action_id=7)
        assert store.import_action(action) is True
        assert store.import_action(action) is False
        assert store.query_actions({}, "count") == 1

    def test_import_requires_id(self, store):
        """Test that an action without an ID cannot be imported."""
        with pytest.raises(InvalidArgumentError):
            store.import_action(make_action())

    def test_max_action_id(self, store):
        """Test the highest stored ID."""
        assert store.max_action_id() is None
        store.save_action(make_action())
        last = store.save_action(make_action())
        assert store.max_action_id() == last

    def test_stored_date_format(self, store):
        """Test the on-disk date format."""
        start = datetime(2024, 3, 1, 9, 30, 0, tzinfo=timezone.utc)
        action_id = store.save_action(make_action(start=start))
        with store.database.connection() as conn:
            raw = conn.execute("SELECT scheduled_date_gmt FROM actions WHERE action_id=?", (action_id,)).fetchone()[0]
        assert raw == format_db_datetime(start) == "2024-03-01 09:30:00"
