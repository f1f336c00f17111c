"""
Tests for HistoryStore and HistorySelector.

In-memory SQLite with the real ORM models.  Covers current/previous state
resolution, the schedule table's one-row-per-field rule, due-window
queries, comment edits, deletion scopes, actor reassignment and the
history immutability listener.
"""

import pytest

from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.transition import Transition
from workflow_kernel.exceptions import (
    ImmutabilityViolationError,
    MissingTransitionDataError,
    TransitionNotFoundError,
)
from workflow_kernel.models.transition import TransitionHistoryModel
from workflow_kernel.services.history_store import DeletionScope, HistoryStore

REF = EntityRef("article", "42")
OTHER = EntityRef("article", "43")


@pytest.fixture
def store(session):
    return HistoryStore(session)


def _record(store, from_state, to_state, timestamp=100, ref=REF, field_name="", actor_id="5", comment=""):
    t = Transition(
        "editorial", from_state, to_state, ref, field_name,
        actor_id=actor_id, timestamp=timestamp, comment=comment,
    )
    store.save_executed(t)
    return t


def _schedule(store, from_state, to_state, due, ref=REF, field_name="", actor_id="5"):
    t = Transition(
        "editorial", from_state, to_state, ref, field_name,
        actor_id=actor_id, timestamp=due, is_scheduled=True,
    )
    store.save_scheduled(t)
    return t


class TestStateResolution:
    def test_no_history_means_creation_state(self, store, editorial):
        assert store.current_state(REF, "", editorial) == "draft"

    def test_latest_executed_wins(self, store, editorial):
        _record(store, "draft", "review", timestamp=100)
        _record(store, "review", "published", timestamp=200)
        assert store.current_state(REF, "", editorial) == "published"

    def test_same_timestamp_ordered_by_insertion(self, store, editorial):
        _record(store, "draft", "review", timestamp=100)
        _record(store, "review", "published", timestamp=100)
        assert store.current_state(REF, "", editorial) == "published"

    def test_fields_are_independent(self, store, editorial):
        _record(store, "draft", "review", field_name="a")
        assert store.current_state(REF, "a", editorial) == "review"
        assert store.current_state(REF, "b", editorial) == "draft"

    def test_new_entity_starts_in_creation_state(self, store, editorial):
        unsaved = EntityRef("article", None)
        assert store.current_state(unsaved, "", editorial, is_new=True) == "draft"
        assert store.previous_state(unsaved, "", editorial) == "draft"

    def test_previous_state_prefers_original_value(self, store, editorial):
        _record(store, "draft", "review")
        assert store.previous_state(REF, "", editorial, original_state="published") == "published"
        assert store.previous_state(REF, "", editorial) == "review"
        assert store.previous_state(REF, "", editorial, is_new=True) == "draft"


class TestExecutedHistory:
    def test_save_sets_hid(self, store):
        t = _record(store, "draft", "review")
        assert isinstance(t.hid, int)
        stored = store.selector.executed_by_id(t.hid)
        assert stored.is_executed
        assert (stored.from_state, stored.to_state) == ("draft", "review")
        assert stored.entity_ref == REF

    def test_unsaved_entity_rejected(self, store):
        t = Transition("editorial", "draft", "review", EntityRef("article", None))
        with pytest.raises(MissingTransitionDataError):
            store.save_executed(t)

    def test_history_most_recent_first(self, store):
        _record(store, "draft", "review", timestamp=100)
        _record(store, "review", "published", timestamp=200)
        _record(store, "draft", "review", timestamp=150, ref=OTHER)
        history = store.selector.history(REF)
        assert [t.to_state for t in history] == ["published", "review"]
        assert len(store.selector.history(REF, limit=1)) == 1
        assert store.selector.count_executed(REF) == 2

    def test_save_executed_clears_schedule_of_field(self, store):
        _schedule(store, "draft", "review", due=500)
        _schedule(store, "draft", "review", due=500, field_name="other")
        _record(store, "draft", "published")
        assert store.selector.scheduled_for(REF, "") is None
        assert store.selector.scheduled_for(REF, "other") is not None


class TestScheduled:
    def test_one_pending_transition_per_field(self, store):
        _schedule(store, "draft", "review", due=500)
        _schedule(store, "draft", "published", due=600)
        pending = store.selector.scheduled_for_entity(REF)
        assert len(pending) == 1
        assert pending[0].to_state == "published"
        assert pending[0].timestamp == 600

    def test_due_window_is_open_on_both_ends(self, store):
        _schedule(store, "draft", "review", due=100, ref=EntityRef("article", "1"))
        _schedule(store, "draft", "review", due=150, ref=EntityRef("article", "2"))
        _schedule(store, "draft", "review", due=200, ref=EntityRef("article", "3"))
        due = store.due_scheduled(100, 200)
        assert [t.entity_ref.entity_id for t in due] == ["2"]

    def test_due_ordered_oldest_first(self, store):
        _schedule(store, "draft", "review", due=300, ref=EntityRef("article", "1"))
        _schedule(store, "draft", "review", due=120, ref=EntityRef("article", "2"))
        due = store.due_scheduled(0, 1000)
        assert [t.timestamp for t in due] == [120, 300]
        assert all(t.is_scheduled for t in due)

    def test_delete_scheduled(self, store):
        _schedule(store, "draft", "review", due=500)
        assert store.delete_scheduled(REF, "") == 1
        assert store.delete_scheduled(REF, "") == 0


class TestComments:
    def test_update_comment(self, store):
        t = _record(store, "draft", "review", comment="first")
        updated = store.update_comment(t.hid, "second")
        assert updated.comment == "second"
        assert store.selector.executed_by_id(t.hid).comment == "second"

    def test_update_unknown(self, store):
        with pytest.raises(TransitionNotFoundError):
            store.update_comment(12345, "x")


class TestImmutabilityListener:
    def test_state_columns_cannot_change(self, store, session):
        t = _record(store, "draft", "review")
        model = session.get(TransitionHistoryModel, t.hid)
        model.to_state = "published"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_comment_may_change(self, store, session):
        t = _record(store, "draft", "review")
        model = session.get(TransitionHistoryModel, t.hid)
        model.comment = "fine"
        session.flush()


class TestDeletion:
    def test_scheduled_scope_keeps_history(self, store):
        _record(store, "draft", "review")
        _schedule(store, "review", "published", due=500)
        assert store.delete_for_entity(REF) == 1
        assert store.selector.count_executed(REF) == 1

    def test_all_scope_drops_everything(self, store, captured_logs):
        _record(store, "draft", "review")
        _record(store, "draft", "review", field_name="other")
        _schedule(store, "review", "published", due=500)
        _record(store, "draft", "review", ref=OTHER)

        assert store.delete_for_entity(REF, scope=DeletionScope.ALL) == 3

        assert store.selector.count_executed(REF) == 0
        assert store.selector.count_executed(OTHER) == 1
        assert any(r["message"] == "workflow_records_deleted" for r in captured_logs())

    def test_single_field(self, store):
        _record(store, "draft", "review", field_name="a")
        _record(store, "draft", "review", field_name="b")
        store.delete_for_entity(REF, "a", DeletionScope.ALL)
        assert store.selector.count_executed(REF, "a") == 0
        assert store.selector.count_executed(REF, "b") == 1

    def test_delete_for_field_across_entities(self, store):
        _record(store, "draft", "review", field_name="a")
        _record(store, "draft", "review", field_name="a", ref=OTHER)
        _schedule(store, "review", "published", due=500, field_name="a")
        _record(store, "draft", "review", field_name="b")
        assert store.delete_for_field("article", "a") == 3
        assert store.selector.count_executed(REF, "b") == 1


class TestActorReassignment:
    def test_reassign(self, store, captured_logs):
        t = _record(store, "draft", "review", actor_id="5")
        _schedule(store, "review", "published", due=500, actor_id="5")
        _record(store, "draft", "review", ref=OTHER, actor_id="6")

        assert store.reassign_actor("5", "0") == 2

        assert store.selector.executed_by_id(t.hid).actor_id == "0"
        assert store.selector.scheduled_for(REF, "").actor_id == "0"
        assert store.selector.history(OTHER)[0].actor_id == "6"
        assert any(r["message"] == "workflow_actor_reassigned" for r in captured_logs())
