"""
Tests for WorkflowCommands -- the caller-facing command surface.

Validates caller-level checks (comment settings, scheduling switch, revert
eligibility, comment edit rights) and the cleanup commands for deleted
entities, removed fields and removed actors.
"""

import pytest

from workflow_kernel.domain.authorization import (
    edit_any_capability,
    edit_own_capability,
    revert_any_capability,
    revert_own_capability,
)
from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.execution import ExecutionContext, ExecutionOutcome
from workflow_kernel.domain.transition import REVERT_COMMENT
from workflow_kernel.domain.workflow import CommentSetting, WorkflowRegistry
from workflow_kernel.exceptions import (
    CommentEditDeniedError,
    CommentRequiredError,
    NotRevertableError,
    SchedulingDisabledError,
    TransitionNotFoundError,
    UnknownWorkflowError,
)
from workflow_kernel.services.authorization import AuthorizationEngine
from workflow_kernel.services.commands import WorkflowCommands
from workflow_kernel.services.definition import WorkflowDefinition
from workflow_kernel.services.execution_engine import ExecutionEngine

from tests.conftest import (
    AUTHOR_ID,
    EDITOR_ID,
    STRANGER_ID,
    Article,
    make_editorial,
)

REF = EntityRef("article", "42")


@pytest.fixture
def commands_with(session, capabilities, entities, clock):
    """Build commands over an editorial workflow with custom settings."""

    def _build(**settings) -> WorkflowCommands:
        registry = WorkflowRegistry([make_editorial(**settings)])
        authz = AuthorizationEngine(registry, capabilities, entities)
        engine = ExecutionEngine(session, registry, authz, entities, clock=clock)
        return WorkflowCommands(engine, WorkflowDefinition(registry, authz), authz, entities)

    return _build


def _history(commands, field_name=""):
    return commands._history.selector.history(REF, field_name)


class TestCreateTransition:
    def test_executes_and_saves(self, commands, article):
        result = commands.create_transition("editorial", article, "review", AUTHOR_ID, comment="go")
        assert result.outcome is ExecutionOutcome.EXECUTED
        assert article.fields[""] == "review"
        assert article.save_count == 1
        assert commands.current_state("editorial", article) == "review"
        assert _history(commands)[0].comment == "go"

    def test_from_state_comes_from_history(self, commands, article):
        commands.create_transition("editorial", article, "review", AUTHOR_ID)
        result = commands.create_transition("editorial", article, "published", EDITOR_ID)
        assert result.transition.from_state == "review"

    def test_unknown_workflow(self, commands, article):
        with pytest.raises(UnknownWorkflowError):
            commands.create_transition("ghost", article, "review", AUTHOR_ID)

    def test_repeated_move_starts_from_current_state(self, commands, article):
        ctx = ExecutionContext()
        commands.move_to_state("editorial", article, "review", AUTHOR_ID, context=ctx)
        again = commands.move_to_state("editorial", article, "review", AUTHOR_ID, context=ctx)
        assert again.transition.label == "review-review"
        assert again.outcome is ExecutionOutcome.NO_OP

    def test_comment_required(self, commands_with, article):
        commands = commands_with(comment=CommentSetting.REQUIRED)
        with pytest.raises(CommentRequiredError):
            commands.create_transition("editorial", article, "review", AUTHOR_ID)
        result = commands.create_transition("editorial", article, "review", AUTHOR_ID, comment="why")
        assert result.outcome is ExecutionOutcome.EXECUTED

    def test_hidden_comment_discarded(self, commands_with, article):
        commands = commands_with(comment=CommentSetting.HIDDEN)
        commands.create_transition("editorial", article, "review", AUTHOR_ID, comment="ignored")
        assert _history(commands)[0].comment == ""


class TestScheduleTransition:
    def test_schedule_stored(self, commands, article, clock):
        due = clock.timestamp() + 86400
        result = commands.schedule_transition(
            "editorial", article, "review", AUTHOR_ID, due_timestamp=due, comment="tomorrow",
        )
        assert result.outcome is ExecutionOutcome.SCHEDULED
        assert article.fields[""] == "draft"
        pending = commands._history.selector.scheduled_for(REF, "")
        assert pending.timestamp == due
        assert pending.comment == "tomorrow"

    def test_scheduling_disabled(self, commands_with, article):
        commands = commands_with(schedule_enabled=False)
        with pytest.raises(SchedulingDisabledError) as exc:
            commands.schedule_transition("editorial", article, "review", AUTHOR_ID, due_timestamp=10**10)
        assert exc.value.code == "SCHEDULING_DISABLED"

    def test_cancel_scheduled(self, commands, article):
        commands.schedule_transition("editorial", article, "review", AUTHOR_ID, due_timestamp=10**10)
        assert commands.cancel_scheduled(article) == 1
        assert commands._history.selector.scheduled_for(REF, "") is None


class TestMoveToNextState:
    def test_moves_forward(self, commands, article):
        result = commands.move_to_next_state("editorial", article, AUTHOR_ID)
        assert result.outcome is ExecutionOutcome.EXECUTED
        assert article.fields[""] == "review"

    def test_none_when_no_later_state(self, commands, article, captured_logs):
        commands.create_transition("editorial", article, "review", AUTHOR_ID)
        assert commands.move_to_next_state("editorial", article, AUTHOR_ID) is None
        assert any(r["message"] == "no_next_state" for r in captured_logs())

    def test_force_skips_authorization(self, commands, article):
        commands.create_transition("editorial", article, "review", AUTHOR_ID)
        result = commands.move_to_next_state("editorial", article, STRANGER_ID, force=True)
        assert result.outcome is ExecutionOutcome.EXECUTED
        assert article.fields[""] == "published"


class TestRevertLast:
    def _publish(self, commands, article):
        commands.create_transition("editorial", article, "review", AUTHOR_ID)
        commands.create_transition("editorial", article, "published", EDITOR_ID)

    def test_no_history(self, commands, article):
        with pytest.raises(TransitionNotFoundError):
            commands.revert_last("editorial", article, EDITOR_ID)

    def test_creation_state_not_revertable(self, commands, article):
        commands.create_transition("editorial", article, "review", AUTHOR_ID)
        with pytest.raises(NotRevertableError):
            commands.revert_last("editorial", article, EDITOR_ID)

    def test_revert_through_normal_authorization(self, commands, article):
        self._publish(commands, article)
        result = commands.revert_last("editorial", article, EDITOR_ID)
        assert result.outcome is ExecutionOutcome.EXECUTED
        assert article.fields[""] == "review"
        latest = _history(commands)[0]
        assert latest.comment == REVERT_COMMENT
        assert not latest.is_forced

    def test_revert_denied_without_rights(self, commands, article):
        self._publish(commands, article)
        result = commands.revert_last("editorial", article, STRANGER_ID)
        assert result.outcome is ExecutionOutcome.AUTHORIZATION_DENIED
        assert article.fields[""] == "published"

    def test_revert_any_forces(self, commands, capabilities, article):
        self._publish(commands, article)
        capabilities.grant(STRANGER_ID, revert_any_capability("editorial"))
        result = commands.revert_last("editorial", article, STRANGER_ID)
        assert result.outcome is ExecutionOutcome.EXECUTED
        assert _history(commands)[0].is_forced

    def test_revert_own_only_for_own_transition(self, commands, capabilities, article):
        self._publish(commands, article)
        capabilities.grant(AUTHOR_ID, revert_own_capability("editorial"))
        # The latest transition belongs to the editor
        result = commands.revert_last("editorial", article, AUTHOR_ID)
        assert result.outcome is ExecutionOutcome.AUTHORIZATION_DENIED


class TestUpdateComment:
    def _hid(self, commands, article):
        return commands.create_transition("editorial", article, "review", AUTHOR_ID, comment="v1").hid

    def test_edit_own(self, commands, capabilities, article):
        hid = self._hid(commands, article)
        capabilities.grant(AUTHOR_ID, edit_own_capability("editorial"))
        assert commands.update_comment(hid, "v2", AUTHOR_ID).comment == "v2"

    def test_edit_own_denied_for_others(self, commands, capabilities, article):
        hid = self._hid(commands, article)
        capabilities.grant(EDITOR_ID, edit_own_capability("editorial"))
        with pytest.raises(CommentEditDeniedError):
            commands.update_comment(hid, "v2", EDITOR_ID)

    def test_edit_any(self, commands, capabilities, article):
        hid = self._hid(commands, article)
        capabilities.grant(STRANGER_ID, edit_any_capability("editorial"))
        assert commands.update_comment(hid, "v3", STRANGER_ID).comment == "v3"

    def test_no_capability(self, commands, article):
        hid = self._hid(commands, article)
        with pytest.raises(CommentEditDeniedError):
            commands.update_comment(hid, "v2", AUTHOR_ID)

    def test_unknown_hid(self, commands):
        with pytest.raises(TransitionNotFoundError):
            commands.update_comment(999, "x", AUTHOR_ID)


class TestCleanup:
    def test_entity_deleted(self, commands, article):
        commands.create_transition("editorial", article, "review", AUTHOR_ID)
        commands.schedule_transition("editorial", article, "published", EDITOR_ID, due_timestamp=10**10)
        assert commands.entity_deleted(article) == 2
        assert commands.current_state("editorial", article) == "draft"

    def test_field_removed(self, commands, entities):
        first = entities.add(Article("1", owner_id=AUTHOR_ID))
        second = entities.add(Article("2", owner_id=AUTHOR_ID))
        commands.create_transition("editorial", first, "review", AUTHOR_ID, field_name="stage")
        commands.create_transition("editorial", second, "review", AUTHOR_ID, field_name="stage")
        assert commands.field_removed("article", "stage") == 2

    def test_actor_removed(self, commands, article):
        result = commands.create_transition("editorial", article, "review", AUTHOR_ID)
        assert commands.actor_removed(AUTHOR_ID) == 1
        assert commands._history.selector.executed_by_id(result.hid).actor_id == "0"
