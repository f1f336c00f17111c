"""Tests for ExecutionContext (duplicate guard) and execution outcomes."""

from workflow_kernel.domain.entity import EntityRef
from workflow_kernel.domain.execution import (
    ExecutionContext,
    ExecutionOutcome,
    ExecutionResult,
)
from workflow_kernel.domain.transition import Transition


def _t(entity_id="1", field_name="", from_state="draft", to_state="review"):
    return Transition("editorial", from_state, to_state, EntityRef("article", entity_id), field_name)


class TestExecutionContext:
    def test_fresh_context_is_empty(self):
        ctx = ExecutionContext()
        assert len(ctx) == 0
        assert not ctx.seen(_t())
        assert ctx.lookup(_t()) is None

    def test_record_and_lookup(self):
        ctx = ExecutionContext()
        ctx.record(_t(), "review")
        assert ctx.seen(_t())
        assert ctx.lookup(_t()) == "review"

    def test_key_distinguishes_entity_field_and_move(self):
        ctx = ExecutionContext()
        ctx.record(_t(), "review")
        assert not ctx.seen(_t(entity_id="2"))
        assert not ctx.seen(_t(field_name="other"))
        assert not ctx.seen(_t(to_state="published"))

    def test_key_ignores_revision(self):
        a = Transition("editorial", "draft", "review", EntityRef("article", "1", "r1"))
        b = Transition("editorial", "draft", "review", EntityRef("article", "1", "r2"))
        assert ExecutionContext.key_for(a) == ExecutionContext.key_for(b)

    def test_contexts_are_independent(self):
        first, second = ExecutionContext(), ExecutionContext()
        first.record(_t(), "review")
        assert not second.seen(_t())
        assert first.context_id != second.context_id

    def test_reset(self):
        ctx = ExecutionContext()
        ctx.record(_t(), "review")
        ctx.reset()
        assert len(ctx) == 0

    def test_scheduler_context(self):
        ctx = ExecutionContext.for_scheduler()
        assert ctx.scheduler_run
        assert ctx.name == "scheduler"
        assert not ExecutionContext().scheduler_run


class TestOutcomes:
    def test_failures(self):
        assert ExecutionOutcome.AUTHORIZATION_DENIED.is_failure
        assert ExecutionOutcome.STALE_SCHEDULED_TRANSITION.is_failure
        assert not ExecutionOutcome.EXECUTED.is_failure
        assert not ExecutionOutcome.NO_OP.is_failure
        assert not ExecutionOutcome.DUPLICATE_EXECUTION_SUPPRESSED.is_failure

    def test_result_changed(self):
        t = _t()
        assert ExecutionResult(ExecutionOutcome.EXECUTED, "review", t).changed
        assert not ExecutionResult(ExecutionOutcome.AUTHORIZATION_DENIED, "draft", t).changed

    def test_result_hid_follows_transition(self):
        t = _t()
        t.hid = 5
        assert ExecutionResult(ExecutionOutcome.EXECUTED, "review", t).hid == 5
