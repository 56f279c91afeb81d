from datetime import datetime, timezone

import pytest

from agentflow.approval import ApprovalService
from agentflow.constants import NODE_COMPLETED, NODE_NONE
from agentflow.customization import InMemoryCustomizationProvider, WorkflowCustomization
from agentflow.errors import AgentflowError, InvalidTransition, SkipPolicyError, TransitionReason
from agentflow.orchestrator import WorkflowOrchestrator
from agentflow.persistence import (
    ApprovalStatus,
    InMemoryWorkflowRepository,
    SQLiteWorkflowRepository,
    WorkflowStatus,
)
from agentflow.workflows import BaseWorkflow, step


class ThreeStepWorkflow(BaseWorkflow):
    workflow_type = "three-step"

    def __init__(self, orchestrator, approvals=None):
        super().__init__(orchestrator, approvals)
        self.calls = []

    @step("first")
    async def first(self, state):
        self.calls.append("first")
        await self.merge_state_data({"first": 1})
        return {"status": "completed"}

    @step("second")
    async def second(self, state):
        self.calls.append("second")
        await self.merge_state_data({"second": 2})

    @step("third")
    async def third(self, state):
        self.calls.append("third")
        return {"status": "completed", "value": state.get_data("first", 0) + state.get_data("second", 0)}


class ApprovalWorkflow(BaseWorkflow):
    workflow_type = "needs-approval"

    def __init__(self, orchestrator, approvals=None):
        super().__init__(orchestrator, approvals)
        self.calls = []

    @step("prepare")
    async def prepare(self, state):
        self.calls.append("prepare")

    @step("review")
    async def review(self, state):
        self.calls.append("review")
        await self.pause_for_approval("Publish the prepared answer")
        return {"status": "paused"}

    @step("publish")
    async def publish(self, state):
        self.calls.append("publish")
        await self.complete({"approved": state.get_data("approval_data", {}).get("approved")})


class FlakyWorkflow(BaseWorkflow):
    workflow_type = "flaky"

    def __init__(self, orchestrator, approvals=None):
        super().__init__(orchestrator, approvals)
        self.failures = 1

    @step("fetch")
    async def fetch(self, state):
        return None

    @step("process")
    async def process(self, state):
        if self.failures:
            self.failures -= 1
            raise RuntimeError("upstream timeout")
        await self.merge_state_data({"processed": True})

    @step("store")
    async def store(self, state):
        return None


class HookedWorkflow(ThreeStepWorkflow):
    workflow_type = "hooked"

    async def on_start(self, input):
        self.calls.append(("start", input["topic"]))

    async def before_step(self, step_name):
        self.calls.append(("before", step_name))

    async def after_step(self, step_name, result):
        self.calls.append(("after", step_name))

    async def on_complete(self, result):
        self.calls.append(("complete", result))


def _customize(customizations, workflow_type, **fields):
    custom = WorkflowCustomization(team_id="team-1", workflow_type=workflow_type, **fields)
    customizations.add(custom)
    return custom


def test_steps_are_collected_in_definition_order():
    assert ThreeStepWorkflow.step_names() == ["first", "second", "third"]
    assert HookedWorkflow.step_names() == ["first", "second", "third"]
    assert BaseWorkflow.step_names() == []


def test_duplicate_step_names_are_rejected():
    with pytest.raises(TypeError):

        class Duplicated(BaseWorkflow):
            @step("a")
            async def one(self, state):
                pass

            @step("a")
            async def two(self, state):
                pass


@pytest.mark.parametrize("name", [NODE_NONE, NODE_COMPLETED])
def test_reserved_step_names_are_rejected(name):
    with pytest.raises(TypeError):

        class Reserved(BaseWorkflow):
            @step(name)
            async def handler(self, state):
                pass


def test_state_requires_attached_run(orchestrator):
    with pytest.raises(AgentflowError):
        ThreeStepWorkflow(orchestrator).state


@pytest.mark.asyncio
async def test_start_creates_running_state(orchestrator, repository):
    workflow = ThreeStepWorkflow(orchestrator)
    state = await workflow.start({"topic": "x"}, team_id="team-1", agent_id="agent-1")

    assert state.status == WorkflowStatus.RUNNING
    assert state.current_node == NODE_NONE
    assert state.state_data["input"] == {"topic": "x"}
    assert state.state_data["customization_id"] is None
    assert "started_at" in state.state_data
    assert (await repository.get_workflow(state.id)).team_id == "team-1"


@pytest.mark.asyncio
async def test_three_steps_complete_in_three_calls(orchestrator, repository):
    workflow = ThreeStepWorkflow(orchestrator)
    await workflow.start({})

    assert await workflow.execute_next_step() is True
    assert workflow.state.current_node == "first"
    assert await workflow.execute_next_step() is True
    assert workflow.state.current_node == "second"
    assert await workflow.execute_next_step() is False

    stored = await repository.get_workflow(workflow.state.id)
    assert stored.status == WorkflowStatus.COMPLETED
    assert stored.current_node == NODE_COMPLETED
    assert stored.completed_at is not None
    assert stored.state_data["first"] == 1
    assert stored.state_data["second"] == 2
    assert workflow.calls == ["first", "second", "third"]

    history = await repository.list_steps(stored.id)
    assert [(s.step_name, s.status) for s in history] == [
        ("first", "completed"),
        ("second", "completed"),
        ("third", "completed"),
    ]
    assert history[2].output["value"] == 3
    assert await workflow.execute_next_step() is False
    assert workflow.calls == ["first", "second", "third"]


@pytest.mark.asyncio
async def test_run_terminates_with_one_call_per_step(orchestrator):
    class FiveSteps(BaseWorkflow):
        workflow_type = "five"

        @step("a")
        async def a(self, state):
            pass

        @step("b")
        async def b(self, state):
            pass

        @step("c")
        async def c(self, state):
            pass

        @step("d")
        async def d(self, state):
            pass

        @step("e")
        async def e(self, state):
            pass

    workflow = FiveSteps(orchestrator)
    await workflow.start({})
    calls = 1
    while await workflow.execute_next_step():
        calls += 1
    assert calls == 5
    assert workflow.state.status == WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_disabled_step_is_skipped(orchestrator, customizations, repository):
    custom = _customize(customizations, "three-step", disabled_steps=["second"])
    workflow = ThreeStepWorkflow(orchestrator)
    state = await workflow.start({}, team_id="team-1")
    assert state.state_data["customization_id"] == custom.id

    assert await workflow.execute_next_step() is True
    assert await workflow.execute_next_step() is False

    assert workflow.calls == ["first", "third"]
    history = await repository.list_steps(state.id)
    assert [(s.step_name, s.status) for s in history] == [
        ("first", "completed"),
        ("second", "skipped"),
        ("third", "completed"),
    ]
    assert workflow.state.status == WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_skip_condition_uses_current_state_data(orchestrator, customizations):
    _customize(customizations, "three-step", skip_conditions={"second": {"first": 1}})
    workflow = ThreeStepWorkflow(orchestrator)
    await workflow.start({}, team_id="team-1")

    # "first" writes the value the condition looks for
    assert await workflow.execute_next_step() is True
    assert await workflow.execute_next_step() is False
    assert workflow.calls == ["first", "third"]


@pytest.mark.asyncio
async def test_skipped_final_step_completes_workflow(orchestrator, customizations):
    _customize(customizations, "three-step", disabled_steps=["third"])
    workflow = ThreeStepWorkflow(orchestrator)
    await workflow.start({}, team_id="team-1")
    state = await workflow.run()

    assert workflow.calls == ["first", "second"]
    assert state.status == WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_skip_policy_failure_leaves_node_unchanged(repository):
    class BrokenProvider(InMemoryCustomizationProvider):
        def get_customization(self, customization_id):
            raise RuntimeError("database gone")

    provider = BrokenProvider()
    provider.add(WorkflowCustomization(team_id="team-1", workflow_type="three-step"))
    workflow = ThreeStepWorkflow(WorkflowOrchestrator(repository, provider))
    state = await workflow.start({}, team_id="team-1")

    with pytest.raises(SkipPolicyError):
        await workflow.execute_next_step()

    stored = await repository.get_workflow(state.id)
    assert stored.current_node == NODE_NONE
    assert stored.status == WorkflowStatus.RUNNING
    assert workflow.calls == []
    assert await repository.list_steps(state.id) == []


@pytest.mark.asyncio
async def test_pause_and_resume_continue_after_paused_step(orchestrator, repository):
    workflow = ApprovalWorkflow(orchestrator)
    await workflow.start({})

    assert await workflow.execute_next_step() is True
    assert await workflow.execute_next_step() is False

    paused = await repository.get_workflow(workflow.state.id)
    assert paused.status == WorkflowStatus.PAUSED
    assert paused.current_node == "review"
    assert paused.paused_at is not None
    assert paused.pause_reason == "Awaiting human approval"

    resumed = ApprovalWorkflow(orchestrator)
    state = await resumed.resume(paused, {"approved": True})
    assert state.status == WorkflowStatus.RUNNING
    assert state.paused_at is None
    assert state.pause_reason is None
    assert state.resumed_at is not None
    assert state.state_data["approval_data"] == {"approved": True}

    assert await resumed.execute_next_step() is False
    assert resumed.calls == ["publish"]
    final = await repository.get_workflow(state.id)
    assert final.status == WorkflowStatus.COMPLETED
    assert final.state_data["result"] == {"approved": True}


@pytest.mark.asyncio
async def test_paused_workflow_does_not_advance(orchestrator):
    workflow = ApprovalWorkflow(orchestrator)
    await workflow.start({})
    state = await workflow.run()
    assert state.status == WorkflowStatus.PAUSED
    assert await workflow.execute_next_step() is False
    assert workflow.calls == ["prepare", "review"]


@pytest.mark.asyncio
async def test_resume_requires_paused_state(orchestrator):
    workflow = ThreeStepWorkflow(orchestrator)
    state = await workflow.start({})

    with pytest.raises(InvalidTransition) as exc:
        await ThreeStepWorkflow(orchestrator).resume(state, {"approved": True})
    assert exc.value.reason == TransitionReason.INVALID_TRANSITION
    assert exc.value.from_status == "running"

    state = await workflow.run()
    with pytest.raises(InvalidTransition) as exc:
        await ThreeStepWorkflow(orchestrator).resume(state)
    assert exc.value.from_status == "completed"


@pytest.mark.asyncio
async def test_stale_paused_copy_cannot_resume_twice(orchestrator):
    workflow = ApprovalWorkflow(orchestrator)
    await workflow.start({})
    paused = await workflow.run()
    stale = paused.model_copy(deep=True)

    await ApprovalWorkflow(orchestrator).resume(paused)
    with pytest.raises(InvalidTransition) as exc:
        await ApprovalWorkflow(orchestrator).resume(stale)
    assert exc.value.from_status == "running"


@pytest.mark.asyncio
async def test_attach_checks_workflow_type(orchestrator):
    state = await ThreeStepWorkflow(orchestrator).start({})
    with pytest.raises(ValueError):
        ApprovalWorkflow(orchestrator).attach(state)


@pytest.mark.asyncio
async def test_advance_rejects_unknown_and_backward_steps(orchestrator):
    workflow = ThreeStepWorkflow(orchestrator)
    await workflow.start({})
    await workflow.execute_next_step()
    await workflow.execute_next_step()

    with pytest.raises(InvalidTransition) as exc:
        await workflow._advance_to("missing")
    assert exc.value.reason == TransitionReason.UNKNOWN_STEP

    with pytest.raises(InvalidTransition) as exc:
        await workflow._advance_to("first")
    assert exc.value.from_status == "second"
    assert exc.value.to_status == "first"
    assert workflow.state.current_node == "second"


@pytest.mark.asyncio
async def test_failed_step_is_recorded_and_can_be_rerun(orchestrator, repository):
    workflow = FlakyWorkflow(orchestrator)
    state = await workflow.start({})

    with pytest.raises(RuntimeError, match="upstream timeout"):
        await workflow.run()

    stored = await repository.get_workflow(state.id)
    assert stored.current_node == "process"
    assert stored.status == WorkflowStatus.RUNNING
    history = await repository.list_steps(state.id)
    assert history[-1].step_name == "process"
    assert history[-1].status == "failed"
    assert history[-1].error == "upstream timeout"

    retry = FlakyWorkflow(orchestrator)
    retry.failures = 0
    retry.attach(stored)
    assert await retry.rerun_current_step() is True
    final = await retry.run()

    assert final.status == WorkflowStatus.COMPLETED
    assert final.state_data["processed"] is True
    steps = [(s.step_name, s.status) for s in await repository.list_steps(state.id)]
    assert steps == [
        ("fetch", "completed"),
        ("process", "failed"),
        ("process", "completed"),
        ("store", "completed"),
    ]


@pytest.mark.asyncio
async def test_rerun_requires_failed_step(orchestrator):
    workflow = ThreeStepWorkflow(orchestrator)
    await workflow.start({})
    await workflow.execute_next_step()

    with pytest.raises(InvalidTransition):
        await workflow.rerun_current_step()

    await workflow.run()
    with pytest.raises(InvalidTransition):
        await workflow.rerun_current_step()


@pytest.mark.asyncio
async def test_lifecycle_hooks_run_in_order(orchestrator):
    workflow = HookedWorkflow(orchestrator)
    await workflow.start({"topic": "hooks"})
    await workflow.run()

    assert workflow.calls == [
        ("start", "hooks"),
        ("before", "first"),
        "first",
        ("after", "first"),
        ("before", "second"),
        "second",
        ("after", "second"),
        ("before", "third"),
        "third",
        ("after", "third"),
        ("complete", {}),
    ]


@pytest.mark.asyncio
async def test_fail_marks_workflow_failed(orchestrator, repository):
    class Failing(BaseWorkflow):
        workflow_type = "failing"

        @step("check")
        async def check(self, state):
            await self.fail("input rejected")

        @step("never")
        async def never(self, state):
            raise AssertionError("should not run")

    workflow = Failing(orchestrator)
    state = await workflow.start({})
    final = await workflow.run()
    assert final.status == WorkflowStatus.FAILED
    assert final.state_data["error"] == "input rejected"
    assert (await repository.get_workflow(state.id)).current_node == "check"


class TwoCheckpointWorkflow(BaseWorkflow):
    workflow_type = "two-checkpoints"

    @step("outline")
    async def outline(self, state):
        return None

    @step("draft")
    async def draft(self, state):
        await self.pause_for_approval("Approve the draft")
        return {"status": "paused"}

    @step("publish")
    async def publish(self, state):
        await self.pause_for_approval("Approve publishing")
        return {"status": "paused"}


class PauseThenRaiseWorkflow(BaseWorkflow):
    workflow_type = "pause-then-raise"

    def __init__(self, orchestrator, approvals=None):
        super().__init__(orchestrator, approvals)
        self.failures = 1
        self.calls = []

    @step("review")
    async def review(self, state):
        self.calls.append("review")
        await self.pause_for_approval("Review the change")
        if self.failures:
            self.failures -= 1
            raise RuntimeError("notification service down")
        return {"status": "paused"}

    @step("apply")
    async def apply(self, state):
        self.calls.append("apply")


class DatedOutputWorkflow(BaseWorkflow):
    workflow_type = "dated-output"

    def __init__(self, orchestrator, approvals=None, value=None):
        super().__init__(orchestrator, approvals)
        self.value = value

    @step("stamp")
    async def stamp(self, state):
        return {"status": "completed", "at": self.value}


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryWorkflowRepository()
    return SQLiteWorkflowRepository(tmp_path / "engine.db")


@pytest.mark.asyncio
async def test_resume_resolves_each_checkpoint(orchestrator, repository):
    approvals = ApprovalService(orchestrator)
    workflow = TwoCheckpointWorkflow(orchestrator, approvals)
    await workflow.start({})
    state = await workflow.run()
    assert state.current_node == "draft"

    state = await TwoCheckpointWorkflow(orchestrator, approvals).resume(
        state, {"approved": True, "approver_id": "editor"}
    )
    assert await approvals.is_pending(state) is False

    workflow = TwoCheckpointWorkflow(orchestrator, approvals)
    workflow.attach(state)
    state = await workflow.run()
    assert state.status == WorkflowStatus.PAUSED
    assert state.current_node == "publish"
    assert await approvals.is_pending(state) is True

    workflow = TwoCheckpointWorkflow(orchestrator, approvals)
    await workflow.resume(state, {"approved": True})
    final = await workflow.run()

    assert final.status == WorkflowStatus.COMPLETED
    records = await repository.list_approvals()
    assert len(records) == 2
    assert {r.status for r in records} == {ApprovalStatus.APPROVED}


@pytest.mark.asyncio
async def test_handler_output_is_stored_as_json(store):
    orchestrator = WorkflowOrchestrator(store)
    when = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    workflow = DatedOutputWorkflow(orchestrator, value=when)
    await workflow.start({})
    final = await workflow.run()

    assert final.status == WorkflowStatus.COMPLETED
    (record,) = await store.list_steps(final.id)
    assert record.status == "completed"
    assert record.output["at"] == "2024-05-01T12:30:00Z"


@pytest.mark.asyncio
async def test_unserializable_output_fails_the_step(store):
    orchestrator = WorkflowOrchestrator(store)
    workflow = DatedOutputWorkflow(orchestrator, value=object())
    state = await workflow.start({})

    with pytest.raises(ValueError):
        await workflow.run()

    (record,) = await store.list_steps(state.id)
    assert record.status == "failed"
    assert record.completed_at is not None
    assert record.error

    retry = DatedOutputWorkflow(orchestrator, value="fixed")
    retry.attach(await orchestrator.reload(state.id))
    assert await retry.rerun_current_step() is False
    assert retry.state.status == WorkflowStatus.COMPLETED


@pytest.mark.asyncio
async def test_step_that_paused_then_raised_is_rerun_not_resumed(orchestrator, repository):
    workflow = PauseThenRaiseWorkflow(orchestrator)
    state = await workflow.start({})

    with pytest.raises(RuntimeError):
        await workflow.run()

    paused = await orchestrator.reload(state.id)
    assert paused.status == WorkflowStatus.PAUSED
    assert paused.current_node == "review"
    (withdrawn,) = await repository.list_approvals()

    with pytest.raises(InvalidTransition):
        await PauseThenRaiseWorkflow(orchestrator).resume(paused, {"approved": True})
    assert (await orchestrator.reload(state.id)).status == WorkflowStatus.PAUSED

    retry = PauseThenRaiseWorkflow(orchestrator)
    retry.failures = 0
    retry.attach(paused)
    assert await retry.rerun_current_step() is False

    again = await orchestrator.reload(state.id)
    assert again.status == WorkflowStatus.PAUSED
    assert again.current_node == "review"
    assert retry.calls == ["review"]
    assert (await repository.get_approval(withdrawn.id)).status == ApprovalStatus.REJECTED
    pending = await repository.list_approvals(status=ApprovalStatus.PENDING)
    assert len(pending) == 1
    assert pending[0].id != withdrawn.id

    final_run = PauseThenRaiseWorkflow(orchestrator)
    await final_run.resume(again, {"approved": True})
    final = await final_run.run()
    assert final.status == WorkflowStatus.COMPLETED
    assert final_run.calls == ["apply"]
