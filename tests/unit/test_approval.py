import pytest
import pytest_asyncio

from agentflow.approval import ApprovalService, truncate
from agentflow.errors import ApprovalNotFound, InvalidTransition, TransitionReason
from agentflow.persistence import ApprovalStatus, Urgency, WorkflowStatus


@pytest.fixture
def approvals(orchestrator):
    return ApprovalService(orchestrator)


@pytest_asyncio.fixture
async def running(orchestrator):
    state = await orchestrator.execute(
        "task-execution", {"task_id": "t-1"}, team_id="team-1", agent_id="42"
    )
    await orchestrator.update_node(state, "present_results")
    return state


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("x" * 10, 10) == "x" * 10
    assert truncate("abcdefghijk", 10) == "abcdefg..."


@pytest.mark.asyncio
async def test_request_approval_pauses_and_opens_record(approvals, running, repository):
    approval = await approvals.request_approval(
        running, "Send the weekly report", urgency=Urgency.HIGH, reason="Review needed"
    )

    stored = await repository.get_workflow(running.id)
    assert stored.status == WorkflowStatus.PAUSED
    assert stored.pause_reason == "Review needed"
    assert stored.state_data["approval_id"] == approval.id
    assert "approval_requested_at" in stored.state_data

    record = await repository.get_approval(approval.id)
    assert record.status == ApprovalStatus.PENDING
    assert record.workflow_id == running.id
    assert record.team_id == "team-1"
    assert record.urgency == Urgency.HIGH
    assert record.source_name == "agent-42"
    assert record.title == "Agent action requires approval: Send the weekly report"
    assert record.content_preview == "agent-42 requests approval: Send the weekly report"
    assert "Current Step: present_results" in record.full_content
    assert '"task_id": "t-1"' in record.full_content
    assert await approvals.is_pending(stored) is True


@pytest.mark.asyncio
async def test_long_descriptions_are_truncated_in_title(approvals, running):
    description = "d" * 60
    approval = await approvals.request_approval(running, description)
    assert approval.title == "Agent action requires approval: " + "d" * 47 + "..."
    assert description in approval.content_preview


@pytest.mark.asyncio
async def test_second_request_while_pending_is_rejected(approvals, running, orchestrator):
    first = await approvals.request_approval(running, "Publish")

    with pytest.raises(InvalidTransition) as exc:
        await approvals.request_approval(running, "Publish again")
    assert exc.value.reason == TransitionReason.APPROVAL_PENDING
    assert first.id in str(exc.value)


@pytest.mark.asyncio
async def test_request_requires_running_workflow(approvals, running, orchestrator, repository):
    await orchestrator.complete(running)
    with pytest.raises(InvalidTransition):
        await approvals.request_approval(running, "Too late")
    assert await repository.list_approvals() == []


@pytest.mark.asyncio
async def test_handle_approval_returns_resume_payload(approvals, running, repository):
    approval = await approvals.request_approval(running, "Publish")
    payload = await approvals.handle_approval(approval.id, "user-7")

    assert payload["approved"] is True
    assert payload["approval_id"] == approval.id
    assert payload["approver_id"] == "user-7"
    assert "approved_at" in payload

    record = await repository.get_approval(approval.id)
    assert record.status == ApprovalStatus.APPROVED
    assert record.resolved_by == "user-7"
    assert record.resolved_at is not None
    # resuming is left to the caller
    assert (await repository.get_workflow(running.id)).status == WorkflowStatus.PAUSED

    with pytest.raises(InvalidTransition):
        await approvals.handle_approval(approval.id, "user-8")


@pytest.mark.asyncio
async def test_unknown_approval(approvals):
    with pytest.raises(ApprovalNotFound):
        await approvals.handle_approval("missing", "user-7")
    with pytest.raises(ApprovalNotFound):
        await approvals.handle_rejection("missing", "user-7", "no")


@pytest.mark.asyncio
async def test_rejection_keeps_workflow_paused(approvals, running, repository):
    approval = await approvals.request_approval(running, "Publish")
    record = await approvals.handle_rejection(approval.id, "user-9", "Wrong audience")

    assert record.status == ApprovalStatus.REJECTED
    assert record.rejection_reason == "Wrong audience"
    stored = await repository.get_workflow(running.id)
    assert stored.status == WorkflowStatus.PAUSED
    assert stored.state_data["rejected"] is True
    assert stored.state_data["rejection_reason"] == "Wrong audience"
    assert stored.state_data["rejected_by"] == "user-9"
    assert "rejected_at" in stored.state_data
    assert await approvals.find_pending_approval(stored) is None

    with pytest.raises(InvalidTransition):
        await approvals.handle_approval(approval.id, "user-7")


@pytest.mark.asyncio
async def test_source_name_override(orchestrator):
    approvals = ApprovalService(orchestrator, source_name="Dispatcher Agent")
    state = await orchestrator.execute("dispatcher", {})
    approval = await approvals.request_approval(state, "Route work")
    assert approval.source_name == "Dispatcher Agent"


@pytest.mark.asyncio
async def test_pending_approvals_lists_paused_runs(approvals, running, orchestrator):
    other = await orchestrator.execute("task-execution", {}, team_id="team-2")
    await approvals.request_approval(running, "Publish")
    await approvals.request_approval(other, "Publish")

    assert {s.id for s in await orchestrator.get_pending_approvals()} == {running.id, other.id}
    assert [s.id for s in await orchestrator.get_pending_approvals("team-1")] == [running.id]


@pytest.mark.asyncio
async def test_resume_approves_open_request(approvals, running, orchestrator, repository):
    approval = await approvals.request_approval(running, "Publish")
    await orchestrator.resume(running, {"approved": True, "approver_id": "user-7"})

    record = await repository.get_approval(approval.id)
    assert record.status == ApprovalStatus.APPROVED
    assert record.resolved_by == "user-7"
    assert record.resolved_at is not None
    assert await approvals.is_pending(running) is False
    assert await repository.list_approvals(status=ApprovalStatus.PENDING) == []

    second = await approvals.request_approval(running, "Publish again")
    assert second.id != approval.id
    assert (await repository.get_workflow(running.id)).status == WorkflowStatus.PAUSED


@pytest.mark.asyncio
async def test_resume_without_payload_approves(approvals, running, orchestrator, repository):
    approval = await approvals.request_approval(running, "Publish")
    await orchestrator.resume(running)
    record = await repository.get_approval(approval.id)
    assert record.status == ApprovalStatus.APPROVED
    assert record.resolved_by is None


@pytest.mark.asyncio
async def test_resume_with_denial_rejects_open_request(
    approvals, running, orchestrator, repository
):
    approval = await approvals.request_approval(running, "Publish")
    await orchestrator.resume(
        running, {"approved": False, "approver_id": "user-9", "rejection_reason": "Too early"}
    )

    record = await repository.get_approval(approval.id)
    assert record.status == ApprovalStatus.REJECTED
    assert record.resolved_by == "user-9"
    assert record.rejection_reason == "Too early"


@pytest.mark.asyncio
async def test_resume_after_handled_approval_keeps_record(approvals, running, orchestrator, repository):
    approval = await approvals.request_approval(running, "Publish")
    payload = await approvals.handle_approval(approval.id, "user-7")
    await orchestrator.resume(running, {**payload, "approver_id": "someone-else"})

    record = await repository.get_approval(approval.id)
    assert record.status == ApprovalStatus.APPROVED
    assert record.resolved_by == "user-7"
