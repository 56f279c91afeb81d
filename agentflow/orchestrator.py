"""Store-facing coordination of workflow state transitions."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional

from .constants import DEFAULT_PAUSE_REASON, NODE_COMPLETED, STEP_SKIPPED
from .customization import CustomizationProvider, StepSkipPolicy
from .errors import InvalidTransition, WorkflowNotFound
from .persistence import WorkflowRepository, get_repository
from .persistence.models import ApprovalStatus, WorkflowState, WorkflowStatus, utcnow

logger = logging.getLogger(__name__)


class WorkflowOrchestrator:
    """Creates, pauses, resumes and completes persisted workflow runs.

    Every mutating call writes the state back through the repository before
    returning, so a run can be picked up again from the store at any point.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        customizations: CustomizationProvider | None = None,
    ) -> None:
        self._repository = repository or get_repository()
        self._customizations = customizations
        self._skip_policy = StepSkipPolicy(customizations)

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    async def execute(
        self,
        workflow_type: str,
        input: Mapping[str, Any],
        team_id: str | None = None,
        agent_id: str | None = None,
    ) -> WorkflowState:
        """Create and persist a new run of ``workflow_type``."""
        customization = (
            self._customizations.find_customization(team_id, workflow_type)
            if self._customizations is not None
            else None
        )
        state = WorkflowState(
            workflow_type=workflow_type,
            team_id=team_id,
            agent_id=agent_id,
            state_data={
                "input": dict(input),
                "customization_id": customization.id if customization else None,
                "started_at": utcnow().isoformat(),
            },
        )
        await self._repository.create_workflow(state)
        logger.info(
            f"Workflow {state.id} started: type={workflow_type} team={team_id} agent={agent_id}"
        )
        return state

    async def reload(self, workflow_id: str) -> WorkflowState:
        state = await self._repository.get_workflow(workflow_id)
        if state is None:
            raise WorkflowNotFound(workflow_id)
        return state

    async def pause(self, state: WorkflowState, reason: str = DEFAULT_PAUSE_REASON) -> None:
        if state.status != WorkflowStatus.RUNNING:
            raise InvalidTransition.not_allowed(
                state.status.value, WorkflowStatus.PAUSED.value
            )
        state.status = WorkflowStatus.PAUSED
        state.paused_at = utcnow()
        state.pause_reason = reason
        await self._repository.save_workflow(state)
        logger.info(f"Workflow {state.id} paused: {reason}")

    async def resume(
        self, state: WorkflowState, approval_data: Mapping[str, Any] | None = None
    ) -> WorkflowState:
        """Move a paused run back to running and record the approval payload.

        A still pending approval of the run is resolved from the payload, so
        a run never continues with an open approval request.

        The status change is a conditional update in the store, so only one
        of several concurrent resumes of the same run succeeds.
        """
        target = WorkflowStatus.RUNNING.value
        if state.status != WorkflowStatus.PAUSED:
            raise InvalidTransition.not_allowed(state.status.value, target)

        swapped = await self._repository.compare_and_set_status(
            state.id, WorkflowStatus.PAUSED, WorkflowStatus.RUNNING
        )
        if not swapped:
            current = await self.reload(state.id)
            raise InvalidTransition.not_allowed(current.status.value, target)

        now = utcnow()
        payload = dict(approval_data or {})
        await self._resolve_pending_approval(state.id, payload, now)
        state.status = WorkflowStatus.RUNNING
        state.paused_at = None
        state.pause_reason = None
        state.resumed_at = now
        state.merge_state_data({"approval_data": payload, "resumed_at": now.isoformat()})
        await self._repository.save_workflow(state)
        logger.info(f"Workflow {state.id} resumed")
        return state

    async def _resolve_pending_approval(
        self, workflow_id: str, payload: Mapping[str, Any], now: datetime
    ) -> None:
        """Close the open approval of a run that is being resumed.

        ``approved: false`` in the payload rejects it, anything else approves
        it. ``approver_id`` and ``rejection_reason`` are recorded when given.
        """
        approval = await self._repository.find_pending_approval(workflow_id)
        if approval is None:
            return
        approved = payload.get("approved") is not False
        approval.status = ApprovalStatus.APPROVED if approved else ApprovalStatus.REJECTED
        approval.resolved_at = now
        approval.resolved_by = payload.get("approver_id")
        if not approved:
            approval.rejection_reason = payload.get("rejection_reason")
        await self._repository.save_approval(approval)
        logger.info(
            f"Approval {approval.id} {approval.status.value} on resume of workflow {workflow_id}"
        )

    async def complete(
        self, state: WorkflowState, result: Mapping[str, Any] | None = None
    ) -> None:
        now = utcnow()
        state.merge_state_data(
            {"result": dict(result or {}), "completed_at": now.isoformat()}
        )
        state.current_node = NODE_COMPLETED
        state.status = WorkflowStatus.COMPLETED
        state.completed_at = now
        await self._repository.save_workflow(state)
        logger.info(f"Workflow {state.id} completed")

    async def fail(self, state: WorkflowState, reason: str) -> None:
        state.merge_state_data({"error": reason, "failed_at": utcnow().isoformat()})
        state.status = WorkflowStatus.FAILED
        await self._repository.save_workflow(state)
        logger.warning(f"Workflow {state.id} failed at {state.current_node}: {reason}")

    async def update_node(
        self,
        state: WorkflowState,
        node_name: str,
        additional_data: Mapping[str, Any] | None = None,
    ) -> None:
        state.current_node = node_name
        if additional_data:
            state.merge_state_data(additional_data)
        await self._repository.save_workflow(state)

    async def merge_state_data(self, state: WorkflowState, data: Mapping[str, Any]) -> None:
        state.merge_state_data(data)
        await self._repository.save_workflow(state)

    async def record_skipped_step(self, state: WorkflowState, step_name: str) -> None:
        await self._repository.mark_step_started(state.id, step_name)
        await self._repository.mark_step_completed(state.id, step_name, STEP_SKIPPED)
        logger.debug(f"Workflow {state.id} skipped step {step_name}")

    def should_skip_step(self, state: WorkflowState, step_name: str) -> bool:
        return self._skip_policy.should_skip(state, step_name)

    def get_parameter(self, state: WorkflowState, key: str, default: Any = None) -> Any:
        return self._skip_policy.get_parameter(state, key, default)

    async def get_pending_approvals(self, team_id: Optional[str] = None) -> list[WorkflowState]:
        """Paused runs waiting on a human decision."""
        return await self._repository.list_workflows(
            team_id=team_id, status=WorkflowStatus.PAUSED
        )
