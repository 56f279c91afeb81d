"""In-memory implementation of the workflow repository."""

from __future__ import annotations

from typing import Dict

from .models import (
    ApprovalRecord,
    ApprovalStatus,
    StepRecord,
    WorkflowState,
    WorkflowStatus,
    utcnow,
)
from .repository import WorkflowRepository


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share objects with the store.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowState] = {}
        self._steps: Dict[str, list[StepRecord]] = {}
        self._approvals: Dict[str, ApprovalRecord] = {}
        self._step_id = 0

    # ------------------------------------------------------------------
    async def create_workflow(self, state: WorkflowState) -> None:
        if state.id in self._workflows:
            raise ValueError(f"Workflow {state.id} already exists")
        self._workflows[state.id] = state.model_copy(deep=True)
        self._steps[state.id] = []

    async def save_workflow(self, state: WorkflowState) -> None:
        state.updated_at = utcnow()
        self._workflows[state.id] = state.model_copy(deep=True)

    async def get_workflow(self, workflow_id: str) -> WorkflowState | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(
        self, team_id: str | None = None, status: WorkflowStatus | None = None
    ) -> list[WorkflowState]:
        return [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if (team_id is None or wf.team_id == team_id)
            and (status is None or wf.status == status)
        ]

    async def compare_and_set_status(
        self, workflow_id: str, expected: WorkflowStatus, new: WorkflowStatus
    ) -> bool:
        # no await between the check and the write, so this is atomic on the loop
        wf = self._workflows.get(workflow_id)
        if wf is None or wf.status != expected:
            return False
        wf.status = new
        wf.updated_at = utcnow()
        return True

    # ------------------------------------------------------------------
    async def mark_step_started(self, workflow_id: str, step_name: str) -> None:
        self._step_id += 1
        self._steps.setdefault(workflow_id, []).append(
            StepRecord(
                id=self._step_id,
                workflow_id=workflow_id,
                step_name=step_name,
                started_at=utcnow(),
            )
        )

    async def mark_step_completed(
        self,
        workflow_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        for step in reversed(self._steps.get(workflow_id, [])):
            if step.step_name == step_name and step.completed_at is None:
                step.completed_at = utcnow()
                step.status = status
                step.output = output or {}
                step.error = error
                break

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        return [s.model_copy(deep=True) for s in self._steps.get(workflow_id, [])]

    # ------------------------------------------------------------------
    async def create_approval(self, approval: ApprovalRecord) -> None:
        self._approvals[approval.id] = approval.model_copy(deep=True)

    async def save_approval(self, approval: ApprovalRecord) -> None:
        self._approvals[approval.id] = approval.model_copy(deep=True)

    async def get_approval(self, approval_id: str) -> ApprovalRecord | None:
        approval = self._approvals.get(approval_id)
        return approval.model_copy(deep=True) if approval else None

    async def find_pending_approval(self, workflow_id: str) -> ApprovalRecord | None:
        for approval in self._approvals.values():
            if approval.workflow_id == workflow_id and approval.is_pending:
                return approval.model_copy(deep=True)
        return None

    async def list_approvals(
        self, team_id: str | None = None, status: ApprovalStatus | None = None
    ) -> list[ApprovalRecord]:
        return [
            a.model_copy(deep=True)
            for a in self._approvals.values()
            if (team_id is None or a.team_id == team_id)
            and (status is None or a.status == status)
        ]
