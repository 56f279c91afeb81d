"""Repository abstraction for workflow state persistence."""

from __future__ import annotations

from typing import Protocol

from .models import (
    ApprovalRecord,
    ApprovalStatus,
    StepRecord,
    WorkflowState,
    WorkflowStatus,
)


class WorkflowRepository(Protocol):
    """Protocol for workflow state persistence backends."""

    async def create_workflow(self, state: WorkflowState) -> None:
        """Persist initial workflow state."""

    async def save_workflow(self, state: WorkflowState) -> None:
        """Persist the full current state of a workflow."""

    async def get_workflow(self, workflow_id: str) -> WorkflowState | None:
        """Retrieve the workflow state by id."""

    async def list_workflows(
        self, team_id: str | None = None, status: WorkflowStatus | None = None
    ) -> list[WorkflowState]:
        """Return persisted workflows, optionally filtered."""

    async def compare_and_set_status(
        self, workflow_id: str, expected: WorkflowStatus, new: WorkflowStatus
    ) -> bool:
        """Atomically move ``expected`` to ``new``; ``False`` if status differed."""

    async def mark_step_started(self, workflow_id: str, step_name: str) -> None:
        """Record start of a step."""

    async def mark_step_completed(
        self,
        workflow_id: str,
        step_name: str,
        status: str,
        output: dict | None = None,
        error: str | None = None,
    ) -> None:
        """Close the most recent open record of ``step_name``."""

    async def list_steps(self, workflow_id: str) -> list[StepRecord]:
        """Return the step history of a workflow in execution order."""

    async def create_approval(self, approval: ApprovalRecord) -> None:
        """Persist a new approval request."""

    async def save_approval(self, approval: ApprovalRecord) -> None:
        """Persist changes to an approval request."""

    async def get_approval(self, approval_id: str) -> ApprovalRecord | None:
        """Retrieve an approval request by id."""

    async def find_pending_approval(self, workflow_id: str) -> ApprovalRecord | None:
        """Return the pending approval for ``workflow_id`` if any."""

    async def list_approvals(
        self, team_id: str | None = None, status: ApprovalStatus | None = None
    ) -> list[ApprovalRecord]:
        """Return approval requests, optionally filtered."""
