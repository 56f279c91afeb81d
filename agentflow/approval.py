"""Human approval checkpoints for workflow runs."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from .constants import DEFAULT_PAUSE_REASON
from .errors import ApprovalNotFound, InvalidTransition
from .orchestrator import WorkflowOrchestrator
from .persistence.models import (
    ApprovalRecord,
    ApprovalStatus,
    Urgency,
    WorkflowState,
    utcnow,
)

logger = logging.getLogger(__name__)

TITLE_PREFIX = "Agent action requires approval: "
TITLE_DESCRIPTION_LENGTH = 50


def truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class ApprovalService:
    """Creates approval requests and records the human decision on them."""

    def __init__(self, orchestrator: WorkflowOrchestrator, source_name: str | None = None):
        self._orchestrator = orchestrator
        self._source_name = source_name

    @property
    def _repository(self):
        return self._orchestrator.repository

    def _source(self, state: WorkflowState) -> str:
        if self._source_name:
            return self._source_name
        return f"agent-{state.agent_id}" if state.agent_id else "Unknown Agent"

    def _full_content(self, state: WorkflowState, action_description: str) -> str:
        content = (
            f"Agent: {self._source(state)}\n"
            f"Workflow: {state.workflow_type}\n"
            f"Current Step: {state.current_node}\n\n"
            f"Action Requiring Approval:\n{action_description}\n\n"
        )
        if "input" in state.state_data:
            content += "Input Data:\n" + json.dumps(state.state_data["input"], indent=4) + "\n"
        return content

    async def request_approval(
        self,
        state: WorkflowState,
        action_description: str,
        urgency: Urgency = Urgency.NORMAL,
        reason: str = DEFAULT_PAUSE_REASON,
    ) -> ApprovalRecord:
        """Pause ``state`` and open a pending approval for it.

        Raises ``InvalidTransition`` with reason ``approval_pending`` when the
        run already has an open approval.
        """
        existing = await self._repository.find_pending_approval(state.id)
        if existing is not None:
            raise InvalidTransition.approval_pending(state.status.value, existing.id)

        await self._orchestrator.pause(state, reason)

        source = self._source(state)
        approval = ApprovalRecord(
            workflow_id=state.id,
            team_id=state.team_id,
            title=TITLE_PREFIX + truncate(action_description, TITLE_DESCRIPTION_LENGTH),
            content_preview=f"{source} requests approval: {action_description}",
            full_content=self._full_content(state, action_description),
            source_name=source,
            urgency=urgency,
        )
        await self._repository.create_approval(approval)
        await self._orchestrator.merge_state_data(
            state,
            {
                "approval_id": approval.id,
                "approval_requested_at": approval.created_at.isoformat(),
            },
        )
        logger.info(
            f"Approval {approval.id} requested for workflow {state.id}: {action_description}"
        )
        return approval

    async def find_pending_approval(self, state: WorkflowState) -> Optional[ApprovalRecord]:
        return await self._repository.find_pending_approval(state.id)

    async def is_pending(self, state: WorkflowState) -> bool:
        return await self.find_pending_approval(state) is not None

    async def _pending(self, approval_id: str, target: ApprovalStatus) -> ApprovalRecord:
        approval = await self._repository.get_approval(approval_id)
        if approval is None:
            raise ApprovalNotFound(approval_id)
        if not approval.is_pending:
            raise InvalidTransition.not_allowed(approval.status.value, target.value)
        return approval

    async def handle_approval(self, approval_id: str, approver_id: str) -> dict[str, Any]:
        """Mark the approval approved and return the payload to resume with."""
        approval = await self._pending(approval_id, ApprovalStatus.APPROVED)
        now = utcnow()
        approval.status = ApprovalStatus.APPROVED
        approval.resolved_at = now
        approval.resolved_by = approver_id
        await self._repository.save_approval(approval)
        logger.info(f"Approval {approval_id} approved by {approver_id}")
        return {
            "approved": True,
            "approval_id": approval_id,
            "approver_id": approver_id,
            "approved_at": now.isoformat(),
        }

    async def handle_rejection(
        self, approval_id: str, rejector_id: str, reason: str
    ) -> ApprovalRecord:
        """Mark the approval rejected; the workflow stays paused."""
        approval = await self._pending(approval_id, ApprovalStatus.REJECTED)
        now = utcnow()
        approval.status = ApprovalStatus.REJECTED
        approval.resolved_at = now
        approval.resolved_by = rejector_id
        approval.rejection_reason = reason
        await self._repository.save_approval(approval)

        state = await self._repository.get_workflow(approval.workflow_id)
        if state is not None:
            await self._orchestrator.merge_state_data(
                state,
                {
                    "rejected": True,
                    "rejection_reason": reason,
                    "rejected_by": rejector_id,
                    "rejected_at": now.isoformat(),
                },
            )
        logger.info(f"Approval {approval_id} rejected by {rejector_id}: {reason}")
        return approval
