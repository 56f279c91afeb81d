"""Entry points for starting and continuing workflow runs by type or id."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .approval import ApprovalService
from .errors import ApprovalNotFound
from .orchestrator import WorkflowOrchestrator
from .persistence.models import WorkflowState
from .workflows import BaseWorkflow, get_workflow_class

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Builds workflow instances from the registry and drives them.

    ``services`` holds optional collaborators handed to workflows that use
    them, e.g. ``router`` for the dispatcher.
    """

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        approvals: ApprovalService | None = None,
        services: Mapping[str, Any] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._approvals = approvals or ApprovalService(orchestrator)
        self._services = dict(services or {})

    @property
    def orchestrator(self) -> WorkflowOrchestrator:
        return self._orchestrator

    @property
    def approvals(self) -> ApprovalService:
        return self._approvals

    def build(self, workflow_type: str) -> BaseWorkflow:
        cls = get_workflow_class(workflow_type)
        return cls.from_services(self._orchestrator, self._approvals, self._services)

    async def start(
        self,
        workflow_type: str,
        input: Mapping[str, Any],
        team_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        run: bool = True,
    ) -> WorkflowState:
        workflow = self.build(workflow_type)
        state = await workflow.start(input, team_id=team_id, agent_id=agent_id)
        if run:
            state = await workflow.run()
        return state

    async def load(self, workflow_id: str) -> BaseWorkflow:
        state = await self._orchestrator.reload(workflow_id)
        workflow = self.build(state.workflow_type)
        workflow.attach(state)
        return workflow

    async def resume(
        self,
        workflow_id: str,
        approval_data: Mapping[str, Any] | None = None,
        run: bool = True,
    ) -> WorkflowState:
        workflow = await self.load(workflow_id)
        state = await workflow.resume(workflow.state, approval_data)
        if run:
            state = await workflow.run()
        return state

    async def rerun(self, workflow_id: str, run: bool = True) -> WorkflowState:
        workflow = await self.load(workflow_id)
        if await workflow.rerun_current_step() and run:
            return await workflow.run()
        return workflow.state

    async def approve(
        self, approval_id: str, approver_id: str, run: bool = True
    ) -> WorkflowState:
        """Approve a pending request and continue the workflow it paused."""
        approval = await self._orchestrator.repository.get_approval(approval_id)
        if approval is None:
            raise ApprovalNotFound(approval_id)
        payload = await self._approvals.handle_approval(approval_id, approver_id)
        return await self.resume(approval.workflow_id, payload, run=run)

    async def reject(self, approval_id: str, rejector_id: str, reason: str) -> WorkflowState:
        approval = await self._approvals.handle_rejection(approval_id, rejector_id, reason)
        return await self._orchestrator.reload(approval.workflow_id)
