"""Task execution workflow: run an agent on a task and have a human review it."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol

from ..approval import ApprovalService
from ..constants import STEP_COMPLETED, STEP_PAUSED
from ..orchestrator import WorkflowOrchestrator
from ..persistence.models import WorkflowState, utcnow
from .base import BaseWorkflow, step
from .registry import register_workflow


class TaskExecutor(Protocol):
    """Carries out the work of a task on behalf of an agent."""

    async def execute(self, task: Mapping[str, Any]) -> Optional[str]:
        """Return the produced output, if any."""


@register_workflow
class TaskExecutionWorkflow(BaseWorkflow):
    """Analyzes and executes a task assigned to an agent, then presents the
    results for human review before applying the outcome.
    """

    workflow_type = "task-execution"
    description = "Executes an agent task and applies the reviewed outcome."

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        approvals: ApprovalService | None = None,
        executor: TaskExecutor | None = None,
    ) -> None:
        super().__init__(orchestrator, approvals)
        self._executor = executor

    @classmethod
    def from_services(cls, orchestrator, approvals=None, services=None):
        return cls(orchestrator, approvals, executor=(services or {}).get("task_executor"))

    @step("analyze_task")
    async def analyze_task(self, state: WorkflowState) -> Dict[str, Any]:
        input = state.get_data("input", {})
        analysis = {
            "analyzed_at": utcnow().isoformat(),
            "task": input.get("task"),
            "work_order": input.get("work_order"),
            "project": input.get("project"),
        }
        await self.merge_state_data({"task_analysis": analysis})
        return {"status": STEP_COMPLETED, "task_analysis": analysis}

    @step("execute_task")
    async def execute_task(self, state: WorkflowState) -> Dict[str, Any]:
        input = state.get_data("input", {})
        analysis = state.get_data("task_analysis", {})
        task = analysis.get("task") or {}
        work_order = analysis.get("work_order") or {}

        output = None
        if self._executor is not None:
            output = await self._executor.execute(task)

        result = {
            "executed_at": utcnow().isoformat(),
            "agent_id": state.agent_id,
            "task_id": input.get("task_id") or task.get("id"),
            "summary": f"Executed task: {task.get('title') or 'Unknown'}",
            "work_order_context": work_order.get("title"),
            "output": output,
            "status": STEP_COMPLETED,
        }
        await self.merge_state_data({"execution_result": result})
        return {"status": STEP_COMPLETED, "execution_result": result}

    @step("present_results")
    async def present_results(self, state: WorkflowState) -> Dict[str, Any]:
        await self.pause_for_approval(
            "Review the AI agent execution results for this task",
            reason="Task execution review required",
        )
        return {"status": STEP_PAUSED}

    @step("apply_results")
    async def apply_results(self, state: WorkflowState) -> Dict[str, Any]:
        approval = state.get_data("approval_data", {})
        outcome = "approved" if approval.get("approved") is True else "rejected"
        task = state.get_data("task_analysis", {}).get("task") or {}
        await self.complete(
            {
                "task_id": state.get_data("input", {}).get("task_id") or task.get("id"),
                "outcome": outcome,
            }
        )
        return {"status": STEP_COMPLETED, "outcome": outcome}

    async def on_complete(self, result: Dict[str, Any]) -> None:
        await self.merge_state_data({"final_result": result})
