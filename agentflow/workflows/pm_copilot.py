"""PM copilot workflow: plan deliverables and tasks for a work order."""

from __future__ import annotations

from typing import Any, Dict, List

from ..constants import STEP_COMPLETED, STEP_PAUSED
from ..persistence.models import WorkflowState, utcnow
from .base import BaseWorkflow, step
from .planning import (
    build_deliverable_alternatives,
    build_project_insights,
    build_task_breakdown,
    plan_preview,
)
from .registry import register_workflow

MODE_FULL = "full"
MODE_STAGED = "staged"


@register_workflow
class PMCopilotWorkflow(BaseWorkflow):
    """Generates deliverable alternatives, a task breakdown and project insights.

    In ``staged`` mode the run pauses after the deliverables are generated so a
    human can pick the ones to plan tasks for. ``full`` mode runs straight
    through using the first alternative.
    """

    workflow_type = "pm-copilot"
    description = "Plans deliverables, tasks and project insights for a work order."

    @step("gather_context")
    async def gather_context(self, state: WorkflowState) -> Dict[str, Any]:
        input = state.get_data("input", {})
        context = {
            "gathered_at": utcnow().isoformat(),
            "work_order": input.get("work_order") or {},
            "playbooks": input.get("playbooks") or [],
            "project_context": input.get("project_context") or {},
        }
        await self.merge_state_data({"context": context})
        return {"status": STEP_COMPLETED, "context": context}

    @step("generate_deliverables")
    async def generate_deliverables(self, state: WorkflowState) -> Dict[str, Any]:
        context = state.get_data("context", {})
        alternatives = build_deliverable_alternatives(
            context.get("work_order", {}), context.get("playbooks", [])
        )
        await self.merge_state_data(
            {
                "deliverable_alternatives": alternatives,
                "deliverables_generated_at": utcnow().isoformat(),
            }
        )
        return {"status": STEP_COMPLETED, "deliverable_alternatives": alternatives}

    @step("checkpoint_deliverables")
    async def checkpoint_deliverables(self, state: WorkflowState) -> Dict[str, Any]:
        mode = state.get_data("input", {}).get("pm_copilot_mode", MODE_FULL)
        if mode == MODE_STAGED:
            await self.pause_for_approval(
                "Review and approve the generated deliverable alternatives before task breakdown",
                reason="Deliverable review required",
            )
            return {"status": STEP_PAUSED}
        return {"status": STEP_COMPLETED}

    @step("generate_task_breakdown")
    async def generate_task_breakdown(self, state: WorkflowState) -> Dict[str, Any]:
        context = state.get_data("context", {})
        breakdown = build_task_breakdown(
            self.approved_deliverables(state), context.get("playbooks", [])
        )
        await self.merge_state_data(
            {"task_breakdown": breakdown, "tasks_generated_at": utcnow().isoformat()}
        )
        return {"status": STEP_COMPLETED, "task_breakdown": breakdown}

    @step("generate_insights")
    async def generate_insights(self, state: WorkflowState) -> Dict[str, Any]:
        context = state.get_data("context", {})
        insights = build_project_insights(context.get("project_context", {}))
        await self.merge_state_data(
            {"insights": insights, "insights_generated_at": utcnow().isoformat()}
        )
        return {"status": STEP_COMPLETED, "insights": insights}

    @step("present_results")
    async def present_results(self, state: WorkflowState) -> Dict[str, Any]:
        alternatives = state.get_data("deliverable_alternatives", [])
        breakdown = state.get_data("task_breakdown", [])
        results = {
            "deliverable_alternatives": alternatives,
            "task_breakdown": breakdown,
            "insights": state.get_data("insights", []),
            "summary": plan_preview(alternatives, breakdown),
            "generated_at": utcnow().isoformat(),
        }
        await self.complete(results)
        return {"status": STEP_COMPLETED, "summary": results["summary"]}

    @staticmethod
    def approved_deliverables(state: WorkflowState) -> List[Dict[str, Any]]:
        """Deliverables picked on resume, else those of the first alternative."""
        approved = state.get_data("approved_deliverables")
        if approved:
            return approved
        alternatives = state.get_data("deliverable_alternatives", [])
        if alternatives and "deliverables" in alternatives[0]:
            return alternatives[0]["deliverables"]
        return []

    async def on_resume(self, approval_data: Dict[str, Any]) -> None:
        if "approved_deliverables" in approval_data:
            approved = [
                d for d in approval_data["approved_deliverables"] if d.get("approved") is True
            ]
            await self.merge_state_data({"approved_deliverables": approved})

    async def on_complete(self, result: Dict[str, Any]) -> None:
        await self.merge_state_data({"final_result": result})
