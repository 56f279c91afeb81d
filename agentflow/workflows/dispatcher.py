"""Dispatcher workflow: turn a message thread into a routed draft work order."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from ..approval import ApprovalService
from ..constants import STEP_COMPLETED, STEP_PAUSED
from ..orchestrator import WorkflowOrchestrator
from ..persistence.models import WorkflowState, utcnow
from ..routing import RoutingService
from .base import BaseWorkflow, step
from .registry import register_workflow

logger = logging.getLogger(__name__)

REQUIREMENT_FIELDS = (
    "title",
    "description",
    "scope",
    "success_criteria",
    "estimated_hours",
    "priority",
    "deadline",
    "required_skills",
)


class DraftWriter(Protocol):
    """Creates the draft work order for a routed request."""

    async def create_draft(
        self, requirements: Mapping[str, Any], candidate: Optional[Mapping[str, Any]]
    ) -> Optional[str]:
        """Return the id of the created draft, if one was created."""


@register_workflow
class DispatcherWorkflow(BaseWorkflow):
    """Analyzes a message thread, extracts work requirements, routes the work
    to team members by skills and capacity, and creates a draft work order
    for human review.
    """

    workflow_type = "dispatcher"
    description = (
        "Extracts work requirements from a message thread and routes the work "
        "to the best matching team members."
    )

    def __init__(
        self,
        orchestrator: WorkflowOrchestrator,
        approvals: ApprovalService | None = None,
        router: RoutingService | None = None,
        draft_writer: DraftWriter | None = None,
    ) -> None:
        super().__init__(orchestrator, approvals)
        self._router = router
        self._draft_writer = draft_writer

    @classmethod
    def from_services(cls, orchestrator, approvals=None, services=None):
        services = services or {}
        return cls(
            orchestrator,
            approvals,
            router=services.get("router"),
            draft_writer=services.get("draft_writer"),
        )

    @step("analyze_thread")
    async def analyze_thread(self, state: WorkflowState) -> Dict[str, Any]:
        input = state.get_data("input", {})
        analysis = {
            "message_count": input.get("message_count", 0),
            "analyzed_at": utcnow().isoformat(),
        }
        await self.merge_state_data(
            {
                "thread_id": input.get("thread_id"),
                "work_order_id": input.get("work_order_id"),
                "thread_analysis": analysis,
            }
        )
        return {"status": STEP_COMPLETED, "thread_analysis": analysis}

    @step("extract_requirements")
    async def extract_requirements(self, state: WorkflowState) -> Dict[str, Any]:
        supplied = state.get_data("input", {}).get("requirements") or {}
        requirements: Dict[str, Any] = {field: supplied.get(field) for field in REQUIREMENT_FIELDS}
        requirements["success_criteria"] = requirements["success_criteria"] or []
        requirements["required_skills"] = requirements["required_skills"] or []
        requirements["extracted_at"] = utcnow().isoformat()

        await self.merge_state_data({"extracted_requirements": requirements})
        return {"status": STEP_COMPLETED, "requirements": requirements}

    @step("route_work")
    async def route_work(self, state: WorkflowState) -> Dict[str, Any]:
        requirements = state.get_data("extracted_requirements", {})
        skills = requirements.get("required_skills") or []
        candidates: list = []
        summary = None

        if self._router is not None and state.team_id and skills:
            result = self._router.calculate_routing(
                state.team_id, skills, float(requirements.get("estimated_hours") or 0)
            )
            candidates = [c.model_dump(mode="json") for c in result.candidates]
            summary = result.recommendation_summary
        else:
            logger.debug(f"Workflow {state.id}: no router or skills, routing skipped")

        await self.merge_state_data(
            {
                "routing_candidates": candidates,
                "routing_summary": summary,
                "routed_at": utcnow().isoformat(),
            }
        )

        if self.get_parameter("require_approval_for_routing", False):
            await self.pause_for_approval(
                "Review and approve work routing recommendations",
                reason="Routing decision requires approval",
            )
            return {"status": STEP_PAUSED, "routing_candidates": candidates}

        return {"status": STEP_COMPLETED, "routing_candidates": candidates}

    @step("create_draft")
    async def create_draft(self, state: WorkflowState) -> Dict[str, Any]:
        requirements = state.get_data("extracted_requirements", {})
        candidates = state.get_data("routing_candidates", [])

        draft_id = None
        if self._draft_writer is not None:
            draft_id = await self._draft_writer.create_draft(
                requirements, candidates[0] if candidates else None
            )

        await self.merge_state_data({"draft_work_order_id": draft_id})
        await self.complete(
            {
                "draft_work_order_id": draft_id,
                "requirements": requirements,
                "routing_candidates": candidates,
            }
        )
        return {"status": STEP_COMPLETED, "draft_work_order_id": draft_id}

    async def on_complete(self, result: Dict[str, Any]) -> None:
        await self.merge_state_data({"final_result": result})
