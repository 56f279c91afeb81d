"""Example routing a request through the dispatcher workflow with an approval stop."""

import asyncio

from agentflow import ApprovalService, WorkflowOrchestrator, WorkflowRunner
from agentflow.customization import InMemoryCustomizationProvider, WorkflowCustomization
from agentflow.persistence import ApprovalStatus, SQLiteWorkflowRepository
from agentflow.routing import InMemoryRoster, MemberSkill, RoutingService, TeamMember


class PrintingDraftWriter:
    async def create_draft(self, requirements, candidate):
        owner = candidate["member_name"] if candidate else "nobody"
        print(f"📝 Draft '{requirements['title']}' assigned to {owner}")
        return "draft-001"


async def main():
    """Start a dispatcher run, approve its routing and let it finish."""
    roster = InMemoryRoster(
        {
            "web": [
                TeamMember(
                    id="alice",
                    name="Alice",
                    skills=[MemberSkill(name="Laravel", proficiency=3)],
                    current_workload_hours=12,
                ),
                TeamMember(
                    id="bob",
                    name="Bob",
                    skills=[MemberSkill(name="Vue", proficiency=2)],
                ),
            ]
        }
    )
    customizations = InMemoryCustomizationProvider(
        [
            WorkflowCustomization(
                team_id="web",
                workflow_type="dispatcher",
                parameters={"require_approval_for_routing": True},
            )
        ]
    )

    repository = SQLiteWorkflowRepository("agentflow-example.db")
    orchestrator = WorkflowOrchestrator(repository, customizations)
    runner = WorkflowRunner(
        orchestrator,
        ApprovalService(orchestrator, source_name="Dispatcher Agent"),
        {"router": RoutingService(roster), "draft_writer": PrintingDraftWriter()},
    )

    state = await runner.start(
        "dispatcher",
        {
            "thread_id": "thread-42",
            "requirements": {
                "title": "Fix checkout totals",
                "required_skills": ["PHP", "Vue"],
                "estimated_hours": 6,
            },
        },
        team_id="web",
    )
    print(f"⏸️  Workflow {state.id} is {state.status.value} at {state.current_node}")
    print(f"🔎 {state.state_data['routing_summary']}")

    pending = await repository.list_approvals(status=ApprovalStatus.PENDING)
    for approval in pending:
        if approval.workflow_id == state.id:
            state = await runner.approve(approval.id, approver_id="lead-1")

    print(f"✅ Workflow {state.id} is {state.status.value}")


if __name__ == "__main__":
    asyncio.run(main())
