"""Command line interface for agentflow workflows."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List, Optional

import typer

from agentflow.approval import ApprovalService
from agentflow.config import AgentflowConfig, configure_logging, load_config
from agentflow.customization import load_customizations
from agentflow.errors import AgentflowError
from agentflow.orchestrator import WorkflowOrchestrator
from agentflow.persistence import ApprovalStatus, WorkflowStatus, get_repository
from agentflow.routing import RoutingService, load_roster
from agentflow.runner import WorkflowRunner
from agentflow.workflows import get_workflow_class, workflow_types

app = typer.Typer(help="CLI for agentflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflow runs")
approval_app = typer.Typer(help="Commands for reviewing approval requests")
routing_app = typer.Typer(help="Commands for routing work to team members")

app.add_typer(workflow_app, name="workflow")
app.add_typer(approval_app, name="approval")
app.add_typer(routing_app, name="routing")


@app.callback()
def main() -> None:
    """agentflow CLI entry point."""
    pass


def _config() -> AgentflowConfig:
    config = load_config()
    configure_logging(config.log_level)
    return config


def _routing_service(config: AgentflowConfig, roster: Optional[str] = None) -> Optional[RoutingService]:
    path = roster or config.routing.roster_path
    if not path:
        return None
    return RoutingService(load_roster(path, config.routing.default_capacity_hours))


def _runner() -> WorkflowRunner:
    config = _config()
    customizations = (
        load_customizations(config.customizations_path)
        if config.customizations_path
        else None
    )
    orchestrator = WorkflowOrchestrator(get_repository(), customizations)
    services: Dict[str, Any] = {}
    router = _routing_service(config)
    if router is not None:
        services["router"] = router
    return WorkflowRunner(orchestrator, ApprovalService(orchestrator), services)


def _parse_json(value: Optional[str], name: str) -> Dict[str, Any]:
    if not value:
        return {}
    try:
        data = json.loads(value)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{name} is not valid JSON: {exc}")
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{name} must be a JSON object")
    return data


def _fail(exc: Exception) -> None:
    typer.secho(str(exc), fg=typer.colors.RED)
    raise typer.Exit(code=1)


@workflow_app.command("types")
def workflow_types_command() -> None:
    """List registered workflow types and their steps."""
    for name in workflow_types():
        cls = get_workflow_class(name)
        typer.echo(f"{name} - {cls.description}")
        typer.echo(f"  Steps: {', '.join(cls.step_names())}")


@workflow_app.command("list")
def workflow_list(
    team: Optional[str] = typer.Option(None, help="Only show runs of this team"),
    status: Optional[WorkflowStatus] = typer.Option(None, help="Only show runs in this status"),
) -> None:
    """
    List workflow runs with their current step and status.

    Example:
        agentflow workflow list --status paused
        # Output: 1f0c...    dispatcher    route_work    paused
    """
    _config()
    repo = get_repository()
    workflows = asyncio.run(repo.list_workflows(team_id=team, status=status))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.workflow_type}\t{wf.current_node}\t{wf.status.value}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show the state data and step history of a workflow run.

    Example:
        agentflow workflow show 1f0c...
        # Output: Workflow 1f0c... (dispatcher): paused at route_work
        #         - analyze_thread: completed (2024-01-01 10:00 -> 10:00)
    """
    _config()
    repo = get_repository()
    wf = asyncio.run(repo.get_workflow(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    steps = asyncio.run(repo.list_steps(workflow_id))
    typer.echo(
        f"Workflow {wf.id} ({wf.workflow_type}): {wf.status.value} at {wf.current_node}"
    )
    if wf.pause_reason:
        typer.echo(f"Paused: {wf.pause_reason}")
    typer.echo(f"State: {json.dumps(wf.state_data, default=str)}")
    for step in steps:
        typer.echo(
            f"- {step.step_name}: {step.status or 'running'}"
            + (
                f" ({step.started_at} -> {step.completed_at})"
                if step.started_at or step.completed_at
                else ""
            )
            + (f" error: {step.error}" if step.error else "")
        )


@workflow_app.command("start")
def workflow_start(
    workflow_type: str,
    input: Optional[str] = typer.Option(None, "--input", help="JSON object passed as input"),
    team: Optional[str] = typer.Option(None, help="Owning team id"),
    agent: Optional[str] = typer.Option(None, help="Agent id running the workflow"),
    run: bool = typer.Option(True, help="Run steps until the workflow pauses or completes"),
) -> None:
    """
    Start a new workflow run.

    Example:
        agentflow workflow start dispatcher --team web --input '{"thread_id": "t-1"}'
        # Output: Workflow 1f0c... started: completed at completed
    """
    data = _parse_json(input, "input")
    runner = _runner()
    try:
        state = asyncio.run(
            runner.start(workflow_type, data, team_id=team, agent_id=agent, run=run)
        )
    except AgentflowError as exc:
        _fail(exc)
    typer.echo(f"Workflow {state.id} started: {state.status.value} at {state.current_node}")


@workflow_app.command("resume")
def workflow_resume(
    workflow_id: str,
    data: Optional[str] = typer.Option(None, "--data", help="JSON approval payload"),
) -> None:
    """Resume a paused workflow run and continue its steps."""
    payload = _parse_json(data, "data")
    runner = _runner()
    try:
        state = asyncio.run(runner.resume(workflow_id, payload))
    except AgentflowError as exc:
        _fail(exc)
    typer.echo(f"Workflow {state.id} resumed: {state.status.value} at {state.current_node}")


@workflow_app.command("rerun")
def workflow_rerun(workflow_id: str) -> None:
    """Re-run the step a workflow run failed on."""
    runner = _runner()
    try:
        state = asyncio.run(runner.rerun(workflow_id))
    except AgentflowError as exc:
        _fail(exc)
    typer.echo(f"Workflow {state.id}: {state.status.value} at {state.current_node}")


@approval_app.command("list")
def approval_list(
    team: Optional[str] = typer.Option(None, help="Only show requests of this team"),
    status: Optional[ApprovalStatus] = typer.Option(
        ApprovalStatus.PENDING, help="Only show requests in this status"
    ),
) -> None:
    """List approval requests, pending ones by default."""
    _config()
    repo = get_repository()
    approvals = asyncio.run(repo.list_approvals(team_id=team, status=status))
    if not approvals:
        typer.echo("No approvals found")
        return
    for approval in approvals:
        typer.echo(
            f"{approval.id}\t{approval.workflow_id}\t{approval.urgency.value}\t"
            f"{approval.status.value}\t{approval.title}"
        )


@approval_app.command("approve")
def approval_approve(
    approval_id: str,
    by: str = typer.Option(..., "--by", help="Id of the approving user"),
) -> None:
    """Approve a request and continue the workflow it paused."""
    runner = _runner()
    try:
        state = asyncio.run(runner.approve(approval_id, by))
    except AgentflowError as exc:
        _fail(exc)
    typer.echo(f"Approved. Workflow {state.id}: {state.status.value} at {state.current_node}")


@approval_app.command("reject")
def approval_reject(
    approval_id: str,
    by: str = typer.Option(..., "--by", help="Id of the rejecting user"),
    reason: str = typer.Option(..., "--reason", help="Why the action was rejected"),
) -> None:
    """Reject a request. The workflow stays paused."""
    runner = _runner()
    try:
        state = asyncio.run(runner.reject(approval_id, by, reason))
    except AgentflowError as exc:
        _fail(exc)
    typer.echo(f"Rejected. Workflow {state.id} remains {state.status.value}")


@routing_app.command("route")
def routing_route(
    team: str,
    skill: List[str] = typer.Option([], "--skill", help="Required skill, repeatable"),
    hours: float = typer.Option(0.0, "--hours", help="Estimated hours of work"),
    roster: Optional[str] = typer.Option(None, help="Roster YAML file"),
) -> None:
    """
    Rank the members of a team for a piece of work.

    Example:
        agentflow routing route web --skill Laravel --hours 8 --roster team.yaml
        # Output: * alice    combined=100.0    skill=100.0    capacity=100.0    high
    """
    router = _routing_service(_config(), roster)
    if router is None:
        typer.secho("No roster configured", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    result = router.calculate_routing(team, skill, hours)
    if not result.candidates:
        typer.echo(result.recommendation_summary)
        return
    for c in result.candidates:
        marker = "*" if c.is_top_candidate else " "
        typer.echo(
            f"{marker} {c.member_id}\tcombined={c.combined_score}\tskill={c.skill_score}"
            f"\tcapacity={c.capacity_score}\t{c.confidence.value}"
        )
    typer.echo(result.recommendation_summary)


@routing_app.command("capacity")
def routing_capacity(
    team: str,
    roster: Optional[str] = typer.Option(None, help="Roster YAML file"),
) -> None:
    """Summarise the capacity of a team."""
    router = _routing_service(_config(), roster)
    if router is None:
        typer.secho("No roster configured", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    summary = router.team_capacity_summary(team)
    typer.echo(
        f"Capacity {summary.total_capacity}h, workload {summary.total_workload}h, "
        f"available {summary.total_available}h ({summary.utilization_percentage}% utilized)"
    )
    typer.echo(
        f"Members with capacity: {summary.members_with_capacity}, "
        f"overloaded: {summary.members_overloaded}"
    )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
