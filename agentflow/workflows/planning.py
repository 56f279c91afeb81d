"""Deterministic plan builders used by the PM copilot workflow."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Mapping, Sequence


def determine_confidence(
    description: str, acceptance_criteria: Sequence[Any], playbooks: Sequence[Any]
) -> str:
    if description and acceptance_criteria and playbooks:
        return "high"
    if description and (acceptance_criteria or playbooks):
        return "medium"
    return "low"


def build_deliverable_alternatives(
    work_order: Mapping[str, Any], playbooks: Sequence[Mapping[str, Any]]
) -> List[Dict[str, Any]]:
    """Propose one to three ways of structuring the deliverables of a work order."""
    title = work_order.get("title") or "Untitled Work Order"
    description = work_order.get("description") or ""
    criteria = list(work_order.get("acceptance_criteria") or [])

    alternatives: List[Dict[str, Any]] = [
        {
            "alternative_id": 1,
            "name": "Standard Approach",
            "deliverables": [
                {
                    "title": f"Primary Deliverable for {title}",
                    "description": f"Main deliverable based on work order requirements: {description}",
                    "type": "document",
                    "acceptance_criteria": criteria,
                    "confidence": determine_confidence(description, criteria, playbooks),
                }
            ],
            "confidence": "medium",
            "reasoning": "Standard single-deliverable approach based on work order description.",
        }
    ]

    if description:
        alternatives.append(
            {
                "alternative_id": 2,
                "name": "Multi-Phase Approach",
                "deliverables": [
                    {
                        "title": f"Phase 1: Planning for {title}",
                        "description": "Initial planning and requirements gathering phase.",
                        "type": "document",
                        "acceptance_criteria": ["Requirements documented", "Plan approved"],
                        "confidence": "medium",
                    },
                    {
                        "title": f"Phase 2: Implementation for {title}",
                        "description": "Core implementation and delivery phase.",
                        "type": "deliverable",
                        "acceptance_criteria": criteria,
                        "confidence": "medium",
                    },
                ],
                "confidence": "medium",
                "reasoning": "Phased approach allowing for iterative review and approval.",
            }
        )

    if playbooks:
        playbook = playbooks[0]
        alternatives.append(
            {
                "alternative_id": 3,
                "name": "Template-Based Approach",
                "deliverables": [
                    {
                        "title": f"Deliverable based on {playbook.get('name')}",
                        "description": f"Following template: {playbook.get('description', '')}",
                        "type": playbook.get("type") or "document",
                        "acceptance_criteria": criteria,
                        "confidence": "high",
                    }
                ],
                "confidence": "high",
                "reasoning": f"Based on existing playbook: {playbook.get('name')}",
            }
        )

    return alternatives


def checklist_from_playbooks(playbooks: Sequence[Mapping[str, Any]]) -> List[str]:
    if not playbooks:
        return ["Complete task requirements", "Verify output quality"]
    content = playbooks[0].get("content")
    if isinstance(content, Mapping) and "checklist" in content:
        return list(content["checklist"])[:5]
    return ["Follow playbook guidelines", "Complete all requirements", "Verify against criteria"]


def build_task_breakdown(
    deliverables: Sequence[Mapping[str, Any]], playbooks: Sequence[Mapping[str, Any]]
) -> List[Dict[str, Any]]:
    """Plan, execute and review tasks for each deliverable, numbered across the work order."""
    breakdown: List[Dict[str, Any]] = []
    position = 1
    for deliverable in deliverables:
        name = deliverable.get("title") or "Untitled Deliverable"
        tasks = [
            {
                "title": f"Plan: {name}",
                "description": "Initial planning and requirements analysis.",
                "estimated_hours": 2.0,
                "position_in_work_order": position,
                "checklist_items": ["Review requirements", "Define approach", "Estimate effort"],
                "dependencies": [],
                "confidence": "medium",
            },
            {
                "title": f"Execute: {name}",
                "description": "Main execution of deliverable requirements.",
                "estimated_hours": 8.0,
                "position_in_work_order": position + 1,
                "checklist_items": checklist_from_playbooks(playbooks),
                "dependencies": [position],
                "confidence": "medium",
            },
            {
                "title": f"Review: {name}",
                "description": "Quality review and acceptance testing.",
                "estimated_hours": 2.0,
                "position_in_work_order": position + 2,
                "checklist_items": ["Quality check", "Test against criteria", "Document findings"],
                "dependencies": [position + 1],
                "confidence": "high",
            },
        ]
        position += len(tasks)
        breakdown.append(
            {
                "deliverable_title": name,
                "tasks": tasks,
                "total_estimated_hours": sum(t["estimated_hours"] for t in tasks),
                "confidence": "medium",
            }
        )
    return breakdown


def _is_overdue(task: Mapping[str, Any], today: date) -> bool:
    due = task.get("due_date")
    if not due:
        return False
    return date.fromisoformat(str(due)[:10]) < today


def build_project_insights(
    project_context: Mapping[str, Any], today: date | None = None
) -> List[Dict[str, Any]]:
    """Flag overdue and blocked tasks and budget overruns."""
    today = today or date.today()
    pending = list(project_context.get("pending_tasks") or [])
    insights: List[Dict[str, Any]] = []

    overdue = [t for t in pending if _is_overdue(t, today)]
    if overdue:
        insights.append(
            {
                "type": "overdue",
                "severity": "high",
                "title": "Overdue Tasks Detected",
                "description": f"{len(overdue)} task(s) are past their due date.",
                "affected_items": [t.get("id") for t in overdue],
                "suggestion": "Review and reprioritize overdue tasks or update due dates.",
                "confidence": "high",
            }
        )

    blocked = [t for t in pending if t.get("is_blocked") is True]
    if blocked:
        insights.append(
            {
                "type": "bottleneck",
                "severity": "medium",
                "title": "Blocked Tasks Identified",
                "description": f"{len(blocked)} task(s) are currently blocked.",
                "affected_items": [t.get("id") for t in blocked],
                "suggestion": "Review blockers and resolve dependencies to unblock work.",
                "confidence": "high",
            }
        )

    budget = project_context.get("budget_hours") or 0
    actual = project_context.get("actual_hours") or 0
    if budget > 0 and actual > budget * 0.8:
        used = round(actual / budget * 100)
        insights.append(
            {
                "type": "scope_creep",
                "severity": "high" if used >= 100 else "medium",
                "title": "Budget Hours Warning",
                "description": f"Project has used {used}% of budgeted hours.",
                "affected_items": [],
                "suggestion": "Review scope and consider adjusting budget or timeline.",
                "confidence": "high",
            }
        )

    return insights


def plan_preview(
    alternatives: Sequence[Mapping[str, Any]], breakdown: Sequence[Mapping[str, Any]]
) -> str:
    deliverables = sum(len(a.get("deliverables") or []) for a in alternatives)
    tasks = sum(len(b.get("tasks") or []) for b in breakdown)
    return (
        f"{len(alternatives)} alternative(s) with {deliverables} deliverable(s) "
        f"and {tasks} task(s) suggested"
    )
