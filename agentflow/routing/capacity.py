"""Capacity scoring for team members."""

from __future__ import annotations

from typing import Iterable, List

from .models import CapacityScore, TeamCapacitySummary, TeamMember

LOW_CAPACITY_THRESHOLD = 0.20
LOW_CAPACITY_PENALTY = 0.5
BASELINE_WEEK_HOURS = 40


def base_capacity_score(available_hours: float, estimated_hours: float) -> float:
    """Score how comfortably ``estimated_hours`` fits into ``available_hours``.

    Non-decreasing in ``available_hours``: 100 at twice the estimate or more,
    90-100 between 1.5x and 2x, 70-90 between 1x and 1.5x, and a linear
    0-70 below 1x. Without an estimate the score is measured against a
    40 hour week.
    """
    if available_hours <= 0:
        return 0.0
    if estimated_hours <= 0:
        return min(available_hours / BASELINE_WEEK_HOURS * 100, 100.0)

    ratio = available_hours / estimated_hours
    if ratio >= 2.0:
        return 100.0
    if ratio >= 1.5:
        return 90.0 + (ratio - 1.5) / 0.5 * 10
    if ratio >= 1.0:
        return 70.0 + (ratio - 1.0) / 0.5 * 20
    return max(ratio * 70, 0.0)


def score_member_capacity(member: TeamMember, estimated_hours: float) -> CapacityScore:
    capacity = member.capacity_hours_per_week
    available = member.available_hours
    headroom = available / capacity if capacity > 0 else 0.0

    base = base_capacity_score(available, estimated_hours)
    penalty = headroom < LOW_CAPACITY_THRESHOLD
    score = base * LOW_CAPACITY_PENALTY if penalty else base

    return CapacityScore(
        member_id=member.id,
        member_name=member.name,
        score=score,
        base_score=base,
        capacity_hours_per_week=capacity,
        current_workload_hours=member.current_workload_hours,
        available_hours=available,
        capacity_percentage=round(headroom * 100, 2),
        penalty_applied=penalty,
        can_fit_work=available >= estimated_hours,
    )


def team_capacity_summary(members: Iterable[TeamMember]) -> TeamCapacitySummary:
    summary = TeamCapacitySummary()
    for member in members:
        summary.total_capacity += member.capacity_hours_per_week
        summary.total_workload += member.current_workload_hours
        if member.available_hours > 0:
            summary.members_with_capacity += 1
        if member.current_workload_hours > member.capacity_hours_per_week:
            summary.members_overloaded += 1

    summary.total_available = summary.total_capacity - summary.total_workload
    if summary.total_capacity > 0:
        summary.utilization_percentage = round(
            summary.total_workload / summary.total_capacity * 100, 2
        )
    return summary


def members_with_capacity(
    members: Iterable[TeamMember], estimated_hours: float, minimum_buffer: float = 1.0
) -> List[TeamMember]:
    required = estimated_hours * minimum_buffer
    return [m for m in members if m.available_hours >= required]
