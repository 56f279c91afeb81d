"""Skill and capacity based routing of work to team members."""

from .decision import RoutingService, combine_scores
from .models import (
    CapacityScore,
    Confidence,
    MemberSkill,
    Proficiency,
    RoutingCandidate,
    RoutingResult,
    SkillScore,
    TeamMember,
)
from .roster import InMemoryRoster, RosterProvider, load_roster

__all__ = [
    "CapacityScore",
    "Confidence",
    "InMemoryRoster",
    "MemberSkill",
    "Proficiency",
    "RosterProvider",
    "RoutingCandidate",
    "RoutingResult",
    "RoutingService",
    "SkillScore",
    "TeamMember",
    "combine_scores",
    "load_roster",
]
