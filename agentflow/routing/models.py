"""Models for team rosters and routing results."""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field


class Proficiency(IntEnum):
    BASIC = 1
    INTERMEDIATE = 2
    ADVANCED = 3

    @property
    def label(self) -> str:
        return self.name.capitalize()

    @property
    def weight(self) -> float:
        return self.value / 3


class MemberSkill(BaseModel):
    name: str
    proficiency: Proficiency = Proficiency.BASIC


class TeamMember(BaseModel):
    """A routable member of a team."""

    id: str
    name: str
    skills: List[MemberSkill] = Field(default_factory=list)
    capacity_hours_per_week: float = 40
    current_workload_hours: float = 0

    @property
    def available_hours(self) -> float:
        return self.capacity_hours_per_week - self.current_workload_hours


class SkillMatch(BaseModel):
    """One required skill satisfied by one of the member's skills."""

    required_skill: str
    skill_name: str
    proficiency: Proficiency
    weight: float

    @property
    def proficiency_label(self) -> str:
        return self.proficiency.label


class SkillScore(BaseModel):
    member_id: str
    member_name: str
    score: float
    matched_skills: List[SkillMatch] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)


class CapacityScore(BaseModel):
    member_id: str
    member_name: str
    score: float
    base_score: float
    capacity_hours_per_week: float
    current_workload_hours: float
    available_hours: float
    capacity_percentage: float
    penalty_applied: bool
    can_fit_work: bool


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CapacityAnalysis(BaseModel):
    available_hours: float
    required_hours: float
    utilization: float
    can_fit_work: bool
    penalty_applied: bool


class CandidateReasoning(BaseModel):
    """Queryable breakdown behind a candidate's scores."""

    skill_matches: List[SkillMatch] = Field(default_factory=list)
    missing_skills: List[str] = Field(default_factory=list)
    capacity_analysis: CapacityAnalysis
    confidence_rationale: str


class RoutingCandidate(BaseModel):
    member_id: str
    member_name: str
    skill_score: float
    capacity_score: float
    combined_score: float
    confidence: Confidence
    is_top_candidate: bool = False
    reasoning: CandidateReasoning


class RoutingResult(BaseModel):
    candidates: List[RoutingCandidate] = Field(default_factory=list)
    top_score: float = 0.0
    threshold_score: float = 0.0
    recommendation_summary: str = ""

    @property
    def top_candidates(self) -> List[RoutingCandidate]:
        return [c for c in self.candidates if c.is_top_candidate]

    @property
    def top(self) -> Optional[RoutingCandidate]:
        return self.candidates[0] if self.candidates else None


class TeamCapacitySummary(BaseModel):
    total_capacity: float = 0
    total_workload: float = 0
    total_available: float = 0
    utilization_percentage: float = 0.0
    members_with_capacity: int = 0
    members_overloaded: int = 0


class TeamSkillSummary(BaseModel):
    skill_name: str
    members_count: int
    avg_proficiency: float
