"""Combine skill and capacity scores into ranked routing candidates."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .capacity import (
    members_with_capacity,
    score_member_capacity,
    team_capacity_summary,
)
from .models import (
    CandidateReasoning,
    CapacityAnalysis,
    CapacityScore,
    Confidence,
    RoutingCandidate,
    RoutingResult,
    SkillScore,
    TeamCapacitySummary,
    TeamMember,
    TeamSkillSummary,
)
from .roster import RosterProvider
from .skills import score_member_skills, team_skills_summary

logger = logging.getLogger(__name__)

SKILL_WEIGHT = 0.5
CAPACITY_WEIGHT = 0.5
TOP_CANDIDATE_THRESHOLD = 0.10


def combine_scores(skill_score: float, capacity_score: float) -> float:
    return round(skill_score * SKILL_WEIGHT + capacity_score * CAPACITY_WEIGHT, 2)


def determine_confidence(
    combined_score: float,
    matched_skill_count: int,
    available_hours: float,
    required_hours: float,
) -> Confidence:
    if combined_score >= 80 and matched_skill_count >= 2 and available_hours >= required_hours:
        return Confidence.HIGH
    if combined_score >= 50 and matched_skill_count >= 1 and available_hours > 0:
        return Confidence.MEDIUM
    return Confidence.LOW


def confidence_rationale(
    confidence: Confidence, skills: SkillScore, capacity: CapacityScore
) -> str:
    matched = len(skills.matched_skills)
    missing = len(skills.missing_skills)
    if matched == 0:
        parts = ["No matching skills found"]
    elif missing == 0:
        parts = [f"All {matched} required skills matched"]
    else:
        parts = [f"{matched} skills matched, {missing} missing"]

    if capacity.can_fit_work:
        parts.append("sufficient capacity available")
    else:
        parts.append("limited capacity for this work")
    if capacity.penalty_applied:
        parts.append("score penalized due to low availability (<20%)")

    return f"{confidence.value.capitalize()} confidence: {'; '.join(parts)}"


def mark_top_candidates(candidates: List[RoutingCandidate]) -> float:
    """Sort ``candidates`` in place and flag those within 10% of the best.

    Returns the threshold score.
    """
    candidates.sort(key=lambda c: c.combined_score, reverse=True)
    top_score = candidates[0].combined_score if candidates else 0.0
    threshold = top_score * (1 - TOP_CANDIDATE_THRESHOLD)
    for candidate in candidates:
        candidate.is_top_candidate = candidate.combined_score >= threshold
    return threshold


def summarize(candidates: Sequence[RoutingCandidate], top_score: float) -> str:
    if not candidates:
        return "No candidates available for routing."
    top = [c for c in candidates if c.is_top_candidate]
    if not top:
        return "No suitable candidates found."
    names = ", ".join(c.member_name for c in top[:3])
    if len(top) == 1:
        return f"Recommended: {names} with score {top_score}"
    return f"{len(top)} candidates within 10% of top score ({top_score}): {names}"


class RoutingService:
    """Score team members for a piece of work.

    All calculations are read-only against the roster.
    """

    def __init__(self, roster: RosterProvider) -> None:
        self._roster = roster

    def _members(self, team_id: str) -> List[TeamMember]:
        return self._roster.get_members(team_id)

    def calculate_skill_scores(
        self, team_id: str, required_skills: Sequence[str]
    ) -> Dict[str, SkillScore]:
        return {
            m.id: score_member_skills(m, required_skills) for m in self._members(team_id)
        }

    def calculate_capacity_scores(
        self, team_id: str, estimated_hours: float
    ) -> Dict[str, CapacityScore]:
        return {
            m.id: score_member_capacity(m, estimated_hours) for m in self._members(team_id)
        }

    def calculate_routing(
        self, team_id: str, required_skills: Sequence[str], estimated_hours: float
    ) -> RoutingResult:
        skill_scores = self.calculate_skill_scores(team_id, required_skills)
        capacity_scores = self.calculate_capacity_scores(team_id, estimated_hours)

        candidates: List[RoutingCandidate] = []
        for member_id, skills in skill_scores.items():
            capacity = capacity_scores[member_id]
            skill_score = round(skills.score, 2)
            capacity_score = round(capacity.score, 2)
            combined = combine_scores(skill_score, capacity_score)
            confidence = determine_confidence(
                combined,
                len(skills.matched_skills),
                capacity.available_hours,
                estimated_hours,
            )
            candidates.append(
                RoutingCandidate(
                    member_id=member_id,
                    member_name=skills.member_name,
                    skill_score=skill_score,
                    capacity_score=capacity_score,
                    combined_score=combined,
                    confidence=confidence,
                    reasoning=CandidateReasoning(
                        skill_matches=skills.matched_skills,
                        missing_skills=skills.missing_skills,
                        capacity_analysis=CapacityAnalysis(
                            available_hours=capacity.available_hours,
                            required_hours=estimated_hours,
                            utilization=round(100 - capacity.capacity_percentage, 2),
                            can_fit_work=capacity.can_fit_work,
                            penalty_applied=capacity.penalty_applied,
                        ),
                        confidence_rationale=confidence_rationale(
                            confidence, skills, capacity
                        ),
                    ),
                )
            )

        threshold = mark_top_candidates(candidates)
        top_score = candidates[0].combined_score if candidates else 0.0
        logger.debug(
            f"Routed team {team_id}: {len(candidates)} candidates, top score {top_score}"
        )
        return RoutingResult(
            candidates=candidates,
            top_score=top_score,
            threshold_score=round(threshold, 2),
            recommendation_summary=summarize(candidates, top_score),
        )

    def get_top_recommendation(
        self, team_id: str, required_skills: Sequence[str], estimated_hours: float
    ) -> Optional[RoutingCandidate]:
        return self.calculate_routing(team_id, required_skills, estimated_hours).top

    def team_capacity_summary(self, team_id: str) -> TeamCapacitySummary:
        return team_capacity_summary(self._members(team_id))

    def members_with_capacity(
        self, team_id: str, estimated_hours: float, minimum_buffer: float = 1.0
    ) -> List[TeamMember]:
        return members_with_capacity(self._members(team_id), estimated_hours, minimum_buffer)

    def team_skills_summary(self, team_id: str) -> List[TeamSkillSummary]:
        return team_skills_summary(self._members(team_id))
