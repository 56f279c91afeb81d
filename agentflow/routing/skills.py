"""Skill matching and scoring for team members."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence

from .models import MemberSkill, SkillMatch, SkillScore, TeamMember, TeamSkillSummary

SKILL_GROUPS: Dict[str, List[str]] = {
    "php": ["laravel", "symfony", "wordpress", "drupal"],
    "laravel": ["php", "eloquent", "artisan"],
    "javascript": ["js", "typescript", "ts", "node", "nodejs"],
    "react": ["reactjs", "react.js", "jsx"],
    "vue": ["vuejs", "vue.js"],
    "angular": ["angularjs", "angular.js"],
    "css": ["scss", "sass", "less", "tailwind", "bootstrap"],
    "html": ["html5", "markup"],
    "python": ["django", "flask", "fastapi"],
    "ruby": ["rails", "ruby on rails"],
    "database": ["sql", "mysql", "postgresql", "postgres", "mongodb", "redis"],
    "mysql": ["sql", "database", "mariadb"],
    "postgresql": ["postgres", "sql", "database"],
    "mongodb": ["mongo", "nosql", "database"],
    "devops": ["docker", "kubernetes", "k8s", "aws", "azure", "gcp", "ci/cd"],
    "docker": ["containers", "devops", "kubernetes"],
    "aws": ["amazon web services", "cloud", "ec2", "s3"],
    "api": ["rest", "restful", "graphql", "backend"],
    "testing": ["test", "qa", "phpunit", "jest", "cypress"],
    "frontend": ["ui", "ux", "client-side", "web"],
    "backend": ["server-side", "api", "server"],
    "mobile": ["ios", "android", "react native", "flutter"],
    "design": ["ui", "ux", "figma", "sketch", "adobe"],
}


def _build_related_skills() -> Dict[str, List[str]]:
    related: Dict[str, List[str]] = {}
    for primary, group in SKILL_GROUPS.items():
        related.setdefault(primary, []).extend(group)
        for skill in group:
            related.setdefault(skill, []).append(primary)
    return related


RELATED_SKILLS = _build_related_skills()


def _overlaps(a: str, b: str) -> bool:
    return a in b or b in a


def find_skill_match(
    skills: Sequence[MemberSkill], required_skill: str
) -> Optional[MemberSkill]:
    """Find the member skill that satisfies ``required_skill``.

    Tries an exact case-insensitive match, then a substring match in either
    direction, then the related-skill table.
    """
    required = required_skill.strip().lower()
    if not required:
        return None

    for skill in skills:
        if skill.name.lower() == required:
            return skill

    for skill in skills:
        if _overlaps(skill.name.lower(), required):
            return skill

    terms = RELATED_SKILLS.get(required, []) + [required]
    for skill in skills:
        name = skill.name.lower()
        if any(name == term or _overlaps(name, term) for term in terms):
            return skill
    return None


def score_member_skills(member: TeamMember, required_skills: Sequence[str]) -> SkillScore:
    """Score ``member`` against ``required_skills`` on a 0-100 scale."""
    matched: List[SkillMatch] = []
    missing: List[str] = []
    total = 0.0

    for required in required_skills:
        skill = find_skill_match(member.skills, required)
        if skill is None:
            missing.append(required)
            continue
        weight = skill.proficiency.weight
        total += weight
        matched.append(
            SkillMatch(
                required_skill=required,
                skill_name=skill.name,
                proficiency=skill.proficiency,
                weight=weight,
            )
        )

    score = total / len(required_skills) * 100 if required_skills else 0.0
    return SkillScore(
        member_id=member.id,
        member_name=member.name,
        score=score,
        matched_skills=matched,
        missing_skills=missing,
    )


def team_skills_summary(members: Iterable[TeamMember]) -> List[TeamSkillSummary]:
    """Summarise which skills a team holds, most widely held first."""
    levels: Dict[str, List[int]] = {}
    for member in members:
        for skill in member.skills:
            levels.setdefault(skill.name, []).append(int(skill.proficiency))

    summary = [
        TeamSkillSummary(
            skill_name=name,
            members_count=len(values),
            avg_proficiency=round(sum(values) / len(values), 2),
        )
        for name, values in levels.items()
    ]
    summary.sort(key=lambda s: s.members_count, reverse=True)
    return summary
