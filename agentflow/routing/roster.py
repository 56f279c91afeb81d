"""Read-only sources of team members for routing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Protocol

import yaml

from .models import TeamMember

logger = logging.getLogger(__name__)


class RosterProvider(Protocol):
    """Supplies the members of a team."""

    def get_members(self, team_id: str) -> List[TeamMember]:
        """Return the members of ``team_id``, empty when the team is unknown."""


class InMemoryRoster:
    """Roster held in a dictionary keyed by team id."""

    def __init__(self, teams: Dict[str, Iterable[TeamMember]] | None = None) -> None:
        self._teams: Dict[str, List[TeamMember]] = {
            team_id: list(members) for team_id, members in (teams or {}).items()
        }

    def add_member(self, team_id: str, member: TeamMember) -> None:
        self._teams.setdefault(team_id, []).append(member)

    def get_members(self, team_id: str) -> List[TeamMember]:
        return list(self._teams.get(team_id, []))

    def team_ids(self) -> List[str]:
        return list(self._teams)


def load_roster(path: str | Path, default_capacity_hours: float = 40.0) -> InMemoryRoster:
    """Load a roster from a YAML file.

    The file holds a ``teams`` mapping of team id to a list of members::

        teams:
          web:
            - id: alice
              name: Alice
              capacity_hours_per_week: 40
              current_workload_hours: 10
              skills:
                - {name: Laravel, proficiency: 3}

    Members without ``capacity_hours_per_week`` get ``default_capacity_hours``.
    """

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    teams = {
        str(team_id): [
            TeamMember.model_validate(
                {"capacity_hours_per_week": default_capacity_hours, **m}
            )
            for m in members or []
        ]
        for team_id, members in (data.get("teams") or {}).items()
    }
    logger.debug(f"Loaded roster with {len(teams)} teams from {path}")
    return InMemoryRoster(teams)
