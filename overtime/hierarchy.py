"""Team ownership, membership lookups and the manager rollup hierarchy."""
from __future__ import annotations

import logging
from typing import List, Optional

from .database import Database
from .errors import ConflictError, NotFoundError
from .models import DEFAULT_TEAM_NAME, Team, TeamMembership, User

logger = logging.getLogger("overtime.hierarchy")


class TeamHierarchyResolver:
    """Resolve which team a manager owns and which team a user belongs to.

    Teams and memberships form a directed graph: a manager owns exactly one
    team, and every user (managers included) is a member of at most one
    team. A manager who is a member of a senior manager's team therefore
    rolls up into that team.
    """

    def __init__(self, database: Database, *, default_team_name: str = DEFAULT_TEAM_NAME) -> None:
        self._database = database
        self._default_team_name = default_team_name

    def get_or_create_team(self, manager_id: int) -> Team:
        existing = self._database.get_team_by_manager(manager_id)
        if existing is not None:
            return existing
        try:
            team = self._database.create_team(manager_id, self._default_team_name)
        except ConflictError:
            # Another caller created the team first; converge on its row.
            winner = self._database.get_team_by_manager(manager_id)
            if winner is None:
                raise
            return winner
        logger.info("Created team %s for manager %s", team.id, manager_id)
        return team

    def team_of_manager(self, manager_id: int) -> Optional[Team]:
        return self._database.get_team_by_manager(manager_id)

    def get_team(self, team_id: int) -> Team:
        team = self._database.get_team(team_id)
        if team is None:
            raise NotFoundError(f"Team {team_id} not found")
        return team

    def is_member(self, team_id: int, user_id: int) -> bool:
        membership = self._database.get_membership(user_id)
        return membership is not None and membership.team_id == team_id

    def resolve_manager_of(self, user_id: int) -> Optional[int]:
        """Return the id of the team ``user_id`` belongs to, if any."""

        membership = self._database.get_membership(user_id)
        if membership is None:
            return None
        return membership.team_id

    def list_members(self, team_id: int) -> List[User]:
        return self._database.list_team_members(team_id)

    def reporting_chain(self, user_id: int) -> List[int]:
        """Return manager ids above ``user_id``, direct manager first."""

        chain: List[int] = []
        seen = {user_id}
        current = user_id
        while True:
            team_id = self.resolve_manager_of(current)
            if team_id is None:
                return chain
            team = self._database.get_team(team_id)
            if team is None or team.manager_id in seen:
                return chain
            chain.append(team.manager_id)
            seen.add(team.manager_id)
            current = team.manager_id

    def add_membership(self, team_id: int, user_id: int) -> TeamMembership:
        team = self.get_team(team_id)
        if self._database.get_user(user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        current = self._database.get_membership(user_id)
        if current is not None:
            raise ConflictError(f"User {user_id} already belongs to team {current.team_id}")

        # Adding the user must not place it above itself in the rollup.
        if user_id == team.manager_id or user_id in self.reporting_chain(team.manager_id):
            logger.warning(
                "Rejected membership of user %s in team %s: hierarchy cycle",
                user_id,
                team_id,
            )
            raise ConflictError(
                f"Adding user {user_id} to team {team_id} would create a hierarchy cycle"
            )

        membership = self._database.add_membership(team_id, user_id)
        logger.info("Added user %s to team %s", user_id, team_id)
        return membership


__all__ = ["TeamHierarchyResolver"]
