"""Wiring of the engine components around one database."""
from __future__ import annotations

import logging
from typing import List, Optional

from .aggregation import AggregationEngine
from .config import Settings
from .database import Database
from .errors import NotFoundError
from .hierarchy import TeamHierarchyResolver
from .models import ROLE_MANAGER, ROLE_MEMBER, Actor, Split, User
from .periods import PeriodGate
from .policy import AccessPolicy, Action
from .timesplit import split
from .workflow import ApprovalWorkflow

logger = logging.getLogger("overtime.engine")


class OvertimeEngine:
    """Expose the engine components that share ``database``."""

    def __init__(self, database: Database, settings: Optional[Settings] = None) -> None:
        settings = settings or Settings()
        self.database = database
        self.settings = settings
        self.hierarchy = TeamHierarchyResolver(database, default_team_name=settings.default_team_name)
        self.policy = AccessPolicy(self.hierarchy)
        self.periods = PeriodGate(database, self.policy)
        self.workflow = ApprovalWorkflow(
            database,
            self.policy,
            strict_transitions=settings.strict_transitions,
        )
        self.aggregation = AggregationEngine(database, self.policy)

    def split(
        self,
        date: str,
        start_time: str,
        end_time: str,
        is_public_holiday: bool = False,
        is_designated_day_off: bool = False,
    ) -> Split:
        return split(
            date,
            start_time,
            end_time,
            is_public_holiday=is_public_holiday,
            is_designated_day_off=is_designated_day_off,
        )

    def register_user(self, name: str, email: Optional[str], password: str, role: str = ROLE_MEMBER) -> User:
        """Create an account; managers get their team immediately."""

        user = self.database.create_user(name, email, password, role)
        if user.role == ROLE_MANAGER:
            self.hierarchy.get_or_create_team(user.id)
        logger.info("Registered %s account %s (%s)", user.role, user.id, user.email)
        return user

    def list_team_members(self, actor: Actor) -> List[User]:
        decision = self.policy.enforce(actor, Action.VIEW_TEAM)
        return self.hierarchy.list_members(decision.require_team().id)

    def add_team_member(self, actor: Actor, user_id: int) -> User:
        """Place an existing user, possibly another manager, in the actor's team."""

        decision = self.policy.enforce(actor, Action.MANAGE_MEMBERS)
        self.hierarchy.add_membership(decision.require_team().id, user_id)
        member = self.database.get_user(user_id)
        if member is None:
            raise NotFoundError(f"User {user_id} not found")
        return member

    def create_team_member(self, actor: Actor, name: str, email: str, password: str) -> User:
        """Create a member account and add it to the actor's team."""

        decision = self.policy.enforce(actor, Action.MANAGE_MEMBERS)
        team = decision.require_team()
        member = self.database.create_member(team.id, name, email, password)
        logger.info("Manager %s created member %s in team %s", actor.user_id, member.id, team.id)
        return member


__all__ = ["OvertimeEngine"]
