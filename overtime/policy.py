"""Authorization decisions for every engine operation.

Each action is described by one :class:`Rule`: which roles may perform it
and how the target user must relate to the actor. Engine components call
:meth:`AccessPolicy.enforce` instead of checking roles or memberships
themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Type

from .errors import AuthorizationError, NotFoundError, OvertimeError
from .hierarchy import TeamHierarchyResolver
from .models import ROLES, ROLE_MANAGER, Actor, Team

logger = logging.getLogger("overtime.policy")

SCOPE_NONE = "none"
SCOPE_TEAM = "team"
SCOPE_OWNER = "owner"


class Action(str, Enum):
    CREATE_ENTRY = "create_entry"
    DELETE_ENTRY = "delete_entry"
    SET_STATUS = "set_status"
    CLEAR_ENTRIES = "clear_entries"
    OPEN_PERIOD = "open_period"
    CLOSE_PERIOD = "close_period"
    LIST_PERIODS = "list_periods"
    VIEW_TEAM = "view_team"
    MANAGE_MEMBERS = "manage_members"


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[str]
    scope: str = SCOPE_NONE
    denial: Type[OvertimeError] = AuthorizationError


_MANAGERS = frozenset({ROLE_MANAGER})

RULES: Dict[Action, Rule] = {
    Action.CREATE_ENTRY: Rule(roles=ROLES, scope=SCOPE_OWNER, denial=AuthorizationError),
    Action.DELETE_ENTRY: Rule(roles=ROLES, scope=SCOPE_OWNER, denial=NotFoundError),
    Action.SET_STATUS: Rule(roles=_MANAGERS, scope=SCOPE_TEAM, denial=NotFoundError),
    Action.CLEAR_ENTRIES: Rule(roles=_MANAGERS, scope=SCOPE_TEAM),
    Action.OPEN_PERIOD: Rule(roles=_MANAGERS, scope=SCOPE_TEAM, denial=AuthorizationError),
    Action.CLOSE_PERIOD: Rule(roles=_MANAGERS, scope=SCOPE_TEAM, denial=NotFoundError),
    Action.LIST_PERIODS: Rule(roles=_MANAGERS, scope=SCOPE_TEAM, denial=NotFoundError),
    Action.VIEW_TEAM: Rule(roles=_MANAGERS, scope=SCOPE_TEAM),
    Action.MANAGE_MEMBERS: Rule(roles=_MANAGERS, scope=SCOPE_TEAM),
}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    team: Optional[Team] = None
    reason: str = ""
    error: Type[OvertimeError] = AuthorizationError

    def raise_for_denial(self) -> None:
        if not self.allowed:
            raise self.error(self.reason)

    def require_team(self) -> Team:
        if self.team is None:
            raise AuthorizationError("Action is not scoped to a team")
        return self.team


class AccessPolicy:
    """Evaluate ``(actor, action, target)`` triples against :data:`RULES`."""

    def __init__(self, hierarchy: TeamHierarchyResolver) -> None:
        self._hierarchy = hierarchy

    def evaluate(
        self,
        actor: Actor,
        action: Action,
        target_user_id: Optional[int] = None,
        *,
        subject: str = "Record",
    ) -> Decision:
        rule = RULES[action]
        if actor.role not in rule.roles:
            return self._role_denial(actor, action)

        if rule.scope == SCOPE_OWNER:
            if target_user_id is not None and target_user_id != actor.user_id:
                return Decision(allowed=False, reason=self._denial_reason(rule, subject), error=rule.denial)
            return Decision(allowed=True)

        if rule.scope == SCOPE_TEAM:
            team = self._hierarchy.get_or_create_team(actor.user_id)
            if target_user_id is not None and not self._hierarchy.is_member(team.id, target_user_id):
                return Decision(
                    allowed=False,
                    team=team,
                    reason=self._denial_reason(rule, subject, target_user_id),
                    error=rule.denial,
                )
            return Decision(allowed=True, team=team)

        return Decision(allowed=True)

    def enforce(
        self,
        actor: Actor,
        action: Action,
        target_user_id: Optional[int] = None,
        *,
        subject: str = "Record",
    ) -> Decision:
        decision = self.evaluate(actor, action, target_user_id, subject=subject)
        if not decision.allowed:
            self._deny(actor, action, target_user_id, decision)
        return decision

    def enforce_role(self, actor: Actor, action: Action) -> None:
        """Reject a role mismatch before any record is looked up."""

        if actor.role not in RULES[action].roles:
            self._deny(actor, action, None, self._role_denial(actor, action))

    @staticmethod
    def _deny(actor: Actor, action: Action, target_user_id: Optional[int], decision: Decision) -> None:
        logger.warning(
            "Denied %s for user %s (role=%s, target=%s): %s",
            action.value,
            actor.user_id,
            actor.role,
            target_user_id,
            decision.reason,
        )
        decision.raise_for_denial()

    @staticmethod
    def _role_denial(actor: Actor, action: Action) -> Decision:
        return Decision(
            allowed=False,
            reason=f"Role '{actor.role}' may not perform {action.value}",
            error=AuthorizationError,
        )

    @staticmethod
    def _denial_reason(rule: Rule, subject: str, target_user_id: Optional[int] = None) -> str:
        if rule.denial is NotFoundError:
            return f"{subject} not found"
        if target_user_id is not None:
            return f"User {target_user_id} is not a member of your team"
        return "Not permitted"


__all__ = ["AccessPolicy", "Action", "Decision", "RULES", "Rule"]
