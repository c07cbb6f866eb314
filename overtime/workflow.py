"""Lifecycle of overtime entries: creation, approval, rejection, deletion."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .database import Database
from .errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PeriodClosedError,
    ValidationError,
)
from .models import ALLOWED_TRANSITIONS, STATUS_ACTIONS, Actor, OvertimeEntry, Split
from .policy import AccessPolicy, Action
from .timesplit import split as compute_split
from .validation import month_bounds

logger = logging.getLogger("overtime.workflow")

NOTE_MAX_LENGTH = 200


class ApprovalWorkflow:
    """Create entries for their owners and let managers decide on them.

    By default a manager's decision simply overwrites the current status, so
    an approved entry can later be rejected and vice versa. With
    ``strict_transitions`` only pending entries may be decided.
    """

    def __init__(
        self,
        database: Database,
        policy: AccessPolicy,
        *,
        strict_transitions: bool = False,
    ) -> None:
        self._database = database
        self._policy = policy
        self._strict_transitions = strict_transitions

    @property
    def strict_transitions(self) -> bool:
        return self._strict_transitions

    def create_entry(
        self,
        user_id: int,
        date: str,
        start_time: str,
        end_time: str,
        is_public_holiday: bool = False,
        is_designated_day_off: bool = False,
        note: Optional[str] = None,
        *,
        actor: Optional[Actor] = None,
    ) -> OvertimeEntry:
        """Log a pending entry for ``user_id``.

        When ``actor`` is given it must own the entry. The date must lie in
        an open period for the user, checked in the same transaction as the
        insert.
        """

        if actor is not None:
            self._policy.enforce(actor, Action.CREATE_ENTRY, user_id, subject="Entry")
        shift_split = compute_split(
            date,
            start_time,
            end_time,
            is_public_holiday=is_public_holiday,
            is_designated_day_off=is_designated_day_off,
        )
        normalized_note = note.strip() if note else None
        if normalized_note and len(normalized_note) > NOTE_MAX_LENGTH:
            raise ValidationError(f"note must be at most {NOTE_MAX_LENGTH} characters")

        try:
            entry = self._database.create_entry(
                user_id,
                date=date,
                start_time=start_time,
                end_time=end_time,
                split=shift_split,
                is_public_holiday=is_public_holiday,
                is_designated_day_off=is_designated_day_off,
                note=normalized_note or None,
            )
        except PeriodClosedError:
            logger.warning("Rejected entry for user %s on %s: no open period", user_id, date)
            raise
        logger.info(
            "User %s logged entry %s on %s (%s-%s, 150%%=%s, 200%%=%s)",
            user_id,
            entry.id,
            date,
            start_time,
            end_time,
            entry.minutes_150,
            entry.minutes_200,
        )
        return entry

    def set_status(self, actor: Actor, entry_id: int, action: str) -> OvertimeEntry:
        try:
            status = STATUS_ACTIONS[action]
        except KeyError as exc:
            raise ValidationError(f"Unknown action: {action}") from exc

        self._policy.enforce_role(actor, Action.SET_STATUS)
        entry = self._database.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        self._policy.enforce(actor, Action.SET_STATUS, entry.user_id, subject="Entry")

        if self._strict_transitions:
            if status not in ALLOWED_TRANSITIONS.get(entry.status, frozenset()):
                raise InvalidTransitionError(entry.status, status)
            updated = self._database.update_entry_status(entry_id, status, expected_status=entry.status)
            if not updated:
                raise ConflictError("Entry status changed concurrently; reload and retry")
        elif not self._database.update_entry_status(entry_id, status):
            raise NotFoundError("Entry not found")

        logger.info(
            "Manager %s set entry %s from %s to %s",
            actor.user_id,
            entry_id,
            entry.status,
            status,
        )
        refreshed = self._database.get_entry(entry_id)
        if refreshed is None:
            raise NotFoundError("Entry not found")
        return refreshed

    def delete_entry(self, actor: Actor, entry_id: int) -> None:
        entry = self._database.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        self._policy.enforce(actor, Action.DELETE_ENTRY, entry.user_id, subject="Entry")
        if not self._database.delete_entry(actor.user_id, entry_id):
            raise NotFoundError("Entry not found")
        logger.info("User %s deleted entry %s (%s)", actor.user_id, entry_id, entry.date)

    def clear_all(self, actor: Actor) -> int:
        """Delete every entry belonging to members of the actor's team."""

        decision = self._policy.enforce(actor, Action.CLEAR_ENTRIES)
        team = decision.require_team()
        removed = self._database.delete_entries_for_team(team.id)
        logger.info("Manager %s cleared %s entries of team %s", actor.user_id, removed, team.id)
        return removed

    def list_entries(self, user_id: int, month: str) -> List[OvertimeEntry]:
        start, end = month_bounds(month)
        return self._database.list_entries_for_user(user_id, start, end)

    def list_team_entries(self, actor: Actor, month: str) -> List[OvertimeEntry]:
        start, end = month_bounds(month)
        decision = self._policy.enforce(actor, Action.VIEW_TEAM)
        return self._database.list_entries_for_team(decision.require_team().id, start, end)

    def audit_entry(self, entry_id: int) -> Tuple[Split, Split]:
        """Return the stored split next to a fresh recomputation."""

        entry = self._database.get_entry(entry_id)
        if entry is None:
            raise NotFoundError("Entry not found")
        recomputed = compute_split(
            entry.date,
            entry.start_time,
            entry.end_time,
            is_public_holiday=entry.is_public_holiday,
            is_designated_day_off=entry.is_designated_day_off,
        )
        if recomputed != entry.split:
            logger.warning("Entry %s split differs from recomputation: %s != %s", entry_id, entry.split, recomputed)
        return entry.split, recomputed


__all__ = ["ApprovalWorkflow", "NOTE_MAX_LENGTH"]
