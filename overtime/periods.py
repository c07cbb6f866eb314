"""Manager-opened windows that gate when a user may log overtime."""
from __future__ import annotations

import logging
from typing import List, Optional

from .database import Database
from .errors import NotFoundError, ValidationError
from .models import Actor, OvertimePeriod
from .policy import AccessPolicy, Action
from .validation import validate_date, validate_date_range

logger = logging.getLogger("overtime.periods")

REASON_MAX_LENGTH = 300


class PeriodGate:
    def __init__(self, database: Database, policy: AccessPolicy) -> None:
        self._database = database
        self._policy = policy

    def open_period(
        self,
        actor: Actor,
        target_user_id: int,
        start_date: str,
        end_date: str,
        reason: Optional[str] = None,
    ) -> OvertimePeriod:
        """Open an inclusive period for a member of the actor's team.

        Any overlap with an existing period of the same user is rejected;
        periods are never merged.
        """

        self._policy.enforce(actor, Action.OPEN_PERIOD, target_user_id)
        start, end = validate_date_range(start_date, end_date)
        normalized_reason = reason.strip() if reason else None
        if normalized_reason and len(normalized_reason) > REASON_MAX_LENGTH:
            raise ValidationError(f"reason must be at most {REASON_MAX_LENGTH} characters")

        period = self._database.create_period(
            target_user_id,
            start_date=start,
            end_date=end,
            opened_by_manager_id=actor.user_id,
            reason=normalized_reason or None,
        )
        logger.info(
            "Manager %s opened period %s (%s..%s) for user %s",
            actor.user_id,
            period.id,
            start,
            end,
            target_user_id,
        )
        return period

    def close_period(self, actor: Actor, period_id: int) -> None:
        self._policy.enforce_role(actor, Action.CLOSE_PERIOD)
        period = self._database.get_period(period_id)
        if period is None:
            raise NotFoundError("Period not found")
        self._policy.enforce(actor, Action.CLOSE_PERIOD, period.user_id, subject="Period")
        if not self._database.delete_period(period_id):
            raise NotFoundError("Period not found")
        logger.info("Manager %s closed period %s for user %s", actor.user_id, period_id, period.user_id)

    def list_periods(self, target_user_id: int, actor: Optional[Actor] = None) -> List[OvertimePeriod]:
        """Return the user's periods, most recent start date first."""

        if actor is not None:
            self._policy.enforce(actor, Action.LIST_PERIODS, target_user_id, subject="Team member")
        return self._database.list_periods(target_user_id)

    def is_open(self, user_id: int, date: str) -> bool:
        return self._database.has_covering_period(user_id, validate_date(date))


__all__ = ["PeriodGate", "REASON_MAX_LENGTH"]
