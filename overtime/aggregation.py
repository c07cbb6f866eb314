"""Monthly rollups of premium minutes per team member."""
from __future__ import annotations

from typing import Dict, List

from .database import Database
from .models import Actor, MonthlyTotal
from .policy import AccessPolicy, Action
from .validation import month_bounds


class AggregationEngine:
    def __init__(self, database: Database, policy: AccessPolicy) -> None:
        self._database = database
        self._policy = policy

    def monthly_totals(self, actor: Actor, month: str) -> List[MonthlyTotal]:
        """Sum approved and pending minutes for every member of the actor's team.

        Members without entries in ``month`` are included with zero sums.
        Rejected entries are not counted.
        """

        start, end = month_bounds(month)
        decision = self._policy.enforce(actor, Action.VIEW_TEAM)
        return self._database.monthly_totals(decision.require_team().id, start, end)

    def team_summary(self, actor: Actor, month: str) -> Dict[str, int]:
        """Return team-wide sums of :meth:`monthly_totals`."""

        summary = {"approved_150": 0, "approved_200": 0, "pending_150": 0, "pending_200": 0}
        for total in self.monthly_totals(actor, month):
            summary["approved_150"] += total.approved_150
            summary["approved_200"] += total.approved_200
            summary["pending_150"] += total.pending_150
            summary["pending_200"] += total.pending_200
        return summary


__all__ = ["AggregationEngine"]
