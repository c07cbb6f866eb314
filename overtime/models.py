"""Domain records shared by the engine, storage and API layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Optional

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_MEMBER = "member"
ROLES: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_MANAGER, ROLE_MEMBER})

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUSES: FrozenSet[str] = frozenset({STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED})

# Manager actions and the status each one writes.
STATUS_ACTIONS: Dict[str, str] = {
    "approve": STATUS_APPROVED,
    "reject": STATUS_REJECTED,
}

# Used only when strict transitions are enabled.
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_REJECTED}),
    STATUS_APPROVED: frozenset(),
    STATUS_REJECTED: frozenset(),
}

DEFAULT_TEAM_NAME = "My Team"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the overtime database."""

    id: int
    name: str
    email: Optional[str]
    role: str
    created_at: datetime


@dataclass(frozen=True)
class Actor:
    """An already authenticated caller identity."""

    user_id: int
    role: str

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=user.role)


@dataclass(frozen=True)
class Team:
    id: int
    manager_id: int
    name: str


@dataclass(frozen=True)
class TeamMembership:
    team_id: int
    user_id: int


@dataclass(frozen=True)
class OvertimePeriod:
    """A manager-opened inclusive date range in which a user may log time."""

    id: int
    user_id: int
    start_date: str
    end_date: str
    opened_by_manager_id: Optional[int]
    reason: Optional[str]
    created_at: datetime

    def covers(self, date: str) -> bool:
        return self.start_date <= date <= self.end_date


@dataclass(frozen=True)
class Split:
    minutes_150: int
    minutes_200: int
    total_minutes: int


@dataclass(frozen=True)
class OvertimeEntry:
    """A single day's shift with its premium split and approval status."""

    id: int
    user_id: int
    date: str
    start_time: str
    end_time: str
    minutes_150: int
    minutes_200: int
    is_public_holiday: bool
    is_designated_day_off: bool
    note: Optional[str]
    status: str
    created_at: datetime
    user_name: Optional[str] = None

    @property
    def total_minutes(self) -> int:
        return self.minutes_150 + self.minutes_200

    @property
    def split(self) -> Split:
        return Split(
            minutes_150=self.minutes_150,
            minutes_200=self.minutes_200,
            total_minutes=self.total_minutes,
        )


@dataclass(frozen=True)
class MonthlyTotal:
    """Premium minutes of one team member for one month, by status."""

    user_id: int
    user_name: str
    approved_150: int = 0
    approved_200: int = 0
    pending_150: int = 0
    pending_200: int = 0

    @property
    def approved_minutes(self) -> int:
        return self.approved_150 + self.approved_200

    @property
    def pending_minutes(self) -> int:
        return self.pending_150 + self.pending_200


__all__ = [
    "ALLOWED_TRANSITIONS",
    "Actor",
    "DEFAULT_TEAM_NAME",
    "MonthlyTotal",
    "OvertimeEntry",
    "OvertimePeriod",
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_MANAGER",
    "ROLE_MEMBER",
    "STATUSES",
    "STATUS_ACTIONS",
    "STATUS_APPROVED",
    "STATUS_PENDING",
    "STATUS_REJECTED",
    "Split",
    "Team",
    "TeamMembership",
    "User",
]
