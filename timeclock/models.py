from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class _Unset(Enum):
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


# Marks a patch field that was not provided, as opposed to one set to None.
UNSET = _Unset.UNSET


@dataclass(frozen=True, slots=True)
class Identity:
    external_id: str
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None


@dataclass(frozen=True, slots=True)
class User:
    id: int
    external_id: str
    created_at: datetime
    name: str | None = None
    email: str | None = None
    avatar_url: str | None = None
    timezone: str | None = None


@dataclass(frozen=True, slots=True)
class Session:
    id: int
    user_id: int
    date: str
    started_at: datetime
    ended_at: datetime | None = None
    duration: int | None = None
    description: str | None = None

    @property
    def is_ongoing(self) -> bool:
        return self.ended_at is None

    @property
    def is_completed(self) -> bool:
        return self.ended_at is not None and self.duration is not None


@dataclass(frozen=True, slots=True)
class SessionPatch:
    description: str | None | _Unset = UNSET
    start: datetime | None | _Unset = UNSET
    end: datetime | None | _Unset = UNSET

    def is_empty(self) -> bool:
        return self.description is UNSET and self.start is UNSET and self.end is UNSET


@dataclass(frozen=True, slots=True)
class SessionDetail:
    id: int
    started_at: datetime
    ended_at: datetime | None
    duration: int | None
    description: str | None
    is_ongoing: bool

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "startTime": self.started_at.isoformat(),
            "endTime": self.ended_at.isoformat() if self.ended_at else None,
            "duration": self.duration,
            "description": self.description,
            "isOngoing": self.is_ongoing,
        }


@dataclass(frozen=True, slots=True)
class SessionSummary:
    total_sessions: int
    completed_sessions: int
    ongoing_sessions: int
    total_duration: int
    average_duration: float
    completion_rate: float

    def to_dict(self) -> dict:
        return {
            "totalSessions": self.total_sessions,
            "completedSessions": self.completed_sessions,
            "ongoingSessions": self.ongoing_sessions,
            "totalDuration": self.total_duration,
            "averageDuration": self.average_duration,
            "completionRate": self.completion_rate,
        }


@dataclass(frozen=True, slots=True)
class UserStats:
    """All-time totals for one user."""

    total_sessions: int
    completed_sessions: int
    total_duration: int
    average_session_duration: float

    def to_dict(self) -> dict:
        return {
            "totalSessions": self.total_sessions,
            "completedSessions": self.completed_sessions,
            "totalDuration": self.total_duration,
            "averageSessionDuration": self.average_session_duration,
        }


@dataclass(frozen=True, slots=True)
class DayStats:
    date: str
    total_sessions: int
    completed_sessions: int
    ongoing_sessions: int
    total_duration: int
    average_duration: int
    completion_rate: int
    has_ongoing_session: bool
    sessions: list[SessionDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "totalSessions": self.total_sessions,
            "completedSessions": self.completed_sessions,
            "ongoingSessions": self.ongoing_sessions,
            "totalDuration": self.total_duration,
            "averageDuration": self.average_duration,
            "completionRate": self.completion_rate,
            "hasOngoingSession": self.has_ongoing_session,
            "sessions": [item.to_dict() for item in self.sessions],
        }


@dataclass(frozen=True, slots=True)
class UserStatsRow:
    user_id: int
    name: str | None
    email: str | None
    start_date: str
    end_date: str
    summary: SessionSummary
    sessions: list[SessionDetail] = field(default_factory=list)
    single_day: bool = False

    @property
    def has_ongoing_session(self) -> bool:
        return self.summary.ongoing_sessions > 0

    def to_dict(self) -> dict:
        payload = {
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
        }
        payload.update(_period_keys(self.start_date, self.end_date, self.single_day))
        payload["hasOngoingSession"] = self.has_ongoing_session
        payload.update(self.summary.to_dict())
        payload["sessions"] = [item.to_dict() for item in self.sessions]
        return payload


@dataclass(frozen=True, slots=True)
class TeamStats:
    start_date: str
    end_date: str
    users_stats: list[UserStatsRow]
    single_day: bool = False

    @property
    def total_active_users(self) -> int:
        return len(self.users_stats)

    def to_dict(self) -> dict:
        payload = _period_keys(self.start_date, self.end_date, self.single_day)
        payload["totalActiveUsers"] = self.total_active_users
        payload["usersStats"] = [row.to_dict() for row in self.users_stats]
        return payload


def _period_keys(start_date: str, end_date: str, single_day: bool) -> dict:
    # Single-day reports carry one "date"; time frames carry both bounds.
    if single_day:
        return {"date": start_date}
    return {"startDate": start_date, "endDate": end_date}
