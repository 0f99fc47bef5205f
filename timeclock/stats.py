from __future__ import annotations

from collections.abc import Iterable, Sequence

from .db import Database
from .models import DayStats, Session, SessionDetail, SessionSummary, TeamStats, User, UserStats, UserStatsRow
from .timezones import (
    Clock,
    SystemClock,
    canonical_date_label,
    parse_date_label,
    parse_date_range,
    previous_date_label,
    round_half_up,
)


def partition(sessions: Iterable[Session]) -> tuple[list[Session], list[Session]]:
    """Split sessions into (completed, ongoing)."""
    completed: list[Session] = []
    ongoing: list[Session] = []
    for session in sessions:
        if session.is_completed:
            completed.append(session)
        elif session.is_ongoing:
            ongoing.append(session)
    return completed, ongoing


def summarize(sessions: Sequence[Session], *, rounded: bool = False) -> SessionSummary:
    completed, ongoing = partition(sessions)
    total_duration = sum(session.duration for session in completed)

    average = total_duration / len(completed) if completed else 0
    rate = 100 * len(completed) / len(sessions) if sessions else 0
    if rounded:
        average = round_half_up(average)
        rate = round_half_up(rate)

    return SessionSummary(
        total_sessions=len(sessions),
        completed_sessions=len(completed),
        ongoing_sessions=len(ongoing),
        total_duration=total_duration,
        average_duration=average,
        completion_rate=rate,
    )


def session_details(sessions: Iterable[Session]) -> list[SessionDetail]:
    return [
        SessionDetail(
            id=session.id,
            started_at=session.started_at,
            ended_at=session.ended_at,
            duration=session.duration,
            description=session.description,
            is_ongoing=session.is_ongoing,
        )
        for session in sessions
    ]


def build_day_stats(date_label: str, sessions: Sequence[Session]) -> DayStats:
    summary = summarize(sessions, rounded=True)
    return DayStats(
        date=date_label,
        total_sessions=summary.total_sessions,
        completed_sessions=summary.completed_sessions,
        ongoing_sessions=summary.ongoing_sessions,
        total_duration=summary.total_duration,
        average_duration=summary.average_duration,
        completion_rate=summary.completion_rate,
        has_ongoing_session=summary.ongoing_sessions > 0,
        sessions=session_details(sessions),
    )


class Reporter:
    """Read-side statistics. Every call re-queries the store."""

    def __init__(self, db: Database, clock: Clock | None = None) -> None:
        self.db = db
        self.clock = clock or SystemClock()

    def today_label(self) -> str:
        return canonical_date_label(self.clock.now())

    def last_day_label(self) -> str:
        return previous_date_label(self.clock.now())

    def get_session_summary(
        self,
        user_id: int,
        start_label: str | None = None,
        end_label: str | None = None,
    ) -> SessionSummary:
        if start_label is not None and end_label is not None:
            parse_date_range(start_label, end_label)
        elif start_label is not None:
            parse_date_label(start_label, "startDate")
        elif end_label is not None:
            parse_date_label(end_label, "endDate")
        sessions = self.db.list_sessions(user_id, start_label=start_label, end_label=end_label)
        return summarize(sessions)

    def get_user_stats(self, user_id: int) -> UserStats:
        summary = self.get_session_summary(user_id)
        return UserStats(
            total_sessions=summary.total_sessions,
            completed_sessions=summary.completed_sessions,
            total_duration=summary.total_duration,
            average_session_duration=summary.average_duration,
        )

    def get_day_stats(self, user_id: int, date_label: str) -> DayStats:
        label = parse_date_label(date_label)
        sessions = self.db.list_sessions(user_id, start_label=label, end_label=label)
        return build_day_stats(label, sessions)

    def get_today_stats(self, user_id: int) -> DayStats:
        return self.get_day_stats(user_id, self.today_label())

    def get_last_day_stats(self, user_id: int) -> DayStats:
        return self.get_day_stats(user_id, self.last_day_label())

    def get_all_users_today_stats(self) -> TeamStats:
        label = self.today_label()
        return self._team_stats(label, label, rounded=True, single_day=True)

    def get_all_users_last_day_stats(self) -> TeamStats:
        label = self.last_day_label()
        return self._team_stats(label, label, rounded=True, single_day=True)

    def get_all_users_time_frame_stats(self, start_label: str, end_label: str) -> TeamStats:
        start, end = parse_date_range(start_label, end_label)
        return self._team_stats(start, end, rounded=False)

    def _team_stats(
        self,
        start_label: str,
        end_label: str,
        *,
        rounded: bool,
        single_day: bool = False,
    ) -> TeamStats:
        rows: list[UserStatsRow] = []
        for user in self.db.list_users():
            sessions = self.db.list_sessions(user.id, start_label=start_label, end_label=end_label)
            if not sessions:
                continue
            rows.append(_user_row(user, start_label, end_label, sessions, rounded=rounded, single_day=single_day))

        rows.sort(key=lambda row: (row.email or "", row.user_id))
        return TeamStats(start_date=start_label, end_date=end_label, users_stats=rows, single_day=single_day)


def _user_row(
    user: User,
    start_label: str,
    end_label: str,
    sessions: Sequence[Session],
    *,
    rounded: bool,
    single_day: bool = False,
) -> UserStatsRow:
    return UserStatsRow(
        user_id=user.id,
        name=user.name,
        email=user.email,
        start_date=start_label,
        end_date=end_label,
        summary=summarize(sessions, rounded=rounded),
        sessions=session_details(sessions),
        single_day=single_day,
    )
