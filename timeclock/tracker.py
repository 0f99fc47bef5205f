from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from .db import Database
from .errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .models import UNSET, Session, SessionPatch, User
from .timezones import (
    Clock,
    SystemClock,
    canonical_date_label,
    duration_minutes,
    parse_date_label,
    parse_date_range,
    to_canonical,
)

DEFAULT_PAGE_SIZE = 50


class SessionTracker:
    """Open/close lifecycle of work sessions.

    A user is either idle or has exactly one open session. Closing it records the
    end instant and the duration in whole minutes; manual entries are written
    already closed.
    """

    def __init__(self, db: Database, clock: Clock | None = None, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger(__name__)

    def start_session(self, user_id: int, description: str | None = None) -> Session:
        if self.db.get_open_session(user_id) is not None:
            self.logger.debug("Rejecting duplicate start for user %s", user_id)
            raise ConflictError("User already has an ongoing session")

        started = to_canonical(self.clock.now())
        try:
            session = self.db.insert_session(
                user_id,
                date_label=canonical_date_label(started),
                started_at=started,
                description=description,
            )
        except sqlite3.IntegrityError as exc:
            # Lost a race with a concurrent start for the same user.
            raise ConflictError("User already has an ongoing session") from exc

        self.logger.info("Session started: user=%s session=%s", user_id, session.id)
        return session

    def end_session(self, session_id: int) -> Session:
        session = self.db.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        if not session.is_ongoing:
            raise ConflictError("Session is already ended")

        ended = to_canonical(self.clock.now())
        duration = duration_minutes(session.started_at, ended)
        if not self.db.close_session(session.id, ended, duration):
            raise ConflictError("Session is already ended")

        self.logger.info("Session ended: user=%s session=%s duration=%smin", session.user_id, session.id, duration)
        return self._require(session.id)

    def create_manual_session(
        self,
        user_id: int,
        start: datetime,
        end: datetime,
        description: str | None = None,
    ) -> Session:
        started = to_canonical(start)
        ended = to_canonical(end)
        if ended <= started:
            raise ValidationError("End time must be after start time")

        # Manual entries are closed on insert, so they never collide with a live session.
        session = self.db.insert_session(
            user_id,
            date_label=canonical_date_label(started),
            started_at=started,
            ended_at=ended,
            duration_minutes=duration_minutes(started, ended),
            description=description,
        )
        self.logger.info("Manual session recorded: user=%s session=%s", user_id, session.id)
        return session

    def update_session(self, session_id: int, actor: User, patch: SessionPatch) -> Session:
        session = self.get_owned_session(session_id, actor)
        if patch.is_empty():
            return session

        if patch.start is None or patch.end is None:
            raise ValidationError("Session boundaries cannot be cleared")

        changes: dict[str, object] = {}
        if patch.description is not UNSET:
            changes["description"] = patch.description

        if patch.start is not UNSET:
            started = to_canonical(patch.start)
            changes["started_at"] = started
            changes["date"] = canonical_date_label(started)

        if patch.end is not UNSET:
            changes["ended_at"] = to_canonical(patch.end)

        if patch.start is not UNSET or patch.end is not UNSET:
            started = changes.get("started_at", session.started_at)
            ended = changes.get("ended_at", session.ended_at)
            if ended is not None:
                if ended < started:
                    raise ValidationError("End time must not be before start time")
                changes["duration"] = duration_minutes(started, ended)

        try:
            applied = self.db.update_session_fields(session, changes)
        except sqlite3.IntegrityError as exc:
            raise ConflictError("User already has an ongoing session") from exc
        if not applied:
            # Clocked out, edited or deleted since it was read.
            raise ConflictError("Session changed while it was being updated; reload and retry")

        self.logger.info("Session updated: session=%s fields=%s", session.id, sorted(changes))
        return self._require(session.id)

    def delete_session(self, session_id: int, actor: User) -> bool:
        session = self.get_owned_session(session_id, actor)
        deleted = self.db.delete_session(session.id)
        if not deleted:
            raise NotFoundError(f"Session {session_id} not found")
        self.logger.info("Session deleted: user=%s session=%s", session.user_id, session.id)
        return True

    def get_session(self, session_id: int) -> Session:
        return self._require(session_id)

    def get_current_session(self, user_id: int) -> Session | None:
        return self.db.get_open_session(user_id)

    def get_sessions_by_date(self, user_id: int, date_label: str) -> list[Session]:
        label = parse_date_label(date_label)
        return self.db.list_sessions(user_id, start_label=label, end_label=label)

    def get_sessions_by_date_range(self, user_id: int, start_label: str, end_label: str) -> list[Session]:
        start, end = parse_date_range(start_label, end_label)
        return self.db.list_sessions(user_id, start_label=start, end_label=end)

    def list_user_sessions(
        self,
        user_id: int,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: int | None = None,
    ) -> tuple[list[Session], int | None]:
        """Return one page of sessions, newest first, plus the cursor for the next page."""
        if limit <= 0:
            raise ValidationError("limit must be positive")

        # Fetch one extra row to learn whether another page exists.
        rows = self.db.list_sessions_page(user_id, limit=limit + 1, before_id=cursor)
        page = rows[:limit]
        next_cursor = page[-1].id if len(rows) > limit else None
        return page, next_cursor

    def get_owned_session(self, session_id: int, actor: User) -> Session:
        session = self._require(session_id)
        if session.user_id != actor.id:
            self.logger.debug("User %s denied access to session %s", actor.id, session_id)
            raise AuthorizationError("Unauthorized")
        return session

    def _require(self, session_id: int) -> Session:
        session = self.db.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} not found")
        return session
