from __future__ import annotations

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from .models import Session, User


class Database:
    """Thin SQLite access layer for users and work sessions."""

    def __init__(self, db_path: str | Path) -> None:
        # The HTTP server and the bot may call in from worker threads; every
        # statement runs under the lock so each call is one atomic unit.
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # users: one row per external identity.
        # sessions: started_at/ended_at are ISO strings in the storage offset;
        # date_label is the storage-local calendar day of started_at.
        # idx_sessions_one_open backs the at-most-one-open-session rule.
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  external_id TEXT NOT NULL UNIQUE,
                  name TEXT,
                  email TEXT,
                  avatar_url TEXT,
                  timezone TEXT,
                  created_at_utc TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS sessions (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  user_id INTEGER NOT NULL REFERENCES users(id),
                  date_label TEXT NOT NULL,
                  started_at TEXT NOT NULL,
                  ended_at TEXT,
                  duration_minutes INTEGER,
                  description TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_user_date
                  ON sessions (user_id, date_label);

                CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_one_open
                  ON sessions (user_id) WHERE ended_at IS NULL;
                """
            )
            self._conn.commit()

    # users

    def insert_user(
        self,
        external_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        avatar_url: str | None = None,
        timezone_id: str | None = None,
        created_at_utc: datetime,
    ) -> User:
        created = _to_utc(created_at_utc).isoformat()
        with self._lock:
            try:
                cursor = self._conn.execute(
                    """
                    INSERT INTO users (external_id, name, email, avatar_url, timezone, created_at_utc)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (external_id, name, email, avatar_url, timezone_id, created),
                )
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            self._conn.commit()
            user_id = cursor.lastrowid
        return self._require_user(user_id)

    def update_user(self, user_id: int, fields: dict[str, str | None]) -> User:
        # Column names come from a fixed whitelist, never from callers.
        columns = {
            "name": "name",
            "email": "email",
            "avatar_url": "avatar_url",
            "timezone": "timezone",
        }
        assignments = [(columns[key], value) for key, value in fields.items() if key in columns]
        if assignments:
            sql = "UPDATE users SET " + ", ".join(f"{column} = ?" for column, _ in assignments) + " WHERE id = ?"
            with self._lock:
                self._conn.execute(sql, (*[value for _, value in assignments], user_id))
                self._conn.commit()
        return self._require_user(user_id)

    def get_user(self, user_id: int) -> User | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_external_id(self, external_id: str) -> User | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM users WHERE external_id = ?", (external_id,)
            ).fetchone()
        return _row_to_user(row) if row else None

    def list_users(self) -> list[User]:
        with self._lock:
            rows = self._conn.execute("SELECT * FROM users ORDER BY id ASC").fetchall()
        return [_row_to_user(row) for row in rows]

    # sessions

    def insert_session(
        self,
        user_id: int,
        *,
        date_label: str,
        started_at: datetime,
        ended_at: datetime | None = None,
        duration_minutes: int | None = None,
        description: str | None = None,
    ) -> Session:
        """Insert a session row.

        Raises sqlite3.IntegrityError when an open session (ended_at NULL) already
        exists for the user.
        """
        with self._lock:
            try:
                cursor = self._conn.execute(
                    """
                    INSERT INTO sessions (user_id, date_label, started_at, ended_at, duration_minutes, description)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        date_label,
                        started_at.isoformat(),
                        ended_at.isoformat() if ended_at else None,
                        duration_minutes,
                        description,
                    ),
                )
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            self._conn.commit()
            session_id = cursor.lastrowid
        return self._require_session(session_id)

    def update_session_fields(self, expected: Session, changes: dict[str, object]) -> bool:
        """Write only the changed columns of a session.

        The write applies only while the row still has the boundaries that were
        read into `expected`; returns False when it changed or vanished meanwhile.
        Raises sqlite3.IntegrityError when the write would leave a second open
        session for the user.
        """
        columns = {
            "description": "description",
            "date": "date_label",
            "started_at": "started_at",
            "ended_at": "ended_at",
            "duration": "duration_minutes",
        }
        assignments = [(columns[key], _to_column(value)) for key, value in changes.items() if key in columns]
        if not assignments:
            return True

        sql = (
            "UPDATE sessions SET "
            + ", ".join(f"{column} = ?" for column, _ in assignments)
            + " WHERE id = ? AND started_at = ? AND ended_at IS ?"
        )
        params = (
            *[value for _, value in assignments],
            expected.id,
            expected.started_at.isoformat(),
            expected.ended_at.isoformat() if expected.ended_at else None,
        )
        with self._lock:
            try:
                cursor = self._conn.execute(sql, params)
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            self._conn.commit()
        return cursor.rowcount == 1

    def close_session(self, session_id: int, ended_at: datetime, duration_minutes: int) -> bool:
        """Set the end of a still-open session. Returns False if it was already closed."""
        with self._lock:
            cursor = self._conn.execute(
                """
                UPDATE sessions
                SET ended_at = ?, duration_minutes = ?
                WHERE id = ? AND ended_at IS NULL
                """,
                (ended_at.isoformat(), duration_minutes, session_id),
            )
            self._conn.commit()
        return cursor.rowcount == 1

    def delete_session(self, session_id: int) -> bool:
        with self._lock:
            cursor = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            self._conn.commit()
        return cursor.rowcount == 1

    def get_session(self, session_id: int) -> Session | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        return _row_to_session(row) if row else None

    def get_open_session(self, user_id: int) -> Session | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM sessions WHERE user_id = ? AND ended_at IS NULL",
                (user_id,),
            ).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(
        self,
        user_id: int,
        *,
        start_label: str | None = None,
        end_label: str | None = None,
    ) -> list[Session]:
        # Labels are fixed-width YYYY-MM-DD so text comparison is date order.
        sql = "SELECT * FROM sessions WHERE user_id = ?"
        params: list[object] = [user_id]
        if start_label is not None:
            sql += " AND date_label >= ?"
            params.append(start_label)
        if end_label is not None:
            sql += " AND date_label <= ?"
            params.append(end_label)
        sql += " ORDER BY started_at ASC, id ASC"

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_session(row) for row in rows]

    def list_sessions_page(self, user_id: int, *, limit: int, before_id: int | None = None) -> list[Session]:
        sql = "SELECT * FROM sessions WHERE user_id = ?"
        params: list[object] = [user_id]
        if before_id is not None:
            sql += " AND id < ?"
            params.append(before_id)
        sql += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_session(row) for row in rows]

    def _require_user(self, user_id: int) -> User:
        user = self.get_user(user_id)
        if user is None:
            raise LookupError(f"User {user_id} vanished after write")
        return user

    def _require_session(self, session_id: int) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise LookupError(f"Session {session_id} vanished after write")
        return session


def _row_to_user(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        external_id=row["external_id"],
        created_at=datetime.fromisoformat(row["created_at_utc"]),
        name=row["name"],
        email=row["email"],
        avatar_url=row["avatar_url"],
        timezone=row["timezone"],
    )


def _row_to_session(row: sqlite3.Row) -> Session:
    ended = row["ended_at"]
    return Session(
        id=row["id"],
        user_id=row["user_id"],
        date=row["date_label"],
        started_at=datetime.fromisoformat(row["started_at"]),
        ended_at=datetime.fromisoformat(ended) if ended else None,
        duration=row["duration_minutes"],
        description=row["description"],
    )


def _to_utc(value: datetime) -> datetime:
    """Normalize a timezone-aware datetime to UTC for storage."""
    if value.tzinfo is None:
        raise ValueError("Datetime must be timezone-aware")
    return value.astimezone(timezone.utc)


def _to_column(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    return value
