from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .db import Database
from .stats import Reporter
from .timezones import Clock, SystemClock
from .tracker import SessionTracker
from .users import UserDirectory


@dataclass(frozen=True)
class Container:
    db: Database
    users: UserDirectory
    tracker: SessionTracker
    reporter: Reporter


def build_container(db: Database | str | Path, *, clock: Clock | None = None) -> Container:
    if not isinstance(db, Database):
        db = Database(db)
    db.initialize()

    clock = clock or SystemClock()
    return Container(
        db=db,
        users=UserDirectory(db, clock=clock),
        tracker=SessionTracker(db, clock=clock),
        reporter=Reporter(db, clock=clock),
    )
