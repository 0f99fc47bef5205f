from datetime import datetime, timezone

import pytest

from timeclock.db import Database
from timeclock.errors import AuthorizationError, NotFoundError, ValidationError
from timeclock.models import Identity
from timeclock.users import UserDirectory


class FixedClock:
    def now(self) -> datetime:
        return datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def make_directory() -> UserDirectory:
    db = Database(":memory:")
    db.initialize()
    return UserDirectory(db, clock=FixedClock())


def test_user_is_created_on_first_sighting() -> None:
    users = make_directory()

    user = users.get_or_create_user("discord:1", name="Alice", email="alice@example.com")

    assert user.external_id == "discord:1"
    assert user.name == "Alice"
    assert user.timezone is None
    assert user.created_at == datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)
    assert users.list_users() == [user]


def test_later_sightings_update_without_replacing() -> None:
    users = make_directory()
    first = users.get_or_create_user("discord:1", name="Alice", email="alice@example.com")

    again = users.get_or_create_user("discord:1", name="Alice B.", timezone="Asia/Tokyo")
    blank = users.get_or_create_user("discord:1", name="", email=None)

    assert again.id == first.id
    assert again.name == "Alice B."
    assert again.email == "alice@example.com"
    assert again.timezone == "Asia/Tokyo"
    assert blank == again
    assert len(users.list_users()) == 1


def test_external_id_is_required() -> None:
    users = make_directory()

    with pytest.raises(ValidationError):
        users.get_or_create_user("")


def test_get_current_user() -> None:
    users = make_directory()
    alice = users.get_or_create_user("discord:1", name="Alice")

    assert users.get_current_user(None) is None
    assert users.get_current_user(Identity(external_id="discord:404")) is None
    assert users.get_current_user(Identity(external_id="discord:1")) == alice


def test_resolve_creates_then_reuses() -> None:
    users = make_directory()

    created = users.resolve(Identity(external_id="discord:7", name="Sam"))
    reused = users.resolve(Identity(external_id="discord:7", name="Sam"))

    assert created == reused


def test_update_user_sets_known_timezone() -> None:
    users = make_directory()
    alice = users.get_or_create_user("discord:1")

    updated = users.update_user(alice.id, alice, timezone="Asia/Kolkata")

    assert updated.timezone == "Asia/Kolkata"
    assert users.update_user(alice.id, alice, timezone=None).timezone is None


def test_update_user_rules() -> None:
    users = make_directory()
    alice = users.get_or_create_user("discord:1")
    bob = users.get_or_create_user("discord:2")

    with pytest.raises(AuthorizationError):
        users.update_user(alice.id, bob, name="Not Alice")
    with pytest.raises(ValidationError):
        users.update_user(alice.id, alice, timezone="Mars/Base")
    with pytest.raises(NotFoundError):
        users.update_user(999, alice, name="Ghost")

    assert users.get_user(alice.id) == alice


def test_concurrent_first_sighting_merges_into_existing_row(monkeypatch) -> None:
    users = make_directory()
    db = users.db
    winner = db.insert_user("discord:9", name="Nine", created_at_utc=FixedClock().now())
    real_lookup = db.get_user_by_external_id
    calls = []

    def stale_lookup(external_id):
        # The first lookup runs before the other request's insert became visible.
        calls.append(external_id)
        if len(calls) == 1:
            return None
        return real_lookup(external_id)

    monkeypatch.setattr(db, "get_user_by_external_id", stale_lookup)

    user = users.get_or_create_user("discord:9", name="Nine", email="nine@example.com")

    assert user.id == winner.id
    assert user.email == "nine@example.com"
    assert len(calls) == 2
    assert [u.id for u in users.list_users()] == [winner.id]
