from __future__ import annotations

import logging
import sqlite3

from .db import Database
from .errors import AuthorizationError, NotFoundError, ValidationError
from .models import UNSET, Identity, User
from .timezones import Clock, SystemClock, is_known_zone


class UserDirectory:
    """Maps external identities onto internal user records."""

    def __init__(self, db: Database, clock: Clock | None = None, logger: logging.Logger | None = None) -> None:
        self.db = db
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger(__name__)

    def get_or_create_user(
        self,
        external_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        avatar_url: str | None = None,
        timezone: str | None = None,
    ) -> User:
        if not external_id:
            raise ValidationError("external_id is required")

        existing = self.db.get_user_by_external_id(external_id)
        if existing is None:
            try:
                user = self.db.insert_user(
                    external_id,
                    name=name,
                    email=email,
                    avatar_url=avatar_url,
                    timezone_id=timezone,
                    created_at_utc=self.clock.now(),
                )
            except sqlite3.IntegrityError:
                # A concurrent first sighting inserted the row; merge into it below.
                existing = self.db.get_user_by_external_id(external_id)
                if existing is None:
                    raise
            else:
                self.logger.info("User created: id=%s external_id=%s", user.id, external_id)
                return user

        # Only non-empty values overwrite what is already stored.
        supplied = {
            "name": name,
            "email": email,
            "avatar_url": avatar_url,
            "timezone": timezone,
        }
        changes = {
            key: value
            for key, value in supplied.items()
            if value and value != getattr(existing, key)
        }
        if not changes:
            return existing

        self.logger.debug("Refreshing user %s fields: %s", existing.id, sorted(changes))
        return self.db.update_user(existing.id, changes)

    def get_current_user(self, identity: Identity | None) -> User | None:
        if identity is None:
            return None
        return self.db.get_user_by_external_id(identity.external_id)

    def resolve(self, identity: Identity) -> User:
        """Resolve the acting user once at the boundary, creating it on first sighting."""
        return self.get_or_create_user(
            identity.external_id,
            name=identity.name,
            email=identity.email,
            avatar_url=identity.avatar_url,
        )

    def get_user(self, user_id: int) -> User:
        user = self.db.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def list_users(self) -> list[User]:
        return self.db.list_users()

    def update_user(
        self,
        user_id: int,
        actor: User,
        *,
        name=UNSET,
        email=UNSET,
        avatar_url=UNSET,
        timezone=UNSET,
    ) -> User:
        user = self.get_user(user_id)
        if actor.id != user.id:
            raise AuthorizationError("Users may only update their own profile")

        if timezone is not UNSET and timezone is not None and not is_known_zone(timezone):
            raise ValidationError(f"Unsupported timezone: {timezone}")

        changes = {
            key: value
            for key, value in {
                "name": name,
                "email": email,
                "avatar_url": avatar_url,
                "timezone": timezone,
            }.items()
            if value is not UNSET
        }
        if not changes:
            return user

        updated = self.db.update_user(user.id, changes)
        self.logger.info("User updated: id=%s fields=%s", user.id, sorted(changes))
        return updated
