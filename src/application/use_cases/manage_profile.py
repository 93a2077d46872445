from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Mapping

from src.domain.entities.profile import ProfileEntity
from src.domain.errors import Forbidden, NoValidFields, NotFound, ValidationError
from src.domain.services.profile_merge import clean_attributes
from src.domain.services.validation import email_violations, normalize_email, parse_age
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import SupabaseIdentityOracle

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"first_name", "last_name", "age", "email"})


@dataclass
class ManageProfileUseCase:
    """Profile reads and writes, each restricted to the profile's own subject."""

    oracle: SupabaseIdentityOracle
    profiles: ProfileRepository

    @staticmethod
    def _authorize(subject_id: str, uid: str) -> None:
        if subject_id != uid:
            raise Forbidden()

    def _load(self, uid: str) -> ProfileEntity:
        profile = self.profiles.get(uid)
        if profile is None:
            raise NotFound("User not found")
        return profile

    def get(self, subject_id: str, uid: str) -> ProfileEntity:
        self._authorize(subject_id, uid)
        return self._load(uid)

    def update(self, subject_id: str, uid: str, body: Mapping[str, Any]) -> tuple[ProfileEntity, list[str]]:
        """
        Apply the allow-listed fields of ``body`` to the profile.

        Keys outside the allow-list are ignored and blank values are dropped.
        An email change is pushed to the identity oracle and leaves the
        account unverified.

        Returns:
            The updated profile and the names of the fields written.
        """
        self._authorize(subject_id, uid)
        current = self._load(uid)

        changes = clean_attributes(body, allowed=UPDATABLE_FIELDS)
        if not changes:
            raise NoValidFields()

        problems: list[str] = []
        if "age" in changes:
            changes["age"], age_problems = parse_age(changes["age"])
            problems += age_problems
        if "email" in changes:
            changes["email"] = normalize_email(changes["email"])
            problems += email_violations(changes["email"])
        if problems:
            raise ValidationError(problems)

        updated_fields = sorted(changes)
        email_changed = changes.get("email", current.email) != current.email
        if email_changed:
            other = self.oracle.find_by_email(changes["email"])
            if other is not None and other.id != uid:
                raise ValidationError("email is already in use")
            self.oracle.update_email(uid, changes["email"])
            changes["email_verified"] = False
            logger.info("Email changed for account %s, marked unverified", uid)

        changes["updated_at"] = datetime.now(UTC)
        try:
            updated = self.profiles.update(uid, changes)
        except Exception:
            if email_changed:
                self._restore_email(current)
            raise
        if updated is None:
            if email_changed:
                self._restore_email(current)
            raise NotFound("User not found")
        return updated, updated_fields

    def _restore_email(self, previous: ProfileEntity) -> None:
        # the oracle already holds the new address; put the old one back
        logger.warning("Profile write failed for account %s, restoring its email", previous.id)
        self.oracle.update_email(previous.id, previous.email, verified=previous.email_verified)

    def delete(self, subject_id: str, uid: str) -> None:
        self._authorize(subject_id, uid)
        self._load(uid)
        self.profiles.delete(uid)
        self.oracle.delete_account(uid)
        logger.info("Deleted account %s", uid)
