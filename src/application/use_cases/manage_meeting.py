from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from src.domain.entities.meeting import DEFAULT_STATUS, DEFAULT_TITLE, MeetingEntity
from src.domain.errors import Forbidden, NotFound
from src.infrastructure.database.repositories.meeting_repository import (
    UPDATABLE_COLUMNS,
    MeetingRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class ManageMeetingUseCase:
    """
    Meeting access control.

    Only the owner may change or delete a meeting. Reading is open to the
    owner, participants and, for public meetings, any authenticated user; a
    successful read of a public meeting enrolls the reader as a participant.
    """

    meetings: MeetingRepository

    def _load(self, meeting_id: str) -> MeetingEntity:
        meeting = self.meetings.get(meeting_id)
        if meeting is None:
            raise NotFound("Meeting not found")
        return meeting

    def create(
        self,
        owner_uid: str,
        *,
        title: str | None = None,
        description: str | None = None,
        scheduled_at: str | None = None,
        is_public: bool = False,
    ) -> MeetingEntity:
        meeting = self.meetings.create(
            owner_uid=owner_uid,
            title=(title or "").strip() or DEFAULT_TITLE,
            description=description or "",
            scheduled_at=scheduled_at or None,
            status=DEFAULT_STATUS,
            is_public=bool(is_public),
        )
        logger.info("Meeting %s created by %s", meeting.id, owner_uid)
        return meeting

    def list_owned(self, owner_uid: str) -> list[MeetingEntity]:
        return self.meetings.list_by_owner(owner_uid)

    def get(self, uid: str, meeting_id: str) -> MeetingEntity:
        meeting = self._load(meeting_id)
        if meeting.is_participant(uid):
            return meeting
        if not meeting.is_public:
            raise Forbidden()
        enrolled = self.meetings.add_participant(meeting_id, uid)
        if enrolled is None:
            raise NotFound("Meeting not found")
        logger.info("User %s joined public meeting %s", uid, meeting_id)
        return enrolled

    def update(self, uid: str, meeting_id: str, changes: Mapping[str, Any]) -> MeetingEntity:
        meeting = self._load(meeting_id)
        if meeting.owner_uid != uid:
            raise Forbidden()
        allowed = {k: v for k, v in changes.items() if k in UPDATABLE_COLUMNS and v is not None}
        updated = self.meetings.update(meeting_id, allowed)
        if updated is None:
            raise NotFound("Meeting not found")
        return updated

    def delete(self, uid: str, meeting_id: str) -> None:
        meeting = self._load(meeting_id)
        if meeting.owner_uid != uid:
            raise Forbidden()
        self.meetings.delete(meeting_id)
        logger.info("Meeting %s deleted by %s", meeting_id, uid)
