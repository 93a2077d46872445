from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.application.dtos.common_dto import CamelModel
from src.domain.entities.meeting import MeetingEntity


class MeetingOut(CamelModel):
    id: str = Field(..., description="Meeting identifier")
    owner_uid: str = Field(..., alias="ownerUid", description="Creator of the meeting; never changes")
    title: str = Field(..., examples=["Sprint review"])
    description: str = Field("")
    scheduled_at: str | None = Field(None, alias="scheduledAt", examples=["2026-11-02T15:00:00Z"])
    status: str = Field("scheduled")
    is_public: bool = Field(False, alias="isPublic")
    participants: list[str] = Field(default_factory=list, description="Subject ids, always including the owner")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: datetime = Field(..., alias="updatedAt")

    @classmethod
    def from_entity(cls, entity: MeetingEntity) -> MeetingOut:
        return cls(
            id=entity.id,
            owner_uid=entity.owner_uid,
            title=entity.title,
            description=entity.description,
            scheduled_at=entity.scheduled_at,
            status=entity.status,
            is_public=entity.is_public,
            participants=list(entity.participants),
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class CreateMeetingRequest(CamelModel):
    title: str | None = Field(None, examples=["Sprint review"])
    description: str | None = Field(None)
    scheduled_at: str | None = Field(None, alias="scheduledAt")
    is_public: bool = Field(False, alias="isPublic")


class UpdateMeetingRequest(CamelModel):
    """Fields left out of the body are not touched."""
    title: str | None = Field(None)
    description: str | None = Field(None)
    scheduled_at: str | None = Field(None, alias="scheduledAt")
    status: str | None = Field(None, examples=["completed"])
    is_public: bool | None = Field(None, alias="isPublic")


class MeetingResponse(CamelModel):
    success: bool = Field(True)
    meeting: MeetingOut


class ListMeetingsResponse(CamelModel):
    success: bool = Field(True)
    meetings: list[MeetingOut]
    count: int = Field(..., ge=0)
