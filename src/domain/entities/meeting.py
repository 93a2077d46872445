from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

DEFAULT_TITLE = "Untitled Meeting"
DEFAULT_STATUS = "scheduled"


@dataclass(frozen=True)
class MeetingEntity:
    id: str
    owner_uid: str  # immutable after creation
    title: str
    created_at: datetime
    updated_at: datetime
    description: str = ""
    scheduled_at: str | None = None
    status: str = DEFAULT_STATUS
    is_public: bool = False
    participants: tuple[str, ...] = ()  # always contains owner_uid

    def is_participant(self, uid: str) -> bool:
        return uid == self.owner_uid or uid in self.participants
