from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

MANUAL = "manual"
GOOGLE = "google"
GITHUB = "github"
FACEBOOK = "facebook"

PROVIDER_TAGS = (MANUAL, GOOGLE, GITHUB, FACEBOOK)


@dataclass(frozen=True)
class ProfileEntity:
    id: str  # subject id assigned by the identity oracle
    email: str
    first_name: str = ""
    last_name: str = ""
    age: int | None = None
    providers: tuple[str, ...] = ()
    display_name: str | None = None
    photo_url: str | None = None
    email_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login: datetime | None = None

    def has_provider(self, tag: str) -> bool:
        return tag in self.providers
