from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from src.application.dtos.common_dto import CamelModel
from src.domain.entities.profile import ProfileEntity


class ProfileOut(CamelModel):
    """Public view of a user profile."""
    uid: str = Field(..., description="Subject id assigned by the identity provider")
    first_name: str = Field("", alias="firstName", examples=["Ana"])
    last_name: str = Field("", alias="lastName", examples=["García"])
    age: int | None = Field(None, description="Age in years, at least 13", examples=[27])
    email: str = Field(..., examples=["ana@example.com"])
    providers: list[str] = Field(default_factory=list, description="Login methods linked to the account", examples=[["manual", "google"]])
    display_name: str | None = Field(None, alias="displayName")
    photo_url: str | None = Field(None, alias="photoURL")
    email_verified: bool = Field(False, alias="emailVerified")
    created_at: datetime | None = Field(None, alias="createdAt")
    updated_at: datetime | None = Field(None, alias="updatedAt")
    last_login: datetime | None = Field(None, alias="lastLogin")

    @classmethod
    def from_entity(cls, entity: ProfileEntity) -> ProfileOut:
        return cls(
            uid=entity.id,
            first_name=entity.first_name,
            last_name=entity.last_name,
            age=entity.age,
            email=entity.email,
            providers=list(entity.providers),
            display_name=entity.display_name,
            photo_url=entity.photo_url,
            email_verified=entity.email_verified,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
            last_login=entity.last_login,
        )


class RegisterRequest(CamelModel):
    """Manual registration payload. Rules are checked server-side so every broken one is reported."""
    first_name: str | None = Field(None, alias="firstName", examples=["Ana"])
    last_name: str | None = Field(None, alias="lastName", examples=["García"])
    age: int | str | None = Field(None, examples=[27])
    email: str | None = Field(None, examples=["ana@example.com"])
    password: str | None = Field(None, description="8+ chars with lower, upper, digit and symbol", examples=["Abcdef1!"])


class LoginRequest(CamelModel):
    email: str | None = Field(None, examples=["ana@example.com"])
    password: str | None = Field(None, examples=["Abcdef1!"])


class OAuthRequest(CamelModel):
    """OAuth callback payload forwarded by the frontend after the provider sign-in."""
    token: str | None = Field(None, description="Access token of the provider sign-in; required")
    user_profile: dict[str, Any] | None = Field(
        None,
        alias="userProfile",
        description="Provider profile: email (or uid for GitHub), name/displayName, picture...",
        examples=[{"email": "ana@example.com", "name": "Ana García", "picture": "https://example.com/a.png"}],
    )


class AuthResponse(CamelModel):
    """Successful authentication with a fresh session token."""
    success: bool = Field(True)
    user: ProfileOut
    token: str = Field(..., description="Bearer token for subsequent requests")
