"""Login provider descriptors.

Every OAuth provider goes through the same reconciliation routine. What
differs between them is how the account is looked up and how names and
identity fields are read from the client-supplied profile, which is what a
``ProviderDescriptor`` captures.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from src.domain.entities.profile import FACEBOOK, GITHUB, GOOGLE, MANUAL
from src.domain.errors import ValidationError
from src.domain.services.profile_merge import split_display_name
from src.domain.services.validation import email_violations, normalize_email

LOOKUP_EMAIL = "email"
LOOKUP_EXTERNAL_ID = "external_id"

GITHUB_NOREPLY_DOMAIN = "users.noreply.github.com"


@dataclass(frozen=True)
class ExternalIdentity:
    email: str
    external_id: str | None
    attributes: dict[str, Any] = field(default_factory=dict)
    # false when the email was derived from the external id
    email_supplied: bool = True


def _first(data: Mapping[str, Any], *keys: str) -> str | None:
    """First non-blank string among ``keys``; other types are skipped."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _identity_field(data: Mapping[str, Any], key: str, types: tuple[type, ...], expected: str) -> str | None:
    value = data.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool) or not isinstance(value, types):
        raise ValidationError(f"userProfile.{key} must be {expected}")
    return str(value).strip()


def _names_from(given_key: str, family_key: str) -> Callable[[Mapping[str, Any]], tuple[str, str]]:
    def extract(data: Mapping[str, Any]) -> tuple[str, str]:
        given = _first(data, given_key)
        family = _first(data, family_key)
        if given or family:
            return given or "", family or ""
        return split_display_name(_first(data, "name", "displayName"))

    return extract


def _github_names(data: Mapping[str, Any]) -> tuple[str, str]:
    name = _first(data, "name", "displayName")
    if name:
        return split_display_name(name)
    return _first(data, "login") or "", ""


@dataclass(frozen=True)
class ProviderDescriptor:
    tag: str
    lookup: str
    extract_names: Callable[[Mapping[str, Any]], tuple[str, str]]

    def identify(self, profile: Mapping[str, Any]) -> ExternalIdentity:
        """Read identity and profile attributes from an OAuth ``userProfile``."""
        email = _identity_field(profile, "email", (str,), "a string")
        email_supplied = email is not None
        external_id = None
        for key in ("uid", "id", "sub"):
            external_id = _identity_field(profile, key, (str, int), "a string or an integer")
            if external_id is not None:
                break
        if self.lookup == LOOKUP_EXTERNAL_ID:
            if not external_id and not email:
                raise ValidationError("userProfile.email or userProfile.uid is required")
            if not email:
                email = f"{external_id}@{GITHUB_NOREPLY_DOMAIN}"
        elif not email:
            raise ValidationError("userProfile.email is required")
        email = normalize_email(email)
        problems = email_violations(email)
        if problems:
            raise ValidationError(problems)

        first_name, last_name = self.extract_names(profile)
        attributes = {
            "first_name": first_name,
            "last_name": last_name,
            "display_name": _first(profile, "displayName", "name", "login"),
            "photo_url": _first(profile, "photoURL", "picture", "avatar_url"),
            "email_verified": True,
        }
        return ExternalIdentity(
            email=email,
            external_id=external_id,
            attributes=attributes,
            email_supplied=email_supplied,
        )


PROVIDERS: dict[str, ProviderDescriptor] = {
    GOOGLE: ProviderDescriptor(GOOGLE, LOOKUP_EMAIL, _names_from("given_name", "family_name")),
    FACEBOOK: ProviderDescriptor(FACEBOOK, LOOKUP_EMAIL, _names_from("first_name", "last_name")),
    GITHUB: ProviderDescriptor(GITHUB, LOOKUP_EXTERNAL_ID, _github_names),
}

OAUTH_PROVIDERS = tuple(PROVIDERS)


def get_provider(tag: str) -> ProviderDescriptor:
    if tag == MANUAL or tag not in PROVIDERS:
        raise ValidationError(f"Unsupported OAuth provider: {tag}")
    return PROVIDERS[tag]
