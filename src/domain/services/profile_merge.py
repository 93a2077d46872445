"""Pure helpers for folding login attributes into a stored profile."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Mapping

from src.domain.entities.profile import ProfileEntity

# Fields a login event may carry into the profile. The email is the account key
# and only changes through an explicit profile update.
MERGEABLE_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "age",
        "display_name",
        "photo_url",
        "email_verified",
    }
)


def has_value(value: Any) -> bool:
    """Whether ``value`` may overwrite a stored field.

    ``None`` and blank strings never do.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def clean_attributes(incoming: Mapping[str, Any], allowed: frozenset[str] = MERGEABLE_FIELDS) -> dict[str, Any]:
    """Drop unknown keys and empty values, trim the strings that survive."""
    out: dict[str, Any] = {}
    for key, value in incoming.items():
        if key not in allowed or not has_value(value):
            continue
        out[key] = value.strip() if isinstance(value, str) else value
    return out


def union_providers(providers: tuple[str, ...], tag: str) -> tuple[str, ...]:
    if tag in providers:
        return providers
    return (*providers, tag)


def merge_profile(
    stored: ProfileEntity,
    incoming: Mapping[str, Any],
    provider: str,
    now: datetime,
) -> ProfileEntity:
    """Merge a login event into ``stored``.

    Populated incoming values win, empty ones are dropped, the provider is
    unioned in and ``updated_at``/``last_login`` always move to ``now``.
    """
    return replace(
        stored,
        **clean_attributes(incoming),
        providers=union_providers(stored.providers, provider),
        updated_at=now,
        last_login=now,
    )


def new_profile(uid: str, email: str, incoming: Mapping[str, Any], provider: str, now: datetime) -> ProfileEntity:
    attrs = clean_attributes(incoming)
    attrs["email"] = email
    return ProfileEntity(
        id=uid,
        providers=(provider,),
        created_at=now,
        updated_at=now,
        last_login=now,
        **attrs,
    )


def split_display_name(name: str | None) -> tuple[str, str]:
    """Best-effort split of a combined display name.

    Tokens 1-2 form the first name and tokens 3 onwards the last name, which
    fits "Given Middle Paternal Maternal" names. Anything else gets a
    plausible but not guaranteed split.
    """
    tokens = (name or "").split()
    first = " ".join(tokens[:2])
    last = " ".join(tokens[2:])
    return first, last
