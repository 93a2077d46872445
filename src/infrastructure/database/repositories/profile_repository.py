from __future__ import annotations

import os
import threading
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any

from supabase import Client

from src.domain.entities.profile import ProfileEntity
from src.domain.errors import UpstreamFailure
from src.infrastructure.database.postgres_client import get_postgres_client

# module-level in-memory store for disabled mode
_MEM_PROFILES: dict[str, ProfileEntity] = {}
_MEM_LOCK = threading.Lock()

_COLUMNS = (
    "id",
    "email",
    "first_name",
    "last_name",
    "age",
    "providers",
    "display_name",
    "photo_url",
    "email_verified",
    "created_at",
    "updated_at",
    "last_login",
)


def _parse_ts(value: Any) -> datetime | None:
    # PostgreSQL returns datetime objects, Supabase returns ISO strings
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class ProfileRepository:
    """Profile documents keyed by subject id.

    Backed by Supabase, local PostgreSQL (USE_LOCAL_DB=1) or an in-memory
    dict (SUPABASE_DISABLED=1), checked in that order of precedence:
    PostgreSQL, in-memory, Supabase.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    @property
    def in_memory(self) -> bool:
        return not (self.use_local_db and self.pg_client) and (self.disabled or self.client is None)

    def _row_to_entity(self, row: dict) -> ProfileEntity:
        age = row.get("age")
        return ProfileEntity(
            id=row["id"],
            email=row.get("email") or "",
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            age=int(age) if age is not None else None,
            providers=tuple(dict.fromkeys(row.get("providers") or ())),
            display_name=row.get("display_name"),
            photo_url=row.get("photo_url"),
            email_verified=bool(row.get("email_verified")),
            created_at=_parse_ts(row.get("created_at")),
            updated_at=_parse_ts(row.get("updated_at")),
            last_login=_parse_ts(row.get("last_login")),
        )

    @staticmethod
    def _entity_to_row(entity: ProfileEntity, *, json_safe: bool = False) -> dict[str, Any]:
        row = asdict(entity)
        row["providers"] = list(entity.providers)
        if json_safe:
            for key in ("created_at", "updated_at", "last_login"):
                if row[key] is not None:
                    row[key] = row[key].isoformat()
        return row

    def get(self, user_id: str) -> ProfileEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                row = self.pg_client.fetch_one("SELECT * FROM profiles WHERE id = %s", (user_id,))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL get profile failed: {exc}") from exc
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self.in_memory:
            with _MEM_LOCK:
                return _MEM_PROFILES.get(user_id)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("profiles").select("*").eq("id", user_id).limit(1).execute()
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB get profile failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else None  # pragma: no cover

    def create(self, entity: ProfileEntity) -> ProfileEntity:
        if self.use_local_db and self.pg_client:
            row = self._entity_to_row(entity)
            placeholders = ", ".join(["%s"] * len(_COLUMNS))
            query = f"""
                INSERT INTO profiles ({", ".join(_COLUMNS)})
                VALUES ({placeholders})
                RETURNING *
            """
            try:
                created = self.pg_client.fetch_one(query, tuple(row[c] for c in _COLUMNS))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL insert profile failed: {exc}") from exc
            return self._row_to_entity(created)

        if self.in_memory:
            with _MEM_LOCK:
                _MEM_PROFILES[entity.id] = entity
            return entity

        try:  # pragma: no cover - network
            data = self._entity_to_row(entity, json_safe=True)
            res = self.client.table("profiles").insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB insert profile failed: {exc}") from exc

    def update(self, user_id: str, changes: dict[str, Any]) -> ProfileEntity | None:
        """Merge ``changes`` into the stored profile and return the result.

        Only the given columns are written. Returns None if the profile is gone.
        """
        changes = {k: v for k, v in changes.items() if k in _COLUMNS and k != "id"}
        if not changes:
            return self.get(user_id)
        if "providers" in changes:
            changes["providers"] = list(changes["providers"])

        if self.use_local_db and self.pg_client:
            assignments = ", ".join(f"{k} = %s" for k in changes)
            query = f"UPDATE profiles SET {assignments} WHERE id = %s RETURNING *"
            try:
                row = self.pg_client.fetch_one(query, (*changes.values(), user_id))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL update profile failed: {exc}") from exc
            return self._row_to_entity(row) if row else None

        if self.in_memory:
            if "providers" in changes:
                changes["providers"] = tuple(changes["providers"])
            with _MEM_LOCK:
                current = _MEM_PROFILES.get(user_id)
                if current is None:
                    return None
                updated = replace(current, **changes)
                _MEM_PROFILES[user_id] = updated
                return updated

        try:  # pragma: no cover - network
            data = {
                k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in changes.items()
            }
            res = self.client.table("profiles").update(data).eq("id", user_id).execute()
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB update profile failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else None  # pragma: no cover

    def save(self, entity: ProfileEntity) -> ProfileEntity:
        """Persist every mutable field of ``entity``."""
        row = self._entity_to_row(entity)
        row.pop("created_at")
        saved = self.update(entity.id, row)
        if saved is None:
            return self.create(entity)
        return saved

    def delete(self, user_id: str) -> bool:
        if self.use_local_db and self.pg_client:
            try:
                return self.pg_client.execute("DELETE FROM profiles WHERE id = %s", (user_id,)) > 0
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL delete profile failed: {exc}") from exc

        if self.in_memory:
            with _MEM_LOCK:
                return _MEM_PROFILES.pop(user_id, None) is not None

        try:  # pragma: no cover - network
            res = self.client.table("profiles").delete().eq("id", user_id).execute()
            return bool(res.data)
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB delete profile failed: {exc}") from exc
