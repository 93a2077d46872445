from __future__ import annotations

import os
import threading
import uuid
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from supabase import Client

from src.domain.entities.meeting import MeetingEntity
from src.domain.errors import UpstreamFailure
from src.infrastructure.database.postgres_client import get_postgres_client

# module-level in-memory store for disabled mode
_MEM_MEETINGS: dict[str, MeetingEntity] = {}
_MEM_LOCK = threading.Lock()

UPDATABLE_COLUMNS = ("title", "description", "scheduled_at", "status", "is_public")


class MeetingRepository:
    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    @property
    def in_memory(self) -> bool:
        return not (self.use_local_db and self.pg_client) and (self.disabled or self.client is None)

    def _row_to_entity(self, row: dict) -> MeetingEntity:
        created_at = row["created_at"]
        updated_at = row.get("updated_at") or created_at
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return MeetingEntity(
            id=str(row["id"]),
            owner_uid=row["owner_uid"],
            title=row["title"],
            description=row.get("description") or "",
            scheduled_at=row.get("scheduled_at"),
            status=row.get("status") or "scheduled",
            is_public=bool(row.get("is_public")),
            participants=tuple(dict.fromkeys(row.get("participants") or ())),
            created_at=created_at,
            updated_at=updated_at,
        )

    def create(
        self,
        owner_uid: str,
        title: str,
        description: str,
        scheduled_at: str | None,
        status: str,
        is_public: bool,
    ) -> MeetingEntity:
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                INSERT INTO meetings (
                    owner_uid, title, description, scheduled_at, status,
                    is_public, participants, created_at, updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
            """
            try:
                row = self.pg_client.fetch_one(
                    query,
                    (owner_uid, title, description, scheduled_at, status, is_public, [owner_uid], now, now),
                )
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL insert meeting failed: {exc}") from exc
            return self._row_to_entity(row)

        # In-memory mode
        if self.in_memory:
            entity = MeetingEntity(
                id=uuid.uuid4().hex,
                owner_uid=owner_uid,
                title=title,
                description=description,
                scheduled_at=scheduled_at,
                status=status,
                is_public=is_public,
                participants=(owner_uid,),
                created_at=now,
                updated_at=now,
            )
            _MEM_MEETINGS[entity.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            data = {
                "owner_uid": owner_uid,
                "title": title,
                "description": description,
                "scheduled_at": scheduled_at,
                "status": status,
                "is_public": is_public,
                "participants": [owner_uid],
                "created_at": now.isoformat(),
                "updated_at": now.isoformat(),
            }
            res = self.client.table("meetings").insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB insert meeting failed: {exc}") from exc

    def get(self, meeting_id: str) -> MeetingEntity | None:
        if self.use_local_db and self.pg_client:
            try:
                row = self.pg_client.fetch_one("SELECT * FROM meetings WHERE id = %s", (meeting_id,))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL get meeting failed: {exc}") from exc
            return self._row_to_entity(row) if row else None

        if self.in_memory:
            return _MEM_MEETINGS.get(meeting_id)

        try:  # pragma: no cover - network
            res = self.client.table("meetings").select("*").eq("id", meeting_id).limit(1).execute()
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB get meeting failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else None  # pragma: no cover

    def list_by_owner(self, owner_uid: str) -> list[MeetingEntity]:
        """Meetings owned by ``owner_uid``, newest first."""
        if self.use_local_db and self.pg_client:
            query = "SELECT * FROM meetings WHERE owner_uid = %s ORDER BY created_at DESC"
            try:
                rows = self.pg_client.fetch_all(query, (owner_uid,))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL list meetings failed: {exc}") from exc
            return [self._row_to_entity(row) for row in rows]

        if self.in_memory:
            owned = [m for m in _MEM_MEETINGS.values() if m.owner_uid == owner_uid]
            return sorted(owned, key=lambda m: m.created_at, reverse=True)

        try:  # pragma: no cover - network
            res = (
                self.client.table("meetings")
                .select("*")
                .eq("owner_uid", owner_uid)
                .order("created_at", desc=True)
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB list meetings failed: {exc}") from exc

    def update(self, meeting_id: str, changes: dict[str, Any]) -> MeetingEntity | None:
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_COLUMNS}
        now = datetime.now(UTC)

        if self.use_local_db and self.pg_client:
            assignments = ", ".join(f"{k} = %s" for k in (*changes, "updated_at"))
            query = f"UPDATE meetings SET {assignments} WHERE id = %s RETURNING *"
            try:
                row = self.pg_client.fetch_one(query, (*changes.values(), now, meeting_id))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL update meeting failed: {exc}") from exc
            return self._row_to_entity(row) if row else None

        if self.in_memory:
            with _MEM_LOCK:
                current = _MEM_MEETINGS.get(meeting_id)
                if current is None:
                    return None
                updated = replace(current, **changes, updated_at=now)
                _MEM_MEETINGS[meeting_id] = updated
                return updated

        try:  # pragma: no cover - network
            data = {**changes, "updated_at": now.isoformat()}
            res = self.client.table("meetings").update(data).eq("id", meeting_id).execute()
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB update meeting failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else None  # pragma: no cover

    def add_participant(self, meeting_id: str, uid: str) -> MeetingEntity | None:
        """Append ``uid`` to the participants unless it is already there."""
        if self.use_local_db and self.pg_client:
            query = """
                UPDATE meetings
                SET participants = array_append(participants, %s)
                WHERE id = %s AND NOT (%s = ANY(participants))
                RETURNING *
            """
            try:
                row = self.pg_client.fetch_one(query, (uid, meeting_id, uid))
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL add participant failed: {exc}") from exc
            return self._row_to_entity(row) if row else self.get(meeting_id)

        if self.in_memory:
            with _MEM_LOCK:
                current = _MEM_MEETINGS.get(meeting_id)
                if current is None or uid in current.participants:
                    return current
                updated = replace(current, participants=(*current.participants, uid))
                _MEM_MEETINGS[meeting_id] = updated
                return updated

        # read-modify-write; the last writer wins if two readers enroll at once
        current = self.get(meeting_id)  # pragma: no cover - network
        if current is None or uid in current.participants:  # pragma: no cover
            return current
        try:  # pragma: no cover - network
            res = (
                self.client.table("meetings")
                .update({"participants": [*current.participants, uid]})
                .eq("id", meeting_id)
                .execute()
            )
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB add participant failed: {exc}") from exc
        return self._row_to_entity(res.data[0]) if res.data else None  # pragma: no cover

    def delete(self, meeting_id: str) -> bool:
        if self.use_local_db and self.pg_client:
            try:
                return self.pg_client.execute("DELETE FROM meetings WHERE id = %s", (meeting_id,)) > 0
            except Exception as exc:
                raise UpstreamFailure(f"PostgreSQL delete meeting failed: {exc}") from exc

        if self.in_memory:
            return _MEM_MEETINGS.pop(meeting_id, None) is not None

        try:  # pragma: no cover - network
            res = self.client.table("meetings").delete().eq("id", meeting_id).execute()
            return bool(res.data)
        except Exception as exc:  # pragma: no cover - network
            raise UpstreamFailure(f"DB delete meeting failed: {exc}") from exc
