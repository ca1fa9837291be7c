"""Supabase repository for connection status events."""

from dataclasses import dataclass

from supabase import Client

from session_sync.domain.status import StatusDelta
from session_sync.services.connections import StatusEventRepository


@dataclass
class SupabaseStatusEventRepository(StatusEventRepository):
    """Supabase-backed status event audit trail."""

    client: Client

    def record(self, delta: StatusDelta) -> None:
        """Insert one status event row."""
        self.client.table("connection_status_events").insert(
            {
                "user_id": delta.user_id,
                "session_id": delta.session_id,
                "previous_state": delta.previous_state.value,
                "new_state": delta.new_state.value,
                "error": delta.error,
                "occurred_at": delta.timestamp.isoformat(),
            }
        ).execute()

    def list_recent(
        self, user_id: str | None = None, limit: int = 50
    ) -> list[dict[str, object]]:
        """Return recent status events, newest first."""
        query = self.client.table("connection_status_events").select(
            "user_id, session_id, previous_state, new_state, error, occurred_at"
        )
        if user_id is not None:
            query = query.eq("user_id", user_id)
        response = query.order("occurred_at", desc=True).limit(limit).execute()
        return list(response.data or [])
