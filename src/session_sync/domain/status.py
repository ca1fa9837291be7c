"""Domain models for session connection status."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ConnectionState(StrEnum):
    """Connection state of a single messaging session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    QR_REQUIRED = "qr_required"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    CONFLICT = "conflict"
    CONFLICT_RESOLVED = "conflict_resolved"


CONNECTING_STATES = frozenset(
    {ConnectionState.CONNECTING, ConnectionState.RECONNECTING}
)
ERROR_STATES = frozenset({ConnectionState.FAILED, ConnectionState.CONFLICT})


@dataclass(frozen=True)
class SessionStatus:
    """Current status record for one (user, session) pair."""

    user_id: str
    session_id: str
    state: ConnectionState
    updated_at: datetime
    qr_code: str | None = None
    error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def connecting(self) -> bool:
        return self.state in CONNECTING_STATES

    def to_payload(self) -> dict[str, object]:
        """Serialize the record for snapshot payloads."""
        return {
            "status": self.state.value,
            "qrCode": self.qr_code,
            "connected": self.connected,
            "connecting": self.connecting,
            "error": self.error,
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time, read-only view of all sessions for a user."""

    user_id: str
    sessions: Mapping[str, SessionStatus]
    taken_at: datetime

    def to_payload(self) -> dict[str, object]:
        return {
            "success": True,
            "userId": self.user_id,
            "timestamp": self.taken_at.isoformat(),
            "sessions": {
                session_id: status.to_payload()
                for session_id, status in self.sessions.items()
            },
        }


@dataclass(frozen=True)
class StatusDelta:
    """A single accepted state transition."""

    user_id: str
    session_id: str
    previous_state: ConnectionState
    new_state: ConnectionState
    timestamp: datetime
    error: str | None = None

    def to_payload(self) -> dict[str, object]:
        return {
            "type": "status_change",
            "userId": self.user_id,
            "sessionId": self.session_id,
            "status": self.new_state.value,
            "previousStatus": self.previous_state.value,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


def session_fields(status: SessionStatus | None) -> dict[str, object]:
    """Return the per-session polling fields, derived from the state value."""
    if status is None:
        return {
            "status": ConnectionState.DISCONNECTED.value,
            "connected": False,
            "connecting": False,
            "qrCode": None,
            "wsReady": False,
            "socketState": "not_found",
            "error": None,
        }
    return {
        "status": status.state.value,
        "connected": status.connected,
        "connecting": status.connecting,
        "qrCode": (
            status.qr_code if status.state is ConnectionState.QR_REQUIRED else None
        ),
        "wsReady": status.connected,
        "socketState": status.state.value,
        "error": status.error,
    }
