"""Domain errors raised by session sync services."""

from session_sync.domain.status import ConnectionState


class SessionSyncError(Exception):
    """Base class for session sync errors."""


class SessionNotFoundError(SessionSyncError):
    """Raised when a transition targets a session with no status record."""

    def __init__(self, user_id: str, session_id: str) -> None:
        super().__init__(f"No session {session_id!r} for user {user_id!r}")
        self.user_id = user_id
        self.session_id = session_id


class InvalidTransitionError(SessionSyncError):
    """Raised when a requested transition is not part of the state machine."""

    def __init__(self, current: ConnectionState, target: ConnectionState) -> None:
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target
