"""Connection lifecycle orchestration between the API, sidecar and store."""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from session_sync.adapters.protocol_client import ProtocolClient
from session_sync.domain.errors import InvalidTransitionError, SessionNotFoundError
from session_sync.domain.events import AdapterEvent, AdapterEventType
from session_sync.domain.status import ConnectionState, StatusDelta
from session_sync.services.status_store import StatusStore, can_transition

logger = logging.getLogger(__name__)

_IN_PROGRESS = frozenset(
    {
        ConnectionState.CONNECTING,
        ConnectionState.QR_REQUIRED,
        ConnectionState.RECONNECTING,
    }
)


class StatusEventRepository(Protocol):
    """Persistence interface for the status event audit trail."""

    def record(self, delta: StatusDelta) -> None:
        """Persist one accepted transition."""

    def list_recent(
        self, user_id: str | None = None, limit: int = 50
    ) -> list[dict[str, object]]:
        """Return recent transitions, newest first."""


@dataclass(frozen=True)
class InitiateResult:
    """Outcome of a connection initiation request."""

    success: bool
    status: ConnectionState
    message: str


@dataclass
class ConnectionService:
    """Turns client requests and sidecar events into store transitions."""

    store: StatusStore
    protocol_client: ProtocolClient
    event_repository: StatusEventRepository | None = None

    async def initiate(self, user_id: str, session_id: str) -> InitiateResult:
        """Start a connection unless one is already active or in progress."""
        current = self.store.get(user_id, session_id)
        if current is not None:
            if current.state is ConnectionState.CONNECTED:
                return InitiateResult(
                    success=True,
                    status=current.state,
                    message="Connection already active",
                )
            if current.state in _IN_PROGRESS:
                return InitiateResult(
                    success=True,
                    status=current.state,
                    message="Connection already in progress",
                )
            if current.state is ConnectionState.CONFLICT:
                raise InvalidTransitionError(current.state, ConnectionState.CONNECTING)

        self._record(self.store.initiate(user_id, session_id))
        try:
            await self.protocol_client.start_session(user_id, session_id)
        except httpx.HTTPError as exc:
            logger.exception(
                "Protocol client failed to start session",
                extra={"user_id": user_id, "session_id": session_id},
            )
            current = self.store.get(user_id, session_id)
            if current is None or not can_transition(
                current.state, ConnectionState.FAILED
            ):
                # The session moved on while the sidecar call was pending.
                return InitiateResult(
                    success=False,
                    status=(
                        current.state
                        if current is not None
                        else ConnectionState.DISCONNECTED
                    ),
                    message="Failed to start session",
                )
            self._record(
                self.store.transition(
                    user_id, session_id, ConnectionState.FAILED, error=str(exc)
                )
            )
            return InitiateResult(
                success=False,
                status=ConnectionState.FAILED,
                message="Failed to start session",
            )
        return InitiateResult(
            success=True,
            status=ConnectionState.CONNECTING,
            message="Connection initiated successfully",
        )

    async def disconnect(self, user_id: str, session_id: str) -> StatusDelta | None:
        """Stop the session and move it to `disconnected`."""
        try:
            await self.protocol_client.stop_session(user_id, session_id)
        except httpx.HTTPError:
            logger.warning(
                "Protocol client failed to stop session",
                extra={"user_id": user_id, "session_id": session_id},
            )
        if self.store.get(user_id, session_id) is None:
            return None
        delta = self.store.transition(
            user_id, session_id, ConnectionState.DISCONNECTED
        )
        self._record(delta)
        return delta

    async def forget(self, user_id: str, session_id: str) -> bool:
        """Stop the session, drop its credentials and its status record."""
        try:
            await self.protocol_client.stop_session(user_id, session_id, forget=True)
        except httpx.HTTPError:
            logger.warning(
                "Protocol client failed to drop session",
                extra={"user_id": user_id, "session_id": session_id},
            )
        if self.store.get(user_id, session_id) is not None:
            # Live streams see the disconnect before the record disappears.
            self._record(
                self.store.transition(
                    user_id, session_id, ConnectionState.DISCONNECTED
                )
            )
        return self.store.forget(user_id, session_id)

    def resolve_conflict(self, user_id: str, session_id: str) -> StatusDelta | None:
        """Operator action clearing a conflicting device link."""
        delta = self.store.transition(
            user_id, session_id, ConnectionState.CONFLICT_RESOLVED
        )
        self._record(delta)
        return delta

    def handle_event(self, event: AdapterEvent) -> StatusDelta | None:
        """Translate a raw sidecar lifecycle event into a transition."""
        current = self.store.get(event.user_id, event.session_id)
        if current is None:
            raise SessionNotFoundError(event.user_id, event.session_id)

        if event.type is AdapterEventType.CLOSE:
            if current.state is not ConnectionState.CONNECTED:
                logger.info(
                    "Ignoring transport close outside connected state",
                    extra={
                        "user_id": event.user_id,
                        "session_id": event.session_id,
                        "state": current.state.value,
                    },
                )
                return None
            target = ConnectionState.RECONNECTING
        elif event.type is AdapterEventType.CONNECTING:
            if current.state in _IN_PROGRESS:
                return None
            target = ConnectionState.CONNECTING
        else:
            target = _EVENT_TARGETS[event.type]

        delta = self.store.transition(
            event.user_id,
            event.session_id,
            target,
            qr_code=event.qr_code,
            error=event.error,
        )
        self._record(delta)
        return delta

    def recent_events(
        self, user_id: str | None = None, limit: int = 50
    ) -> list[dict[str, object]]:
        """Return the persisted audit trail, if one is configured."""
        if self.event_repository is None:
            return []
        return self.event_repository.list_recent(user_id=user_id, limit=limit)

    def _record(self, delta: StatusDelta | None) -> None:
        if delta is None or self.event_repository is None:
            return
        try:
            self.event_repository.record(delta)
        except Exception:
            logger.exception(
                "Failed to record status event",
                extra={"user_id": delta.user_id, "session_id": delta.session_id},
            )


_EVENT_TARGETS: dict[AdapterEventType, ConnectionState] = {
    AdapterEventType.QR: ConnectionState.QR_REQUIRED,
    AdapterEventType.OPEN: ConnectionState.CONNECTED,
    AdapterEventType.ERROR: ConnectionState.FAILED,
    AdapterEventType.CONFLICT: ConnectionState.CONFLICT,
}
