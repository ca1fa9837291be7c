"""In-memory status store and connection state machine."""

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Protocol

from session_sync.domain.errors import InvalidTransitionError, SessionNotFoundError
from session_sync.domain.status import (
    ERROR_STATES,
    ConnectionState,
    SessionStatus,
    StatusDelta,
    StatusSnapshot,
)

logger = logging.getLogger(__name__)

_S = ConnectionState

# Targets reachable from every state.
_UNIVERSAL_TARGETS = frozenset({_S.CONFLICT, _S.DISCONNECTED})

ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    _S.DISCONNECTED: frozenset({_S.CONNECTING}),
    _S.CONNECTING: frozenset({_S.QR_REQUIRED, _S.CONNECTED, _S.FAILED}),
    _S.QR_REQUIRED: frozenset({_S.CONNECTED, _S.FAILED}),
    _S.CONNECTED: frozenset({_S.RECONNECTING}),
    _S.RECONNECTING: frozenset({_S.CONNECTED, _S.FAILED}),
    _S.FAILED: frozenset({_S.CONNECTING}),
    _S.CONFLICT: frozenset({_S.CONFLICT_RESOLVED}),
    _S.CONFLICT_RESOLVED: frozenset({_S.CONNECTING}),
}


def can_transition(current: ConnectionState, target: ConnectionState) -> bool:
    """Return true when the state machine allows moving to the target."""
    return target in _UNIVERSAL_TARGETS or target in ALLOWED_TRANSITIONS[current]


class DeltaPublisher(Protocol):
    """Receiver of accepted transitions."""

    def publish(self, delta: StatusDelta) -> int:
        """Push a delta to interested parties."""


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class StatusStore:
    """Authoritative registry of session states for the server process.

    All mutations happen under one lock, and accepted transitions are
    published before the lock is released, so subscribers observe deltas
    for a session in acceptance order.
    """

    def __init__(
        self,
        publisher: DeltaPublisher | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.publisher = publisher
        self.clock = clock
        self._records: dict[tuple[str, str], SessionStatus] = {}
        self._lock = threading.RLock()

    def get(self, user_id: str, session_id: str) -> SessionStatus | None:
        with self._lock:
            return self._records.get((user_id, session_id))

    def snapshot(self, user_id: str) -> StatusSnapshot:
        """Return a read-only copy of all sessions for a user."""
        with self._lock:
            sessions = {
                session_id: record
                for (owner, session_id), record in self._records.items()
                if owner == user_id
            }
        return StatusSnapshot(
            user_id=user_id,
            sessions=MappingProxyType(sessions),
            taken_at=self.clock(),
        )

    def sessions(self) -> list[SessionStatus]:
        """Return every tracked session, newest update first."""
        with self._lock:
            records = list(self._records.values())
        return sorted(records, key=lambda record: record.updated_at, reverse=True)

    def initiate(self, user_id: str, session_id: str) -> StatusDelta | None:
        """Request `connecting`, creating the record on first use."""
        with self._lock:
            key = (user_id, session_id)
            if key not in self._records:
                self._records[key] = SessionStatus(
                    user_id=user_id,
                    session_id=session_id,
                    state=ConnectionState.DISCONNECTED,
                    updated_at=self.clock(),
                )
            return self._transition_locked(key, ConnectionState.CONNECTING)

    def transition(
        self,
        user_id: str,
        session_id: str,
        target: ConnectionState,
        qr_code: str | None = None,
        error: str | None = None,
    ) -> StatusDelta | None:
        """Apply a transition and return its delta, or None for a no-op."""
        with self._lock:
            key = (user_id, session_id)
            if key not in self._records:
                raise SessionNotFoundError(user_id, session_id)
            return self._transition_locked(key, target, qr_code=qr_code, error=error)

    def forget(self, user_id: str, session_id: str) -> bool:
        """Drop a session record entirely."""
        with self._lock:
            removed = self._records.pop((user_id, session_id), None)
        if removed is not None:
            logger.info(
                "Session record removed",
                extra={"user_id": user_id, "session_id": session_id},
            )
        return removed is not None

    def _transition_locked(
        self,
        key: tuple[str, str],
        target: ConnectionState,
        qr_code: str | None = None,
        error: str | None = None,
    ) -> StatusDelta | None:
        current = self._records[key]
        if current.state is target:
            if target is ConnectionState.QR_REQUIRED and qr_code:
                # Refreshed pairing code: keep it, but this is not a transition.
                self._records[key] = replace(current, qr_code=qr_code)
            return None
        if not can_transition(current.state, target):
            raise InvalidTransitionError(current.state, target)

        now = self.clock()
        self._records[key] = SessionStatus(
            user_id=current.user_id,
            session_id=current.session_id,
            state=target,
            updated_at=now,
            qr_code=qr_code if target is ConnectionState.QR_REQUIRED else None,
            error=error if target in ERROR_STATES else None,
        )
        delta = StatusDelta(
            user_id=current.user_id,
            session_id=current.session_id,
            previous_state=current.state,
            new_state=target,
            timestamp=now,
            error=error,
        )
        logger.info(
            "Session state changed",
            extra={
                "user_id": current.user_id,
                "session_id": current.session_id,
                "previous_state": current.state.value,
                "new_state": target.value,
            },
        )
        if self.publisher is not None:
            self.publisher.publish(delta)
        return delta
