"""User-visible notifications for connection state changes."""

import logging
from dataclasses import dataclass
from typing import Final, Protocol

from session_sync.domain.status import ConnectionState

logger = logging.getLogger(__name__)

UNKNOWN: Final = "unknown"

_S = ConnectionState
_ANY = "*"

# (previous, new) -> (title, body template); "*" matches any previous state.
_TRANSITION_MESSAGES: dict[tuple[str, str], tuple[str, str]] = {
    (_S.DISCONNECTED.value, _S.CONNECTING.value): (
        "WhatsApp Connecting",
        "Session {session_id} is establishing connection...",
    ),
    (_S.FAILED.value, _S.CONNECTING.value): (
        "WhatsApp Connecting",
        "Session {session_id} is retrying the connection...",
    ),
    (_S.CONFLICT_RESOLVED.value, _S.CONNECTING.value): (
        "WhatsApp Connecting",
        "Session {session_id} is establishing connection...",
    ),
    (_S.CONNECTING.value, _S.QR_REQUIRED.value): (
        "WhatsApp Pairing Required",
        "Session {session_id} is waiting for the QR code to be scanned",
    ),
    (_S.QR_REQUIRED.value, _S.CONNECTED.value): (
        "WhatsApp Connected",
        "Session {session_id} is now connected and ready",
    ),
    (_S.CONNECTING.value, _S.CONNECTED.value): (
        "WhatsApp Connected",
        "Session {session_id} is now connected and ready",
    ),
    (_S.RECONNECTING.value, _S.CONNECTED.value): (
        "WhatsApp Reconnected",
        "Session {session_id} is connected again",
    ),
    (_S.CONNECTED.value, _S.RECONNECTING.value): (
        "WhatsApp Reconnecting",
        "Session {session_id} lost connection, attempting to reconnect...",
    ),
    (_S.CONNECTED.value, _S.DISCONNECTED.value): (
        "WhatsApp Disconnected",
        "Session {session_id} has been disconnected",
    ),
    (_ANY, _S.FAILED.value): (
        "WhatsApp Connection Failed",
        "Session {session_id} failed to connect. Please check your connection.",
    ),
    (_ANY, _S.CONFLICT.value): (
        "WhatsApp Linked Elsewhere",
        "Session {session_id} is already linked on another device. "
        "Resolve the conflict to continue.",
    ),
    (_S.CONFLICT.value, _S.CONFLICT_RESOLVED.value): (
        "WhatsApp Conflict Resolved",
        "Session {session_id} can be connected again",
    ),
}


@dataclass(frozen=True)
class Notification:
    """A notification ready to be shown to the user."""

    title: str
    body: str
    session_id: str
    previous_state: str
    new_state: str


class Notifier(Protocol):
    """Delivery surface for notifications."""

    async def send(self, notification: Notification) -> None:
        """Show a notification to the user."""


@dataclass
class LoggingNotifier:
    """Notifier that writes notifications to the application log."""

    level: int = logging.INFO

    async def send(self, notification: Notification) -> None:
        logger.log(
            self.level,
            "%s: %s",
            notification.title,
            notification.body,
            extra={"session_id": notification.session_id},
        )


def build_notification(
    previous_state: str, new_state: str, session_id: str
) -> Notification:
    """Pick the fixed message for a transition, or the generic fallback."""
    previous_state, new_state = str(previous_state), str(new_state)
    template = _TRANSITION_MESSAGES.get(
        (previous_state, new_state)
    ) or _TRANSITION_MESSAGES.get((_ANY, new_state))
    if template is None:
        title = "WhatsApp Status Changed"
        body = (
            f"Session {session_id}: state changed from {previous_state} "
            f"to {new_state}"
        )
    else:
        title, body_template = template
        body = body_template.format(session_id=session_id)
    return Notification(
        title=title,
        body=body,
        session_id=session_id,
        previous_state=previous_state,
        new_state=new_state,
    )


@dataclass
class NotificationDispatcher:
    """Fires a notification for real transitions only."""

    notifier: Notifier

    async def notify(
        self, previous_state: str, new_state: str, session_id: str
    ) -> bool:
        """Notify about a transition, returning whether one was sent."""
        if previous_state == UNKNOWN or previous_state == new_state:
            return False
        notification = build_notification(previous_state, new_state, session_id)
        try:
            await self.notifier.send(notification)
        except Exception:
            logger.exception(
                "Failed to deliver notification", extra={"session_id": session_id}
            )
            return False
        return True
