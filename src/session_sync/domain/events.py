"""Lifecycle events reported by the messaging protocol sidecar."""

from dataclasses import dataclass
from enum import StrEnum


class AdapterEventType(StrEnum):
    """Raw lifecycle events emitted per session by the protocol client."""

    CONNECTING = "connecting"
    QR = "qr"
    OPEN = "open"
    CLOSE = "close"
    ERROR = "error"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class AdapterEvent:
    """One lifecycle event for a (user, session) pair."""

    user_id: str
    session_id: str
    type: AdapterEventType
    qr_code: str | None = None
    error: str | None = None
