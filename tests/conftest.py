"""Shared test fixtures."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from session_sync.adapters.protocol_client import ProtocolClient
from session_sync.client.api import StatusApi
from session_sync.client.notifications import (
    Notification,
    NotificationDispatcher,
    Notifier,
)
from session_sync.config import Settings
from session_sync.containers import AppContainer
from session_sync.domain.status import StatusDelta
from session_sync.services.broadcaster import ChangeBroadcaster
from session_sync.services.connections import (
    ConnectionService,
    StatusEventRepository,
)
from session_sync.services.status_store import StatusStore


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self) -> None:
        self.current = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@dataclass
class RecordingPublisher:
    """Publisher that keeps every delta it receives."""

    deltas: list[StatusDelta] = field(default_factory=list)

    def publish(self, delta: StatusDelta) -> int:
        self.deltas.append(delta)
        return 1


@dataclass
class FakeProtocolClient(ProtocolClient):
    """Fake protocol sidecar that records calls."""

    started: list[tuple[str, str]] = field(default_factory=list)
    stopped: list[tuple[str, str, bool]] = field(default_factory=list)
    fail_start: bool = False
    fail_stop: bool = False

    async def start_session(self, user_id: str, session_id: str) -> None:
        if self.fail_start:
            raise httpx.ConnectError("sidecar unreachable")
        self.started.append((user_id, session_id))

    async def stop_session(
        self, user_id: str, session_id: str, forget: bool = False
    ) -> None:
        if self.fail_stop:
            raise httpx.ConnectError("sidecar unreachable")
        self.stopped.append((user_id, session_id, forget))


@dataclass
class InMemoryStatusEventRepository(StatusEventRepository):
    """In-memory audit trail for tests."""

    events: list[StatusDelta] = field(default_factory=list)
    fail: bool = False

    def record(self, delta: StatusDelta) -> None:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.events.append(delta)

    def list_recent(
        self, user_id: str | None = None, limit: int = 50
    ) -> list[dict[str, object]]:
        rows = [
            {
                "user_id": event.user_id,
                "session_id": event.session_id,
                "previous_state": event.previous_state.value,
                "new_state": event.new_state.value,
            }
            for event in reversed(self.events)
            if user_id is None or event.user_id == user_id
        ]
        return rows[:limit]


@dataclass
class RecordingNotifier(Notifier):
    """Notifier that keeps every notification it is asked to show."""

    sent: list[Notification] = field(default_factory=list)

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    @property
    def transitions(self) -> list[tuple[str, str, str]]:
        return [
            (item.session_id, item.previous_state, item.new_state)
            for item in self.sent
        ]


def snapshot_payload(**sessions: str) -> dict[str, object]:
    """Build a snapshot body in the server's wire format."""
    return {
        "success": True,
        "userId": "user-1",
        "sessions": {
            session_id: {"status": state, "qrCode": None, "error": None}
            for session_id, state in sessions.items()
        },
    }


def delta_message(session_id: str, state: str) -> dict[str, object]:
    return {"type": "status_change", "sessionId": session_id, "status": state}


@dataclass
class FakeStatusApi(StatusApi):
    """Scripted status API.

    `streams` holds one message list per stream opening; an exception instance
    in a list is raised at that point. Once scripts run out, a stream stays
    open until cancelled.
    """

    snapshots: list[object] = field(default_factory=list)
    streams: list[list[object]] = field(default_factory=list)
    stream_opens: int = 0
    polls: int = 0
    initiated: list[tuple[str, str]] = field(default_factory=list)
    disconnected: list[tuple[str, str]] = field(default_factory=list)

    async def get_status_all(self, user_id: str) -> dict[str, object]:
        self.polls += 1
        if not self.snapshots:
            raise httpx.ConnectError("offline")
        item = self.snapshots.pop(0) if len(self.snapshots) > 1 else self.snapshots[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def get_status(self, user_id: str, session_id: str) -> dict[str, object]:
        return {}

    async def initiate(self, user_id: str, session_id: str) -> dict[str, object]:
        self.initiated.append((user_id, session_id))
        return {"success": True, "status": "connecting"}

    async def disconnect(self, user_id: str, session_id: str) -> dict[str, object]:
        self.disconnected.append((user_id, session_id))
        return {"success": True}

    async def stream_status(self, user_id: str) -> AsyncIterator[dict[str, object]]:
        self.stream_opens += 1
        script = self.streams.pop(0) if self.streams else None
        if script is None:
            yield {"type": "connection_status", "status": "connected"}
            await asyncio.Event().wait()
            return
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="header.payload.signature",
        admin_token="admin-token",
        adapter_base_url="http://sidecar.test",
        adapter_token="adapter-token",
        stream_heartbeat_seconds=0.05,
    )


@pytest.fixture
def protocol_client() -> FakeProtocolClient:
    return FakeProtocolClient()


@pytest.fixture
def event_repository() -> InMemoryStatusEventRepository:
    return InMemoryStatusEventRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def dispatcher(notifier: RecordingNotifier) -> NotificationDispatcher:
    return NotificationDispatcher(notifier=notifier)


@pytest.fixture
def container(
    settings: Settings,
    protocol_client: FakeProtocolClient,
    event_repository: InMemoryStatusEventRepository,
) -> AppContainer:
    broadcaster = ChangeBroadcaster(queue_size=settings.subscriber_queue_size)
    status_store = StatusStore(publisher=broadcaster, clock=FakeClock())
    connection_service = ConnectionService(
        store=status_store,
        protocol_client=protocol_client,
        event_repository=event_repository,
    )

    async def close_resources() -> None:
        broadcaster.close_all()

    return AppContainer(
        settings=settings,
        broadcaster=broadcaster,
        status_store=status_store,
        protocol_client=protocol_client,
        connection_service=connection_service,
        close_resources=close_resources,
    )
