"""Client-side connection status tracking for one user."""

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime

import httpx

from session_sync.client.api import StatusApi
from session_sync.client.notifications import UNKNOWN, NotificationDispatcher
from session_sync.client.reconnect import ReconnectionSupervisor
from session_sync.domain.status import CONNECTING_STATES, ERROR_STATES, ConnectionState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _parse_state(raw: object) -> ConnectionState | None:
    if isinstance(raw, Mapping):
        raw = raw.get("status")
    try:
        return ConnectionState(raw)
    except ValueError:
        logger.warning("Ignoring unknown session state", extra={"state": raw})
        return None


class ConnectionStatusHook:
    """Single source of truth for a user's session states on the client.

    Seeds from one poll, then follows the server stream. Snapshots replace
    the session map, deltas update one entry, and every observed state goes
    through per-session change detection before reaching the dispatcher.
    When the stream fails the hook polls once and the supervisor reopens the
    stream after a fixed delay.
    A `disconnected` arriving shortly after `connecting` is held until the
    minimum connecting window has passed, so the indicator does not flicker.
    """

    def __init__(  # noqa: PLR0913
        self,
        api: StatusApi,
        dispatcher: NotificationDispatcher,
        user_id: str | None,
        session_id: str = "default",
        reconnect_delay: float = 5.0,
        status_check_interval: float | None = None,
        min_connecting_seconds: float = 0.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.api = api
        self.dispatcher = dispatcher
        self.user_id = user_id
        self.session_id = session_id
        self.status_check_interval = status_check_interval
        self.min_connecting_seconds = min_connecting_seconds
        self.clock = clock
        self.sessions: dict[str, ConnectionState] = {}
        self.stream_active = False
        self.last_update: datetime | None = None
        self.qr_code: str | None = None
        self.error: str | None = None
        self._previous: dict[str, ConnectionState] = {}
        self._connecting_since: dict[str, float] = {}
        self._held: dict[str, asyncio.Task] = {}
        self._supervisor = ReconnectionSupervisor(
            self._run_stream, delay=reconnect_delay
        )
        self._status_check_task: asyncio.Task | None = None
        self._started = False

    async def __aenter__(self) -> "ConnectionStatusHook":
        await self.start()
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    @property
    def state(self) -> ConnectionState:
        return self.sessions.get(self.session_id, ConnectionState.DISCONNECTED)

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def connecting(self) -> bool:
        return self.state in CONNECTING_STATES

    @property
    def has_error(self) -> bool:
        return self.state in ERROR_STATES

    @property
    def reconnect_pending(self) -> bool:
        return self._supervisor.reconnect_pending

    async def start(self) -> None:
        """Seed from a poll and open the stream."""
        user_id = self.user_id
        if user_id is None or self._started:
            return
        self._started = True
        await self.refresh_status()
        if not self._started or self.user_id != user_id:
            # Closed or switched user while the seed poll was in flight.
            return
        self._supervisor.open()
        if self.status_check_interval:
            self._status_check_task = asyncio.create_task(self._periodic_check())

    async def close(self) -> None:
        """Stop the stream, pending reopen and periodic checks."""
        self._started = False
        task, self._status_check_task = self._status_check_task, None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._supervisor.cancel()
        await self._cancel_held()
        self.stream_active = False

    async def set_user(self, user_id: str | None) -> None:
        """Switch to another user, discarding everything known about the old one."""
        await self.close()
        self.user_id = user_id
        self.sessions = {}
        self._previous = {}
        self._connecting_since = {}
        self.last_update = None
        self.qr_code = None
        self.error = None
        await self.start()

    async def refresh_status(self) -> bool:
        """Poll the full snapshot; on failure keep the last known state."""
        user_id = self.user_id
        if user_id is None:
            return False
        try:
            payload = await self.api.get_status_all(user_id)
        except (httpx.HTTPError, ValueError):
            logger.warning(
                "Status poll failed, keeping last known state",
                extra={"user_id": user_id},
            )
            return False
        if self.user_id != user_id:
            return False
        await self.apply_snapshot(payload)
        return True

    async def initiate_connection(self) -> bool:
        """Ask the server to connect the active session."""
        if self.user_id is None:
            return False
        try:
            result = await self.api.initiate(self.user_id, self.session_id)
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to initiate connection",
                extra={"user_id": self.user_id, "session_id": self.session_id},
            )
            self.error = str(exc)
            return False
        return bool(result.get("success"))

    async def disconnect_session(self) -> bool:
        """Ask the server to disconnect the active session."""
        if self.user_id is None:
            return False
        try:
            result = await self.api.disconnect(self.user_id, self.session_id)
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to disconnect session",
                extra={"user_id": self.user_id, "session_id": self.session_id},
            )
            self.error = str(exc)
            return False
        return bool(result.get("success"))

    async def handle_message(self, message: Mapping[str, object]) -> None:
        """Reconcile one stream message into local state."""
        kind = message.get("type")
        if kind == "status":
            status = message.get("status")
            if isinstance(status, Mapping):
                await self.apply_snapshot(status)
        elif kind == "status_change":
            await self.apply_delta(message)
        elif kind == "connection_status":
            if message.get("status") == "connected":
                self.stream_active = True
            else:
                await self._handle_stream_failure(message.get("error"))

    async def apply_snapshot(self, payload: Mapping[str, object]) -> None:
        sessions = payload.get("sessions")
        if not isinstance(sessions, Mapping):
            return
        entries: dict[str, Mapping[str, object]] = {}
        parsed: dict[str, ConnectionState] = {}
        for session_id, entry in sessions.items():
            state = _parse_state(entry)
            if state is None:
                continue
            parsed[session_id] = state
            entries[session_id] = entry if isinstance(entry, Mapping) else {}
        self.sessions = {
            session_id: state
            for session_id, state in self.sessions.items()
            if session_id in parsed
        }
        for session_id in [sid for sid in self._held if sid not in parsed]:
            self._held.pop(session_id).cancel()
        for session_id, state in parsed.items():
            entry = entries[session_id]
            await self._accept(
                session_id,
                state,
                qr_code=entry.get("qrCode"),
                error=entry.get("error"),
            )

    async def apply_delta(self, message: Mapping[str, object]) -> None:
        session_id = message.get("sessionId")
        state = _parse_state(message.get("status"))
        if not isinstance(session_id, str) or state is None:
            return
        await self._accept(session_id, state, error=message.get("error"))

    async def _accept(
        self,
        session_id: str,
        state: ConnectionState,
        qr_code: object = None,
        error: object = None,
    ) -> None:
        held = self._held.pop(session_id, None)
        if held is not None:
            held.cancel()
        now = asyncio.get_running_loop().time()
        previous = self.sessions.get(session_id)
        if (
            state is ConnectionState.DISCONNECTED
            and previous is ConnectionState.CONNECTING
        ):
            since = self._connecting_since.get(session_id, now)
            remaining = self.min_connecting_seconds - (now - since)
            if remaining > 0:
                # Keep showing `connecting` for the minimum window.
                self._held[session_id] = asyncio.create_task(
                    self._apply_after(session_id, state, remaining)
                )
                return
        if state is ConnectionState.CONNECTING and previous is not state:
            self._connecting_since[session_id] = now
        self.sessions[session_id] = state
        await self._observe(session_id, state, qr_code=qr_code, error=error)

    async def _apply_after(
        self, session_id: str, state: ConnectionState, delay: float
    ) -> None:
        await asyncio.sleep(delay)
        self._held.pop(session_id, None)
        self.sessions[session_id] = state
        await self._observe(session_id, state)

    async def _cancel_held(self) -> None:
        tasks = list(self._held.values())
        self._held.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _observe(
        self,
        session_id: str,
        state: ConnectionState,
        qr_code: object = None,
        error: object = None,
    ) -> None:
        previous = self._previous.get(session_id, UNKNOWN)
        self._previous[session_id] = state
        if session_id == self.session_id:
            self.last_update = self.clock()
            self.qr_code = (
                qr_code
                if state is ConnectionState.QR_REQUIRED and isinstance(qr_code, str)
                else None
            )
            self.error = (
                error if state in ERROR_STATES and isinstance(error, str) else None
            )
        if previous != state:
            await self.dispatcher.notify(previous, state, session_id)

    async def _run_stream(self) -> None:
        user_id = self.user_id
        if user_id is None:
            return
        try:
            async for message in self.api.stream_status(user_id):
                await self.handle_message(message)
        except asyncio.CancelledError:
            self.stream_active = False
            raise
        except (httpx.HTTPError, ValueError) as exc:
            await self._handle_stream_failure(str(exc))
            return
        await self._handle_stream_failure("stream closed")

    async def _handle_stream_failure(self, error: object) -> None:
        self.stream_active = False
        logger.warning(
            "Status stream interrupted", extra={"user_id": self.user_id, "error": error}
        )
        if not self._started:
            return
        await self.refresh_status()
        self._supervisor.schedule()

    async def _periodic_check(self) -> None:
        while True:
            await asyncio.sleep(self.status_check_interval)
            await self.refresh_status()
