"""Dependency wiring for the status client."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from session_sync.client.api import HttpxStatusApi, StatusApi
from session_sync.client.hook import ConnectionStatusHook
from session_sync.client.notifications import (
    LoggingNotifier,
    NotificationDispatcher,
    Notifier,
)
from session_sync.config import ClientSettings


@dataclass
class ClientContainer:
    """Holds client-wide dependencies owned by the application context."""

    settings: ClientSettings
    api: StatusApi
    dispatcher: NotificationDispatcher
    close_resources: Callable[[], Awaitable[None]]

    def create_hook(
        self, user_id: str | None, session_id: str = "default"
    ) -> ConnectionStatusHook:
        """Create a status hook bound to this container's API and dispatcher."""
        return ConnectionStatusHook(
            api=self.api,
            dispatcher=self.dispatcher,
            user_id=user_id,
            session_id=session_id,
            reconnect_delay=self.settings.reconnect_delay_seconds,
            status_check_interval=self.settings.status_check_interval_seconds or None,
            min_connecting_seconds=self.settings.min_connecting_seconds,
        )


def build_client_container(
    settings: ClientSettings | None = None, notifier: Notifier | None = None
) -> ClientContainer:
    """Create the default client container."""
    resolved_settings = settings or ClientSettings()
    api = HttpxStatusApi.create(
        resolved_settings.api_base_url,
        stream_read_timeout=resolved_settings.stream_read_timeout_seconds,
    )
    dispatcher = NotificationDispatcher(notifier=notifier or LoggingNotifier())

    async def close_resources() -> None:
        await api.close()

    return ClientContainer(
        settings=resolved_settings,
        api=api,
        dispatcher=dispatcher,
        close_resources=close_resources,
    )
