"""Dependency container wiring for the server."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from session_sync.adapters.protocol_client import HttpxProtocolClient, ProtocolClient
from session_sync.adapters.supabase_status_event_repository import (
    SupabaseStatusEventRepository,
)
from session_sync.config import Settings
from session_sync.services.broadcaster import ChangeBroadcaster
from session_sync.services.connections import ConnectionService
from session_sync.services.status_store import StatusStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    broadcaster: ChangeBroadcaster
    status_store: StatusStore
    protocol_client: ProtocolClient
    connection_service: ConnectionService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    broadcaster = ChangeBroadcaster(queue_size=resolved_settings.subscriber_queue_size)
    status_store = StatusStore(publisher=broadcaster)
    protocol_client = HttpxProtocolClient.create(
        base_url=resolved_settings.adapter_base_url,
        token=resolved_settings.adapter_token,
    )
    event_repository = None
    if resolved_settings.audit_enabled:
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
        event_repository = SupabaseStatusEventRepository(supabase_client)
    connection_service = ConnectionService(
        store=status_store,
        protocol_client=protocol_client,
        event_repository=event_repository,
    )

    async def close_resources() -> None:
        broadcaster.close_all()
        await protocol_client.close()

    return AppContainer(
        settings=resolved_settings,
        broadcaster=broadcaster,
        status_store=status_store,
        protocol_client=protocol_client,
        connection_service=connection_service,
        close_resources=close_resources,
    )
