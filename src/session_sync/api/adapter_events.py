"""Webhook receiving lifecycle events from the protocol sidecar."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from session_sync.api.models import AdapterEventPayload
from session_sync.api.status import require_identifier
from session_sync.domain.events import AdapterEvent

if TYPE_CHECKING:
    from session_sync.containers import AppContainer

router = APIRouter(prefix="/adapter", tags=["adapter"])


def _get_adapter_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.adapter_token


async def require_adapter(
    x_adapter_token: str | None = Header(default=None),
    adapter_token: str = Depends(_get_adapter_token),
) -> None:
    """Ensure webhook calls come from the configured sidecar."""
    if not x_adapter_token or x_adapter_token != adapter_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.post(
    "/events/{user_id}/{session_id}", dependencies=[Depends(require_adapter)]
)
async def adapter_event(
    user_id: str, session_id: str, payload: AdapterEventPayload, request: Request
) -> dict[str, object]:
    """Apply one sidecar lifecycle event to the status store."""
    container: AppContainer = request.app.state.container
    event = AdapterEvent(
        user_id=require_identifier(user_id, "userId"),
        session_id=require_identifier(session_id, "sessionId"),
        type=payload.event,
        qr_code=payload.qr_code,
        error=payload.error,
    )
    delta = container.connection_service.handle_event(event)
    current = container.status_store.get(event.user_id, event.session_id)
    return {
        "status": "ok",
        "changed": delta is not None,
        "state": current.state.value if current else None,
    }
