"""Connection, polling and streaming status endpoints."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from session_sync.api.models import InitiateResponse
from session_sync.config import normalize_identifier
from session_sync.domain.status import session_fields

if TYPE_CHECKING:
    from session_sync.containers import AppContainer
    from session_sync.services.broadcaster import ChangeBroadcaster
    from session_sync.services.status_store import StatusStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


def require_identifier(raw: str, name: str) -> str:
    """Return a cleaned identifier or reject the request."""
    value = normalize_identifier(raw)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name} is required"
        )
    return value


@router.post("/initiate/{user_id}/{session_id}")
async def initiate(user_id: str, session_id: str, request: Request) -> JSONResponse:
    """Request `disconnected -> connecting` for a session."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    session_id = require_identifier(session_id, "sessionId")
    result = await container.connection_service.initiate(user_id, session_id)
    body = InitiateResponse(
        success=result.success,
        status=result.status.value,
        message=result.message,
        user_id=user_id,
        session_id=session_id,
    )
    return JSONResponse(
        body.model_dump(by_alias=True),
        status_code=status.HTTP_200_OK
        if result.success
        else status.HTTP_502_BAD_GATEWAY,
    )


@router.post("/disconnect/{user_id}/{session_id}")
async def disconnect(user_id: str, session_id: str, request: Request) -> dict:
    """Request `any -> disconnected` for a session."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    session_id = require_identifier(session_id, "sessionId")
    await container.connection_service.disconnect(user_id, session_id)
    return {"success": True, "userId": user_id, "sessionId": session_id}


@router.get("/status/{user_id}/{session_id}")
async def session_status(user_id: str, session_id: str, request: Request) -> dict:
    """Return the polling fields for one session."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    session_id = require_identifier(session_id, "sessionId")
    return session_fields(container.status_store.get(user_id, session_id))


@router.get("/status-all/{user_id}")
async def status_all(user_id: str, request: Request) -> dict:
    """Return a full snapshot of the user's sessions."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    return container.status_store.snapshot(user_id).to_payload()


@router.get("/status-stream/{user_id}")
async def status_stream(
    user_id: str,
    request: Request,
    session_id: str | None = Query(default=None, alias="sessionId"),
) -> EventSourceResponse:
    """Server-sent event stream: one snapshot, then deltas."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    heartbeat = container.settings.stream_heartbeat_seconds
    return EventSourceResponse(
        stream_status_events(
            user_id=user_id,
            store=container.status_store,
            broadcaster=container.broadcaster,
            is_disconnected=request.is_disconnected,
            heartbeat_seconds=heartbeat,
            session_id=normalize_identifier(session_id),
        ),
        ping=max(1, int(heartbeat)),
    )


async def stream_status_events(  # noqa: PLR0913
    user_id: str,
    store: StatusStore,
    broadcaster: ChangeBroadcaster,
    is_disconnected: Callable[[], Awaitable[bool]],
    heartbeat_seconds: float,
    session_id: str | None = None,
) -> AsyncIterator[dict[str, str]]:
    """Yield SSE events for one subscriber until its transport goes away.

    With `session_id` set, the snapshot and the relayed deltas are limited to
    that session.
    """
    with broadcaster.subscription(user_id) as subscriber:
        payload = store.snapshot(user_id).to_payload()
        if session_id is not None:
            payload["sessions"] = {
                key: value
                for key, value in payload["sessions"].items()
                if key == session_id
            }
        yield _sse_event({"type": "status", "status": payload})
        while not subscriber.closed:
            delta = await subscriber.next_delta(timeout=heartbeat_seconds)
            if delta is None:
                if await is_disconnected():
                    break
                continue
            if session_id is not None and delta.session_id != session_id:
                continue
            yield _sse_event(delta.to_payload())
    logger.info("Status stream closed", extra={"user_id": user_id})


def _sse_event(payload: dict[str, object]) -> dict[str, str]:
    return {"data": json.dumps(payload)}
