"""Operator endpoints with simple token auth."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from session_sync.api.status import require_identifier

if TYPE_CHECKING:
    from session_sync.containers import AppContainer

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request, limit: int = 100) -> dict[str, object]:
    """Return tracked sessions across all users, newest update first."""
    container: AppContainer = request.app.state.container
    sessions = container.status_store.sessions()[:limit]
    return {
        "sessions": [
            {
                "userId": record.user_id,
                "sessionId": record.session_id,
                **record.to_payload(),
            }
            for record in sessions
        ]
    }


@router.get("/subscribers", dependencies=[Depends(require_admin)])
async def list_subscribers(request: Request) -> dict[str, object]:
    """Return live stream subscriber counts per user."""
    container: AppContainer = request.app.state.container
    counts = container.broadcaster.subscriber_counts()
    return {"total": sum(counts.values()), "users": counts}


@router.get("/events", dependencies=[Depends(require_admin)])
async def list_events(
    request: Request, user_id: str | None = None, limit: int = 50
) -> dict[str, object]:
    """Return the recent status event audit trail."""
    container: AppContainer = request.app.state.container
    return {
        "events": container.connection_service.recent_events(
            user_id=user_id, limit=limit
        )
    }


@router.post(
    "/resolve-conflict/{user_id}/{session_id}",
    dependencies=[Depends(require_admin)],
)
async def resolve_conflict(
    user_id: str, session_id: str, request: Request
) -> dict[str, object]:
    """Move a session from `conflict` to `conflict_resolved`."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    session_id = require_identifier(session_id, "sessionId")
    delta = container.connection_service.resolve_conflict(user_id, session_id)
    return {"success": True, "changed": delta is not None}


@router.post("/forget/{user_id}/{session_id}", dependencies=[Depends(require_admin)])
async def forget_session(
    user_id: str, session_id: str, request: Request
) -> dict[str, object]:
    """Disconnect a session and drop its status record."""
    container: AppContainer = request.app.state.container
    user_id = require_identifier(user_id, "userId")
    session_id = require_identifier(session_id, "sessionId")
    removed = await container.connection_service.forget(user_id, session_id)
    return {"success": True, "removed": removed}
