"""HTTP client for the session sync server."""

import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class StatusApi(Protocol):
    """Interface the status hook uses to reach the server."""

    async def get_status_all(self, user_id: str) -> dict[str, object]:
        """Return the full snapshot for a user."""

    async def get_status(self, user_id: str, session_id: str) -> dict[str, object]:
        """Return the polling fields for one session."""

    async def initiate(self, user_id: str, session_id: str) -> dict[str, object]:
        """Request a new connection."""

    async def disconnect(self, user_id: str, session_id: str) -> dict[str, object]:
        """Request a disconnect."""

    def stream_status(self, user_id: str) -> AsyncIterator[dict[str, object]]:
        """Yield stream messages until the transport closes."""


@dataclass
class HttpxStatusApi:
    """Status API client implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    stream_read_timeout: float = 45.0

    @classmethod
    def create(
        cls, base_url: str, stream_read_timeout: float = 45.0
    ) -> "HttpxStatusApi":
        """Create a status client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(),
            stream_read_timeout=stream_read_timeout,
        )

    async def get_status_all(self, user_id: str) -> dict[str, object]:
        response = await self.http_client.get(
            f"{self.base_url}/status-all/{user_id}", timeout=10
        )
        response.raise_for_status()
        return response.json()

    async def get_status(self, user_id: str, session_id: str) -> dict[str, object]:
        response = await self.http_client.get(
            f"{self.base_url}/status/{user_id}/{session_id}", timeout=10
        )
        response.raise_for_status()
        return response.json()

    async def initiate(self, user_id: str, session_id: str) -> dict[str, object]:
        response = await self.http_client.post(
            f"{self.base_url}/initiate/{user_id}/{session_id}", timeout=30
        )
        response.raise_for_status()
        return response.json()

    async def disconnect(self, user_id: str, session_id: str) -> dict[str, object]:
        response = await self.http_client.post(
            f"{self.base_url}/disconnect/{user_id}/{session_id}", timeout=30
        )
        response.raise_for_status()
        return response.json()

    async def stream_status(self, user_id: str) -> AsyncIterator[dict[str, object]]:
        """Open the server-sent event stream and yield decoded messages.

        The first yielded message is a local `connection_status` marker once
        the server accepted the stream. The read timeout is longer than the
        server heartbeat, so a silently dead transport raises instead of
        hanging forever.
        """
        timeout = httpx.Timeout(10.0, read=self.stream_read_timeout)
        async with self.http_client.stream(
            "GET",
            f"{self.base_url}/status-stream/{user_id}",
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            response.raise_for_status()
            yield {"type": "connection_status", "status": "connected"}
            data_lines: list[str] = []
            async for line in response.aiter_lines():
                if not line:
                    if data_lines:
                        message = _decode("\n".join(data_lines))
                        data_lines = []
                        if message is not None:
                            yield message
                    continue
                if line.startswith(":"):
                    continue
                field, _, value = line.partition(":")
                if field == "data":
                    data_lines.append(value.removeprefix(" "))

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()


def _decode(raw: str) -> dict[str, object] | None:
    try:
        message = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Skipping malformed stream message", extra={"raw": raw})
        return None
    if not isinstance(message, dict):
        return None
    return message
