"""Client for the messaging protocol sidecar."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class ProtocolClient(Protocol):
    """Interface for starting and stopping protocol sessions."""

    async def start_session(self, user_id: str, session_id: str) -> None:
        """Ask the protocol client to open (or pair) a session."""

    async def stop_session(
        self, user_id: str, session_id: str, forget: bool = False
    ) -> None:
        """Ask the protocol client to close a session, optionally dropping creds."""


@dataclass
class HttpxProtocolClient:
    """Protocol sidecar client implemented with httpx."""

    base_url: str
    token: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str, token: str) -> "HttpxProtocolClient":
        """Create a sidecar client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            token=token,
            http_client=httpx.AsyncClient(),
        )

    async def start_session(self, user_id: str, session_id: str) -> None:
        """Start a session via the sidecar's start endpoint."""
        url = f"{self.base_url}/sessions/{user_id}/{session_id}/start"
        response = await self.http_client.post(
            url, headers=self._headers(), timeout=15
        )
        response.raise_for_status()

    async def stop_session(
        self, user_id: str, session_id: str, forget: bool = False
    ) -> None:
        """Stop a session via the sidecar's stop endpoint."""
        url = f"{self.base_url}/sessions/{user_id}/{session_id}/stop"
        response = await self.http_client.post(
            url,
            headers=self._headers(),
            json={"forget": forget},
            timeout=15,
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    def _headers(self) -> dict[str, str]:
        return {"X-Adapter-Token": self.token}
