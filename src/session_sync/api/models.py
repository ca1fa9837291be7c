"""Pydantic models for request and response payloads."""

from pydantic import BaseModel, ConfigDict, Field

from session_sync.domain.events import AdapterEventType


class AdapterEventPayload(BaseModel):
    """Lifecycle event posted by the protocol sidecar."""

    model_config = ConfigDict(populate_by_name=True)

    event: AdapterEventType
    qr_code: str | None = Field(default=None, alias="qrCode")
    error: str | None = None


class InitiateResponse(BaseModel):
    """Response body for connection initiation."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    status: str
    message: str
    user_id: str = Field(serialization_alias="userId")
    session_id: str = Field(serialization_alias="sessionId")
