"""
Webhook DTOs (Pydantic v2).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from application.dtos.base import DTOBase
from domain.webhook.entity import DeliveryStatus, EventType


class TransportResponse(DTOBase):
    """What the outbound HTTP transport hands back to the executor."""

    status_code: int
    reason: str = ""
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class EndpointSummary(DTOBase):
    id: str
    url: str
    enabled: bool


class DeliveryStatusResponse(DTOBase):
    id: str
    event_type: EventType
    status: DeliveryStatus
    attempts: int
    next_attempt_at: Optional[datetime] = None
    last_attempt_at: Optional[datetime] = None
    succeeded_at: Optional[datetime] = None
    response_code: Optional[int] = None
    error_message: Optional[str] = None
    payload: dict[str, Any]
    endpoint: Optional[EndpointSummary] = None
    created_at: Optional[datetime] = None


class CreateWebhookEndpoint(DTOBase):
    url: str = Field(..., max_length=2048)
    events: list[EventType] = Field(..., min_length=1)
    enabled: bool = True
    description: Optional[str] = Field(None, max_length=500)


class UpdateWebhookEndpoint(DTOBase):
    """Mutable fields only; the secret changes through rotation."""

    url: Optional[str] = Field(None, max_length=2048)
    events: Optional[list[EventType]] = Field(None, min_length=1)
    enabled: Optional[bool] = None
    description: Optional[str] = Field(None, max_length=500)


class WebhookEndpointResponse(DTOBase):
    id: str
    url: str
    events: list[str]
    enabled: bool
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WebhookEndpointCreated(WebhookEndpointResponse):
    """Returned once on creation; the plaintext secret is never readable again."""

    secret: str


class SecretRotationResponse(DTOBase):
    id: str
    secret: str
    rotated_at: datetime
