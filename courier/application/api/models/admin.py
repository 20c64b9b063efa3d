"""
Admin API Request/Response Models

Pydantic models for the operator endpoints: queue controls, manual send,
restart, and the combined status view.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from courier.delivery.models import MessagePriority


class SendRequest(BaseModel):
    """Body of POST /admin/send."""

    destination: str = Field(..., min_length=1, description="Remote party address")
    text: str = Field(..., min_length=1, description="Message text")
    priority: MessagePriority = Field(default=MessagePriority.NORMAL, description="Delivery tier")
    message_id: str | None = Field(default=None, description="Optional id for de-duplication")

    @field_validator("text")
    @classmethod
    def text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must not be blank")
        return v


class SendResponse(BaseModel):
    accepted: bool = Field(..., description="False when the id was already queued")
    message_id: str | None = Field(default=None, description="Id of the queued message")
    queue: dict[str, Any] = Field(default_factory=dict, description="Queue status after enqueue")


class QueueActionResponse(BaseModel):
    action: str = Field(..., description="Operation performed")
    affected: int = Field(default=0, ge=0, description="Messages affected by the operation")
    queue: dict[str, Any] = Field(default_factory=dict, description="Queue status after the action")


class StatusResponse(BaseModel):
    connection: dict[str, Any]
    queue: dict[str, Any]
    session: dict[str, Any]
