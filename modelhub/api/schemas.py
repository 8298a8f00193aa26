"""Pydantic models for the API layer.

Defines request/response schemas for the chat and admin endpoints.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Incoming chat call from the client."""
    endpoint_id: str = Field(..., min_length=1, description="Endpoint to route the call through")
    session_id: str | None = Field(None, description="Session to read history from and save turns to")
    message: str = Field(..., min_length=1, description="User message or image prompt")
    image_path: str | None = Field(None, description="Previously uploaded /uploads/... reference")
    use_history: bool = True
    save_to_db: bool = True


class PlatformRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    base_url: str
    is_custom: bool
    created_at: datetime


class ApiKeyIn(BaseModel):
    name: str = Field(..., min_length=1)
    api_key: str = Field(..., min_length=1)


class ApiKeyRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    api_key: str
    created_at: datetime


class EndpointIn(BaseModel):
    """Endpoint create/update payload. `model_type` is inferred when omitted."""
    name: str = Field(..., min_length=1)
    platform_id: str = Field(..., min_length=1)
    custom_base_url: str = ""
    api_key_id: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    model_type: Literal["text", "image"] | None = None
    system_prompt: str = ""
    temperature: float = Field(0.7, ge=0.0, le=2.0)


class EndpointRecord(BaseModel):
    """Endpoint joined with its platform and credential."""
    id: str
    name: str
    platform_id: str
    custom_base_url: str
    api_key_id: str
    api_key: str
    model: str
    model_type: Literal["text", "image"]
    system_prompt: str
    temperature: float
    created_at: datetime
    platform_base_url: str
    is_custom: bool


class SessionIn(BaseModel):
    endpoint_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class SessionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    endpoint_id: str
    name: str
    created_at: datetime


class MessageRecord(BaseModel):
    """Single message in a conversation history."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    session_id: str
    role: Literal["user", "assistant", "system"]
    content: str
    image_path: str | None = None
    timestamp: datetime


class UploadResponse(BaseModel):
    message: str
    path: str
    filename: str
    originalName: str
    size: int


class ProviderModel(BaseModel):
    id: str
    name: str
    type: str | None = None
    context_length: int | None = None
    pricing: dict | None = None


class DeletedResponse(BaseModel):
    deleted: bool = True
