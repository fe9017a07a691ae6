"""Request and response models for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

MAX_MESSAGE_LENGTH = 10000


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    thread_id: Optional[str] = None


class ThreadSummary(BaseModel):
    thread_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime
    total_tokens: int = 0


class ThreadListResponse(BaseModel):
    threads: list[ThreadSummary]


class ThreadMessage(BaseModel):
    id: Optional[int]
    role: str
    content: str
    created_at: datetime


class ThreadDetail(BaseModel):
    thread_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0
    messages: list[ThreadMessage] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    deleted: bool = True


class HealthResponse(BaseModel):
    status: str
    checks: dict[str, bool]
