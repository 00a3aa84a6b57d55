# summary_chat/models.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class ThreadResponse(BaseModel):
    """A conversation thread."""
    id: int
    title: Optional[str]
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ThreadListResponse(BaseModel):
    threads: List[ThreadResponse]


class MessageResponse(BaseModel):
    """One persisted turn."""
    id: int
    thread_id: int
    sender_type: str
    content_type: str
    content: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    link_url: Optional[str] = None
    has_full_content: bool
    summary_role: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]


class ErrorResponse(BaseModel):
    status: int
    message: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    analytics_enabled: bool
