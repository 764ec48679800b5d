import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

ROLES = ("user", "assistant")
RESOURCE_TYPES = ("file", "link")


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(SQLModel, table=True):
    """Chat session owned by a single user"""
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    created_at: datetime = Field(default_factory=utcnow)
    last_message_at: datetime = Field(default_factory=utcnow)


class ChatMessage(SQLModel, table=True):
    """Chat message with session support"""
    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(foreign_key="chatsession.id", index=True)
    created_at: datetime = Field(default_factory=utcnow)
    role: str
    content: bytes  # encrypted blob
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class StudyResource(SQLModel, table=True):
    """Uploaded file or saved link used to ground answers"""
    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    resource_type: str
    file_path: Optional[str] = None
    url: Optional[str] = None
    mime_type: Optional[str] = None
    content: Optional[str] = None  # cached extracted text
    created_at: datetime = Field(default_factory=utcnow)
