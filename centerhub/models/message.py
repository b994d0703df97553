"""Conversation and message models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """A single persisted message of a conversation."""
    id: str = Field(..., description="UUID of the message")
    role: str = Field(..., description="'user' | 'assistant'")
    content: str = Field(..., description="Message text")
    timestamp: datetime
    data: Optional[Dict[str, Any]] = Field(None, description="Structured tool-result payload")


class ConversationContext(BaseModel):
    """Per-turn view of a conversation, loaded fresh each turn."""
    conversation_id: str
    owner_id: str
    tenant_id: str
    messages: List[ChatMessage] = Field(default_factory=list)


class AssistantMessage(ChatMessage):
    """Reply returned to the façade for one turn."""
    conversation_id: str
    degraded: bool = False


class ConversationSummary(BaseModel):
    id: str
    title: str
    owner_id: str
    tenant_id: str
    created_at: datetime
    last_activity_at: datetime


class ConversationPage(BaseModel):
    """One page of conversations; next_cursor is opaque to callers."""
    items: List[ConversationSummary] = Field(default_factory=list)
    next_cursor: Optional[str] = None
