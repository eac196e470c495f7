"""Chat and message models shared by the chat route and the chat store."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class IncomingMessage(BaseModel):
    """A client message. Text arrives either as ``content`` or as ``parts``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    role: MessageRole = MessageRole.USER
    content: Optional[str] = None
    parts: List[Dict[str, Any]] = Field(default_factory=list)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)

    def text(self) -> str:
        if self.content:
            return self.content
        chunks = [
            str(part.get("text", ""))
            for part in self.parts
            if isinstance(part, dict) and part.get("type", "text") == "text"
        ]
        return "".join(chunks)


class ChatRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str
    messages: List[IncomingMessage]
    timezone: Optional[str] = None


class Chat(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    title: str = "New chat"
    created_at: datetime = Field(default_factory=_utcnow)
    visibility: str = "private"


class StoredMessage(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    chat_id: str
    role: MessageRole
    parts: List[Dict[str, Any]] = Field(default_factory=list)
    attachments: List[Dict[str, Any]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    def text(self) -> str:
        return "".join(
            str(part.get("text", "")) for part in self.parts if isinstance(part, dict)
        )
