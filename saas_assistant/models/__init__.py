"""Data models for the SaaS assistant."""

from saas_assistant.models.chat import (
    Chat,
    ChatRequest,
    IncomingMessage,
    MessageRole,
    StoredMessage,
)
from saas_assistant.models.token import ErrorKind, Token, TokenError, TokenResult
from saas_assistant.models.tool_response import (
    ConnectButton,
    NeedsInput,
    ToolResponse,
    UIHint,
)

__all__ = [
    "Chat",
    "ChatRequest",
    "ConnectButton",
    "ErrorKind",
    "IncomingMessage",
    "MessageRole",
    "NeedsInput",
    "StoredMessage",
    "Token",
    "TokenError",
    "TokenResult",
    "ToolResponse",
    "UIHint",
]
