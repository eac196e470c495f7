"""The chat turn: classify, run the LLM tool loop, stream, persist.

Events are streamed as newline-delimited JSON objects:

- ``{"type": "tool_result", "toolCallId", "toolName", "result"}``
- ``{"type": "text", "content"}``
- ``{"type": "finish", "chatId", "messageId", "usedTools"}``
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from saas_assistant.config.providers import PROVIDER_DISPLAY_NAMES, RECONNECTION_PHRASES
from saas_assistant.core.auth import UserSession
from saas_assistant.core.chat_store import ChatStoreError
from saas_assistant.core.llm import LLMConfig
from saas_assistant.core.prompts import build_system_prompt
from saas_assistant.core.routing import Classification, classify
from saas_assistant.models.chat import Chat, ChatRequest, MessageRole, StoredMessage
from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.analytics import EventType, track_error, track_event
from saas_assistant.tools.base import create_connection_request
from saas_assistant.utils.logger import get_logger, log_error, log_info


logger = get_logger("assistant.chat")

MAX_STEPS = 10
MAX_TOOL_CONTENT_CHARS = 8000
TITLE_LENGTH = 80

LLM_ERROR_TEXT = "Sorry, I couldn't reach my reasoning engine just now. Please try again."
STUCK_TEXT = (
    "I got stuck while trying to complete that request. Please rephrase or "
    "break it into a smaller step and I'll try again."
)

_CONNECTION_MARKER = "<connection:{}>"


class ChatAccessError(Exception):
    """The chat exists but belongs to someone else."""


@dataclass
class ChatTurn:
    request: ChatRequest
    user: Optional[UserSession]
    request_id: str
    classification: Classification
    timezone: str
    tool_results: List[ToolResponse] = field(default_factory=list)


def _event(payload: Dict[str, Any]) -> str:
    return json.dumps(payload, default=str) + "\n"


def _tool_message_content(response: ToolResponse) -> str:
    content = json.dumps(response.to_dict(), default=str)
    if len(content) > MAX_TOOL_CONTENT_CHARS:
        content = content[:MAX_TOOL_CONTENT_CHARS] + "...[truncated]"
    return content


def connection_marker(text: str, tool_results: List[ToolResponse]) -> Optional[str]:
    """``<connection:{json}>`` for the first provider the user must (re)connect."""

    for response in tool_results:
        if response.requires_connection and response.ui is not None:
            return _CONNECTION_MARKER.format(json.dumps(response.ui.model_dump(by_alias=True, exclude_none=True)))

    lowered = text.lower()
    if not any(phrase in lowered for phrase in RECONNECTION_PHRASES):
        return None
    for service, name in PROVIDER_DISPLAY_NAMES.items():
        if name.lower() in lowered:
            ui = create_connection_request(service).ui
            return _CONNECTION_MARKER.format(json.dumps(ui.model_dump(by_alias=True, exclude_none=True)))
    return None


class ChatHandler:
    def __init__(self, services: Any) -> None:
        self.services = services

    async def start_turn(
        self,
        request: ChatRequest,
        user: Optional[UserSession],
        request_id: str,
    ) -> ChatTurn:
        """Check ownership and persist the user message. Raises ``ChatAccessError``."""

        prompt = request.messages[-1].text() if request.messages else ""
        classification = classify(prompt, authenticated=user is not None)
        timezone = request.timezone or self.services.settings.default_timezone

        if user is not None:
            store = self.services.store
            chat = await store.get_chat(request.id)
            if chat is None:
                title = " ".join(prompt.split())[:TITLE_LENGTH] or "New chat"
                await store.save_chat(Chat(id=request.id, user_id=user.user_id, title=title))
            elif chat.user_id != user.user_id:
                raise ChatAccessError(request.id)

            last = request.messages[-1] if request.messages else None
            if last is not None and last.role == MessageRole.USER:
                await store.save_messages(
                    [
                        StoredMessage(
                            id=last.id or str(uuid.uuid4()),
                            chat_id=request.id,
                            role=MessageRole.USER,
                            parts=last.parts or [{"type": "text", "text": last.text()}],
                            attachments=last.attachments,
                        )
                    ]
                )

        user_id = user.user_id if user else None
        track_event(
            EventType.PROMPT_SUBMITTED,
            {"chat_id": request.id, "use_tools": classification.use_tools, "confidence": classification.confidence},
            user_id=user_id,
        )
        log_info(
            "Chat request classified",
            user_id=user_id,
            request_id=request_id,
            use_tools=classification.use_tools,
            confidence=classification.confidence,
            signals=classification.signals,
        )
        return ChatTurn(
            request=request,
            user=user,
            request_id=request_id,
            classification=classification,
            timezone=timezone,
        )

    def _conversation(self, turn: ChatTurn, tool_names: List[str]) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = [
            {
                "role": "system",
                "content": build_system_prompt(turn.classification.use_tools, turn.timezone, tool_names),
            }
        ]
        for message in turn.request.messages:
            if message.role not in (MessageRole.USER, MessageRole.ASSISTANT):
                continue
            text = message.text()
            if text:
                messages.append({"role": message.role.value, "content": text})
        return messages

    def _with_timezone(self, tool_name: str, arguments: Dict[str, Any], timezone: str) -> Dict[str, Any]:
        tool = self.services.registry.get_tool(tool_name)
        properties = (tool.config.parameters.get("properties") or {}) if tool is not None else {}
        if "timeZone" in properties and not arguments.get("timeZone"):
            return dict(arguments, timeZone=timezone)
        return arguments

    async def stream(self, turn: ChatTurn) -> AsyncIterator[str]:
        registry = self.services.registry
        user_id = turn.user.user_id if turn.user else None

        tools = registry.get_tool_schemas() if turn.classification.use_tools else None
        tool_names = [schema["function"]["name"] for schema in tools or []]
        messages = self._conversation(turn, tool_names)
        config = LLMConfig.from_settings(self.services.settings)

        text = STUCK_TEXT
        for _ in range(MAX_STEPS):
            result = await self.services.llm(messages, tools=tools, config=config, settings=self.services.settings)
            result_type = result.get("type")

            if result_type == "message":
                text = result.get("content") or ""
                break

            if result_type != "tool" or not result.get("tool_calls") or user_id is None:
                log_error(
                    "LLM call failed",
                    user_id=user_id,
                    request_id=turn.request_id,
                    result_type=str(result_type),
                    error=result.get("error"),
                )
                text = LLM_ERROR_TEXT
                break

            calls = result["tool_calls"]
            messages.append(
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {
                            "id": call["id"],
                            "type": "function",
                            "function": {"name": call["name"], "arguments": json.dumps(call["arguments"])},
                        }
                        for call in calls
                    ],
                }
            )

            # Tool calls run one at a time, in the order the model emitted them.
            for call in calls:
                arguments = self._with_timezone(call["name"], call.get("arguments") or {}, turn.timezone)
                response = await registry.execute_with_logging(
                    call["name"], user_id, arguments, request_id=turn.request_id
                )
                turn.tool_results.append(response)
                yield _event(
                    {
                        "type": "tool_result",
                        "toolCallId": call["id"],
                        "toolName": call["name"],
                        "result": response.to_dict(),
                    }
                )
                messages.append(
                    {"role": "tool", "tool_call_id": call["id"], "content": _tool_message_content(response)}
                )

        yield _event({"type": "text", "content": text})

        message_id = str(uuid.uuid4())
        saved = await self._finish(turn, message_id, text)
        finish: Dict[str, Any] = {
            "type": "finish",
            "chatId": turn.request.id,
            "messageId": message_id,
            "usedTools": bool(turn.tool_results),
        }
        if not saved:
            finish["saved"] = False
        yield _event(finish)

    async def _finish(self, turn: ChatTurn, message_id: str, text: str) -> bool:
        """Persist the assistant reply. Returns False when the store gave up."""

        user_id = turn.user.user_id if turn.user else None
        saved = True
        if turn.user is not None:
            marker = connection_marker(text, turn.tool_results)
            saved_text = f"{text}\n\n{marker}" if marker else text
            try:
                await self.services.store.save_messages(
                    [
                        StoredMessage(
                            id=message_id,
                            chat_id=turn.request.id,
                            role=MessageRole.ASSISTANT,
                            parts=[{"type": "text", "text": saved_text}],
                        )
                    ]
                )
            except ChatStoreError as exc:
                # Headers are already sent; the client still gets its finish event.
                saved = False
                log_error(
                    "Failed to save assistant message",
                    user_id=user_id,
                    request_id=turn.request_id,
                    error=str(exc),
                )
                track_error(exc, {"chat_id": turn.request.id, "stage": "save_assistant_message"}, user_id=user_id)
        track_event(
            EventType.PROMPT_COMPLETED,
            {
                "chat_id": turn.request.id,
                "tool_calls": len(turn.tool_results),
                "tool_failures": sum(1 for response in turn.tool_results if not response.success),
            },
            user_id=user_id,
        )
        return saved
