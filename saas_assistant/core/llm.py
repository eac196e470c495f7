"""LLM client for the assistant.

Wraps the OpenAI chat completions API with tool calling and returns one of
three plain dict shapes so the chat loop never deals with SDK objects:

- ``{"type": "message", "content": str}``
- ``{"type": "tool", "tool_calls": [{"id", "name", "arguments"}, ...]}``
- ``{"type": "error", "error": str}``
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel

from saas_assistant.config import Settings, get_settings
from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.llm")


class LLMConfig(BaseModel):
    model: str = "gpt-4o-mini"
    max_tokens: int = 1024
    temperature: float = 0.2
    request_timeout: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMConfig":
        return cls(model=settings.openai_model)


def _get_client(settings: Settings) -> AsyncOpenAI:
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY is not set; LLM calls will fail")
        raise RuntimeError("OPENAI_API_KEY is not set")
    return AsyncOpenAI(api_key=settings.openai_api_key)


def _parse_arguments(raw: Any) -> Dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except (TypeError, ValueError):
        logger.warning("Model returned tool arguments that are not JSON: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


async def call_llm(
    messages: List[Dict[str, Any]],
    tools: Optional[List[Dict[str, Any]]] = None,
    config: Optional[LLMConfig] = None,
    settings: Optional[Settings] = None,
) -> Dict[str, Any]:
    """Call the chat model with optional tool schemas."""

    settings = settings or get_settings()
    cfg = config or LLMConfig.from_settings(settings)

    try:
        client = _get_client(settings)
    except RuntimeError as exc:
        return {"type": "error", "error": str(exc)}

    kwargs: Dict[str, Any] = {
        "model": cfg.model,
        "messages": messages,
        "max_tokens": cfg.max_tokens,
        "temperature": cfg.temperature,
        "timeout": cfg.request_timeout,
    }
    if tools:
        kwargs["tools"] = tools
        kwargs["tool_choice"] = "auto"

    try:
        response = await client.chat.completions.create(**kwargs)
    except OpenAIError as exc:
        logger.error("Error while calling OpenAI chat completion: %r", exc)
        return {"type": "error", "error": "LLM_CALL_FAILED"}

    if not response or not getattr(response, "choices", None):
        logger.warning("Empty response from LLM")
        return {"type": "error", "error": "EMPTY_RESPONSE"}

    message = response.choices[0].message

    tool_calls = getattr(message, "tool_calls", None)
    if tool_calls:
        return {
            "type": "tool",
            "tool_calls": [
                {
                    "id": call.id,
                    "name": call.function.name,
                    "arguments": _parse_arguments(call.function.arguments),
                }
                for call in tool_calls
            ],
        }

    content = message.content or ""
    if isinstance(content, list):
        content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
    return {"type": "message", "content": str(content)}
