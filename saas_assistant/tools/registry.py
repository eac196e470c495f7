"""Tool registry and the logged execution path used by the chat route."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from saas_assistant.models.token import ErrorKind
from saas_assistant.models.tool_response import ERROR_UI, ToolResponse, UIHint
from saas_assistant.services.analytics import EventType, track_event
from saas_assistant.services.http_client import ProviderError
from saas_assistant.tools.base import Tool, ToolAuthError, ToolConfig, ToolId
from saas_assistant.tools.history import ToolActionHistory
from saas_assistant.utils.logger import get_logger, log_info, log_warn


logger = get_logger("assistant.registry")


def _as_tool_id(value: Union[str, ToolId]) -> Optional[ToolId]:
    if isinstance(value, ToolId):
        return value
    try:
        return ToolId(value)
    except ValueError:
        return None


class ToolRegistry:
    def __init__(self, history: Optional[ToolActionHistory] = None) -> None:
        self._tools: Dict[ToolId, Tool] = {}
        self.history = history if history is not None else ToolActionHistory()

    def register(self, tool: Tool) -> None:
        tool_id = _as_tool_id(tool.config.id)
        if tool_id is None:
            raise ValueError(f"Unknown tool id: {tool.config.id!r}")
        if tool_id in self._tools:
            logger.warning("Replacing registered tool %s", tool_id.value)
        self._tools[tool_id] = tool

    def get_tool(self, tool_id: Union[str, ToolId]) -> Optional[Tool]:
        key = _as_tool_id(tool_id)
        if key is None:
            return None
        return self._tools.get(key)

    def get_all_tools(self) -> List[Tool]:
        return list(self._tools.values())

    def get_tool_configs(self) -> List[ToolConfig]:
        return [tool.config for tool in self._tools.values()]

    def find_by_capability(self, keyword: str) -> List[Tool]:
        needle = keyword.strip().lower()
        if not needle:
            return []
        return [
            tool
            for tool in self._tools.values()
            if any(needle in capability.lower() for capability in tool.config.capabilities)
        ]

    def missing_tools(self) -> List[ToolId]:
        return [tool_id for tool_id in ToolId if tool_id not in self._tools]

    def get_tool_schemas(self) -> List[Dict[str, Any]]:
        """OpenAI function-calling schemas, one per registered tool."""

        schemas: List[Dict[str, Any]] = []
        for tool in self._tools.values():
            cfg = tool.config
            schemas.append(
                {
                    "type": "function",
                    "function": {
                        "name": cfg.id.value,
                        "description": cfg.description,
                        "parameters": cfg.parameters or {"type": "object", "properties": {}},
                    },
                }
            )
        return schemas

    async def execute_with_logging(
        self,
        tool_id: Union[str, ToolId],
        user_id: str,
        data: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
    ) -> ToolResponse:
        """Validate then execute a tool. Never raises."""

        tool = self.get_tool(tool_id)
        if tool is None:
            log_warn("Unknown tool requested", user_id=user_id, request_id=request_id, tool=str(tool_id))
            return ToolResponse(
                success=False,
                error=f"Unknown tool: {tool_id}",
                error_kind=ErrorKind.VALIDATION_ERROR,
            )

        payload: Dict[str, Any] = data if isinstance(data, dict) else {}
        name = tool.config.id.value
        action = tool.action_name(payload)
        log_info("Tool execution started", user_id=user_id, request_id=request_id, tool=name, action=action)

        try:
            response = tool.validate(payload)
            if response is not None:
                log_info(
                    "Tool validation failed", user_id=user_id, request_id=request_id, tool=name, error=response.error
                )
            else:
                response = await tool.execute(user_id, payload)
        except ToolAuthError as exc:
            response = tool.token_error_response(exc.token_error)
        except ProviderError as exc:
            response = tool.provider_error_response(exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error while executing tool %s", name)
            response = ToolResponse(
                success=False,
                error=str(exc) or type(exc).__name__,
                error_kind=ErrorKind.PROVIDER_ERROR,
                ui=UIHint(
                    type=ERROR_UI,
                    service=tool.config.provider,
                    message=f"Something went wrong while running {tool.config.name}. Please try again.",
                ),
            )

        self.history.record(user_id, name, action, tool.config.provider, response)
        track_event(
            EventType.TOOL_ACTION,
            {
                "tool": name,
                "action": action,
                "provider": tool.config.provider,
                "success": response.success,
                "error_kind": response.error_kind.value if response.error_kind else None,
            },
            user_id=user_id,
        )
        log_info(
            "Tool execution finished",
            user_id=user_id,
            request_id=request_id,
            tool=name,
            success=response.success,
        )
        return response
