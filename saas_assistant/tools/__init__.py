"""Provider tools and the registry that runs them."""

from typing import Optional

from saas_assistant.config import Settings
from saas_assistant.services.token_broker import TokenBroker
from saas_assistant.tools.base import Tool, ToolAuthError, ToolConfig, ToolId, create_connection_request
from saas_assistant.tools.calendar import CalendarTool
from saas_assistant.tools.crm_contacts import ContactsTool
from saas_assistant.tools.crm_deals import DealsTool
from saas_assistant.tools.date_tool import DateParserTool
from saas_assistant.tools.documents import DocumentsTool
from saas_assistant.tools.google_meet import GoogleMeetTool
from saas_assistant.tools.history import ToolActionHistory
from saas_assistant.tools.linkedin import LinkedInTool
from saas_assistant.tools.registry import ToolRegistry
from saas_assistant.tools.slack import SlackTool
from saas_assistant.tools.teams import TeamsChatTool
from saas_assistant.tools.zoom import ZoomTool

TOOL_CLASSES = (
    CalendarTool,
    ContactsTool,
    DealsTool,
    ZoomTool,
    GoogleMeetTool,
    SlackTool,
    LinkedInTool,
    TeamsChatTool,
    DocumentsTool,
    DateParserTool,
)


def build_default_registry(
    broker: Optional[TokenBroker],
    settings: Settings,
    history: Optional[ToolActionHistory] = None,
) -> ToolRegistry:
    """Register every tool; fails fast if a ``ToolId`` has no implementation."""

    registry = ToolRegistry(history=history)
    for tool_class in TOOL_CLASSES:
        registry.register(tool_class(broker, settings))

    missing = registry.missing_tools()
    if missing:
        raise RuntimeError(f"No tool registered for: {', '.join(tool_id.value for tool_id in missing)}")
    return registry


__all__ = [
    "TOOL_CLASSES",
    "Tool",
    "ToolAuthError",
    "ToolActionHistory",
    "ToolConfig",
    "ToolId",
    "ToolRegistry",
    "build_default_registry",
    "create_connection_request",
]
