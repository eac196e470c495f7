"""Product analytics events.

Events are written as structured log records on the ``assistant.analytics``
logger. Configured sink keys are attached so downstream log shipping can route
them; no sink SDK is called from the service.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from saas_assistant.config import get_settings
from saas_assistant.utils.logger import get_logger, log_error


logger = get_logger("assistant.analytics")


class EventType(str, Enum):
    TOKEN_REQUEST = "token_request"
    TOOL_ACTION = "tool_action"
    CONNECT_INITIATED = "connect_initiated"
    DISCONNECT_INITIATED = "disconnect_initiated"
    DISCONNECT_SUCCESSFUL = "disconnect_successful"
    PROMPT_SUBMITTED = "prompt_submitted"
    PROMPT_COMPLETED = "prompt_completed"
    ERROR = "error"


def track_event(
    event: EventType,
    properties: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
) -> None:
    """Record an analytics event. Never raises."""

    name = event.value if isinstance(event, EventType) else str(event)
    sinks = get_settings().analytics_sinks
    logger.info(
        "event=%s user_id=%s sinks=%s properties=%s",
        name,
        user_id,
        ",".join(sinks) or "log",
        properties or {},
    )


def track_error(
    error: BaseException,
    context: Optional[Dict[str, Any]] = None,
    user_id: Optional[str] = None,
) -> None:
    properties: Dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    if context:
        properties.update(context)
    log_error("Tracked error", user_id=user_id, **properties)
    track_event(EventType.ERROR, properties, user_id=user_id)
