"""Logging utilities for the SaaS assistant.

This module centralizes logger configuration and the structured
``log_info`` / ``log_warn`` / ``log_error`` helpers used at request
boundaries (chat route, tool execution, token broker).
"""

import json
import logging
import uuid
from typing import Optional


_EVENT_LOGGER_NAME = "assistant.events"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger, configuring a console handler on first use."""

    logger_name = name or "assistant"
    logger = logging.getLogger(logger_name)

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    return logger


def generate_request_id() -> str:
    """Generate a unique request identifier for correlating logs."""

    return str(uuid.uuid4())


def _format_structured_message(
    message: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> str:
    """Format a log message as a JSON string."""

    payload: dict = {"message": f"[ASSISTANT] {message}"}
    if user_id is not None:
        payload["user_id"] = user_id
    if request_id is not None:
        payload["request_id"] = request_id
    if extra:
        payload["extra"] = extra
    return json.dumps(payload, default=str)


def log_info(
    msg: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a structured informational event."""

    get_logger(_EVENT_LOGGER_NAME).info(
        _format_structured_message(msg, user_id=user_id, request_id=request_id, extra=extra or None)
    )


def log_warn(
    msg: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a structured warning."""

    get_logger(_EVENT_LOGGER_NAME).warning(
        _format_structured_message(msg, user_id=user_id, request_id=request_id, extra=extra or None)
    )


def log_error(
    msg: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a structured error."""

    get_logger(_EVENT_LOGGER_NAME).error(
        _format_structured_message(msg, user_id=user_id, request_id=request_id, extra=extra or None)
    )
