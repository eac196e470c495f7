"""System prompts for the chat model."""

from __future__ import annotations

from typing import Iterable, Optional

from saas_assistant.services.date_parser import get_current_date_context


BASE_PROMPT = (
    "You are a friendly, concise assistant for a SaaS team. "
    "Keep answers short and helpful."
)

TOOLS_PROMPT = """You can act on the user's connected apps through the tools provided.

Rules:
- Today is {formatted_date} ({current_date}); the time is {current_time} in {timezone}.
  Tomorrow is {tomorrow}; one week from today is {next_week}.
- Resolve relative dates ("next friday", "tomorrow at 3pm") with the date-parser tool or from the
  dates above, and always pass ISO 8601 times to scheduling tools.
- If the user names a person without an email address, look them up with crm-contacts first.
- Never invent emails, ids or links. Only report links returned by a tool.
- When a tool says a connection is required, tell the user to connect that service and stop.
- When a tool asks for more input, ask the user exactly that question.
- After a tool succeeds, summarise the result using its formattedMessage.

Available tools: {tool_names}.
"""


def build_system_prompt(
    use_tools: bool,
    timezone: str = "UTC",
    tool_names: Optional[Iterable[str]] = None,
) -> str:
    if not use_tools:
        return BASE_PROMPT

    context = get_current_date_context(timezone)
    rules = TOOLS_PROMPT.format(
        formatted_date=context["formattedDate"],
        current_date=context["currentDate"],
        current_time=context["currentTime"],
        timezone=context["timezone"],
        tomorrow=context["tomorrow"],
        next_week=context["nextWeek"],
        tool_names=", ".join(tool_names or []) or "none",
    )
    return f"{BASE_PROMPT}\n\n{rules}"
