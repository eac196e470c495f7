"""Date-parsing tool so the model can resolve relative dates before scheduling."""

from __future__ import annotations

from typing import Any, Dict, Optional

from saas_assistant.models.tool_response import ToolResponse
from saas_assistant.services.date_parser import parse_relative_date
from saas_assistant.tools.base import Tool, ToolConfig, ToolId


class DateParserTool(Tool):
    """Resolves phrases like "next friday at 3pm" without any provider."""

    default_action = "parse_date"

    config = ToolConfig(
        id=ToolId.DATE_PARSER,
        name="Date Parser",
        description=(
            "Turn a relative date/time phrase (\"next friday\", \"tomorrow at 3pm\") into an exact "
            "ISO 8601 timestamp in the user's timezone."
        ),
        required_fields=("dateString",),
        optional_fields=("timeString", "timeZone"),
        capabilities=("Parse relative dates", "Resolve meeting times"),
        parameters={
            "type": "object",
            "properties": {
                "dateString": {"type": "string", "description": "e.g. 'next friday', '2024-03-19'"},
                "timeString": {"type": "string", "description": "e.g. '3pm', '14:00', 'morning'"},
                "timeZone": {"type": "string", "description": "IANA timezone"},
            },
            "required": ["dateString"],
        },
    )

    def validate(self, data: Dict[str, Any]) -> Optional[ToolResponse]:
        if not data.get("dateString"):
            return ToolResponse.needs("dateString", "Which date do you mean?", error="Missing date")
        return None

    async def execute(self, user_id: str, data: Dict[str, Any]) -> ToolResponse:
        parsed = parse_relative_date(
            str(data["dateString"]),
            data.get("timeString"),
            timezone=data.get("timeZone") or self.settings.default_timezone,
        )
        return ToolResponse.ok(
            {
                "date": parsed.date.isoformat(),
                "formattedDate": parsed.formatted_date,
                "formattedTime": parsed.formatted_time,
                "isoString": parsed.iso_string,
                "timezone": parsed.timezone,
                "formattedMessage": f"{parsed.formatted_date} at {parsed.formatted_time} ({parsed.timezone})",
            }
        )
